"""
Providers Layer - Interchangeable AI Backends

Every backend implements the same capability interface so the
orchestration layer can route and fall back without knowing which one
it is talking to.

Submodules:
    base.py            → Protocol and envelope-producing base class
    rule_engine.py     → Deterministic regex / heuristic functions
    local_provider.py  → Always-available rule-based provider
    payloads.py        → Pydantic validation of remote structured replies
    remote_provider.py → Shared grounding / parsing for remote adapters
    openai_provider.py → OpenAI implementation
    gemini_provider.py → Google Gemini implementation
"""

from clinical_ai_orchestration.providers.base import (
    ClinicalAIProviderProtocol,
    BaseClinicalAIProvider,
    RULE_FALLBACK_SUFFIX,
)
from clinical_ai_orchestration.providers.local_provider import LocalRuleBasedProvider
from clinical_ai_orchestration.providers.remote_provider import (
    BaseRemoteLLMProvider,
    classify_error,
)
from clinical_ai_orchestration.providers.openai_provider import OpenAIProvider
from clinical_ai_orchestration.providers.gemini_provider import GeminiProvider

__all__ = [
    "ClinicalAIProviderProtocol",
    "BaseClinicalAIProvider",
    "RULE_FALLBACK_SUFFIX",
    "LocalRuleBasedProvider",
    "BaseRemoteLLMProvider",
    "classify_error",
    "OpenAIProvider",
    "GeminiProvider",
]
