"""
Orchestration Layer - Registry, Selection, Context and Fallback

Submodules:
    registry.py        → Immutable ProviderRegistry and build_registry
    manager.py         → OrchestrationManager (provider selection)
    context_builder.py → Deterministic grounding context and task prompts
    fallback.py        → Ordered retry / fallback policy
"""

from clinical_ai_orchestration.orchestration.registry import ProviderRegistry, build_registry
from clinical_ai_orchestration.orchestration.manager import OrchestrationManager
from clinical_ai_orchestration.orchestration.context_builder import (
    build_patient_context,
    build_task_prompt,
    task_snapshot,
)
from clinical_ai_orchestration.orchestration.fallback import (
    AttemptRecord,
    FallbackOutcome,
    FallbackPolicy,
)

__all__ = [
    "ProviderRegistry",
    "build_registry",
    "OrchestrationManager",
    "build_patient_context",
    "build_task_prompt",
    "task_snapshot",
    "AttemptRecord",
    "FallbackOutcome",
    "FallbackPolicy",
]
