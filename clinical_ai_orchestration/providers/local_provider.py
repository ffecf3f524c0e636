"""
Local Rule-Based Provider - Network-Independent Backend

Deterministic provider built on the rule engine. It performs no I/O, is
always registered, serves as the terminal fallback of every chain, and
is the provider of choice for safety-critical scoring that must not
depend on network availability.
"""

from datetime import date
from typing import Callable, Optional

from loguru import logger

from clinical_ai_orchestration.core.constants import LOCAL_ENTITY_CONFIDENCE
from clinical_ai_orchestration.core.enums import ProviderKind
from clinical_ai_orchestration.core.models import PatientData, ProcessingOptions
from clinical_ai_orchestration.providers import rule_engine
from clinical_ai_orchestration.providers.base import (
    BaseClinicalAIProvider,
    EntityOutput,
    PromptOutput,
    RiskOutput,
)


class LocalRuleBasedProvider(BaseClinicalAIProvider):
    """
    Rule-based provider with regex extraction and heuristic risk scoring.

    What it does:
        - process_prompt: classifies the prompt by task or keyword (diagnosis,
          treatment, medication, risk) and returns canned text built from
          matches against the context; otherwise a disclaimer
        - extract_entities: regex table scan, confidence 0.8, exact offsets
        - analyze_risk: weighted medication / allergy / age heuristics

    Example:
        >>> provider = LocalRuleBasedProvider()
        >>> result = await provider.extract_entities("fever and cough")
        >>> [e.text for e in result.entities]
        ['fever', 'cough']
    """

    MODEL_NAME = "rule-based"

    def __init__(self, today: Optional[Callable[[], date]] = None):
        """
        Initialize the local provider.

        Args:
            today: Clock used for age calculation (defaults to date.today)
        """
        super().__init__(model_name=self.MODEL_NAME)
        self._today = today or date.today
        logger.info("LocalRuleBasedProvider initialized")

    @property
    def provider_name(self) -> str:
        return ProviderKind.LOCAL.value

    async def _process_prompt_internal(
        self, prompt: str, context: str, options: ProcessingOptions
    ) -> PromptOutput:
        category = rule_engine.classify_prompt(prompt)
        if category is None:
            return PromptOutput(text=rule_engine.LOCAL_DISCLAIMER, tokens_used=0)

        text, payload = rule_engine.CANNED_RESPONSES[category](context)
        logger.debug(f"Local prompt classified as '{category}'")
        return PromptOutput(text=text, json=payload, tokens_used=0)

    async def _extract_entities_internal(
        self, text: str, options: ProcessingOptions
    ) -> EntityOutput:
        return EntityOutput(entities=rule_engine.extract_entities(text, LOCAL_ENTITY_CONFIDENCE))

    async def _analyze_risk_internal(
        self, patient: PatientData, options: ProcessingOptions
    ) -> RiskOutput:
        factors, overall, recommendations = rule_engine.assess_risk(patient, self._today())
        return RiskOutput(
            risk_factors=factors,
            overall_risk=overall,
            recommendations=recommendations,
        )
