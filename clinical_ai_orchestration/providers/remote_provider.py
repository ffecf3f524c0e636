"""
Remote LLM Provider - Shared Behaviour of Network-Backed Adapters

This module implements what every remote adapter does the same way:
grounding, sentinel detection, JSON extraction, SDK error
classification and the rule-engine fallback for unparseable structured
replies. Concrete adapters implement one coroutine, `_complete`.

Flow of a remote call:
    1. Build the grounding system prompt from the patient context
    2. `_complete(system_prompt, prompt, options)` → (text, tokens)
    3. Empty reply → MalformedResponseError
    4. Sentinel marker in reply → InsufficientDataError
    5. Best-effort JSON extraction
    6. For entities / risk: validate the JSON shape; on failure fall back
       to the rule engine and mark the model "+rule-fallback"
"""

import json
from abc import abstractmethod
from datetime import date
from typing import Callable, List, Optional, Tuple

from loguru import logger
from pydantic import ValidationError

from clinical_ai_orchestration.core.constants import (
    ENTITY_EXTRACTION_PROMPT,
    FALLBACK_ENTITY_CONFIDENCE,
    GROUNDING_SYSTEM_PROMPT,
    INSUFFICIENT_DATA_MARKERS,
    RISK_ANALYSIS_PROMPT,
)
from clinical_ai_orchestration.core.enums import ErrorCategory
from clinical_ai_orchestration.core.exceptions import (
    InsufficientDataError,
    MalformedResponseError,
    ProviderError,
    TransientProviderError,
)
from clinical_ai_orchestration.core.models import (
    ExtractedEntity,
    PatientData,
    ProcessingOptions,
    RiskFactor,
)
from clinical_ai_orchestration.providers import rule_engine
from clinical_ai_orchestration.providers.base import (
    BaseClinicalAIProvider,
    EntityOutput,
    PromptOutput,
    RiskOutput,
)
from clinical_ai_orchestration.providers.payloads import (
    RemoteEntityPayload,
    RemoteRiskPayload,
    extract_json,
)


# =============================================================================
# STAGE 1: ERROR CLASSIFICATION
# =============================================================================
# SDKs expose HTTP status codes inconsistently (`status_code` on openai,
# `code` on google.api_core) so the status and the message text are both
# inspected. Rules are checked in order; the first match wins.

_STATUS_CATEGORIES = {
    401: ErrorCategory.AUTH,
    403: ErrorCategory.ACCESS_DENIED,
    404: ErrorCategory.MODEL_ERROR,
    408: ErrorCategory.TIMEOUT,
    429: ErrorCategory.RATE_LIMITED,
    500: ErrorCategory.OVERLOADED,
    502: ErrorCategory.OVERLOADED,
    503: ErrorCategory.OVERLOADED,
    504: ErrorCategory.TIMEOUT,
    529: ErrorCategory.OVERLOADED,
}

_MESSAGE_RULES: List[Tuple[ErrorCategory, Tuple[str, ...]]] = [
    (ErrorCategory.QUOTA_EXCEEDED, ("quota", "insufficient_quota", "billing")),
    (ErrorCategory.RATE_LIMITED, ("rate limit", "ratelimit", "rate_limit", "too many requests")),
    (
        ErrorCategory.AUTH,
        ("api key", "api_key", "unauthenticated", "authentication", "unauthorized"),
    ),
    (ErrorCategory.ACCESS_DENIED, ("permission", "forbidden", "access denied")),
    (ErrorCategory.TIMEOUT, ("timed out", "timeout", "deadline")),
    (ErrorCategory.OVERLOADED, ("overloaded", "unavailable", "internal server error")),
    (ErrorCategory.NETWORK, ("connection", "network", "dns", "socket")),
    (ErrorCategory.CONTENT_FILTERED, ("content_filter", "blocked", "safety", "policy")),
    (ErrorCategory.MODEL_ERROR, ("model_not_found", "does not exist", "not found")),
]


def _status_code(error: Exception) -> Optional[int]:
    for attr in ("status_code", "code"):
        value = getattr(error, attr, None)
        if isinstance(value, int) and not isinstance(value, bool):
            return value
    return None


def classify_error(provider: str, error: Exception) -> ProviderError:
    """
    Translate an SDK / transport exception into a categorized ProviderError.

    Quota exhaustion is checked before the HTTP status so a 429 caused by
    an exhausted billing quota is not retried as a rate limit.

    Args:
        provider: Provider name for the error context
        error: Exception raised by the SDK

    Returns:
        TransientProviderError for retryable categories, ProviderError otherwise
    """
    if isinstance(error, ProviderError):
        return error

    text = f"{type(error).__name__} {error}".lower()
    category = ErrorCategory.UNKNOWN

    if any(marker in text for marker in _MESSAGE_RULES[0][1]):
        category = ErrorCategory.QUOTA_EXCEEDED
    else:
        status = _status_code(error)
        if status in _STATUS_CATEGORIES:
            category = _STATUS_CATEGORIES[status]
        else:
            for candidate, markers in _MESSAGE_RULES[1:]:
                if any(marker in text for marker in markers):
                    category = candidate
                    break

    error_class = TransientProviderError if category.retryable else ProviderError
    return error_class(
        f"{provider} API error: {error}",
        provider=provider,
        category=category,
        original_error=error,
    )


def contains_insufficient_data(text: str) -> bool:
    """True if the reply carries the insufficiency sentinel."""
    lowered = (text or "").lower()
    return any(marker in lowered for marker in INSUFFICIENT_DATA_MARKERS)


# =============================================================================
# STAGE 2: REMOTE PROVIDER BASE
# =============================================================================


class BaseRemoteLLMProvider(BaseClinicalAIProvider):
    """
    Abstract base for network-backed LLM adapters.

    What it does:
        Implements the three provider operations on top of a single
        text-completion primitive, enforcing the grounding contract.

    What subclasses must implement:
        - provider_name property
        - _complete(system_prompt, prompt, options) → (text, tokens_used)
          raising ProviderError subclasses (see classify_error)

    Example:
        >>> class EchoProvider(BaseRemoteLLMProvider):
        ...     provider_name = "openai"
        ...     async def _complete(self, system_prompt, prompt, options):
        ...         return "insufficient_data", 3
        >>> result = await EchoProvider("key", "echo").process_prompt("Dx?")
        >>> result.is_insufficient_data
        True
    """

    def __init__(
        self,
        api_key: str,
        model_name: str,
        today: Optional[Callable[[], date]] = None,
    ):
        super().__init__(model_name=model_name)
        self._api_key = api_key
        self._today = today or date.today

    @abstractmethod
    async def _complete(
        self, system_prompt: str, prompt: str, options: ProcessingOptions
    ) -> Tuple[str, int]:
        """
        Send one chat completion to the backend.

        Returns:
            Tuple of (reply text, total tokens used)

        Raises:
            ProviderError: Categorized backend failure
        """
        ...

    def _resolve_model(self, options: ProcessingOptions) -> str:
        return options.model or self._model_name

    # =========================================================================
    # STAGE 3: PROMPT PROCESSING
    # =========================================================================

    async def _process_prompt_internal(
        self, prompt: str, context: str, options: ProcessingOptions
    ) -> PromptOutput:
        system_prompt = GROUNDING_SYSTEM_PROMPT.format(context=context)

        try:
            text, tokens_used = await self._complete(system_prompt, prompt, options)
        except ProviderError:
            raise
        except Exception as e:
            raise classify_error(self.provider_name, e) from e

        if not text or not text.strip():
            raise MalformedResponseError(self.provider_name, "empty reply")

        if contains_insufficient_data(text):
            logger.info(f"{self.provider_name} reported insufficient grounding data")
            raise InsufficientDataError(self.provider_name, detail=text.strip()[:200])

        return PromptOutput(text=text, json=extract_json(text), tokens_used=tokens_used or 0)

    # =========================================================================
    # STAGE 4: ENTITY EXTRACTION
    # =========================================================================

    async def _extract_entities_internal(
        self, text: str, options: ProcessingOptions
    ) -> EntityOutput:
        prompt = ENTITY_EXTRACTION_PROMPT.format(text=text)
        output = await self._process_prompt_internal(prompt, text, options)

        try:
            payload = RemoteEntityPayload.parse_reply(output.json)
        except (ValidationError, ValueError, TypeError) as e:
            logger.warning(
                f"{self.provider_name} entity reply unparseable, using rule engine | Error: {e}"
            )
            return EntityOutput(
                entities=rule_engine.extract_entities(text, FALLBACK_ENTITY_CONFIDENCE),
                tokens_used=output.tokens_used,
                used_rule_fallback=True,
            )

        return EntityOutput(
            entities=self._ground_entities(payload, text),
            tokens_used=output.tokens_used,
        )

    def _ground_entities(self, payload: RemoteEntityPayload, source: str) -> List[ExtractedEntity]:
        """
        Keep only entities whose text occurs in `source`, fixing offsets.

        Reported offsets are trusted when they slice out the entity text;
        otherwise the first case-insensitive occurrence is used.
        """
        entities: List[ExtractedEntity] = []
        lowered = source.lower()
        for item in payload.entities:
            start, end = item.start, item.end
            valid = (
                start is not None
                and end is not None
                and 0 <= start < end <= len(source)
                and source[start:end].lower() == item.text.lower()
            )
            if not valid:
                start = lowered.find(item.text.lower())
                if start == -1:
                    logger.debug(f"Dropping ungrounded entity '{item.text}'")
                    continue
                end = start + len(item.text)
            entities.append(
                ExtractedEntity(
                    text=source[start:end],
                    type=item.type,
                    confidence=item.confidence,
                    start=start,
                    end=end,
                )
            )
        return entities

    # =========================================================================
    # STAGE 5: RISK ANALYSIS
    # =========================================================================

    async def _analyze_risk_internal(
        self, patient: PatientData, options: ProcessingOptions
    ) -> RiskOutput:
        data = json.dumps(patient.to_dict(), indent=2, sort_keys=True)
        prompt = RISK_ANALYSIS_PROMPT.format(data=data)
        output = await self._process_prompt_internal(prompt, data, options)

        try:
            payload = RemoteRiskPayload.parse_reply(output.json)
        except (ValidationError, ValueError, TypeError) as e:
            logger.warning(
                f"{self.provider_name} risk reply unparseable, using rule engine | Error: {e}"
            )
            factors, overall, recommendations = rule_engine.assess_risk(patient, self._today())
            return RiskOutput(
                risk_factors=factors,
                overall_risk=overall,
                recommendations=recommendations,
                tokens_used=output.tokens_used,
                used_rule_fallback=True,
            )

        return RiskOutput(
            risk_factors=[
                RiskFactor(
                    factor=rf.factor,
                    score=rf.score,
                    confidence=rf.confidence,
                    evidence=tuple(rf.evidence),
                )
                for rf in payload.risk_factors
            ],
            overall_risk=payload.overall_risk,
            recommendations=list(payload.recommendations),
            tokens_used=output.tokens_used,
        )
