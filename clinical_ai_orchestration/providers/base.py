"""
Provider Contract - Capability Interface and Envelope Wrapper

This module defines the interface every AI backend implements and the
base class that turns backend-specific logic into uniform result
envelopes.

Protocol Pattern:
    - ClinicalAIProviderProtocol defines the capability interface
    - BaseClinicalAIProvider measures latency, applies timeouts, converts
      exceptions into `success=False` envelopes and stamps metadata
    - Concrete providers implement only the `_..._internal` coroutines

Contract:
    process_prompt(prompt, context, options)  → ProcessingResult
    extract_entities(text, options)           → EntityExtractionResult
    analyze_risk(data, options)               → RiskAnalysisResult

    Each call completes in finite time (when a timeout is given) and
    always returns its envelope. Exceptions never cross this boundary;
    task cancellation does.
"""

import asyncio
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Awaitable, List, Optional, Protocol, TypeVar, runtime_checkable

from loguru import logger

from clinical_ai_orchestration.core.enums import ErrorCategory, ProviderKind
from clinical_ai_orchestration.core.exceptions import ProviderError, TransientProviderError
from clinical_ai_orchestration.core.models import (
    EntityExtractionResult,
    ExtractedEntity,
    PatientData,
    ProcessingMetadata,
    ProcessingOptions,
    ProcessingResult,
    RiskAnalysisResult,
    RiskFactor,
)

T = TypeVar("T")


# =============================================================================
# STAGE 1: PROVIDER PROTOCOL
# =============================================================================


@runtime_checkable
class ClinicalAIProviderProtocol(Protocol):
    """
    Capability interface every provider exposes.

    Adding a provider means implementing this interface (normally by
    extending BaseClinicalAIProvider), not matching method names by
    convention.
    """

    async def process_prompt(
        self, prompt: str, context: str = "", options: Optional[ProcessingOptions] = None
    ) -> ProcessingResult:
        ...

    async def extract_entities(
        self, text: str, options: Optional[ProcessingOptions] = None
    ) -> EntityExtractionResult:
        ...

    async def analyze_risk(
        self, data: Any, options: Optional[ProcessingOptions] = None
    ) -> RiskAnalysisResult:
        ...

    @property
    def provider_name(self) -> str:
        ...

    @property
    def model_name(self) -> str:
        ...


# =============================================================================
# STAGE 2: INTERNAL OUTPUTS
# =============================================================================
# What the `_internal` coroutines hand back to the wrapper.


@dataclass
class PromptOutput:
    text: str
    json: Optional[Any] = None
    tokens_used: int = 0


@dataclass
class EntityOutput:
    entities: List[ExtractedEntity] = field(default_factory=list)
    tokens_used: int = 0
    used_rule_fallback: bool = False


@dataclass
class RiskOutput:
    risk_factors: List[RiskFactor] = field(default_factory=list)
    overall_risk: float = 0.0
    recommendations: List[str] = field(default_factory=list)
    tokens_used: int = 0
    used_rule_fallback: bool = False


RULE_FALLBACK_SUFFIX = "+rule-fallback"


# =============================================================================
# STAGE 3: BASE PROVIDER (ABSTRACT)
# =============================================================================


class BaseClinicalAIProvider(ABC):
    """
    Abstract base class implementing the provider contract.

    What it does:
        Wraps each backend call with latency measurement, an optional
        wall-clock timeout, exception-to-envelope conversion and uniform
        `metadata.provider` / `metadata.model` stamping.

    What subclasses must implement:
        - provider_name property
        - _process_prompt_internal(prompt, context, options) → PromptOutput
        - _extract_entities_internal(text, options) → EntityOutput
        - _analyze_risk_internal(patient, options) → RiskOutput

    What base class provides:
        - process_prompt / extract_entities / analyze_risk
        - Call and failure counters
    """

    def __init__(self, model_name: str = "default"):
        self._model_name = model_name
        self._total_calls = 0
        self._failed_calls = 0

    # =========================================================================
    # STAGE 4: PUBLIC CONTRACT
    # =========================================================================

    async def process_prompt(
        self, prompt: str, context: str = "", options: Optional[ProcessingOptions] = None
    ) -> ProcessingResult:
        """
        Answer a clinical prompt grounded on `context`.

        Returns:
            ProcessingResult; `success=False` with `error` on any failure
        """
        options = options or ProcessingOptions()
        start = time.perf_counter()
        try:
            output = await self._with_timeout(
                self._process_prompt_internal(prompt or "", context or "", options), options
            )
        except Exception as e:
            error = self._to_provider_error(e)
            self._record_failure("process_prompt", error)
            return ProcessingResult(
                success=False,
                text="",
                metadata=self._metadata(options, start),
                error=error.message,
                error_category=error.category,
            )

        self._total_calls += 1
        return ProcessingResult(
            success=True,
            text=output.text,
            json=output.json,
            metadata=self._metadata(options, start, tokens_used=output.tokens_used),
        )

    async def extract_entities(
        self, text: str, options: Optional[ProcessingOptions] = None
    ) -> EntityExtractionResult:
        """
        Find clinical entities in `text`.

        Returns:
            EntityExtractionResult; `entities` is empty (never None) on failure
        """
        options = options or ProcessingOptions()
        start = time.perf_counter()
        try:
            output = await self._with_timeout(
                self._extract_entities_internal(text or "", options), options
            )
        except Exception as e:
            error = self._to_provider_error(e)
            self._record_failure("extract_entities", error)
            return EntityExtractionResult(
                success=False,
                entities=[],
                metadata=self._metadata(options, start),
                error=error.message,
                error_category=error.category,
            )

        self._total_calls += 1
        return EntityExtractionResult(
            success=True,
            entities=list(output.entities),
            metadata=self._metadata(
                options,
                start,
                tokens_used=output.tokens_used,
                rule_fallback=output.used_rule_fallback,
            ),
        )

    async def analyze_risk(
        self, data: Any, options: Optional[ProcessingOptions] = None
    ) -> RiskAnalysisResult:
        """
        Score patient risk factors.

        Args:
            data: PatientData or a dict accepted by PatientData.from_dict

        Returns:
            RiskAnalysisResult; zero risk and no factors on failure
        """
        options = options or ProcessingOptions()
        start = time.perf_counter()
        try:
            patient = PatientData.from_dict(data)
            output = await self._with_timeout(self._analyze_risk_internal(patient, options), options)
        except Exception as e:
            error = self._to_provider_error(e)
            self._record_failure("analyze_risk", error)
            return RiskAnalysisResult(
                success=False,
                risk_factors=[],
                overall_risk=0.0,
                recommendations=[],
                metadata=self._metadata(options, start),
                error=error.message,
                error_category=error.category,
            )

        self._total_calls += 1
        return RiskAnalysisResult(
            success=True,
            risk_factors=list(output.risk_factors),
            overall_risk=output.overall_risk,
            recommendations=list(output.recommendations),
            metadata=self._metadata(
                options,
                start,
                tokens_used=output.tokens_used,
                rule_fallback=output.used_rule_fallback,
            ),
        )

    # =========================================================================
    # STAGE 5: ABSTRACT METHODS
    # =========================================================================

    @property
    @abstractmethod
    def provider_name(self) -> str:
        """Return the provider name (e.g., 'local', 'openai')."""
        ...

    @abstractmethod
    async def _process_prompt_internal(
        self, prompt: str, context: str, options: ProcessingOptions
    ) -> PromptOutput:
        ...

    @abstractmethod
    async def _extract_entities_internal(
        self, text: str, options: ProcessingOptions
    ) -> EntityOutput:
        ...

    @abstractmethod
    async def _analyze_risk_internal(
        self, patient: PatientData, options: ProcessingOptions
    ) -> RiskOutput:
        ...

    # =========================================================================
    # STAGE 6: COMMON IMPLEMENTATION
    # =========================================================================

    @property
    def model_name(self) -> str:
        """Return the configured model name."""
        return self._model_name

    @property
    def kind(self) -> ProviderKind:
        return ProviderKind(self.provider_name)

    async def _with_timeout(self, coro: Awaitable[T], options: ProcessingOptions) -> T:
        """Await `coro`, bounded by `options.timeout` when set."""
        if options.timeout is None:
            return await coro
        try:
            return await asyncio.wait_for(coro, timeout=options.timeout)
        except asyncio.TimeoutError as e:
            raise TransientProviderError(
                f"{self.provider_name} call timed out after {options.timeout}s",
                provider=self.provider_name,
                category=ErrorCategory.TIMEOUT,
                original_error=e,
            )

    def _to_provider_error(self, error: Exception) -> ProviderError:
        """Fold any exception into a categorized ProviderError."""
        if isinstance(error, ProviderError):
            return error
        if isinstance(error, asyncio.TimeoutError):
            return TransientProviderError(
                f"{self.provider_name} call timed out",
                provider=self.provider_name,
                category=ErrorCategory.TIMEOUT,
                original_error=error,
            )
        return ProviderError(
            str(error) or type(error).__name__,
            provider=self.provider_name,
            category=ErrorCategory.UNKNOWN,
            original_error=error,
        )

    def _metadata(
        self,
        options: ProcessingOptions,
        start: float,
        tokens_used: int = 0,
        rule_fallback: bool = False,
    ) -> ProcessingMetadata:
        model = options.model or self._model_name
        if rule_fallback:
            model = f"{model}{RULE_FALLBACK_SUFFIX}"
        return ProcessingMetadata(
            provider=self.provider_name,
            model=model,
            tokens_used=tokens_used or 0,
            processing_time_ms=round((time.perf_counter() - start) * 1000, 3),
            temperature=options.temperature,
            top_p=options.top_p,
        )

    def _record_failure(self, operation: str, error: ProviderError) -> None:
        self._failed_calls += 1
        logger.warning(
            f"{self.provider_name}.{operation} failed | "
            f"Category: {error.category.value} | Error: {error.message}"
        )

    # =========================================================================
    # STAGE 7: METRICS
    # =========================================================================

    @property
    def total_calls(self) -> int:
        """Total number of successful operations."""
        return self._total_calls

    @property
    def failed_calls(self) -> int:
        """Number of failed operations."""
        return self._failed_calls

    @property
    def success_rate(self) -> float:
        """Percentage of successful operations."""
        total = self._total_calls + self._failed_calls
        if total == 0:
            return 100.0
        return (self._total_calls / total) * 100
