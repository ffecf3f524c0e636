"""
Fallback Policy - Ordered Retry and Provider Fallback

Caller-level policy layered above the manager. It walks an explicit,
ordered list of providers with one uniform loop:

    for each provider in order:
        attempt → success?              → return
                → INSUFFICIENT_DATA?    → return (stop the chain)
                → retryable category?   → back off, retry same provider
                → otherwise / exhausted → next provider
    all exhausted → AllProvidersFailedError

Backoff before retry k (k >= 1) is `base_delay * 2 ** (k - 1)` seconds.
Each attempt is independent; no state is carried between attempts.
"""

import asyncio
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Dict, Generic, List, Optional, Sequence, TypeVar

from loguru import logger

from clinical_ai_orchestration.core.config import OrchestrationConfiguration
from clinical_ai_orchestration.core.enums import ErrorCategory
from clinical_ai_orchestration.core.exceptions import AllProvidersFailedError, ConfigurationError

R = TypeVar("R")


# =============================================================================
# STAGE 1: OUTCOME MODELS
# =============================================================================


@dataclass(frozen=True)
class AttemptRecord:
    """One provider call made by the policy."""

    provider: str
    attempt: int
    success: bool
    error_category: Optional[ErrorCategory] = None
    error: Optional[str] = None


@dataclass
class FallbackOutcome(Generic[R]):
    """Final envelope plus the trail of attempts that produced it."""

    result: R
    provider: str
    attempts: List[AttemptRecord] = field(default_factory=list)

    @property
    def attempt_count(self) -> int:
        return len(self.attempts)


# =============================================================================
# STAGE 2: POLICY
# =============================================================================


class FallbackPolicy:
    """
    Retry transient failures with exponential backoff, then fall back.

    Args:
        providers: Provider names in the order they are tried
        max_attempts: Attempts per provider for retryable failures
        base_delay: Seconds before the first retry
        sleep: Awaitable sleep function (injectable for tests)

    Example:
        >>> policy = FallbackPolicy(["openai", "gemini", "local"], max_attempts=3)
        >>> outcome = await policy.run(
        ...     lambda name: manager.process(task, prompt, context, options.with_provider(name))
        ... )
        >>> outcome.provider
        'gemini'
    """

    def __init__(
        self,
        providers: Sequence[str],
        max_attempts: int = 3,
        base_delay: float = 1.0,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ):
        if not providers:
            raise ConfigurationError("Fallback policy needs at least one provider")
        if max_attempts < 1:
            raise ConfigurationError(f"max_attempts must be >= 1, got {max_attempts}")

        self._providers = list(dict.fromkeys(providers))
        self._max_attempts = max_attempts
        self._base_delay = base_delay
        self._sleep = sleep

    @classmethod
    def from_config(
        cls, config: OrchestrationConfiguration, providers: Sequence[str], **kwargs: Any
    ) -> "FallbackPolicy":
        return cls(
            providers,
            max_attempts=config.max_attempts,
            base_delay=config.retry_base_delay,
            **kwargs,
        )

    @property
    def providers(self) -> List[str]:
        return list(self._providers)

    @property
    def max_attempts(self) -> int:
        return self._max_attempts

    def delay_for(self, retry: int) -> float:
        """Backoff in seconds before retry number `retry` (1-based)."""
        return self._base_delay * (2 ** (retry - 1))

    async def run(self, call: Callable[[str], Awaitable[R]]) -> FallbackOutcome[R]:
        """
        Run `call(provider_name)` through the chain.

        `call` must return an envelope with `success`, `error` and
        `error_category`. Configuration errors it raises propagate.

        Returns:
            FallbackOutcome with the first successful envelope, or with the
            insufficient-data envelope that stopped the chain

        Raises:
            AllProvidersFailedError: If every provider failed
        """
        attempts: List[AttemptRecord] = []
        details: Dict[str, str] = {}
        errors: Dict[str, str] = {}

        for name in self._providers:
            for attempt in range(1, self._max_attempts + 1):
                result = await call(name)
                category = getattr(result, "error_category", None)
                if not result.success and category is None:
                    category = ErrorCategory.UNKNOWN

                attempts.append(
                    AttemptRecord(
                        provider=name,
                        attempt=attempt,
                        success=result.success,
                        error_category=None if result.success else category,
                        error=None if result.success else result.error,
                    )
                )

                if result.success:
                    if len(attempts) > 1:
                        logger.info(f"Fallback succeeded | Provider: {name} | Attempts: {len(attempts)}")
                    return FallbackOutcome(result=result, provider=name, attempts=attempts)

                if not category.allows_fallback:
                    logger.info(f"Fallback stopped by {category.value} | Provider: {name}")
                    return FallbackOutcome(result=result, provider=name, attempts=attempts)

                details[name] = category.value
                errors[name] = result.error or category.value

                if not category.retryable or attempt == self._max_attempts:
                    logger.warning(
                        f"Provider {name} gave up | Category: {category.value} | "
                        f"Attempt: {attempt}/{self._max_attempts}"
                    )
                    break

                delay = self.delay_for(attempt)
                logger.warning(
                    f"Retrying {name} in {delay:.2f}s | Category: {category.value} | "
                    f"Attempt: {attempt}/{self._max_attempts}"
                )
                await self._sleep(delay)

        logger.error(f"All AI providers failed | Details: {details}")
        raise AllProvidersFailedError(details=details, errors=errors)
