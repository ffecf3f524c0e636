"""
Domain Exceptions for Clinical AI Orchestration

This module defines the exceptions raised across the orchestration
layers. Provider operations never raise these across the provider
contract: they are caught by the contract wrapper and folded into a
`success=False` envelope. Only configuration errors and persistence
conflicts reach callers as exceptions, plus the workflow-level errors
raised by the service facade.

Exception Hierarchy:
    ClinicalAIError (base)
    ├── ConfigurationError          → Setup problem, not retryable
    │   ├── ProviderNotFoundError   → Requested provider not registered
    │   ├── NoProviderAvailableError → Registry is empty
    │   └── AIDisabledError         → Feature flag switched off
    ├── ProviderError               → Backend failure (carries ErrorCategory)
    │   ├── TransientProviderError  → Network / timeout / overload
    │   ├── InsufficientDataError   → Model emitted the insufficiency sentinel
    │   ├── MalformedResponseError  → Reply missing or unparseable
    │   └── AllProvidersFailedError → Fallback chain exhausted
    └── PersistenceError            → Output store problem
        └── VersionConflictError    → (patient, task, version) already taken

Usage:
    from clinical_ai_orchestration.core.exceptions import ProviderNotFoundError

    try:
        manager.get_provider("anthropic")
    except ProviderNotFoundError as e:
        logger.error(f"Unknown provider, registered: {e.available}")
"""

from typing import Dict, List, Optional

from clinical_ai_orchestration.core.enums import ErrorCategory


# =============================================================================
# STAGE 1: BASE EXCEPTION
# =============================================================================


class ClinicalAIError(Exception):
    """
    Base exception for all clinical AI orchestration errors.

    Attributes:
        message: Human-readable error description
        context: Dictionary of additional context for debugging
    """

    def __init__(self, message: str, context: Optional[dict] = None):
        self.message = message
        self.context = context or {}
        super().__init__(self._format_message())

    def _format_message(self) -> str:
        """Format message with context for display."""
        if self.context:
            context_str = ", ".join(f"{k}={v}" for k, v in self.context.items())
            return f"{self.message} [{context_str}]"
        return self.message


# =============================================================================
# STAGE 2: CONFIGURATION ERRORS
# =============================================================================
# Fatal to the request and never retried. The surrounding application
# presents these as an administrative problem.


class ConfigurationError(ClinicalAIError):
    """
    Error in orchestration configuration.

    When raised:
        - Invalid numeric settings (negative timeouts, temperature > 2)
        - Unknown provider names in the preference list
        - Requested provider is not registered
    """

    pass


class ProviderNotFoundError(ConfigurationError):
    """
    Requested provider is not registered.

    Raised when `options.provider` names a provider the registry does
    not contain. The manager never substitutes a different provider.

    Attributes:
        provider: The requested provider name
        available: Names of the currently registered providers
    """

    def __init__(self, provider: str, available: List[str]):
        self.provider = provider
        self.available = list(available)
        super().__init__(
            f"AI provider '{provider}' not found. "
            f"Available providers: {', '.join(self.available) or 'none'}",
            context={"provider": provider},
        )


class NoProviderAvailableError(ConfigurationError):
    """No provider is registered at all."""

    def __init__(self):
        super().__init__("No AI provider is registered")


class AIDisabledError(ConfigurationError):
    """AI features are switched off by configuration (FEATURE_AI_ENABLED)."""

    def __init__(self):
        super().__init__("AI disabled", context={"setting": "FEATURE_AI_ENABLED"})


# =============================================================================
# STAGE 3: PROVIDER ERRORS
# =============================================================================
# Raised inside providers and converted to envelopes by the contract
# wrapper. The service re-raises some of them for its callers.


class ProviderError(ClinicalAIError):
    """
    Error from a provider backend.

    Attributes:
        provider: Provider name (local, openai, gemini)
        category: Stable ErrorCategory for retry / fallback decisions
        original_error: The wrapped SDK or transport exception
    """

    def __init__(
        self,
        message: str,
        provider: str,
        category: ErrorCategory = ErrorCategory.UNKNOWN,
        original_error: Optional[Exception] = None,
    ):
        self.provider = provider
        self.category = category
        self.original_error = original_error
        super().__init__(
            message,
            context={
                "provider": provider,
                "category": category.value,
            },
        )

    @property
    def retryable(self) -> bool:
        """Whether the same provider may be retried."""
        return self.category.retryable


class TransientProviderError(ProviderError):
    """Network, timeout or overload failure; retry with backoff."""

    pass


class InsufficientDataError(ProviderError):
    """
    The model reported that the grounding context is inadequate.

    Not retryable with the same inputs. The surrounding application
    presents this as "insufficient information - add more documentation".
    """

    def __init__(self, provider: str, detail: Optional[str] = None):
        self.detail = detail
        super().__init__(
            "insufficient_data",
            provider=provider,
            category=ErrorCategory.INSUFFICIENT_DATA,
        )


class MalformedResponseError(ProviderError):
    """The backend reply was empty or structurally invalid."""

    def __init__(self, provider: str, reason: str, original_error: Optional[Exception] = None):
        self.reason = reason
        super().__init__(
            f"Malformed response from {provider}: {reason}",
            provider=provider,
            category=ErrorCategory.MALFORMED_RESPONSE,
            original_error=original_error,
        )


class AllProvidersFailedError(ProviderError):
    """
    Every provider in a fallback chain failed.

    Attributes:
        details: Mapping of provider name to the last error category seen
        errors: Mapping of provider name to the last error message seen
    """

    def __init__(self, details: Dict[str, str], errors: Optional[Dict[str, str]] = None):
        self.details = dict(details)
        self.errors = dict(errors or {})
        super().__init__(
            "All AI providers failed or are unavailable",
            provider=",".join(self.details) or "none",
            category=ErrorCategory.UNKNOWN,
        )


# =============================================================================
# STAGE 4: PERSISTENCE ERRORS
# =============================================================================


class PersistenceError(ClinicalAIError):
    """Error accessing the versioned output store."""

    pass


class VersionConflictError(PersistenceError):
    """
    The (patient, task, version) triple is already taken.

    Retryable by re-deriving the next version and re-inserting.

    Attributes:
        patient_id: Patient scope
        task: Task scope
        version: The conflicting version number
    """

    def __init__(self, patient_id: str, task: str, version: int):
        self.patient_id = patient_id
        self.task = task
        self.version = version
        super().__init__(
            f"Version {version} already exists for patient {patient_id} / task {task}",
            context={"patient_id": patient_id, "task": task, "version": version},
        )
