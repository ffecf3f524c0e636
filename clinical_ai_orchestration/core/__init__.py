"""
Core Layer - Domain Models, Enums, Constants, Exceptions and Configuration

This layer contains side-effect-free building blocks shared by every
other layer of the orchestration package.

Submodules:
    models.py     → Envelopes, patient input models, ClinicalAIOutput
    enums.py      → ClinicalTask, ProviderKind, EntityType, ErrorCategory
    constants.py  → Regex tables, risk weights, grounding prompts
    config.py     → OrchestrationConfiguration
    exceptions.py → Domain exception hierarchy

Dependency Rule:
    This layer depends on NOTHING else in the package.
"""

from clinical_ai_orchestration.core.models import (
    ProcessingOptions,
    ProcessingRequest,
    ProcessingMetadata,
    ProcessingResult,
    ExtractedEntity,
    EntityExtractionResult,
    RiskFactor,
    RiskAnalysisResult,
    Demographics,
    Medication,
    Allergy,
    PatientData,
    ModelInfo,
    HallucinationFlag,
    ClinicalAIOutput,
)
from clinical_ai_orchestration.core.enums import (
    ClinicalTask,
    ProviderKind,
    EntityType,
    ErrorCategory,
    AllergySeverity,
)
from clinical_ai_orchestration.core.config import OrchestrationConfiguration
from clinical_ai_orchestration.core.exceptions import (
    ClinicalAIError,
    ConfigurationError,
    ProviderNotFoundError,
    NoProviderAvailableError,
    AIDisabledError,
    ProviderError,
    TransientProviderError,
    InsufficientDataError,
    MalformedResponseError,
    AllProvidersFailedError,
    PersistenceError,
    VersionConflictError,
)

__all__ = [
    # Models
    "ProcessingOptions",
    "ProcessingRequest",
    "ProcessingMetadata",
    "ProcessingResult",
    "ExtractedEntity",
    "EntityExtractionResult",
    "RiskFactor",
    "RiskAnalysisResult",
    "Demographics",
    "Medication",
    "Allergy",
    "PatientData",
    "ModelInfo",
    "HallucinationFlag",
    "ClinicalAIOutput",
    # Enums
    "ClinicalTask",
    "ProviderKind",
    "EntityType",
    "ErrorCategory",
    "AllergySeverity",
    # Configuration
    "OrchestrationConfiguration",
    # Exceptions
    "ClinicalAIError",
    "ConfigurationError",
    "ProviderNotFoundError",
    "NoProviderAvailableError",
    "AIDisabledError",
    "ProviderError",
    "TransientProviderError",
    "InsufficientDataError",
    "MalformedResponseError",
    "AllProvidersFailedError",
    "PersistenceError",
    "VersionConflictError",
]
