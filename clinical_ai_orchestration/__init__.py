"""
Clinical AI Orchestration Module

Routes clinical AI work across interchangeable providers (a local
rule-based engine and remote LLM adapters) and records every completed
analysis as an immutable, versioned audit record.

Architecture Overview:
    clinical_ai_orchestration/
    ├── core/           → Domain models, enums, configuration (Layer 0 - Pure)
    ├── providers/      → Provider contract, local and remote backends (Layer 1)
    ├── orchestration/  → Registry, manager, context, fallback (Layer 2)
    ├── validation/     → Hallucination and grounding checks (Layer 3)
    ├── store/          → Versioned output store (Layer 4 - Infrastructure)
    └── service.py      → Workflow entry point (Layer 5 - Public API)

Quick Start:
    from clinical_ai_orchestration import ClinicalAIService

    service = ClinicalAIService.from_environment()
    run = await service.run_task("P1", "soap_note", patient, documents)
"""

__version__ = "1.0.0"

# =============================================================================
# PUBLIC API EXPORTS
# =============================================================================

# Main Entry Point
from clinical_ai_orchestration.service import ClinicalAIService, TaskRunResult

# Orchestration
from clinical_ai_orchestration.orchestration import (
    OrchestrationManager,
    ProviderRegistry,
    FallbackPolicy,
    build_registry,
    build_patient_context,
    build_task_prompt,
)

# Providers
from clinical_ai_orchestration.providers import (
    BaseClinicalAIProvider,
    LocalRuleBasedProvider,
    OpenAIProvider,
    GeminiProvider,
)

# Store
from clinical_ai_orchestration.store import (
    ClinicalOutputStore,
    InMemoryClinicalOutputStore,
    SQLiteClinicalOutputStore,
)

# Core Models
from clinical_ai_orchestration.core.models import (
    ProcessingOptions,
    ProcessingResult,
    EntityExtractionResult,
    RiskAnalysisResult,
    PatientData,
    ClinicalAIOutput,
    ModelInfo,
)

# Enums
from clinical_ai_orchestration.core.enums import ClinicalTask, ProviderKind, ErrorCategory

# Configuration
from clinical_ai_orchestration.core.config import OrchestrationConfiguration

__all__ = [
    # Main Entry Point (use this!)
    "ClinicalAIService",
    "TaskRunResult",
    # Orchestration
    "OrchestrationManager",
    "ProviderRegistry",
    "FallbackPolicy",
    "build_registry",
    "build_patient_context",
    "build_task_prompt",
    # Providers
    "BaseClinicalAIProvider",
    "LocalRuleBasedProvider",
    "OpenAIProvider",
    "GeminiProvider",
    # Store
    "ClinicalOutputStore",
    "InMemoryClinicalOutputStore",
    "SQLiteClinicalOutputStore",
    # Core Models
    "ProcessingOptions",
    "ProcessingResult",
    "EntityExtractionResult",
    "RiskAnalysisResult",
    "PatientData",
    "ClinicalAIOutput",
    "ModelInfo",
    # Enums
    "ClinicalTask",
    "ProviderKind",
    "ErrorCategory",
    # Configuration
    "OrchestrationConfiguration",
]
