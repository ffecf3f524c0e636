"""
Clinical AI Service - Workflow Entry Point

This is the PUBLIC API used by the controller layer. It runs one clinical
AI task end to end and persists the result as a new versioned record.

Architecture Diagram:
    ┌──────────────────────────────────────────────────────────────────────┐
    │                          ClinicalAIService                           │
    ├──────────────────────────────────────────────────────────────────────┤
    │                                                                      │
    │  ┌─────────┐   ┌──────────────┐   ┌────────────┐   ┌─────────────┐   │
    │  │ Context │ → │ Fallback     │ → │ Grounding  │ → │ Output      │   │
    │  │ Builder │   │ (Manager)    │   │ Checks     │   │ Store       │   │
    │  └─────────┘   └──────────────┘   └────────────┘   └─────────────┘   │
    │                                                                      │
    └──────────────────────────────────────────────────────────────────────┘

A record is written only after a successful provider result. Sentinel
replies raise InsufficientDataError and exhausted chains raise
AllProvidersFailedError; neither writes anything.

Usage:
    from clinical_ai_orchestration import ClinicalAIService

    service = ClinicalAIService.from_environment()
    run = await service.run_task(
        patient_id="P1",
        task="soap_note",
        patient_data=patient,
        documents=[{"id": "D1", "type": "progress_note", "text": "..."}],
        created_by="dr.smith",
    )
    run.record.version
"""

import asyncio
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Dict, List, Optional, Sequence, Union

from loguru import logger

from clinical_ai_orchestration.core.config import OrchestrationConfiguration
from clinical_ai_orchestration.core.enums import ClinicalTask
from clinical_ai_orchestration.core.exceptions import AIDisabledError, InsufficientDataError
from clinical_ai_orchestration.core.models import (
    ClinicalAIOutput,
    HallucinationFlag,
    ModelInfo,
    PatientData,
    ProcessingOptions,
    ProcessingResult,
)
from clinical_ai_orchestration.orchestration.context_builder import (
    DocumentInput,
    build_task_prompt,
    task_snapshot,
)
from clinical_ai_orchestration.orchestration.fallback import AttemptRecord, FallbackPolicy
from clinical_ai_orchestration.orchestration.manager import OrchestrationManager
from clinical_ai_orchestration.orchestration.registry import build_registry
from clinical_ai_orchestration.store.output_store import ClinicalOutputStore
from clinical_ai_orchestration.store.sqlite_store import SQLiteClinicalOutputStore
from clinical_ai_orchestration.validation.hallucination import (
    check_hallucinations,
    validate_output_against_context,
)


# =============================================================================
# STAGE 1: RESULT MODEL
# =============================================================================


@dataclass
class TaskRunResult:
    """Outcome of one run_task call."""

    record: ClinicalAIOutput
    result: ProcessingResult
    attempts: List[AttemptRecord] = field(default_factory=list)
    grounded: bool = True

    @property
    def provider(self) -> str:
        return self.record.model.provider

    @property
    def hallucination_flags(self) -> List[HallucinationFlag]:
        return list(self.record.hallucination_flags)


# =============================================================================
# STAGE 2: SERVICE CLASS
# =============================================================================


class ClinicalAIService:
    """
    Runs clinical AI tasks with fallback and versioned persistence.

    How it works:
        STAGE 1: Refuse if AI is disabled by configuration
        STAGE 2: Build the grounding context and the task prompt
        STAGE 3: Run the prompt through the fallback chain
        STAGE 4: Stop on insufficient data (nothing written)
        STAGE 5: Flag hallucinations and check grounding
        STAGE 6: Append a new ClinicalAIOutput version

    Example:
        >>> service = ClinicalAIService(manager, InMemoryClinicalOutputStore(), config)
        >>> run = await service.run_task("P1", "soap_note", patient, ["BP 150/90"])
        >>> run.record.version
        1
    """

    def __init__(
        self,
        manager: OrchestrationManager,
        store: ClinicalOutputStore,
        config: Optional[OrchestrationConfiguration] = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ):
        """
        Args:
            manager: Orchestration manager over an immutable registry
            store: Versioned output store
            config: Feature flag, sampling defaults and retry policy
            sleep: Backoff sleep (injectable for tests)
        """
        self._manager = manager
        self._store = store
        self._config = config or OrchestrationConfiguration()
        self._sleep = sleep
        logger.info(
            f"ClinicalAIService initialized | Providers: {manager.available_providers} | "
            f"AI enabled: {self._config.ai_enabled}"
        )

    @classmethod
    def from_environment(
        cls, env_file: Optional[str] = None, store: Optional[ClinicalOutputStore] = None
    ) -> "ClinicalAIService":
        """
        Create a service from environment variables.

        Args:
            env_file: Optional .env path
            store: Output store override (defaults to SQLite at CLINICAL_OUTPUT_DB_PATH)

        Raises:
            ConfigurationError: If configuration is invalid
        """
        config = OrchestrationConfiguration.from_environment(env_file=env_file)
        manager = OrchestrationManager(build_registry(config))
        return cls(manager, store or SQLiteClinicalOutputStore(config.db_path), config)

    # =========================================================================
    # STAGE 3: PROPERTIES
    # =========================================================================

    @property
    def manager(self) -> OrchestrationManager:
        return self._manager

    @property
    def store(self) -> ClinicalOutputStore:
        return self._store

    @property
    def config(self) -> OrchestrationConfiguration:
        return self._config

    def default_options(self) -> ProcessingOptions:
        """Options built from the configured sampling defaults and timeout."""
        return ProcessingOptions(
            temperature=self._config.default_temperature,
            top_p=self._config.default_top_p,
            max_tokens=self._config.default_max_tokens,
            timeout=self._config.request_timeout,
        )

    def fallback_policy(self, provider: Optional[str] = None) -> FallbackPolicy:
        """
        Policy for one run: only `provider` when named explicitly, otherwise
        every registered provider in registry order (remotes, then local).
        """
        if provider is not None:
            self._manager.get_provider(provider)
            order = [provider]
        else:
            order = self._manager.available_providers
        return FallbackPolicy.from_config(self._config, order, sleep=self._sleep)

    # =========================================================================
    # STAGE 4: TASK EXECUTION
    # =========================================================================

    async def run_task(
        self,
        patient_id: str,
        task: Union[ClinicalTask, str],
        patient_data: Union[PatientData, Dict[str, Any], None],
        documents: Optional[Sequence[DocumentInput]] = None,
        created_by: Optional[str] = None,
        options: Optional[ProcessingOptions] = None,
        document_ids: Optional[Sequence[str]] = None,
    ) -> TaskRunResult:
        """
        Run one task and persist the result as the next version.

        Args:
            patient_id: Patient reference
            task: ClinicalTask or its string value
            patient_data: PatientData or dict (demographics, medications, allergies)
            documents: Document texts or dicts with id / type / title / text
            created_by: Acting user reference
            options: Per-call options (defaults from configuration)
            document_ids: Source document ids (defaults to ids in `documents`)

        Returns:
            TaskRunResult with the stored record

        Raises:
            AIDisabledError: If FEATURE_AI_ENABLED is off
            ProviderNotFoundError: If options.provider is not registered
            InsufficientDataError: If the provider reported inadequate context
            AllProvidersFailedError: If every provider failed
            PersistenceError: If the record cannot be stored
        """
        # =====================================================================
        # STAGE 4.1: FEATURE FLAG
        # =====================================================================
        if not self._config.ai_enabled:
            raise AIDisabledError()

        task = ClinicalTask.from_value(task)
        patient = PatientData.from_dict(patient_data)
        documents = list(documents or [])
        options = options or self.default_options()

        # =====================================================================
        # STAGE 4.2: CONTEXT AND PROMPT
        # =====================================================================
        context = self._manager.build_context(patient, documents)
        prompt = build_task_prompt(task, patient, documents)
        policy = self.fallback_policy(options.provider)

        logger.info(
            f"Running task | Patient: {patient_id} | Task: {task.value} | "
            f"Chain: {policy.providers}"
        )

        # =====================================================================
        # STAGE 4.3: PROVIDER CHAIN
        # =====================================================================
        outcome = await policy.run(
            lambda name: self._manager.process(task, prompt, context, options.with_provider(name))
        )
        result = outcome.result

        if result.is_insufficient_data:
            logger.info(f"Insufficient data | Patient: {patient_id} | Task: {task.value}")
            raise InsufficientDataError(outcome.provider, detail=result.error)

        # =====================================================================
        # STAGE 4.4: GROUNDING CHECKS
        # =====================================================================
        flags = check_hallucinations(result.text, patient)
        grounded = validate_output_against_context(result.text, context)
        if not grounded:
            logger.warning(f"Output not traceable to context | Patient: {patient_id}")

        # =====================================================================
        # STAGE 4.5: PERSIST NEW VERSION
        # =====================================================================
        if document_ids is None:
            document_ids = [
                str(doc["id"]) for doc in documents if isinstance(doc, dict) and doc.get("id")
            ]

        record = ClinicalAIOutput(
            patient_id=patient_id,
            task=task,
            input_context={
                "context": context,
                "prompt": prompt,
                "snapshot": task_snapshot(patient, documents),
            },
            output={"text": result.text, "json": result.json},
            model=ModelInfo.from_metadata(result.metadata),
            document_ids=tuple(document_ids),
            hallucination_flags=tuple(flags),
            created_by=created_by,
        )
        stored = await self._store.append(record)

        logger.info(
            f"Task complete | Patient: {patient_id} | Task: {task.value} | "
            f"Provider: {outcome.provider} | Version: {stored.version} | Flags: {len(flags)}"
        )
        return TaskRunResult(
            record=stored, result=result, attempts=outcome.attempts, grounded=grounded
        )


# =============================================================================
# STAGE 5: SMOKE TEST
# =============================================================================

if __name__ == "__main__":
    import sys

    from clinical_ai_orchestration.store.output_store import InMemoryClinicalOutputStore

    # Configure logger for simple output
    logger.remove()
    logger.add(sys.stderr, level="INFO")

    print("\n--- Clinical AI Orchestration Smoke Test ---\n")

    async def _smoke() -> None:
        config = OrchestrationConfiguration.from_environment()
        print(f"1. Remote providers configured: {[k.value for k in config.configured_remote_providers]}")

        service = ClinicalAIService(
            OrchestrationManager(build_registry(config)), InMemoryClinicalOutputStore(), config
        )
        print(f"2. Registered providers: {service.manager.available_providers}")

        patient = {
            "demographics": {"name": "Jane Doe", "dob": "1950-03-02", "sex": "F"},
            "currentMedications": [{"name": "Warfarin", "dose": "5mg", "frequency": "daily"}],
            "allergies": [{"substance": "Penicillin", "reaction": "rash", "severity": "severe"}],
        }
        risk = await service.manager.analyze_risk(patient, ProcessingOptions(provider="local"))
        print(f"3. Local risk: {risk.overall_risk} | Factors: {risk.factor_labels}")

        run = await service.run_task(
            "P-SMOKE", ClinicalTask.MEDICATION_SAFETY, patient, ["Patient reports chest pain."]
        )
        print(f"4. Stored version {run.record.version} from {run.provider}")

    try:
        asyncio.run(_smoke())
        print("\n[OK] SMOKE TEST PASSED")
    except Exception as e:
        print(f"\n[FAIL] SMOKE TEST FAILED: {e}")
        import traceback

        traceback.print_exc()
        sys.exit(1)
