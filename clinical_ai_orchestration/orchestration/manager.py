"""
Orchestration Manager - Provider Selection and Context Building

Routes each call to exactly one provider and exposes the provider
contract plus the context builder to the controller layer.

Selection rule:
    explicit options.provider (must be registered) → registry default
    An unknown explicit name raises ProviderNotFoundError; the manager
    never substitutes a different provider.

The manager does not retry. Retry and fallback live in FallbackPolicy,
layered above it.
"""

from typing import Any, Dict, List, Optional, Sequence, Union

from loguru import logger

from clinical_ai_orchestration.core.enums import ClinicalTask
from clinical_ai_orchestration.core.models import (
    EntityExtractionResult,
    PatientData,
    ProcessingOptions,
    ProcessingRequest,
    ProcessingResult,
    RiskAnalysisResult,
)
from clinical_ai_orchestration.orchestration.context_builder import (
    DocumentInput,
    build_patient_context,
    task_instruction,
)
from clinical_ai_orchestration.orchestration.registry import ProviderRegistry
from clinical_ai_orchestration.providers.base import BaseClinicalAIProvider


class OrchestrationManager:
    """
    Front door of the provider layer.

    What it does:
        Resolves a provider per call from an immutable registry and
        forwards to the provider contract. Provider failures come back as
        envelopes; only configuration errors raise.

    Example:
        >>> manager = OrchestrationManager(build_registry(config))
        >>> context = manager.build_context(patient, ["Progress note ..."])
        >>> result = await manager.process("soap_note", "Write a SOAP note", context)
    """

    def __init__(self, registry: ProviderRegistry):
        self._registry = registry
        logger.info(
            f"OrchestrationManager initialized | Default provider: {registry.default_name}"
        )

    # =========================================================================
    # STAGE 1: PROVIDER SELECTION
    # =========================================================================

    @property
    def registry(self) -> ProviderRegistry:
        return self._registry

    @property
    def available_providers(self) -> List[str]:
        return self._registry.names

    @property
    def default_provider(self) -> Optional[str]:
        return self._registry.default_name

    def get_provider(self, name: Optional[str] = None) -> BaseClinicalAIProvider:
        """
        Raises:
            ProviderNotFoundError: If `name` is not registered
        """
        return self._registry.get(name)

    # =========================================================================
    # STAGE 2: PROVIDER CONTRACT
    # =========================================================================

    async def process(
        self,
        task: Optional[Union[ClinicalTask, str]],
        prompt: str,
        context: str = "",
        options: Optional[ProcessingOptions] = None,
    ) -> ProcessingResult:
        """
        Run a task-specific prompt against the selected provider.

        The task instruction is placed in front of `prompt` unless the
        prompt already starts with a "Task:" header.
        """
        options = options or ProcessingOptions()
        provider = self.get_provider(options.provider)
        if task is not None and not prompt.startswith("Task:"):
            prompt = f"{task_instruction(task)}\n\n{prompt}"
        logger.debug(f"Routing prompt | Task: {task} | Provider: {provider.provider_name}")
        return await provider.process_prompt(prompt, context, options)

    async def process_prompt(
        self, prompt: str, context: str = "", options: Optional[ProcessingOptions] = None
    ) -> ProcessingResult:
        return await self.process(None, prompt, context, options)

    async def process_request(self, request: ProcessingRequest) -> ProcessingResult:
        return await self.process(None, request.prompt, request.context, request.options)

    async def extract_entities(
        self, text: str, options: Optional[ProcessingOptions] = None
    ) -> EntityExtractionResult:
        options = options or ProcessingOptions()
        provider = self.get_provider(options.provider)
        return await provider.extract_entities(text, options)

    async def analyze_risk(
        self,
        patient_data: Union[PatientData, Dict[str, Any]],
        options: Optional[ProcessingOptions] = None,
    ) -> RiskAnalysisResult:
        options = options or ProcessingOptions()
        provider = self.get_provider(options.provider)
        return await provider.analyze_risk(patient_data, options)

    # =========================================================================
    # STAGE 3: CONTEXT
    # =========================================================================

    def build_context(
        self,
        patient_data: Union[PatientData, Dict[str, Any], None],
        document_texts: Optional[Sequence[DocumentInput]] = None,
    ) -> str:
        return build_patient_context(patient_data, document_texts)
