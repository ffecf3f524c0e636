"""
Provider Registry - Immutable Set of Available Providers

The registry is built once at process start from configuration and then
passed explicitly to the manager. It never changes afterwards, so it is
safe to read from any number of concurrent requests.
"""

from types import MappingProxyType
from typing import Callable, Dict, Iterable, List, Mapping, Optional

from loguru import logger

from clinical_ai_orchestration.core.config import OrchestrationConfiguration
from clinical_ai_orchestration.core.enums import ProviderKind
from clinical_ai_orchestration.core.exceptions import (
    ClinicalAIError,
    NoProviderAvailableError,
    ProviderNotFoundError,
)
from clinical_ai_orchestration.providers.base import BaseClinicalAIProvider
from clinical_ai_orchestration.providers.gemini_provider import GeminiProvider
from clinical_ai_orchestration.providers.local_provider import LocalRuleBasedProvider
from clinical_ai_orchestration.providers.openai_provider import OpenAIProvider

ProviderFactory = Callable[[OrchestrationConfiguration], BaseClinicalAIProvider]


# =============================================================================
# STAGE 1: REGISTRY VALUE
# =============================================================================


class ProviderRegistry:
    """
    Read-only mapping of provider name to provider instance.

    Attributes:
        default_name: Provider used when a call names none

    Example:
        >>> registry = ProviderRegistry([LocalRuleBasedProvider()])
        >>> registry.names
        ['local']
        >>> registry.default_name
        'local'
    """

    def __init__(
        self,
        providers: Iterable[BaseClinicalAIProvider],
        default_name: Optional[str] = None,
    ):
        ordered: Dict[str, BaseClinicalAIProvider] = {}
        for provider in providers:
            ordered[provider.provider_name] = provider
        self._providers: Mapping[str, BaseClinicalAIProvider] = MappingProxyType(ordered)

        if default_name is None and ordered:
            default_name = next(iter(ordered))
        if default_name is not None and default_name not in ordered:
            raise ProviderNotFoundError(default_name, list(ordered))
        self._default_name = default_name

    @property
    def names(self) -> List[str]:
        """Registered provider names, in registration order."""
        return list(self._providers)

    @property
    def default_name(self) -> Optional[str]:
        return self._default_name

    def get(self, name: Optional[str] = None) -> BaseClinicalAIProvider:
        """
        Resolve a provider: the named one, or the default when `name` is None.

        Raises:
            ProviderNotFoundError: If `name` is not registered
            NoProviderAvailableError: If nothing is registered
        """
        if not self._providers:
            raise NoProviderAvailableError()
        resolved = name or self._default_name
        provider = self._providers.get(resolved)
        if provider is None:
            raise ProviderNotFoundError(resolved, self.names)
        return provider

    def __contains__(self, name: object) -> bool:
        return name in self._providers

    def __len__(self) -> int:
        return len(self._providers)

    def __repr__(self) -> str:
        return f"ProviderRegistry(providers={self.names}, default={self._default_name!r})"


# =============================================================================
# STAGE 2: STARTUP CONSTRUCTION
# =============================================================================


def _openai_factory(config: OrchestrationConfiguration) -> BaseClinicalAIProvider:
    return OpenAIProvider(
        api_key=config.openai_api_key,
        model_name=config.openai_model,
        base_url=config.openai_base_url,
    )


def _gemini_factory(config: OrchestrationConfiguration) -> BaseClinicalAIProvider:
    return GeminiProvider(api_key=config.gemini_api_key, model_name=config.gemini_model)


DEFAULT_FACTORIES: Mapping[ProviderKind, ProviderFactory] = MappingProxyType(
    {
        ProviderKind.OPENAI: _openai_factory,
        ProviderKind.GEMINI: _gemini_factory,
    }
)


def build_registry(
    config: OrchestrationConfiguration,
    provider_factories: Optional[Mapping[ProviderKind, ProviderFactory]] = None,
    local_provider: Optional[BaseClinicalAIProvider] = None,
) -> ProviderRegistry:
    """
    Build the registry from configuration.

    Algorithm:
        1. For each remote provider with credentials, in preference order,
           call its factory; failures are logged and the provider skipped
        2. Always register the local provider last
        3. Default = first remote that initialized, else local

    Args:
        config: Orchestration configuration
        provider_factories: Override factories per ProviderKind (tests)
        local_provider: Pre-built local provider (tests, pinned clock)

    Returns:
        Immutable ProviderRegistry
    """
    factories = dict(DEFAULT_FACTORIES)
    factories.update(provider_factories or {})

    providers: List[BaseClinicalAIProvider] = []
    for kind in config.configured_remote_providers:
        factory = factories.get(kind)
        if factory is None:
            continue
        try:
            providers.append(factory(config))
        except ClinicalAIError as e:
            logger.warning(f"{kind.value} provider not available | Error: {e}")

    providers.append(local_provider or LocalRuleBasedProvider())

    registry = ProviderRegistry(providers, default_name=providers[0].provider_name)
    logger.info(f"ProviderRegistry built | Providers: {registry.names} | Default: {registry.default_name}")
    return registry
