"""
OpenAI Provider - OpenAI Chat Completions Adapter

Concrete remote adapter for OpenAI (and OpenAI-compatible endpoints via
`base_url`). Uses the async client so concurrent requests share one
event loop.
"""

from datetime import date
from typing import Any, Callable, Optional, Tuple

from loguru import logger

from clinical_ai_orchestration.core.config import ConfigDefaults
from clinical_ai_orchestration.core.enums import ErrorCategory, ProviderKind
from clinical_ai_orchestration.core.exceptions import (
    ConfigurationError,
    MalformedResponseError,
    ProviderError,
)
from clinical_ai_orchestration.core.models import ProcessingOptions
from clinical_ai_orchestration.providers.remote_provider import (
    BaseRemoteLLMProvider,
    classify_error,
)


# =============================================================================
# STAGE 1: OPENAI PROVIDER IMPLEMENTATION
# =============================================================================


class OpenAIProvider(BaseRemoteLLMProvider):
    """
    OpenAI API adapter.

    What it does:
        Sends the grounding system prompt and the user prompt as a chat
        completion and reports `usage.total_tokens`.

    Supported Models:
        - gpt-4o-mini (default, cost-effective)
        - gpt-4o
        - any model served by an OpenAI-compatible `base_url`

    Example:
        >>> provider = OpenAIProvider(api_key="sk-...", model_name="gpt-4o-mini")
        >>> result = await provider.process_prompt("Summarize", context="...")
    """

    def __init__(
        self,
        api_key: str,
        model_name: str = ConfigDefaults.DEFAULT_OPENAI_MODEL,
        base_url: str = ConfigDefaults.DEFAULT_OPENAI_BASE_URL,
        client: Optional[Any] = None,
        today: Optional[Callable[[], date]] = None,
    ):
        """
        Initialize the OpenAI adapter.

        Args:
            api_key: OpenAI API key
            model_name: Default model for calls without a model override
            base_url: API base URL
            client: Pre-built AsyncOpenAI-compatible client (tests)
            today: Clock for the rule-engine risk fallback
        """
        if not api_key:
            raise ConfigurationError("OpenAI API key is required", context={"provider": "openai"})

        super().__init__(api_key=api_key, model_name=model_name, today=today)
        self._base_url = base_url
        self._client = client
        if self._client is None:
            self._initialize_client()

        logger.info(f"OpenAIProvider initialized | Model: {model_name}")

    def _initialize_client(self) -> None:
        """
        Initialize the async OpenAI client.

        Lazy import to avoid requiring openai at module load.
        """
        try:
            from openai import AsyncOpenAI

            self._client = AsyncOpenAI(api_key=self._api_key, base_url=self._base_url)

        except ImportError:
            raise ConfigurationError(
                "openai package not installed. Install with: pip install openai",
                context={"provider": "openai"},
            )
        except Exception as e:
            raise ConfigurationError(
                f"Failed to initialize OpenAI client: {e}", context={"provider": "openai"}
            )

    @property
    def provider_name(self) -> str:
        return ProviderKind.OPENAI.value

    # =========================================================================
    # STAGE 2: API CALL IMPLEMENTATION
    # =========================================================================

    async def _complete(
        self, system_prompt: str, prompt: str, options: ProcessingOptions
    ) -> Tuple[str, int]:
        try:
            response = await self._client.chat.completions.create(
                model=self._resolve_model(options),
                messages=[
                    {"role": "system", "content": system_prompt},
                    {"role": "user", "content": prompt},
                ],
                temperature=options.temperature,
                top_p=options.top_p,
                max_tokens=options.max_tokens,
            )
        except ProviderError:
            raise
        except Exception as e:
            raise classify_error(self.provider_name, e) from e

        if not response.choices:
            raise MalformedResponseError(self.provider_name, "no choices in response")

        choice = response.choices[0]
        if getattr(choice, "finish_reason", None) == "content_filter":
            raise ProviderError(
                "OpenAI reply was filtered",
                provider=self.provider_name,
                category=ErrorCategory.CONTENT_FILTERED,
            )

        text = choice.message.content or ""
        usage = getattr(response, "usage", None)
        tokens_used = getattr(usage, "total_tokens", 0) or 0
        return text, tokens_used
