"""
Gemini Provider - Google Gemini Adapter

Concrete remote adapter for Google's Gemini models via the
google-generativeai SDK. The grounding prompt is passed as the model's
system instruction, so a GenerativeModel is built per call.
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

# Permissive thresholds: clinical text trips the default filters
SAFETY_SETTINGS = [
    {"category": "HARM_CATEGORY_HARASSMENT", "threshold": "BLOCK_NONE"},
    {"category": "HARM_CATEGORY_HATE_SPEECH", "threshold": "BLOCK_NONE"},
    {"category": "HARM_CATEGORY_SEXUALLY_EXPLICIT", "threshold": "BLOCK_NONE"},
    {"category": "HARM_CATEGORY_DANGEROUS_CONTENT", "threshold": "BLOCK_NONE"},
]


# =============================================================================
# STAGE 1: GEMINI PROVIDER IMPLEMENTATION
# =============================================================================


class GeminiProvider(BaseRemoteLLMProvider):
    """
    Google Gemini API adapter.

    What it does:
        Generates content asynchronously with the grounding prompt as
        system instruction, maps prompt-feedback blocks to
        CONTENT_FILTERED and reports `usage_metadata.total_token_count`.

    Supported Models:
        - gemini-1.5-flash (default, fast)
        - gemini-1.5-pro

    Example:
        >>> provider = GeminiProvider(api_key="...")
        >>> result = await provider.extract_entities("fever and cough")
    """

    def __init__(
        self,
        api_key: str,
        model_name: str = ConfigDefaults.DEFAULT_GEMINI_MODEL,
        genai_module: Optional[Any] = None,
        today: Optional[Callable[[], date]] = None,
    ):
        """
        Initialize the Gemini adapter.

        Args:
            api_key: Google API key (Gemini)
            model_name: Default model for calls without a model override
            genai_module: Pre-configured google.generativeai-compatible module (tests)
            today: Clock for the rule-engine risk fallback
        """
        if not api_key:
            raise ConfigurationError("Gemini API key is required", context={"provider": "gemini"})

        super().__init__(api_key=api_key, model_name=model_name, today=today)
        self._genai = genai_module
        if self._genai is None:
            self._initialize_client()

        logger.info(f"GeminiProvider initialized | Model: {model_name}")

    def _initialize_client(self) -> None:
        """
        Configure the Gemini SDK.

        Lazy import to avoid requiring google-generativeai at module load.
        """
        try:
            import google.generativeai as genai

            genai.configure(api_key=self._api_key)
            self._genai = genai

        except ImportError:
            raise ConfigurationError(
                "google-generativeai package not installed. "
                "Install with: pip install google-generativeai",
                context={"provider": "gemini"},
            )
        except Exception as e:
            raise ConfigurationError(
                f"Failed to initialize Gemini client: {e}", context={"provider": "gemini"}
            )

    @property
    def provider_name(self) -> str:
        return ProviderKind.GEMINI.value

    # =========================================================================
    # STAGE 2: API CALL IMPLEMENTATION
    # =========================================================================

    async def _complete(
        self, system_prompt: str, prompt: str, options: ProcessingOptions
    ) -> Tuple[str, int]:
        try:
            model = self._genai.GenerativeModel(
                model_name=self._resolve_model(options),
                safety_settings=SAFETY_SETTINGS,
                system_instruction=system_prompt,
            )
            response = await model.generate_content_async(
                prompt,
                generation_config=self._genai.GenerationConfig(
                    temperature=options.temperature,
                    top_p=options.top_p,
                    max_output_tokens=options.max_tokens,
                ),
            )
        except ProviderError:
            raise
        except Exception as e:
            raise classify_error(self.provider_name, e) from e

        # Check for blocked content
        feedback = getattr(response, "prompt_feedback", None)
        block_reason = getattr(feedback, "block_reason", None)
        if block_reason:
            raise ProviderError(
                f"Gemini blocked the prompt: {block_reason}",
                provider=self.provider_name,
                category=ErrorCategory.CONTENT_FILTERED,
            )

        text = self._response_text(response)
        usage = getattr(response, "usage_metadata", None)
        tokens_used = getattr(usage, "total_token_count", 0) or 0
        return text, tokens_used

    def _response_text(self, response: Any) -> str:
        """`response.text` raises ValueError when no part is text; fall back to candidates."""
        try:
            if response.text:
                return response.text
        except ValueError:
            pass

        candidates = getattr(response, "candidates", None) or []
        if candidates:
            content = getattr(candidates[0], "content", None)
            parts = getattr(content, "parts", None) or []
            if parts:
                return parts[0].text or ""

        raise MalformedResponseError(self.provider_name, "Gemini returned empty response")
