"""
fakes.py
--------
Test doubles for the provider and SDK layers. No network calls.

    ScriptedRemoteProvider → BaseRemoteLLMProvider whose _complete replays
                             scripted replies or raises scripted errors
    FakeAPIError           → SDK-style exception carrying status_code
    FakeOpenAIClient       → Minimal AsyncOpenAI stand-in
    FakeGenAI              → Minimal google.generativeai stand-in
    RecordingSleep         → Async sleep that records requested delays
    make_record            → Minimal ClinicalAIOutput for store tests
"""

from datetime import date
from types import SimpleNamespace
from typing import Any, List, Optional

from clinical_ai_orchestration.core.enums import ClinicalTask
from clinical_ai_orchestration.core.models import ClinicalAIOutput, ModelInfo
from clinical_ai_orchestration.providers.remote_provider import BaseRemoteLLMProvider

FIXED_TODAY = date(2024, 6, 1)


class FakeAPIError(Exception):
    """Exception shaped like an SDK HTTP error."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class ScriptedRemoteProvider(BaseRemoteLLMProvider):
    """
    Remote provider replaying `replies` in order; the last reply repeats.

    Each reply is either a string (returned with 42 tokens) or an
    exception instance (raised).
    """

    def __init__(self, replies: List[Any], name: str = "openai", model_name: str = "fake-model"):
        super().__init__(api_key="test-key", model_name=model_name, today=lambda: FIXED_TODAY)
        self._name = name
        self._replies = list(replies)
        self.calls: List[tuple] = []

    @property
    def provider_name(self) -> str:
        return self._name

    async def _complete(self, system_prompt, prompt, options):
        self.calls.append((system_prompt, prompt, options))
        reply = self._replies.pop(0) if len(self._replies) > 1 else self._replies[0]
        if isinstance(reply, BaseException):
            raise reply
        return reply, 42


class _FakeCompletions:
    def __init__(self, response: Any = None, error: Optional[Exception] = None):
        self._response = response
        self._error = error
        self.kwargs: List[dict] = []

    async def create(self, **kwargs):
        self.kwargs.append(kwargs)
        if self._error is not None:
            raise self._error
        return self._response


class FakeOpenAIClient:
    """Exposes `chat.completions.create` like openai.AsyncOpenAI."""

    def __init__(self, response: Any = None, error: Optional[Exception] = None):
        self.completions = _FakeCompletions(response, error)
        self.chat = SimpleNamespace(completions=self.completions)


def openai_response(text: str, total_tokens: int = 30, finish_reason: str = "stop") -> Any:
    return SimpleNamespace(
        choices=[
            SimpleNamespace(
                message=SimpleNamespace(content=text),
                finish_reason=finish_reason,
            )
        ],
        usage=SimpleNamespace(total_tokens=total_tokens),
    )


def gemini_response(text: str = "", block_reason: Any = None, total_tokens: int = 17) -> Any:
    return SimpleNamespace(
        text=text,
        prompt_feedback=SimpleNamespace(block_reason=block_reason),
        usage_metadata=SimpleNamespace(total_token_count=total_tokens),
        candidates=[],
    )


class _FakeGenerativeModel:
    def __init__(self, response: Any, kwargs: dict):
        self._response = response
        self.kwargs = kwargs
        self.prompts: List[str] = []
        self.generation_configs: List[Any] = []

    async def generate_content_async(self, prompt, generation_config=None):
        self.prompts.append(prompt)
        self.generation_configs.append(generation_config)
        return self._response


class FakeGenAI:
    """Exposes GenerativeModel / GenerationConfig like google.generativeai."""

    def __init__(self, response: Any):
        self._response = response
        self.models: List[_FakeGenerativeModel] = []

    def GenerativeModel(self, **kwargs):
        model = _FakeGenerativeModel(self._response, kwargs)
        self.models.append(model)
        return model

    def GenerationConfig(self, **kwargs):
        return dict(kwargs)


class RecordingSleep:
    """Async sleep replacement that returns immediately."""

    def __init__(self):
        self.delays: List[float] = []

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)


def make_record(patient_id="P1", task=ClinicalTask.SOAP_NOTE, text="S: stable", version=None):
    return ClinicalAIOutput(
        patient_id=patient_id,
        task=task,
        input_context={"context": "Patient Information:\n"},
        output={"text": text},
        model=ModelInfo(provider="local", name="rule-based"),
        version=version,
        created_by="dr.test",
    )
