"""
test_remote_provider.py
-----------------------
Tests for the shared remote-adapter behaviour (grounding, sentinel,
JSON extraction, rule-engine fallback, error classification) and for the
OpenAI / Gemini adapters against in-process SDK doubles.

Run:
    pytest tests/test_remote_provider.py -v --tb=short
"""

import asyncio

import pytest

from clinical_ai_orchestration.core.enums import EntityType, ErrorCategory
from clinical_ai_orchestration.core.exceptions import (
    ConfigurationError,
    ProviderError,
    TransientProviderError,
)
from clinical_ai_orchestration.core.models import ProcessingOptions
from clinical_ai_orchestration.providers.gemini_provider import SAFETY_SETTINGS, GeminiProvider
from clinical_ai_orchestration.providers.openai_provider import OpenAIProvider
from clinical_ai_orchestration.providers.payloads import extract_json
from clinical_ai_orchestration.providers.remote_provider import classify_error
from tests.fakes import (
    FakeAPIError,
    FakeGenAI,
    FakeOpenAIClient,
    ScriptedRemoteProvider,
    gemini_response,
    openai_response,
)


class SlowProvider(ScriptedRemoteProvider):
    async def _complete(self, system_prompt, prompt, options):
        await asyncio.sleep(1.0)
        return "too late", 1


# ── grounding and sentinel ────────────────────────────────────────────────────

def test_sentinel_reply_becomes_insufficient_data():
    provider = ScriptedRemoteProvider(["insufficient_data"])
    result = asyncio.run(provider.process_prompt("Differential?", "Patient Information:\n"))

    assert result.success is False
    assert result.is_insufficient_data
    assert result.error_category is ErrorCategory.INSUFFICIENT_DATA


def test_sentinel_phrase_is_detected_inside_prose():
    provider = ScriptedRemoteProvider(["There is Insufficient data in patient record to answer."])
    result = asyncio.run(provider.process_prompt("Summarize", "ctx"))
    assert result.is_insufficient_data


def test_system_prompt_carries_the_context():
    provider = ScriptedRemoteProvider(["Plain answer"])
    asyncio.run(provider.process_prompt("Summarize", "- Name: Jane Doe"))

    system_prompt, prompt, _ = provider.calls[0]
    assert "Patient Context:\n- Name: Jane Doe" in system_prompt
    assert "insufficient_data" in system_prompt
    assert prompt == "Summarize"


def test_plain_reply_has_no_json():
    provider = ScriptedRemoteProvider(["Plain answer"])
    result = asyncio.run(provider.process_prompt("Summarize", "ctx"))

    assert result.success is True
    assert result.text == "Plain answer"
    assert result.json is None
    assert result.metadata.tokens_used == 42
    assert result.metadata.provider == "openai"
    assert result.metadata.model == "fake-model"


def test_fenced_json_is_extracted():
    provider = ScriptedRemoteProvider(['Here you go:\n```json\n{"assessment": "stable"}\n```'])
    result = asyncio.run(provider.process_prompt("Summarize", "ctx"))
    assert result.json == {"assessment": "stable"}


def test_extract_json_prefers_whichever_bracket_opens_first():
    assert extract_json('Entities: [{"text": "fever"}] done') == [{"text": "fever"}]
    assert extract_json('Result {"overallRisk": 3} end') == {"overallRisk": 3}
    assert extract_json("no structure") is None
    assert extract_json("") is None


def test_empty_reply_is_malformed():
    provider = ScriptedRemoteProvider(["   "])
    result = asyncio.run(provider.process_prompt("Summarize", "ctx"))
    assert result.success is False
    assert result.error_category is ErrorCategory.MALFORMED_RESPONSE


def test_timeout_option_bounds_the_call():
    provider = SlowProvider(["unused"])
    result = asyncio.run(provider.process_prompt("Summarize", "ctx", ProcessingOptions(timeout=0.01)))
    assert result.success is False
    assert result.error_category is ErrorCategory.TIMEOUT


def test_sdk_exception_is_classified_into_the_envelope():
    provider = ScriptedRemoteProvider([FakeAPIError("Rate limit reached", status_code=429)])
    result = asyncio.run(provider.process_prompt("Summarize", "ctx"))
    assert result.error_category is ErrorCategory.RATE_LIMITED
    assert result.error.startswith("openai API error:")


# ── entity extraction ─────────────────────────────────────────────────────────

def test_entity_reply_is_normalized_and_grounded():
    """Labels normalize, confidence clamps, offsets are fixed, inventions are dropped."""
    text = "Patient reports fever and takes warfarin"
    reply = (
        '[{"text": "Fever", "type": "Symptoms", "confidence": 1.4},'
        ' {"text": "warfarin", "type": "medication", "confidence": 0.9, "start": 0, "end": 3},'
        ' {"text": "heparin", "type": "medication"}]'
    )
    provider = ScriptedRemoteProvider([reply])
    result = asyncio.run(provider.extract_entities(text))

    assert result.success is True
    assert [(e.text, e.type) for e in result.entities] == [
        ("fever", EntityType.SYMPTOM),
        ("warfarin", EntityType.MEDICATION),
    ]
    assert result.entities[0].start == text.index("fever")
    assert result.entities[0].confidence == 1.0
    for entity in result.entities:
        assert text[entity.start:entity.end] == entity.text
    assert result.metadata.model == "fake-model"


def test_entity_reply_wrapped_in_object_is_accepted():
    provider = ScriptedRemoteProvider(['{"entities": [{"text": "cough", "type": "symptom"}]}'])
    result = asyncio.run(provider.extract_entities("dry cough"))
    assert [e.text for e in result.entities] == ["cough"]


def test_unknown_entity_label_drops_only_that_item():
    reply = (
        '[{"text": "penicillin", "type": "allergy"},'
        ' {"text": "fever", "type": "symptom"},'
        ' {"text": "cough", "type": "Symptoms"}]'
    )
    provider = ScriptedRemoteProvider([reply])
    result = asyncio.run(provider.extract_entities("penicillin allergy, fever and cough"))

    assert result.success is True
    assert [(e.text, e.type) for e in result.entities] == [
        ("fever", EntityType.SYMPTOM),
        ("cough", EntityType.SYMPTOM),
    ]
    assert result.metadata.model == "fake-model"


@pytest.mark.parametrize(
    "reply",
    [
        "I found a fever in the note.",
        '[{"text": "fever", "type": "organism"}]',
        '{"findings": "fever"}',
    ],
)
def test_unparseable_entity_reply_falls_back_to_rules(reply):
    provider = ScriptedRemoteProvider([reply])
    result = asyncio.run(provider.extract_entities("fever and cough"))

    assert result.success is True
    assert [e.text for e in result.entities] == ["fever", "cough"]
    assert all(e.confidence == 0.6 for e in result.entities)
    assert result.metadata.model == "fake-model+rule-fallback"
    assert result.metadata.provider == "openai"


# ── risk analysis ─────────────────────────────────────────────────────────────

def test_risk_reply_is_validated_and_clamped(patient):
    reply = (
        '{"riskFactors": [{"factor": "Bleeding", "score": 14, "confidence": 0.7,'
        ' "evidence": "INR 4.2"}], "overallRisk": 12, "recommendations": "Check INR"}'
    )
    provider = ScriptedRemoteProvider([reply])
    result = asyncio.run(provider.analyze_risk(patient))

    assert result.success is True
    assert result.factor_labels == ["Bleeding"]
    assert result.risk_factors[0].score == 10.0
    assert result.risk_factors[0].evidence == ("INR 4.2",)
    assert result.overall_risk == 10.0
    assert result.recommendations == ["Check INR"]


def test_risk_prompt_carries_patient_json(patient):
    provider = ScriptedRemoteProvider(['{"riskFactors": [], "overallRisk": 0}'])
    asyncio.run(provider.analyze_risk(patient))
    system_prompt, prompt, _ = provider.calls[0]
    assert '"name": "Jane Doe"' in prompt
    assert '"name": "Jane Doe"' in system_prompt


def test_garbage_risk_reply_falls_back_to_heuristic(patient):
    provider = ScriptedRemoteProvider(["Risk seems moderate overall."])
    result = asyncio.run(provider.analyze_risk(patient))

    assert result.success is True
    assert result.overall_risk == 8.0
    assert len(result.risk_factors) == 3
    assert result.metadata.model == "fake-model+rule-fallback"


@pytest.mark.parametrize(
    "reply",
    [
        '{"riskFactors": [{"factor": "Bleeding", "score": 3, "evidence": 5}], "overallRisk": 3}',
        '{"riskFactors": [{"factor": "Bleeding", "score": 3}], "overallRisk": 3, "recommendations": 7}',
    ],
)
def test_scalar_evidence_or_recommendations_are_wrapped(patient, reply):
    result = asyncio.run(ScriptedRemoteProvider([reply]).analyze_risk(patient))

    assert result.success is True
    assert result.metadata.model == "fake-model"
    assert result.overall_risk == 3.0
    assert result.risk_factors[0].factor == "Bleeding"


@pytest.mark.parametrize(
    "reply",
    [
        '{"riskFactors": [{"factor": "Bleeding", "score": 3, "evidence": {"inr": 3.1}}], "overallRisk": 3}',
        '{"riskFactors": [], "overallRisk": 3, "recommendations": {"first": "monitor"}}',
    ],
)
def test_object_valued_lists_fall_back_to_heuristic(patient, reply):
    result = asyncio.run(ScriptedRemoteProvider([reply]).analyze_risk(patient))

    assert result.success is True
    assert result.overall_risk == 8.0
    assert result.metadata.model == "fake-model+rule-fallback"


# ── error classification ──────────────────────────────────────────────────────

@pytest.mark.parametrize(
    "error, category, transient",
    [
        (FakeAPIError("Rate limit reached for requests", 429), ErrorCategory.RATE_LIMITED, True),
        (FakeAPIError("You exceeded your current quota", 429), ErrorCategory.QUOTA_EXCEEDED, False),
        (FakeAPIError("Incorrect API key provided", 401), ErrorCategory.AUTH, False),
        (FakeAPIError("Forbidden", 403), ErrorCategory.ACCESS_DENIED, False),
        (FakeAPIError("Service Unavailable", 503), ErrorCategory.OVERLOADED, True),
        (FakeAPIError("The model `gpt-9` does not exist", 404), ErrorCategory.MODEL_ERROR, False),
        (Exception("Request timed out."), ErrorCategory.TIMEOUT, True),
        (Exception("Connection error."), ErrorCategory.NETWORK, True),
        (Exception("something odd"), ErrorCategory.UNKNOWN, False),
    ],
)
def test_classify_error(error, category, transient):
    classified = classify_error("openai", error)

    assert classified.category is category
    assert isinstance(classified, TransientProviderError) is transient
    assert classified.provider == "openai"
    assert classified.original_error is error


def test_classify_error_passes_provider_errors_through():
    original = ProviderError("already classified", provider="gemini", category=ErrorCategory.AUTH)
    assert classify_error("gemini", original) is original


# ── OpenAI adapter ────────────────────────────────────────────────────────────

def test_openai_sends_system_and_user_messages():
    client = FakeOpenAIClient(openai_response("Assessment: stable", total_tokens=30))
    provider = OpenAIProvider(api_key="sk-test", client=client)
    options = ProcessingOptions(model="gpt-4o", temperature=0.2)

    result = asyncio.run(provider.process_prompt("Summarize", "- Name: Jane Doe", options))

    sent = client.completions.kwargs[0]
    assert sent["model"] == "gpt-4o"
    assert [m["role"] for m in sent["messages"]] == ["system", "user"]
    assert "- Name: Jane Doe" in sent["messages"][0]["content"]
    assert sent["temperature"] == 0.2
    assert sent["max_tokens"] == 2000
    assert result.text == "Assessment: stable"
    assert result.metadata.tokens_used == 30
    assert result.metadata.model == "gpt-4o"
    assert result.metadata.provider == "openai"


def test_openai_content_filter_is_reported():
    client = FakeOpenAIClient(openai_response("", finish_reason="content_filter"))
    provider = OpenAIProvider(api_key="sk-test", client=client)
    result = asyncio.run(provider.process_prompt("Summarize", "ctx"))
    assert result.error_category is ErrorCategory.CONTENT_FILTERED


def test_openai_quota_error_is_not_transient():
    client = FakeOpenAIClient(error=FakeAPIError("insufficient_quota", status_code=429))
    provider = OpenAIProvider(api_key="sk-test", client=client)
    result = asyncio.run(provider.process_prompt("Summarize", "ctx"))
    assert result.error_category is ErrorCategory.QUOTA_EXCEEDED


def test_openai_requires_an_api_key():
    with pytest.raises(ConfigurationError):
        OpenAIProvider(api_key="")


# ── Gemini adapter ────────────────────────────────────────────────────────────

def test_gemini_uses_system_instruction_and_generation_config():
    genai = FakeGenAI(gemini_response("Gemini answer", total_tokens=17))
    provider = GeminiProvider(api_key="g-test", genai_module=genai)

    result = asyncio.run(provider.process_prompt("Summarize", "- Name: Jane Doe"))

    model = genai.models[0]
    assert model.kwargs["model_name"] == "gemini-1.5-flash"
    assert model.kwargs["safety_settings"] == SAFETY_SETTINGS
    assert "- Name: Jane Doe" in model.kwargs["system_instruction"]
    assert model.prompts == ["Summarize"]
    assert model.generation_configs[0]["max_output_tokens"] == 2000
    assert result.text == "Gemini answer"
    assert result.metadata.tokens_used == 17
    assert result.metadata.provider == "gemini"


def test_gemini_blocked_prompt_is_content_filtered():
    genai = FakeGenAI(gemini_response(block_reason="SAFETY"))
    provider = GeminiProvider(api_key="g-test", genai_module=genai)
    result = asyncio.run(provider.process_prompt("Summarize", "ctx"))
    assert result.error_category is ErrorCategory.CONTENT_FILTERED


def test_gemini_empty_response_is_malformed():
    genai = FakeGenAI(gemini_response(""))
    provider = GeminiProvider(api_key="g-test", genai_module=genai)
    result = asyncio.run(provider.process_prompt("Summarize", "ctx"))
    assert result.error_category is ErrorCategory.MALFORMED_RESPONSE
