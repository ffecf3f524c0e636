"""
test_local_provider.py
----------------------
Tests for the local rule-based provider: regex entity extraction,
heuristic risk scoring, keyword prompt classification, and the envelope
contract on malformed input.

Run:
    pytest tests/test_local_provider.py -v --tb=short
"""

import asyncio

import pytest

from clinical_ai_orchestration.core.constants import (
    DEFAULT_RISK_RECOMMENDATIONS,
    RISK_FACTOR_ADVANCED_AGE,
    RISK_FACTOR_HIGH_RISK_MEDICATIONS,
    RISK_FACTOR_POLYPHARMACY,
    RISK_FACTOR_SEVERE_ALLERGIES,
)
from clinical_ai_orchestration.core.enums import ClinicalTask, EntityType
from clinical_ai_orchestration.orchestration.context_builder import build_task_prompt, task_instruction
from clinical_ai_orchestration.providers.base import ClinicalAIProviderProtocol
from clinical_ai_orchestration.providers.rule_engine import (
    LOCAL_DISCLAIMER,
    PROMPT_DIAGNOSIS,
    PROMPT_MEDICATION,
    PROMPT_TREATMENT,
    calculate_age,
    classify_prompt,
)
from tests.fakes import FIXED_TODAY

SIX_MEDS_WITH_WARFARIN = {
    "currentMedications": [
        {"name": "Warfarin"},
        {"name": "Lisinopril"},
        {"name": "Metformin"},
        {"name": "Atorvastatin"},
        {"name": "Omeprazole"},
        {"name": "Aspirin"},
    ],
    "allergies": [],
}


# ── extract_entities ──────────────────────────────────────────────────────────

def test_extract_entities_finds_symptoms_and_medications(local_provider):
    """Scenario text yields fever, cough, warfarin and lisinopril with exact offsets."""
    text = "Patient reports fever and cough, takes warfarin and lisinopril"
    result = asyncio.run(local_provider.extract_entities(text))

    assert result.success is True
    found = {(e.text, e.type) for e in result.entities}
    assert ("fever", EntityType.SYMPTOM) in found
    assert ("cough", EntityType.SYMPTOM) in found
    assert ("warfarin", EntityType.MEDICATION) in found
    assert ("lisinopril", EntityType.MEDICATION) in found
    for entity in result.entities:
        assert text[entity.start:entity.end] == entity.text
        assert entity.confidence == 0.8


def test_extract_entities_is_case_insensitive_and_keeps_overlaps(local_provider):
    """"Heart disease" is a diagnosis and its "heart" is also a body part."""
    result = asyncio.run(local_provider.extract_entities("History of Heart Disease"))
    assert [e.text for e in result.entities_of_type(EntityType.DIAGNOSIS)] == ["Heart Disease"]
    assert [e.text for e in result.entities_of_type(EntityType.BODY_PART)] == ["Heart"]


def test_extract_entities_orders_by_pattern_table(local_provider):
    """Symptoms are emitted before medications regardless of position."""
    result = asyncio.run(local_provider.extract_entities("aspirin for headache"))
    assert [e.type for e in result.entities] == [EntityType.SYMPTOM, EntityType.MEDICATION]


def test_extract_entities_empty_text_returns_empty_list(local_provider):
    result = asyncio.run(local_provider.extract_entities(""))
    assert result.success is True
    assert result.entities == []
    assert result.metadata.provider == "local"
    assert result.metadata.model == "rule-based"


# ── analyze_risk ──────────────────────────────────────────────────────────────

def test_analyze_risk_polypharmacy_and_high_risk_medication(local_provider):
    """Six medications including warfarin fire exactly two factors, 4 + 3."""
    result = asyncio.run(local_provider.analyze_risk(SIX_MEDS_WITH_WARFARIN))

    assert result.success is True
    assert result.factor_labels == [RISK_FACTOR_POLYPHARMACY, RISK_FACTOR_HIGH_RISK_MEDICATIONS]
    assert result.overall_risk == 7.0
    assert result.risk_factors[1].evidence == ("Warfarin",)


def test_analyze_risk_is_deterministic(local_provider, patient):
    first = asyncio.run(local_provider.analyze_risk(patient))
    second = asyncio.run(local_provider.analyze_risk(patient))
    assert first.risk_factors == second.risk_factors
    assert first.overall_risk == second.overall_risk
    assert first.recommendations == second.recommendations


def test_analyze_risk_allergy_and_age_factors(local_provider, patient):
    """Warfarin, a severe allergy and age 74 against the pinned clock."""
    result = asyncio.run(local_provider.analyze_risk(patient))
    assert result.factor_labels == [
        RISK_FACTOR_HIGH_RISK_MEDICATIONS,
        RISK_FACTOR_SEVERE_ALLERGIES,
        RISK_FACTOR_ADVANCED_AGE,
    ]
    assert result.overall_risk == 8.0
    assert result.risk_factors[2].evidence == ("Patient age: 74 years",)


def test_analyze_risk_overall_is_clamped_to_ten(local_provider, patient):
    data = dict(SIX_MEDS_WITH_WARFARIN)
    data["demographics"] = patient["demographics"]
    data["allergies"] = [{"substance": "Latex", "reaction": "anaphylaxis", "severity": "life-threatening"}]
    result = asyncio.run(local_provider.analyze_risk(data))
    assert len(result.risk_factors) == 4
    assert result.overall_risk == 10.0


def test_analyze_risk_without_factors_uses_default_recommendations(local_provider):
    result = asyncio.run(local_provider.analyze_risk({"currentMedications": ["Aspirin"]}))
    assert result.risk_factors == []
    assert result.overall_risk == 0.0
    assert result.recommendations == list(DEFAULT_RISK_RECOMMENDATIONS)


def test_analyze_risk_unparseable_dob_skips_age(local_provider):
    data = {"demographics": {"name": "X", "dob": "sometime in the fifties"}}
    result = asyncio.run(local_provider.analyze_risk(data))
    assert RISK_FACTOR_ADVANCED_AGE not in result.factor_labels


def test_calculate_age_before_and_after_birthday():
    assert calculate_age("1950-06-02", FIXED_TODAY) == 73
    assert calculate_age("1950-06-01", FIXED_TODAY) == 74
    assert calculate_age("03/02/1950", FIXED_TODAY) == 74
    assert calculate_age("", FIXED_TODAY) is None


# ── process_prompt ────────────────────────────────────────────────────────────

def test_process_prompt_differential_diagnosis(local_provider):
    result = asyncio.run(
        local_provider.process_prompt("Give a differential diagnosis", "fever and cough for 3 days")
    )
    assert result.success is True
    assert "Pneumonia" in result.text
    assert result.json["method"] == "rule_based"
    assert "Pneumonia" in result.json["diagnoses"]
    assert result.metadata.tokens_used == 0


def test_process_prompt_classification_order(local_provider):
    """'treatment' wins over 'medication' when both appear."""
    result = asyncio.run(local_provider.process_prompt("treatment and medication review", ""))
    assert "treatments" in result.json


def test_process_prompt_without_category_returns_disclaimer(local_provider):
    result = asyncio.run(local_provider.process_prompt("Hello there", "context"))
    assert result.success is True
    assert result.text == LOCAL_DISCLAIMER
    assert result.json is None


@pytest.mark.parametrize(
    "task, category",
    [
        (ClinicalTask.DIFFERENTIAL_DIAGNOSIS, PROMPT_DIAGNOSIS),
        (ClinicalTask.TREATMENT_PLANNING, PROMPT_TREATMENT),
        (ClinicalTask.MEDICATION_SAFETY, PROMPT_MEDICATION),
        (ClinicalTask.SUMMARIZATION, None),
        (ClinicalTask.SOAP_NOTE, None),
        (ClinicalTask.ENTITY_EXTRACTION, None),
    ],
)
def test_task_prompt_is_classified_by_task_not_snapshot(task, category):
    patient = {"currentMedications": [{"name": "Warfarin"}]}
    documents = [{"id": "D1", "text": "Prior diagnosis and treatment reviewed; risk assessment done."}]
    prompt = build_task_prompt(task, patient, documents)

    assert '"medications"' in prompt
    assert classify_prompt(prompt) == category


def test_instruction_prefixed_prompt_uses_the_task_category():
    prompt = f"{task_instruction(ClinicalTask.MEDICATION_SAFETY)}\n\nWrite it"
    assert classify_prompt(prompt) == PROMPT_MEDICATION
    assert classify_prompt(f"{task_instruction(ClinicalTask.SOAP_NOTE)}\n\nmedication list") is None


def test_free_form_prompt_ignores_a_trailing_snapshot():
    prompt = 'Summarize this visit\nPatient Context(JSON): {"medications": []}'
    assert classify_prompt(prompt) is None


# ── envelope contract ─────────────────────────────────────────────────────────

@pytest.mark.parametrize(
    "operation, args",
    [
        ("process_prompt", (None, None)),
        ("extract_entities", (None,)),
        ("extract_entities", (12345,)),
        ("analyze_risk", ("not a patient",)),
        ("analyze_risk", ({"currentMedications": [42, None]},)),
        ("analyze_risk", (None,)),
    ],
)
def test_operations_never_raise_on_malformed_input(local_provider, operation, args):
    """Every call returns a well-formed envelope, success or not."""
    result = asyncio.run(getattr(local_provider, operation)(*args))
    assert isinstance(result.success, bool)
    assert result.metadata.provider == "local"
    assert result.metadata.processing_time_ms >= 0
    if not result.success:
        assert result.error
        assert result.error_category is not None


def test_failed_call_is_counted(local_provider):
    asyncio.run(local_provider.analyze_risk("not a patient"))
    assert local_provider.failed_calls == 1
    assert local_provider.success_rate == 0.0


def test_local_provider_satisfies_protocol(local_provider):
    assert isinstance(local_provider, ClinicalAIProviderProtocol)
