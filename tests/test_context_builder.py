"""
test_context_builder.py
-----------------------
Tests for the grounding context string and the task prompt: exact
format, section order, determinism and document truncation.

Run:
    pytest tests/test_context_builder.py -v --tb=short
"""

import json

from clinical_ai_orchestration.core.constants import DEFAULT_TASK_INSTRUCTION, TASK_INSTRUCTIONS
from clinical_ai_orchestration.core.enums import ClinicalTask
from clinical_ai_orchestration.orchestration.context_builder import (
    build_patient_context,
    build_task_prompt,
    task_instruction,
    task_snapshot,
)

SINGLE_MED_PATIENT = {
    "demographics": {"name": "Jane Doe", "dob": "1950-03-02", "sex": "F"},
    "currentMedications": [{"name": "Warfarin", "dose": "5mg", "route": "PO", "frequency": "daily"}],
    "allergies": [{"substance": "Penicillin", "reaction": "rash", "severity": "severe"}],
}


# ── build_patient_context ─────────────────────────────────────────────────────

def test_context_exact_format():
    context = build_patient_context(SINGLE_MED_PATIENT, ["Note A"])
    assert context == (
        "Patient Information:\n"
        "- Name: Jane Doe\n"
        "- Date of Birth: 1950-03-02\n"
        "- Sex: F\n"
        "\n"
        "Current Medications:\n"
        "- Warfarin 5mg PO daily\n"
        "\n"
        "Allergies:\n"
        "- Penicillin: rash (severe)\n"
        "\n"
        "Relevant Documents:\n"
        "Document 1:\n"
        "Note A\n"
        "\n"
    )


def test_context_is_byte_identical_for_identical_inputs(patient):
    documents = ["BP 150/90", {"id": "D2", "text": "INR 3.1"}]
    assert build_patient_context(patient, documents) == build_patient_context(patient, documents)


def test_context_section_order(patient):
    context = build_patient_context(patient, ["Note"])
    positions = [
        context.index("Patient Information:"),
        context.index("Current Medications:"),
        context.index("Allergies:"),
        context.index("Relevant Documents:"),
    ]
    assert positions == sorted(positions)


def test_context_omits_empty_sections():
    context = build_patient_context({"demographics": {"name": "John Roe"}}, [])
    assert "Current Medications:" not in context
    assert "Allergies:" not in context
    assert "Relevant Documents:" not in context
    assert context.startswith("Patient Information:\n- Name: John Roe\n")


def test_context_medication_without_details_has_no_trailing_space():
    context = build_patient_context({"currentMedications": ["Aspirin"]})
    assert "- Aspirin\n" in context


def test_context_accepts_document_dicts_and_numbers_them():
    documents = [{"id": "D1", "text": "First"}, "Second"]
    context = build_patient_context({}, documents)
    assert "Document 1:\nFirst\n\nDocument 2:\nSecond\n\n" in context


# ── task prompt ───────────────────────────────────────────────────────────────

def test_task_prompt_header_and_sorted_snapshot(patient):
    prompt = build_task_prompt(ClinicalTask.MEDICATION_SAFETY, patient, ["Note"])
    header, instructions, body = prompt.split("\n")

    assert header == "Task: medication_safety"
    assert instructions == f"Instructions: {TASK_INSTRUCTIONS[ClinicalTask.MEDICATION_SAFETY]}"
    assert body.startswith("Patient Context(JSON): ")
    snapshot = json.loads(body[len("Patient Context(JSON): "):])
    assert list(snapshot) == sorted(snapshot)
    assert snapshot["medications"][0]["name"] == "Warfarin"


def test_task_snapshot_truncates_documents():
    snapshot = task_snapshot({}, [{"id": "D1", "type": "lab", "text": "x" * 5000}])
    document = snapshot["documents"][0]
    assert len(document["text"]) == 4000
    assert document["id"] == "D1"
    assert document["type"] == "lab"


def test_unknown_task_gets_default_instruction():
    assert task_instruction("wellness_haiku") == DEFAULT_TASK_INSTRUCTION
    prompt = build_task_prompt("wellness_haiku", {}, [])
    assert prompt.startswith("Task: wellness_haiku\nInstructions: " + DEFAULT_TASK_INSTRUCTION)
