"""
Context Builder - Deterministic Grounding Context and Task Prompts

Pure functions that serialize patient data and document text into the
exact strings handed to providers. Identical inputs always produce
byte-identical output, so a stored `input_context` can be replayed.

Section order of the patient context:
    1. Patient Information (demographics)
    2. Current Medications
    3. Allergies
    4. Relevant Documents
"""

import json
from typing import Any, Dict, List, Optional, Sequence, Union

from clinical_ai_orchestration.core.constants import (
    DEFAULT_TASK_INSTRUCTION,
    MAX_DOCUMENT_CHARS,
    TASK_INSTRUCTIONS,
    TASK_PROMPT_SNAPSHOT_LABEL,
)
from clinical_ai_orchestration.core.enums import ClinicalTask
from clinical_ai_orchestration.core.models import PatientData

DocumentInput = Union[str, Dict[str, Any]]


def _document_text(document: DocumentInput) -> str:
    if isinstance(document, dict):
        return str(document.get("text") or "")
    return str(document or "")


def build_patient_context(
    patient_data: Union[PatientData, Dict[str, Any], None],
    document_texts: Optional[Sequence[DocumentInput]] = None,
) -> str:
    """
    Serialize patient facts and documents into one grounding text block.

    Args:
        patient_data: PatientData or a dict accepted by PatientData.from_dict
        document_texts: Extracted document texts (or document dicts with "text")

    Returns:
        Context string; sections without data are omitted

    Example:
        >>> build_patient_context({"demographics": {"name": "Jane Doe"}}, ["BP 150/90"])
        'Patient Information:\\n- Name: Jane Doe\\n...'
    """
    patient = PatientData.from_dict(patient_data)
    lines: List[str] = ["Patient Information:"]

    if patient.demographics is not None:
        lines.append(f"- Name: {patient.demographics.name}")
        lines.append(f"- Date of Birth: {patient.demographics.dob}")
        lines.append(f"- Sex: {patient.demographics.sex}")

    if patient.medications:
        lines.append("")
        lines.append("Current Medications:")
        for med in patient.medications:
            detail = " ".join(part for part in (med.dose, med.route, med.frequency) if part)
            lines.append(f"- {med.name} {detail}".rstrip())

    if patient.allergies:
        lines.append("")
        lines.append("Allergies:")
        for allergy in patient.allergies:
            lines.append(f"- {allergy.substance}: {allergy.reaction} ({allergy.severity})")

    documents = [_document_text(doc) for doc in (document_texts or [])]
    if documents:
        lines.append("")
        lines.append("Relevant Documents:")
        for index, text in enumerate(documents, start=1):
            lines.append(f"Document {index}:")
            lines.append(text)
            lines.append("")

    return "\n".join(lines) + "\n"


def _document_snapshot(document: DocumentInput) -> Dict[str, Any]:
    if isinstance(document, dict):
        return {
            "id": document.get("id"),
            "type": document.get("type"),
            "title": document.get("title"),
            "text": str(document.get("text") or "")[:MAX_DOCUMENT_CHARS],
        }
    return {"id": None, "type": None, "title": None, "text": str(document or "")[:MAX_DOCUMENT_CHARS]}


def task_snapshot(
    patient_data: Union[PatientData, Dict[str, Any], None],
    documents: Optional[Sequence[DocumentInput]] = None,
) -> Dict[str, Any]:
    """JSON-ready snapshot of the inputs of a task prompt; stored as `input_context`."""
    patient = PatientData.from_dict(patient_data)
    return {
        "demographics": patient.demographics.to_dict() if patient.demographics else None,
        "allergies": [a.to_dict() for a in patient.allergies],
        "medications": [m.to_dict() for m in patient.medications],
        "documents": [_document_snapshot(doc) for doc in (documents or [])],
    }


def task_instruction(task: Union[ClinicalTask, str]) -> str:
    """Instruction text for a task; unknown tasks get the generic instruction."""
    try:
        return TASK_INSTRUCTIONS[ClinicalTask.from_value(task)]
    except ValueError:
        return DEFAULT_TASK_INSTRUCTION


def build_task_prompt(
    task: Union[ClinicalTask, str],
    patient_data: Union[PatientData, Dict[str, Any], None],
    documents: Optional[Sequence[DocumentInput]] = None,
) -> str:
    """
    Compose the task prompt: task name, instruction and a JSON snapshot.

    Document text inside the snapshot is truncated to MAX_DOCUMENT_CHARS.
    Keys are sorted so the prompt is byte-stable.
    """
    task_name = task.value if isinstance(task, ClinicalTask) else str(task)
    snapshot = json.dumps(task_snapshot(patient_data, documents), sort_keys=True)
    return (
        f"Task: {task_name}\n"
        f"Instructions: {task_instruction(task)}\n"
        f"{TASK_PROMPT_SNAPSHOT_LABEL} {snapshot}"
    )
