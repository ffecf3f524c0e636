"""
Rule Engine - Deterministic Clinical Heuristics

Pure, I/O-free functions shared by the local provider and by the remote
adapters' parse-failure fallback:
    1. Regex entity extraction over a fixed pattern table
    2. Weighted heuristic risk scoring from medications, allergies and age
    3. Keyword prompt classification and canned clinical text

Every function is deterministic: the same input yields the same output.
Age is computed against an explicit `today` so callers can pin the clock.
"""

import re
from datetime import date, datetime
from typing import Any, Dict, List, Optional, Tuple

from clinical_ai_orchestration.core.constants import (
    ADVANCED_AGE_THRESHOLD,
    DEFAULT_RISK_RECOMMENDATIONS,
    ENTITY_PATTERNS,
    HIGH_RISK_MEDICATIONS,
    LOCAL_ENTITY_CONFIDENCE,
    MAX_RISK_SCORE,
    POLYPHARMACY_THRESHOLD,
    RISK_FACTOR_ADVANCED_AGE,
    RISK_FACTOR_HIGH_RISK_MEDICATIONS,
    RISK_FACTOR_POLYPHARMACY,
    RISK_FACTOR_SEVERE_ALLERGIES,
    RISK_RULES,
    TASK_INSTRUCTIONS,
    TASK_PROMPT_SNAPSHOT_LABEL,
)
from clinical_ai_orchestration.core.enums import AllergySeverity, ClinicalTask
from clinical_ai_orchestration.core.models import ExtractedEntity, PatientData, RiskFactor


# =============================================================================
# STAGE 1: ENTITY EXTRACTION
# =============================================================================

_COMPILED_PATTERNS = [
    (entity_type, re.compile(pattern, re.IGNORECASE)) for entity_type, pattern in ENTITY_PATTERNS
]


def extract_entities(text: str, confidence: float = LOCAL_ENTITY_CONFIDENCE) -> List[ExtractedEntity]:
    """
    Scan `text` against the entity pattern table.

    Every match is emitted with the given confidence and exact character
    offsets. Overlapping matches across types (e.g. "heart disease" and
    "heart") are all kept.

    Args:
        text: Text to analyse
        confidence: Confidence stamped on each entity

    Returns:
        Entities ordered by pattern table, then by position
    """
    entities: List[ExtractedEntity] = []
    if not text:
        return entities

    for entity_type, regex in _COMPILED_PATTERNS:
        for match in regex.finditer(text):
            entities.append(
                ExtractedEntity(
                    text=match.group(0),
                    type=entity_type,
                    confidence=confidence,
                    start=match.start(),
                    end=match.end(),
                )
            )
    return entities


# =============================================================================
# STAGE 2: RISK SCORING
# =============================================================================


def parse_date(value: Any) -> Optional[date]:
    """Parse a date of birth; returns None when unparseable."""
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    raw = str(value or "").strip()
    if not raw:
        return None
    try:
        return datetime.fromisoformat(raw.replace("Z", "+00:00")).date()
    except ValueError:
        pass
    for fmt in ("%m/%d/%Y", "%Y/%m/%d", "%d-%m-%Y"):
        try:
            return datetime.strptime(raw, fmt).date()
        except ValueError:
            continue
    return None


def calculate_age(dob: Any, today: date) -> Optional[int]:
    """Whole years between `dob` and `today`; None for an unknown DOB."""
    birth = parse_date(dob)
    if birth is None:
        return None
    age = today.year - birth.year
    if (today.month, today.day) < (birth.month, birth.day):
        age -= 1
    return age


def _rule_factor(label: str, evidence: List[str]) -> RiskFactor:
    score, confidence, _ = RISK_RULES[label]
    return RiskFactor(factor=label, score=score, confidence=confidence, evidence=tuple(evidence))


def assess_risk(
    patient: PatientData, today: date
) -> Tuple[List[RiskFactor], float, List[str]]:
    """
    Weighted heuristic risk assessment.

    Algorithm:
        1. More than 5 medications → polypharmacy (+4)
        2. Any warfarin / insulin / digoxin / lithium → high-risk meds (+3)
        3. Any severe or life-threatening allergy → severe allergies (+3)
        4. Age over 65 from date of birth → advanced age (+2)
        5. Overall risk = sum clamped to [0, 10]
        6. Recommendations for each fired factor, else a generic set

    Args:
        patient: Normalized patient data
        today: Reference date for age calculation

    Returns:
        Tuple of (risk_factors, overall_risk, recommendations)
    """
    factors: List[RiskFactor] = []

    # -------------------------------------------------------------------------
    # 2.1 Medications
    # -------------------------------------------------------------------------
    med_count = len(patient.medications)
    if med_count > POLYPHARMACY_THRESHOLD:
        factors.append(
            _rule_factor(RISK_FACTOR_POLYPHARMACY, [f"Patient is taking {med_count} medications"])
        )

    high_risk = [
        med.name for med in patient.medications if med.name.strip().lower() in HIGH_RISK_MEDICATIONS
    ]
    if high_risk:
        factors.append(_rule_factor(RISK_FACTOR_HIGH_RISK_MEDICATIONS, high_risk))

    # -------------------------------------------------------------------------
    # 2.2 Allergies
    # -------------------------------------------------------------------------
    severe = [
        f"{a.substance}: {a.reaction}"
        for a in patient.allergies
        if AllergySeverity.is_high(a.severity)
    ]
    if severe:
        factors.append(_rule_factor(RISK_FACTOR_SEVERE_ALLERGIES, severe))

    # -------------------------------------------------------------------------
    # 2.3 Demographics
    # -------------------------------------------------------------------------
    if patient.demographics is not None:
        age = calculate_age(patient.demographics.dob, today)
        if age is not None and age > ADVANCED_AGE_THRESHOLD:
            factors.append(_rule_factor(RISK_FACTOR_ADVANCED_AGE, [f"Patient age: {age} years"]))

    # -------------------------------------------------------------------------
    # 2.4 Aggregate
    # -------------------------------------------------------------------------
    overall = min(float(sum(f.score for f in factors)), MAX_RISK_SCORE)
    recommendations = [RISK_RULES[f.factor][2] for f in factors]
    if not recommendations:
        recommendations = list(DEFAULT_RISK_RECOMMENDATIONS)

    return factors, overall, recommendations


# =============================================================================
# STAGE 3: PROMPT CLASSIFICATION AND CANNED TEXT
# =============================================================================

PROMPT_DIAGNOSIS = "diagnosis"
PROMPT_TREATMENT = "treatment"
PROMPT_MEDICATION = "medication"
PROMPT_RISK = "risk"

# (category, trigger keywords); first matching category wins
_PROMPT_CATEGORIES: List[Tuple[str, Tuple[str, ...]]] = [
    (PROMPT_DIAGNOSIS, ("differential diagnosis", "diagnosis")),
    (PROMPT_TREATMENT, ("treatment plan", "treatment")),
    (PROMPT_MEDICATION, ("medication", "drug")),
    (PROMPT_RISK, ("risk", "assessment")),
]

# Tasks with a canned local reply; the others get the disclaimer
_TASK_CATEGORIES: Dict[ClinicalTask, Optional[str]] = {
    ClinicalTask.DIFFERENTIAL_DIAGNOSIS: PROMPT_DIAGNOSIS,
    ClinicalTask.TREATMENT_PLANNING: PROMPT_TREATMENT,
    ClinicalTask.MEDICATION_SAFETY: PROMPT_MEDICATION,
    ClinicalTask.ENTITY_EXTRACTION: None,
    ClinicalTask.SUMMARIZATION: None,
    ClinicalTask.SOAP_NOTE: None,
}

LOCAL_DISCLAIMER = (
    "This local rule-based system can provide basic medical analysis. "
    "For more comprehensive AI assistance, please use an external AI provider."
)


def prompt_task(prompt: str) -> Optional[ClinicalTask]:
    """
    Recover the clinical task a prompt was built for.

    Recognizes the "Task: <name>" header of task prompts and prompts
    that open with a task instruction. Returns None for free-form prompts.
    """
    first_line = prompt.lstrip().split("\n", 1)[0].strip()
    if first_line.startswith("Task:"):
        try:
            return ClinicalTask.from_value(first_line[len("Task:"):].strip())
        except ValueError:
            return None
    for task, instruction in TASK_INSTRUCTIONS.items():
        if first_line.startswith(instruction):
            return task
    return None


def classify_prompt(prompt: str) -> Optional[str]:
    """
    Return the prompt category, or None if no canned reply applies.

    A recognized task decides the category directly. Otherwise the first
    matching keyword wins. The JSON snapshot of a task prompt is never
    scanned.
    """
    task = prompt_task(prompt)
    if task is not None:
        return _TASK_CATEGORIES.get(task)

    lowered = prompt.split(TASK_PROMPT_SNAPSHOT_LABEL, 1)[0].lower()
    for category, keywords in _PROMPT_CATEGORIES:
        if any(keyword in lowered for keyword in keywords):
            return category
    return None


def _numbered(items: List[str]) -> str:
    return "\n".join(f"{i}. {item}" for i, item in enumerate(items, start=1))


def _canned(heading: str, items: List[str], note: str, key: str) -> Tuple[str, Dict[str, Any]]:
    text = f"{heading}\n\n{_numbered(items)}\n\nNote: {note}"
    return text, {key: items, "confidence": "low", "method": "rule_based"}


def differential_diagnosis(context: str) -> Tuple[str, Dict[str, Any]]:
    lowered = context.lower()
    diagnoses: List[str] = []

    if "fever" in lowered and "cough" in lowered:
        diagnoses += ["Upper respiratory tract infection", "Pneumonia", "Bronchitis"]
    if "chest pain" in lowered:
        diagnoses += [
            "Angina",
            "Myocardial infarction",
            "Gastroesophageal reflux disease",
            "Costochondritis",
        ]
    if "shortness of breath" in lowered:
        diagnoses += [
            "Asthma",
            "Chronic obstructive pulmonary disease",
            "Heart failure",
            "Pulmonary embolism",
        ]
    if "abdominal pain" in lowered:
        diagnoses += ["Gastritis", "Peptic ulcer disease", "Appendicitis", "Cholecystitis"]
    if not diagnoses:
        diagnoses.append("Insufficient clinical information for differential diagnosis")

    return _canned(
        "Based on the provided context, consider the following differential diagnoses:",
        diagnoses,
        "This is a basic rule-based analysis. For comprehensive evaluation, "
        "consider additional clinical information and testing.",
        "diagnoses",
    )


def treatment_plan(context: str) -> Tuple[str, Dict[str, Any]]:
    lowered = context.lower()
    treatments: List[str] = []

    if "fever" in lowered:
        treatments += ["Acetaminophen or ibuprofen for fever control", "Adequate hydration"]
    if "pain" in lowered:
        treatments += [
            "Appropriate pain management based on severity",
            "Consider non-pharmacological interventions",
        ]
    if "infection" in lowered:
        treatments += [
            "Antibiotics if bacterial infection suspected",
            "Supportive care and monitoring",
        ]
    if not treatments:
        treatments += ["General supportive care and monitoring", "Address underlying cause if identified"]

    return _canned(
        "Treatment Plan:",
        treatments,
        "This is a basic treatment framework. Individualize based on "
        "patient-specific factors and clinical judgment.",
        "treatments",
    )


def medication_analysis(context: str) -> Tuple[str, Dict[str, Any]]:
    lowered = context.lower()
    analysis: List[str] = []

    if "multiple medications" in lowered or "polypharmacy" in lowered:
        analysis += [
            "Review for potential drug interactions",
            "Consider medication reconciliation",
            "Assess for unnecessary medications",
        ]
    if "allerg" in lowered:
        analysis += [
            "Verify allergy information is current",
            "Ensure allergy alerts are active",
            "Review for cross-sensitivity",
        ]
    if not analysis:
        analysis += [
            "Review current medication list",
            "Assess for drug interactions",
            "Monitor for adverse effects",
        ]

    return _canned(
        "Medication Analysis:",
        analysis,
        "This is a basic medication review. Consider comprehensive medication management review.",
        "analysis",
    )


def risk_summary(context: str) -> Tuple[str, Dict[str, Any]]:
    lowered = context.lower()
    risks: List[str] = []

    if "elderly" in lowered or "age 65" in lowered:
        risks += [
            "Increased risk of adverse drug reactions",
            "Higher risk of falls and complications",
        ]
    if "multiple conditions" in lowered or "comorbidities" in lowered:
        risks += ["Complex care management required", "Higher risk of treatment interactions"]
    if not risks:
        risks += ["Standard risk assessment recommended", "Monitor for new risk factors"]

    return _canned(
        "Risk Assessment:",
        risks,
        "This is a basic risk assessment. Consider comprehensive evaluation "
        "based on individual factors.",
        "risks",
    )


CANNED_RESPONSES = {
    PROMPT_DIAGNOSIS: differential_diagnosis,
    PROMPT_TREATMENT: treatment_plan,
    PROMPT_MEDICATION: medication_analysis,
    PROMPT_RISK: risk_summary,
}
