"""
Constants for Clinical AI Orchestration

Centralized constant values used by the providers, the context builder
and the hallucination checks.

Constant Categories:
    ENTITY_PATTERNS        → Regex table for rule-based entity extraction
    RISK_*                 → Weights and thresholds for heuristic risk scoring
    GROUNDING_*            → System prompt and sentinel markers for remote LLMs
    TASK_INSTRUCTIONS      → Per-task instruction map for task prompts
    HALLUCINATION_WATCHLIST → Drug terms that must be grounded in the record
"""

from typing import Dict, List, Tuple

from clinical_ai_orchestration.core.enums import ClinicalTask, EntityType


# =============================================================================
# STAGE 1: ENTITY EXTRACTION PATTERNS
# =============================================================================
# Whole-word, case-insensitive alternations. Order of the table is the
# order entities are emitted in.

ENTITY_PATTERNS: List[Tuple[EntityType, str]] = [
    (
        EntityType.SYMPTOM,
        r"\b(fever|pain|headache|nausea|vomiting|diarrhea|cough|shortness of breath"
        r"|fatigue|weakness|dizziness|chest pain|abdominal pain|back pain)\b",
    ),
    (
        EntityType.VITAL_SIGN,
        r"\b(blood pressure|heart rate|temperature|respiratory rate|oxygen saturation"
        r"|pulse|bp|hr|temp|rr|o2|spo2)\b",
    ),
    (
        EntityType.LAB_VALUE,
        r"\b(glucose|cholesterol|hemoglobin|creatinine|bun|sodium|potassium|chloride"
        r"|bicarbonate|wbc|rbc|platelets|hct|hgb)\b",
    ),
    (
        EntityType.MEDICATION,
        r"\b(aspirin|ibuprofen|acetaminophen|amoxicillin|metformin|lisinopril|atorvastatin"
        r"|omeprazole|albuterol|insulin|warfarin|digoxin|furosemide)\b",
    ),
    (
        EntityType.DIAGNOSIS,
        r"\b(diabetes|hypertension|asthma|pneumonia|heart disease|stroke|cancer|copd"
        r"|kidney disease|liver disease|arthritis|depression|anxiety)\b",
    ),
    (
        EntityType.PROCEDURE,
        r"\b(surgery|catheterization|biopsy|colonoscopy|endoscopy|x-ray|ct scan|mri"
        r"|ultrasound|ekg|ecg|stress test)\b",
    ),
    (
        EntityType.BODY_PART,
        r"\b(heart|lung|kidney|liver|brain|stomach|intestine|colon|esophagus|trachea"
        r"|artery|vein|bone|joint|muscle)\b",
    ),
]

LOCAL_ENTITY_CONFIDENCE: float = 0.8
"""Confidence stamped on entities found by the local provider."""

FALLBACK_ENTITY_CONFIDENCE: float = 0.6
"""Confidence stamped when a remote adapter falls back to regex extraction."""


# =============================================================================
# STAGE 2: RISK SCORING
# =============================================================================

POLYPHARMACY_THRESHOLD: int = 5
"""Strictly more than this many medications counts as polypharmacy."""

HIGH_RISK_MEDICATIONS: Tuple[str, ...] = ("warfarin", "insulin", "digoxin", "lithium")

ADVANCED_AGE_THRESHOLD: int = 65
"""Strictly older than this many years counts as advanced age."""

MAX_RISK_SCORE: float = 10.0

RISK_FACTOR_POLYPHARMACY = "Polypharmacy (5+ medications)"
RISK_FACTOR_HIGH_RISK_MEDICATIONS = "High-risk medications"
RISK_FACTOR_SEVERE_ALLERGIES = "Severe allergies"
RISK_FACTOR_ADVANCED_AGE = "Advanced age"

# factor label → (score, confidence, recommendation)
RISK_RULES: Dict[str, Tuple[int, float, str]] = {
    RISK_FACTOR_POLYPHARMACY: (
        4,
        0.9,
        "Review medication list for potential interactions and consider "
        "deprescribing if appropriate",
    ),
    RISK_FACTOR_HIGH_RISK_MEDICATIONS: (
        3,
        0.9,
        "Monitor therapeutic levels and adverse effects closely",
    ),
    RISK_FACTOR_SEVERE_ALLERGIES: (
        3,
        0.9,
        "Ensure allergy information is prominently displayed and reviewed "
        "before any new medications",
    ),
    RISK_FACTOR_ADVANCED_AGE: (
        2,
        0.8,
        "Consider age-appropriate dosing adjustments and increased monitoring",
    ),
}

DEFAULT_RISK_RECOMMENDATIONS: Tuple[str, ...] = (
    "Continue current monitoring and care plan",
    "Review medications for potential interactions",
    "Monitor for any new symptoms or adverse reactions",
)


# =============================================================================
# STAGE 3: GROUNDING PROMPT AND SENTINEL
# =============================================================================

INSUFFICIENT_DATA_SENTINEL = "insufficient_data"

INSUFFICIENT_DATA_MARKERS: Tuple[str, ...] = (
    INSUFFICIENT_DATA_SENTINEL,
    "insufficient data in patient record",
    "no supporting patient documents",
)

GROUNDING_SYSTEM_PROMPT = """You are a medical AI assistant. You must ONLY provide information based on the patient context and documents provided.

IMPORTANT RULES:
1. NEVER generate fake, sample, or placeholder medical information
2. ONLY use information from the provided patient context and documents
3. If you cannot find relevant information in the provided context, respond with "insufficient_data"
4. Always cite specific information from the provided documents
5. Be precise and clinical in your responses
6. If asked for differential diagnosis, only suggest conditions that have supporting evidence in the documents

Patient Context:
{context}"""

ENTITY_EXTRACTION_PROMPT = """Extract medical entities from the following text. Return only entities that are explicitly mentioned in the text. Do not generate or infer entities.

Text to analyze:
{text}

Extract the following entity types if present: symptom, diagnosis, medication, lab_value, procedure, body_part, vital_sign.

Respond with a JSON array only. Each entity has: text, type, confidence (0.0-1.0), start (character offset), end (character offset).

If no relevant entities are found, return an empty array."""

RISK_ANALYSIS_PROMPT = """Analyze the following patient data for risk factors. Only identify risks that have clear evidence in the data provided. Do not generate hypothetical or generic risks.

Patient Data:
{data}

Analyze for:
1. Medication-related risks (interactions, contraindications)
2. Clinical risks based on lab values, vital signs, or documented conditions
3. Demographic or lifestyle risks if documented

Respond with a JSON object only, with:
- riskFactors: array of {{ factor, score (0-10), confidence (0.0-1.0), evidence (array of strings) }}
- overallRisk: overall risk score (0-10)
- recommendations: array of specific, actionable recommendations"""


# =============================================================================
# STAGE 4: TASK INSTRUCTIONS
# =============================================================================

TASK_INSTRUCTIONS: Dict[ClinicalTask, str] = {
    ClinicalTask.ENTITY_EXTRACTION: (
        "Extract key entities (problems, meds, allergies, dates) strictly from context."
    ),
    ClinicalTask.SUMMARIZATION: "Summarize clinically relevant findings only from the documents.",
    ClinicalTask.DIFFERENTIAL_DIAGNOSIS: (
        "Provide differential diagnosis ONLY from provided findings; "
        "list reasoning and red flags."
    ),
    ClinicalTask.TREATMENT_PLANNING: (
        "Draft a cautious treatment plan based on context; note uncertainties."
    ),
    ClinicalTask.MEDICATION_SAFETY: (
        "Check interactions/contraindications using ONLY meds & allergies in context."
    ),
    ClinicalTask.SOAP_NOTE: "Produce a concise SOAP note from the provided data only.",
}

DEFAULT_TASK_INSTRUCTION = "Work strictly within the given patient context."

MAX_DOCUMENT_CHARS: int = 4000
"""Per-document text limit inside task prompt snapshots."""

TASK_PROMPT_SNAPSHOT_LABEL = "Patient Context(JSON):"
"""Label of the JSON snapshot line that closes every task prompt."""


# =============================================================================
# STAGE 5: HALLUCINATION CHECKS
# =============================================================================

HALLUCINATION_WATCHLIST: Tuple[str, ...] = (
    "penicillin",
    "warfarin",
    "heparin",
    "insulin",
    "metformin",
)

GROUNDED_PHRASES: Tuple[str, ...] = (
    "patient presents with",
    "based on the provided information",
    "according to the documents",
    "the patient has",
    "clinical findings include",
)
