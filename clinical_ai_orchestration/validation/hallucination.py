"""
Hallucination Checks - Grounding Validation of AI Output

Lightweight checks run on a successful AI output before it is stored:

    check_hallucinations            → flags watch-list drug terms that the
                                      output mentions but the patient record
                                      does not contain
    validate_output_against_context → True if the output references
                                      patient-specific facts or grounded
                                      phrasing

Both are heuristics. Flags are stored on the record for clinician
review; they never block persistence.
"""

import re
from typing import Any, Dict, List, Union

from loguru import logger

from clinical_ai_orchestration.core.constants import GROUNDED_PHRASES, HALLUCINATION_WATCHLIST
from clinical_ai_orchestration.core.models import HallucinationFlag, PatientData

_PATIENT_FACT = re.compile(r"(?:Name|Date of Birth|Sex): ([^\n]+)")


def check_hallucinations(
    output: Any, patient_data: Union[PatientData, Dict[str, Any], None]
) -> List[HallucinationFlag]:
    """
    Flag watch-list terms mentioned in `output` but absent from the record.

    A term counts as present when it appears in any medication name or
    allergy substance (case-insensitive substring).

    Args:
        output: AI output text (non-strings are str()-ed)
        patient_data: Patient record the output was grounded on

    Returns:
        One flag per unsupported term, in watch-list order

    Example:
        >>> check_hallucinations("Start heparin drip", {"medications": ["Aspirin"]})
        [HallucinationFlag(reason='mentions heparin not in context', span='heparin')]
    """
    text = str(output or "").lower()
    patient = PatientData.from_dict(patient_data)
    known = [name.lower() for name in patient.medication_names + patient.allergy_substances]

    flags: List[HallucinationFlag] = []
    for term in HALLUCINATION_WATCHLIST:
        if term in text and not any(term in entry for entry in known):
            flags.append(HallucinationFlag(reason=f"mentions {term} not in context", span=term))

    if flags:
        logger.warning(f"Hallucination check flagged {len(flags)} term(s): {[f.span for f in flags]}")
    return flags


def validate_output_against_context(output: str, context: str) -> bool:
    """
    Check that `output` is traceable to `context`.

    If the context carries patient facts (name, date of birth, sex), the
    output must mention at least one of them. Otherwise the output must
    use grounded phrasing such as "based on the provided information".
    """
    output = output or ""
    facts = [value.strip() for value in _PATIENT_FACT.findall(context or "") if value.strip()]
    if facts:
        return any(fact in output for fact in facts)

    lowered = output.lower()
    return any(phrase in lowered for phrase in GROUNDED_PHRASES)
