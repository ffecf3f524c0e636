"""
Validation Layer - Grounding Checks on AI Output

Submodules:
    hallucination.py → Watch-list hallucination flags and context validation
"""

from clinical_ai_orchestration.validation.hallucination import (
    check_hallucinations,
    validate_output_against_context,
)

__all__ = [
    "check_hallucinations",
    "validate_output_against_context",
]
