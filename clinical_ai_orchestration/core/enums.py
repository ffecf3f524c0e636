"""
Enumerations for Clinical AI Orchestration

This module defines the enumeration types used across the provider,
orchestration, and storage layers. Enums give type-safe categorical
values that serialize cleanly to the strings stored in audit records.

Enumeration Categories:
    ClinicalTask   → Kinds of AI analysis persisted as versioned outputs
    ProviderKind   → Tagged provider variants (local, openai, gemini)
    EntityType     → Entity categories emitted by entity extraction
    ErrorCategory  → Stable failure categories carried in result envelopes
    AllergySeverity → Allergy severity levels consulted by risk scoring
"""

from enum import Enum


# =============================================================================
# STAGE 1: CLINICAL TASKS
# =============================================================================
# Each persisted AI output is scoped to one (patient, task) pair.


class ClinicalTask(str, Enum):
    """
    Types of clinical AI analysis.

    What it does:
        Names the analysis that produced a ClinicalAIOutput. Versions are
        numbered independently for every (patient, task) scope.

    When to use:
        - When invoking the manager for a task-specific prompt
        - When appending or reading versioned outputs
    """

    ENTITY_EXTRACTION = "entity_extraction"
    SUMMARIZATION = "summarization"
    DIFFERENTIAL_DIAGNOSIS = "differential_diagnosis"
    TREATMENT_PLANNING = "treatment_planning"
    MEDICATION_SAFETY = "medication_safety"
    SOAP_NOTE = "soap_note"

    @classmethod
    def from_value(cls, value: "str | ClinicalTask") -> "ClinicalTask":
        """Coerce a string (or enum member) into a ClinicalTask."""
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).strip().lower())
        except ValueError:
            valid = ", ".join(t.value for t in cls)
            raise ValueError(f"Unknown clinical task '{value}'. Valid tasks: {valid}")


# =============================================================================
# STAGE 2: PROVIDER VARIANTS
# =============================================================================


class ProviderKind(str, Enum):
    """
    Tagged variants of the provider capability interface.

    LOCAL is the deterministic rule engine and is always registered.
    OPENAI and GEMINI are remote LLM adapters registered only when their
    credentials are configured.
    """

    LOCAL = "local"
    OPENAI = "openai"
    GEMINI = "gemini"

    @property
    def is_remote(self) -> bool:
        """True for adapters that call an external API."""
        return self is not ProviderKind.LOCAL


# =============================================================================
# STAGE 3: ENTITY TYPES
# =============================================================================


class EntityType(str, Enum):
    """Entity categories recognized by extraction."""

    SYMPTOM = "symptom"
    VITAL_SIGN = "vital_sign"
    LAB_VALUE = "lab_value"
    MEDICATION = "medication"
    DIAGNOSIS = "diagnosis"
    PROCEDURE = "procedure"
    BODY_PART = "body_part"

    @classmethod
    def normalize(cls, value: str) -> "EntityType":
        """
        Map a free-form label from a remote reply onto an EntityType.

        Remote models answer with labels such as "Symptoms", "Lab values"
        or "vital signs"; these are lower-cased, singularized and
        underscore-joined before lookup.

        Raises:
            ValueError: If the label does not name a known entity type
        """
        label = str(value).strip().lower().replace("-", " ").replace("_", " ")
        label = "_".join(label.split())
        if label.endswith("s") and label not in ("diagnosis",):
            label = label[:-1]
        if label == "diagnose":
            label = "diagnosis"
        return cls(label)


# =============================================================================
# STAGE 4: ERROR CATEGORIES
# =============================================================================
# Stable categories let callers decide whether to retry, move to another
# provider, or surface the problem to the clinician.


class ErrorCategory(str, Enum):
    """
    Stable failure categories attached to failed result envelopes.

    Categories and handling:
        Transient (retry same provider with backoff):
            RATE_LIMITED, OVERLOADED, TIMEOUT, NETWORK
        Provider-fatal (skip to next provider, do not retry):
            QUOTA_EXCEEDED, AUTH, ACCESS_DENIED, MALFORMED_RESPONSE,
            CONTENT_FILTERED, MODEL_ERROR, UNKNOWN
        Terminal (stop the chain, same inputs will not help):
            INSUFFICIENT_DATA
    """

    QUOTA_EXCEEDED = "quota_exceeded"
    RATE_LIMITED = "rate_limited"
    AUTH = "auth"
    ACCESS_DENIED = "access_denied"
    TIMEOUT = "timeout"
    NETWORK = "network"
    OVERLOADED = "overloaded"
    MALFORMED_RESPONSE = "malformed_response"
    CONTENT_FILTERED = "content_filtered"
    MODEL_ERROR = "model_error"
    INSUFFICIENT_DATA = "insufficient_data"
    UNKNOWN = "unknown"

    @property
    def retryable(self) -> bool:
        """Whether the same provider may be retried after this failure."""
        return self in (
            ErrorCategory.RATE_LIMITED,
            ErrorCategory.OVERLOADED,
            ErrorCategory.TIMEOUT,
            ErrorCategory.NETWORK,
        )

    @property
    def allows_fallback(self) -> bool:
        """Whether another provider may be tried after this failure."""
        return self is not ErrorCategory.INSUFFICIENT_DATA


# =============================================================================
# STAGE 5: ALLERGY SEVERITY
# =============================================================================


class AllergySeverity(str, Enum):
    """Allergy severity levels; SEVERE and LIFE_THREATENING raise risk."""

    MILD = "mild"
    MODERATE = "moderate"
    SEVERE = "severe"
    LIFE_THREATENING = "life_threatening"

    @classmethod
    def is_high(cls, value: str) -> bool:
        """True if the raw severity string denotes a severe reaction."""
        normalized = str(value or "").strip().lower().replace("-", "_").replace(" ", "_")
        return normalized in (cls.SEVERE.value, cls.LIFE_THREATENING.value)
