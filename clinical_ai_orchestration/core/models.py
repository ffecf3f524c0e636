"""
Domain Models for Clinical AI Orchestration

This module defines the data structures exchanged between callers, the
orchestration manager, the providers and the versioned output store.

Model Hierarchy:
    Ephemeral (never persisted):
        ProcessingOptions      → Per-call knobs (provider, model, sampling)
        ProcessingRequest      → prompt + context + options
        ProcessingMetadata     → provider, model, tokens, latency
        ProcessingResult       → Envelope for process_prompt
        ExtractedEntity        → One entity span
        EntityExtractionResult → Envelope for extract_entities
        RiskFactor             → One scored risk factor
        RiskAnalysisResult     → Envelope for analyze_risk

    Patient input (supplied by the excluded patient/document layer):
        Demographics, Medication, Allergy, PatientData

    Persisted (append-only audit log):
        ModelInfo, HallucinationFlag, ClinicalAIOutput

Envelope Invariant:
    Every provider operation returns its envelope, success or not. On
    failure `success` is False, `error` holds the message and
    `error_category` the stable ErrorCategory.
"""

import dataclasses
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Tuple

from clinical_ai_orchestration.core.enums import ClinicalTask, EntityType, ErrorCategory


# =============================================================================
# STAGE 1: REQUEST-SIDE MODELS
# =============================================================================


@dataclass(frozen=True)
class ProcessingOptions:
    """
    Options accepted by every provider operation.

    Attributes:
        provider: Explicit provider name; None means "use the default"
        model: Model override; None means the provider's configured model
        temperature: Sampling temperature
        top_p: Nucleus sampling parameter
        max_tokens: Maximum tokens in the reply
        timeout: Optional wall-clock limit in seconds for one call
    """

    provider: Optional[str] = None
    model: Optional[str] = None
    temperature: float = 0.7
    top_p: float = 0.9
    max_tokens: int = 2000
    timeout: Optional[float] = None

    def with_provider(self, provider: str) -> "ProcessingOptions":
        """Return a copy targeting a specific provider."""
        return dataclasses.replace(self, provider=provider)

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> "ProcessingOptions":
        """Create from a dict, accepting camelCase keys from the controller layer."""
        data = data or {}
        defaults = cls()
        return cls(
            provider=data.get("provider"),
            model=data.get("model"),
            temperature=float(data.get("temperature", defaults.temperature)),
            top_p=float(data.get("top_p", data.get("topP", defaults.top_p))),
            max_tokens=int(data.get("max_tokens", data.get("maxTokens", defaults.max_tokens))),
            timeout=data.get("timeout"),
        )


@dataclass(frozen=True)
class ProcessingRequest:
    """A prompt and its grounding context, ready to hand to a provider."""

    prompt: str
    context: str = ""
    options: ProcessingOptions = field(default_factory=ProcessingOptions)


# =============================================================================
# STAGE 2: RESULT ENVELOPES
# =============================================================================


@dataclass
class ProcessingMetadata:
    """Timing and usage metadata stamped on every envelope."""

    provider: str
    model: str = "default"
    tokens_used: int = 0
    processing_time_ms: float = 0.0
    temperature: float = 0.7
    top_p: float = 0.9

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            "provider": self.provider,
            "model": self.model,
            "tokensUsed": self.tokens_used,
            "processingTimeMs": self.processing_time_ms,
            "temperature": self.temperature,
            "topP": self.top_p,
        }


@dataclass
class ProcessingResult:
    """
    Envelope returned by process_prompt.

    Attributes:
        success: Whether the provider produced an answer
        text: Reply text ("" on failure)
        json: Structured value parsed out of the reply, if any
        metadata: Provider, model, tokens and latency
        error: Failure message (None on success)
        error_category: Stable failure category (None on success)
    """

    success: bool
    text: str
    metadata: ProcessingMetadata
    json: Optional[Any] = None
    error: Optional[str] = None
    error_category: Optional[ErrorCategory] = None

    @property
    def is_insufficient_data(self) -> bool:
        """True if the provider reported inadequate grounding context."""
        return self.error_category is ErrorCategory.INSUFFICIENT_DATA

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            "success": self.success,
            "text": self.text,
            "json": self.json,
            "metadata": self.metadata.to_dict(),
            "error": self.error,
            "errorCategory": self.error_category.value if self.error_category else None,
        }


@dataclass(frozen=True)
class ExtractedEntity:
    """One entity span found in a text; offsets index the analysed string."""

    text: str
    type: EntityType
    confidence: float
    start: int
    end: int

    def to_dict(self) -> Dict[str, Any]:
        return {
            "text": self.text,
            "type": self.type.value,
            "confidence": self.confidence,
            "start": self.start,
            "end": self.end,
        }


@dataclass
class EntityExtractionResult:
    """Envelope returned by extract_entities. `entities` is never None."""

    success: bool
    metadata: ProcessingMetadata
    entities: List[ExtractedEntity] = field(default_factory=list)
    error: Optional[str] = None
    error_category: Optional[ErrorCategory] = None

    def entities_of_type(self, entity_type: EntityType) -> List[ExtractedEntity]:
        """Entities of a single type, in extraction order."""
        return [e for e in self.entities if e.type is entity_type]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "success": self.success,
            "entities": [e.to_dict() for e in self.entities],
            "metadata": self.metadata.to_dict(),
            "error": self.error,
            "errorCategory": self.error_category.value if self.error_category else None,
        }


@dataclass(frozen=True)
class RiskFactor:
    """One risk factor with score 0-10, confidence 0.0-1.0 and evidence."""

    factor: str
    score: float
    confidence: float
    evidence: Tuple[str, ...] = ()

    def to_dict(self) -> Dict[str, Any]:
        return {
            "factor": self.factor,
            "score": self.score,
            "confidence": self.confidence,
            "evidence": list(self.evidence),
        }


@dataclass
class RiskAnalysisResult:
    """Envelope returned by analyze_risk. `overall_risk` lies in [0, 10]."""

    success: bool
    metadata: ProcessingMetadata
    risk_factors: List[RiskFactor] = field(default_factory=list)
    overall_risk: float = 0.0
    recommendations: List[str] = field(default_factory=list)
    error: Optional[str] = None
    error_category: Optional[ErrorCategory] = None

    def __post_init__(self):
        self.overall_risk = clamp_risk(self.overall_risk)

    @property
    def factor_labels(self) -> List[str]:
        """Labels of the fired risk factors, in order."""
        return [rf.factor for rf in self.risk_factors]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "success": self.success,
            "riskFactors": [rf.to_dict() for rf in self.risk_factors],
            "overallRisk": self.overall_risk,
            "recommendations": list(self.recommendations),
            "metadata": self.metadata.to_dict(),
            "error": self.error,
            "errorCategory": self.error_category.value if self.error_category else None,
        }


def clamp_risk(value: Any) -> float:
    """Clamp a risk score into [0, 10]; non-numeric values become 0."""
    try:
        number = float(value)
    except (TypeError, ValueError):
        return 0.0
    if number != number:  # NaN
        return 0.0
    return max(0.0, min(10.0, number))


# =============================================================================
# STAGE 3: PATIENT INPUT MODELS
# =============================================================================
# Supplied by the patient/document layer. Kept deliberately loose: the
# controller layer hands over plain dicts and these models normalize them.


@dataclass(frozen=True)
class Demographics:
    name: str = ""
    dob: str = ""
    sex: str = ""

    def to_dict(self) -> Dict[str, Any]:
        return {"name": self.name, "dob": self.dob, "sex": self.sex}


@dataclass(frozen=True)
class Medication:
    name: str
    dose: str = ""
    route: str = ""
    frequency: str = ""

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "dose": self.dose,
            "route": self.route,
            "frequency": self.frequency,
        }


@dataclass(frozen=True)
class Allergy:
    substance: str
    reaction: str = ""
    severity: str = ""

    def to_dict(self) -> Dict[str, Any]:
        return {"substance": self.substance, "reaction": self.reaction, "severity": self.severity}


@dataclass(frozen=True)
class PatientData:
    """
    Patient facts used for grounding context and risk analysis.

    Example:
        >>> patient = PatientData.from_dict({
        ...     "demographics": {"name": "Jane Doe", "dob": "1950-03-02", "sex": "F"},
        ...     "currentMedications": [{"name": "Warfarin", "dose": "5mg"}],
        ...     "allergies": [{"substance": "Penicillin", "severity": "severe"}],
        ... })
    """

    demographics: Optional[Demographics] = None
    medications: Tuple[Medication, ...] = ()
    allergies: Tuple[Allergy, ...] = ()

    @property
    def medication_names(self) -> List[str]:
        return [m.name for m in self.medications]

    @property
    def allergy_substances(self) -> List[str]:
        return [a.substance for a in self.allergies]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "demographics": self.demographics.to_dict() if self.demographics else None,
            "medications": [m.to_dict() for m in self.medications],
            "allergies": [a.to_dict() for a in self.allergies],
        }

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> "PatientData":
        """
        Create from a dict as produced by the patient record layer.

        Accepts `currentMedications`, `current_medications` or
        `medications`; medication and allergy entries may be plain
        strings or dicts.
        """
        if isinstance(data, PatientData):
            return data
        data = data or {}

        demographics = None
        raw_demo = data.get("demographics")
        if isinstance(raw_demo, dict):
            demographics = Demographics(
                name=str(raw_demo.get("name") or ""),
                dob=str(raw_demo.get("dob") or raw_demo.get("dateOfBirth") or ""),
                sex=str(raw_demo.get("sex") or raw_demo.get("gender") or ""),
            )

        raw_meds = (
            data.get("currentMedications")
            or data.get("current_medications")
            or data.get("medications")
            or []
        )
        medications = []
        for med in raw_meds:
            if isinstance(med, str):
                medications.append(Medication(name=med))
            elif isinstance(med, dict):
                medications.append(
                    Medication(
                        name=str(med.get("name") or ""),
                        dose=str(med.get("dose") or ""),
                        route=str(med.get("route") or ""),
                        frequency=str(med.get("frequency") or ""),
                    )
                )

        allergies = []
        for allergy in data.get("allergies") or []:
            if isinstance(allergy, str):
                allergies.append(Allergy(substance=allergy))
            elif isinstance(allergy, dict):
                allergies.append(
                    Allergy(
                        substance=str(allergy.get("substance") or allergy.get("name") or ""),
                        reaction=str(allergy.get("reaction") or ""),
                        severity=str(allergy.get("severity") or ""),
                    )
                )

        return cls(
            demographics=demographics,
            medications=tuple(medications),
            allergies=tuple(allergies),
        )


# =============================================================================
# STAGE 4: PERSISTED AUDIT RECORD
# =============================================================================


@dataclass(frozen=True)
class ModelInfo:
    """
    Provenance of the model that produced an output.

    `provider`, `name` and `temperature` identify the model; the
    remaining fields carry usage and latency from the result envelope.
    """

    provider: str
    name: str
    temperature: float = 0.2
    top_p: Optional[float] = None
    tokens_used: int = 0
    processing_time_ms: float = 0.0

    @classmethod
    def from_metadata(cls, metadata: ProcessingMetadata) -> "ModelInfo":
        return cls(
            provider=metadata.provider,
            name=metadata.model,
            temperature=metadata.temperature,
            top_p=metadata.top_p,
            tokens_used=metadata.tokens_used,
            processing_time_ms=metadata.processing_time_ms,
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "provider": self.provider,
            "name": self.name,
            "temperature": self.temperature,
            "topP": self.top_p,
            "tokensUsed": self.tokens_used,
            "processingTimeMs": self.processing_time_ms,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ModelInfo":
        return cls(
            provider=data.get("provider", ""),
            name=data.get("name", ""),
            temperature=data.get("temperature", 0.2),
            top_p=data.get("topP"),
            tokens_used=data.get("tokensUsed", 0),
            processing_time_ms=data.get("processingTimeMs", 0.0),
        )


@dataclass(frozen=True)
class HallucinationFlag:
    """A span of AI output that is not supported by the patient context."""

    reason: str
    span: str

    def to_dict(self) -> Dict[str, Any]:
        return {"reason": self.reason, "span": self.span}


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class ClinicalAIOutput:
    """
    One completed AI analysis, stored as an immutable audit record.

    What it does:
        Captures the full provenance of an AI artifact: the context it was
        grounded on, the output, the model, and any hallucination flags.
        Records for the same (patient_id, task) carry versions 1..N with
        no gaps; corrections are new versions, never edits.

    Attributes:
        patient_id: Patient reference (required)
        task: The analysis performed
        input_context: Snapshot of the context given to the provider
        output: Text or structured result
        model: Provenance of the producing model
        document_ids: Source documents (may be empty)
        version: Assigned by the store on append when None
        hallucination_flags: Unsupported spans (may be empty)
        created_by: Acting user reference
        record_id: Store-assigned identifier
        created_at / updated_at: Timestamps (identical; records never change)

    Example:
        >>> record = ClinicalAIOutput(
        ...     patient_id="P1",
        ...     task=ClinicalTask.SOAP_NOTE,
        ...     input_context={"context": "..."},
        ...     output={"text": "S: ..."},
        ...     model=ModelInfo(provider="local", name="rule-based"),
        ... )
        >>> stored = await store.append(record)
        >>> stored.version
        1
    """

    patient_id: str
    task: ClinicalTask
    input_context: Any
    output: Any
    model: ModelInfo
    document_ids: Tuple[str, ...] = ()
    version: Optional[int] = None
    hallucination_flags: Tuple[HallucinationFlag, ...] = ()
    created_by: Optional[str] = None
    record_id: Optional[str] = None
    created_at: datetime = field(default_factory=_utcnow)
    updated_at: Optional[datetime] = None

    def __post_init__(self):
        if not self.patient_id:
            raise ValueError("patient_id is required")
        if self.input_context is None:
            raise ValueError("input_context is required for audit replay")
        if self.output is None:
            raise ValueError("output is required")
        if self.version is not None and (
            isinstance(self.version, bool) or not isinstance(self.version, int) or self.version < 1
        ):
            raise ValueError(f"version must be a positive integer, got {self.version!r}")

        # Frozen dataclass: normalize fields through object.__setattr__
        object.__setattr__(self, "patient_id", str(self.patient_id))
        object.__setattr__(self, "task", ClinicalTask.from_value(self.task))
        object.__setattr__(self, "document_ids", tuple(str(d) for d in self.document_ids))
        object.__setattr__(self, "hallucination_flags", tuple(self.hallucination_flags))
        if self.updated_at is None:
            object.__setattr__(self, "updated_at", self.created_at)

    def with_version(self, version: int, record_id: Optional[str] = None) -> "ClinicalAIOutput":
        """Return a copy carrying a store-assigned version and identifier."""
        return dataclasses.replace(
            self, version=version, record_id=record_id or self.record_id
        )

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            "id": self.record_id,
            "patientId": self.patient_id,
            "documentIds": list(self.document_ids),
            "task": self.task.value,
            "inputContext": self.input_context,
            "output": self.output,
            "model": self.model.to_dict(),
            "version": self.version,
            "hallucinationFlags": [f.to_dict() for f in self.hallucination_flags],
            "createdBy": self.created_by,
            "createdAt": self.created_at.isoformat(),
            "updatedAt": self.updated_at.isoformat() if self.updated_at else None,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ClinicalAIOutput":
        """Create from dictionary (JSON deserialization)."""
        created_at = data.get("createdAt")
        updated_at = data.get("updatedAt")
        return cls(
            record_id=data.get("id"),
            patient_id=data["patientId"],
            document_ids=tuple(data.get("documentIds") or ()),
            task=ClinicalTask.from_value(data["task"]),
            input_context=data["inputContext"],
            output=data["output"],
            model=ModelInfo.from_dict(data.get("model") or {}),
            version=data.get("version"),
            hallucination_flags=tuple(
                HallucinationFlag(reason=f.get("reason", ""), span=f.get("span", ""))
                for f in data.get("hallucinationFlags") or ()
            ),
            created_by=data.get("createdBy"),
            created_at=datetime.fromisoformat(created_at) if created_at else _utcnow(),
            updated_at=datetime.fromisoformat(updated_at) if updated_at else None,
        )
