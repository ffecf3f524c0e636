"""
Remote Reply Payloads
=====================

WHAT THIS MODULE DOES:
Validates the structured part of remote LLM replies for entity
extraction and risk analysis before it is turned into domain models.

HOW IT WORKS:
1. `extract_json` pulls a JSON value out of free text (best effort)
2. Pydantic models check the expected shape and normalize values
   (entity labels, clamped scores, evidence as a list)
3. Any ValidationError / ValueError / TypeError signals "unexpected shape" and the
   adapter falls back to the rule engine instead of failing
"""

import json
import re
from typing import Any, List, Optional, Union

from loguru import logger
from pydantic import BaseModel, Field, field_validator

from clinical_ai_orchestration.core.enums import EntityType
from clinical_ai_orchestration.core.models import clamp_risk


# ============================================================================
# JSON EXTRACTION
# ============================================================================

_FENCED_BLOCK = re.compile(r"```(?:json)?\s*(.*?)```", re.DOTALL | re.IGNORECASE)


def _span(text: str, opener: str, closer: str) -> Optional[str]:
    start = text.find(opener)
    end = text.rfind(closer)
    if start == -1 or end <= start:
        return None
    return text[start : end + 1]


def extract_json(text: str) -> Optional[Any]:
    """
    Best-effort extraction of a JSON value embedded in model output.

    Tries, in order: the whole reply, fenced ``` blocks, then the
    outermost object / array span (whichever bracket opens first).

    Returns:
        Parsed value, or None if nothing parses
    """
    if not text:
        return None

    candidates: List[str] = [text.strip()]
    candidates.extend(block.strip() for block in _FENCED_BLOCK.findall(text))

    spans = [("{", "}"), ("[", "]")]
    first_brace = text.find("{")
    first_bracket = text.find("[")
    if first_bracket != -1 and (first_brace == -1 or first_bracket < first_brace):
        spans.reverse()
    for opener, closer in spans:
        span = _span(text, opener, closer)
        if span:
            candidates.append(span)

    for candidate in candidates:
        if not candidate:
            continue
        try:
            return json.loads(candidate)
        except (json.JSONDecodeError, ValueError):
            continue
    return None


# ============================================================================
# ENTITY PAYLOAD
# ============================================================================


class RemoteEntity(BaseModel):
    """One entity as returned by a remote model."""

    text: str = Field(..., description="Entity surface text")
    type: EntityType = Field(..., description="Entity category")
    confidence: float = Field(default=0.5, description="Model confidence 0.0-1.0")
    start: Optional[int] = Field(default=None, description="Start offset in the source text")
    end: Optional[int] = Field(default=None, description="End offset in the source text")

    @field_validator("text")
    @classmethod
    def validate_text_not_empty(cls, v: str) -> str:
        if not v or not v.strip():
            raise ValueError("entity text cannot be empty")
        return v

    @field_validator("type", mode="before")
    @classmethod
    def normalize_type(cls, v: Any) -> EntityType:
        if isinstance(v, EntityType):
            return v
        return EntityType.normalize(str(v))

    @field_validator("confidence", mode="before")
    @classmethod
    def clamp_confidence(cls, v: Any) -> float:
        try:
            value = float(v)
        except (TypeError, ValueError):
            return 0.5
        return max(0.0, min(1.0, value))


class RemoteEntityPayload(BaseModel):
    """List of entities; accepts a bare array or {"entities": [...]}."""

    entities: List[RemoteEntity] = Field(default_factory=list)

    @classmethod
    def parse_reply(cls, value: Any) -> "RemoteEntityPayload":
        """
        Validate a parsed reply.

        Items labelled with an unknown entity type are dropped and logged;
        the rest of the reply is kept.

        Raises:
            ValueError / pydantic.ValidationError: If the shape is unexpected
                or every item carries an unknown label
        """
        if isinstance(value, dict) and isinstance(value.get("entities"), list):
            value = value["entities"]
        if not isinstance(value, list):
            raise ValueError("entity reply is not a JSON array")

        items = [item for item in value if _has_known_type(item)]
        if value and not items:
            raise ValueError("entity reply has no known entity types")
        return cls(entities=items)


def _has_known_type(item: Any) -> bool:
    if not isinstance(item, dict) or isinstance(item.get("type"), EntityType):
        return True
    try:
        EntityType.normalize(str(item.get("type")))
    except ValueError:
        logger.debug(f"Dropping entity with unknown type '{item.get('type')}'")
        return False
    return True


# ============================================================================
# RISK PAYLOAD
# ============================================================================


def _as_text_list(v: Any, field: str) -> List[str]:
    """Coerce a str / number / list reply value into a list of strings."""
    if v is None:
        return []
    if isinstance(v, (str, int, float)):
        return [str(v)]
    if isinstance(v, (list, tuple)):
        return [str(item) for item in v]
    raise ValueError(f"{field} must be a string or a list, got {type(v).__name__}")


class RemoteRiskFactor(BaseModel):
    factor: str
    score: float = 0.0
    confidence: float = 0.5
    evidence: List[str] = Field(default_factory=list)

    @field_validator("score", mode="before")
    @classmethod
    def clamp_score(cls, v: Any) -> float:
        return clamp_risk(v)

    @field_validator("confidence", mode="before")
    @classmethod
    def clamp_confidence(cls, v: Any) -> float:
        try:
            value = float(v)
        except (TypeError, ValueError):
            return 0.5
        return max(0.0, min(1.0, value))

    @field_validator("evidence", mode="before")
    @classmethod
    def evidence_as_list(cls, v: Union[str, List[Any], None]) -> List[str]:
        return _as_text_list(v, "evidence")


class RemoteRiskPayload(BaseModel):
    """Risk analysis reply: riskFactors, overallRisk, recommendations."""

    risk_factors: List[RemoteRiskFactor] = Field(default_factory=list, alias="riskFactors")
    overall_risk: float = Field(default=0.0, alias="overallRisk")
    recommendations: List[str] = Field(default_factory=list)

    model_config = {"populate_by_name": True}

    @field_validator("overall_risk", mode="before")
    @classmethod
    def clamp_overall(cls, v: Any) -> float:
        return clamp_risk(v)

    @field_validator("recommendations", mode="before")
    @classmethod
    def recommendations_as_list(cls, v: Any) -> List[str]:
        return _as_text_list(v, "recommendations")

    @classmethod
    def parse_reply(cls, value: Any) -> "RemoteRiskPayload":
        """
        Validate a parsed reply.

        Raises:
            ValueError / pydantic.ValidationError: If the shape is unexpected
        """
        if not isinstance(value, dict):
            raise ValueError("risk reply is not a JSON object")
        if "riskFactors" not in value and "risk_factors" not in value:
            raise ValueError("risk reply has no riskFactors")
        return cls.model_validate(value)
