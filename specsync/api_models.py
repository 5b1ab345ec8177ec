"""
Data models for specification records, backend payloads and drift results
"""
import math
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Union

from pydantic import (
    AliasChoices,
    BaseModel,
    ConfigDict,
    Field,
    StrictFloat,
    StrictInt,
    field_validator,
    model_validator
)


def clamp_confidence(value: float) -> float:
    """Clamp a confidence score into [0, 100]"""
    if isinstance(value, float) and math.isnan(value):
        raise ValueError("confidence must be a number")
    return max(0.0, min(100.0, float(value)))


class Provenance(str, Enum):
    """Where a specification record came from"""
    SYNTHESIZED = "synthesized"
    BACKEND = "backend"


class ComplexityEstimate(BaseModel):
    """Asymptotic time/space estimate"""
    time: str
    space: str


class SecurityAnalysis(BaseModel):
    """Potential vulnerabilities and their mitigations"""
    vulnerabilities: List[str]
    mitigations: List[str]


class StructuralFingerprint(BaseModel):
    """Coarse structural summary used as a drift baseline"""
    complexity: int = Field(ge=1)
    has_validation: bool
    has_return: bool
    line_count: int = Field(ge=0)


class BackendResponse(BaseModel):
    """
    Strict schema for generative backend output.

    Every field is required; a payload missing any of them, or carrying a
    non-numeric confidence, is rejected as a backend failure.
    """
    model_config = ConfigDict(extra="ignore")

    preconditions: List[str]
    postconditions: List[str]
    invariants: List[str]
    edge_cases: List[str] = Field(validation_alias=AliasChoices("edgeCases", "edge_cases"))
    complexity: ComplexityEstimate
    security: SecurityAnalysis
    confidence: Union[StrictInt, StrictFloat]
    rationale: str = Field(min_length=1, validation_alias=AliasChoices("rationale", "reasoning"))

    @field_validator("confidence")
    @classmethod
    def _finite_confidence(cls, value: float) -> float:
        if isinstance(value, float) and not math.isfinite(value):
            raise ValueError("confidence must be finite")
        return value


def _default_complexity() -> ComplexityEstimate:
    return ComplexityEstimate(time="O(1)", space="O(1)")


def _default_security() -> SecurityAnalysis:
    return SecurityAnalysis(vulnerabilities=[], mitigations=[])


class SpecificationRecord(BaseModel):
    """
    Synthesized formal-specification candidate for one function.

    ``confidence`` and ``rationale`` have no defaults: a record built without
    them fails validation instead of carrying a silent placeholder.
    """
    function_key: str
    preconditions: List[str] = Field(default_factory=list)
    postconditions: List[str] = Field(default_factory=list)
    invariants: List[str] = Field(default_factory=list)
    edge_cases: List[str] = Field(default_factory=list)
    complexity_estimate: ComplexityEstimate = Field(default_factory=_default_complexity)
    security: SecurityAnalysis = Field(default_factory=_default_security)
    confidence: float
    rationale: str = Field(min_length=1)
    provenance: Provenance
    backend: Optional[str] = None
    baseline: Optional[StructuralFingerprint] = None
    body_hash: Optional[str] = None
    degraded: bool = False

    @field_validator("confidence")
    @classmethod
    def _clamp(cls, value: float) -> float:
        return clamp_confidence(value)

    def to_dict(self) -> Dict[str, Any]:
        return self.model_dump(mode="json")


class DriftResult(BaseModel):
    """Heuristic signal that an implementation diverged from its recorded spec"""
    function_key: str
    has_drift: bool
    reasons: List[str] = Field(default_factory=list)
    confidence: float = 0.0

    @field_validator("confidence")
    @classmethod
    def _clamp(cls, value: float) -> float:
        return clamp_confidence(value)

    @model_validator(mode="after")
    def _drift_needs_reasons(self) -> "DriftResult":
        if self.has_drift and not self.reasons:
            raise ValueError("a drift result with has_drift=True needs at least one reason")
        return self

    def to_dict(self) -> Dict[str, Any]:
        return self.model_dump(mode="json")


@dataclass
class SpecificationRequest:
    """Structured request handed to every generative backend"""
    function_key: str
    function_name: str
    language: str
    function_body: str
    facts: Dict[str, Any]
    comments: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "function_key": self.function_key,
            "function_name": self.function_name,
            "language": self.language,
            "function_body": self.function_body,
            "facts": self.facts,
            "comments": self.comments
        }
