"""Trust Model — compliance records and the operator's trust profile."""

from datetime import datetime
from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field

from advisory_kernel.models.advice import CandidateAdvice


class ComplianceGrade(str, Enum):
    FULL = "full"
    PARTIAL = "partial"
    AMBIGUOUS = "ambiguous"
    NONE = "none"
    DELAYED = "delayed"


FOLLOWED_GRADES = frozenset({
    ComplianceGrade.FULL,
    ComplianceGrade.PARTIAL,
    ComplianceGrade.AMBIGUOUS,
    ComplianceGrade.DELAYED,
})


class ComplianceOutcome(str, Enum):
    POSITIVE = "positive"
    NEGATIVE = "negative"
    NEUTRAL = "neutral"
    UNKNOWN = "unknown"


class VerbosityLevel(str, Enum):
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


class ExplanationLevel(str, Enum):
    DETAILED = "detailed"
    STANDARD = "standard"
    MINIMAL = "minimal"


class ComplianceRecord(BaseModel):
    """One retrospective judgement of whether issued advice was acted on."""

    advice_id: str
    advice: CandidateAdvice
    grade: ComplianceGrade
    certainty: float = Field(ge=0.0, le=1.0)
    outcome: ComplianceOutcome = ComplianceOutcome.UNKNOWN
    response_latency_seconds: Optional[float] = None   # Only when followed
    session_time: float
    graded_at: datetime

    @property
    def followed(self) -> bool:
        return self.grade in FOLLOWED_GRADES


class TrustProfile(BaseModel):
    """Slowly-adapting estimate of how the operator responds to advice."""

    compliance_rate: float = Field(ge=0.0, le=1.0, default=0.5)
    positive_outcome_rate: float = Field(ge=0.0, le=1.0, default=0.5)
    mean_response_latency_seconds: float = 0.0
    verbosity: VerbosityLevel = VerbosityLevel.MEDIUM
    explanation: ExplanationLevel = ExplanationLevel.STANDARD
    updates_applied: int = 0
