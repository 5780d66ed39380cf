"""Outcome Ledger Model — opportunity events and the closing report."""

from datetime import datetime
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, Field

from advisory_kernel.models.advice import ResourceContext
from advisory_kernel.models.trust import TrustProfile


class LedgerEventType(str, Enum):
    PUSH_OPPORTUNITY = "push_opportunity"
    DISENGAGE_OPPORTUNITY = "disengage_opportunity"
    TURNING_POINT = "turning_point"


class LedgerOutcome(str, Enum):
    ACTED_ON = "acted_on"
    MISSED = "missed"
    UNKNOWN = "unknown"


class EventSeverity(str, Enum):
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


class LedgerEvent(BaseModel):
    """One observed opportunity, whether or not advice was issued for it."""

    id: str
    event_type: LedgerEventType
    description: str
    opportunity_key: str                    # Stable identity used for deduplication
    session_time: float
    confidence: float = Field(ge=0.0, le=1.0)
    weight: float = Field(ge=0.0, le=1.0)   # Confidence-weighted importance
    outcome: LedgerOutcome = LedgerOutcome.UNKNOWN
    severity: EventSeverity = EventSeverity.MEDIUM
    advice_id: Optional[str] = None
    advice_text: Optional[str] = None
    resource_context: Optional[ResourceContext] = None
    recorded_at: datetime


class ConfidenceWeightedAnalysis(BaseModel):
    high_confidence_missed: int = 0
    low_confidence_missed: int = 0
    high_confidence_acted_on: int = 0
    average_confidence: float = 0.0


class SessionSummary(BaseModel):
    """Closing report produced when a session ends."""

    session_duration_seconds: float
    total_events: int
    missed_push_opportunities: List[LedgerEvent] = []
    missed_disengage_opportunities: List[LedgerEvent] = []
    turning_points: List[LedgerEvent] = []
    recommendations: List[str] = []
    analysis: ConfidenceWeightedAnalysis = ConfidenceWeightedAnalysis()
    trust_profile: Optional[TrustProfile] = None
    generated_at: datetime
