"""Candidate Advice and the annotations the pipeline derives from it."""

from datetime import datetime, timezone
from enum import Enum
from typing import List, Optional
from uuid import uuid4

from pydantic import BaseModel, ConfigDict, Field


class AdvicePriority(str, Enum):
    """Total order: GAME_ENDING > CRITICAL > HIGH > MEDIUM > LOW."""

    GAME_ENDING = "GAME_ENDING"
    CRITICAL = "CRITICAL"
    HIGH = "HIGH"
    MEDIUM = "MEDIUM"
    LOW = "LOW"

    @property
    def rank(self) -> int:
        return _PRIORITY_RANK[self]


_PRIORITY_RANK = {
    AdvicePriority.GAME_ENDING: 5,
    AdvicePriority.CRITICAL: 4,
    AdvicePriority.HIGH: 3,
    AdvicePriority.MEDIUM: 2,
    AdvicePriority.LOW: 1,
}


class AdviceCategory(str, Enum):
    PUSH = "push"
    OBJECTIVE = "objective"
    PUSH_WINDOW = "push_window"
    END_GAME = "end_game"
    RETREAT = "retreat"
    DISENGAGE = "disengage"
    FARM = "farm"
    GROUP = "group"
    COMBAT = "combat"
    ITEM_BUILD = "item_build"
    STRATEGIC = "strategic"
    MAINTAIN = "maintain"                   # Intentional silence


# Source of candidates handed to the pipeline directly rather than by a rule.
EXTERNAL_SOURCE = "external"

# Categories whose confidence leans on visibility and timing.
OPPORTUNITY_CATEGORIES = frozenset({
    AdviceCategory.PUSH,
    AdviceCategory.OBJECTIVE,
    AdviceCategory.PUSH_WINDOW,
    AdviceCategory.END_GAME,
})


class ResourceContext(BaseModel):
    """Resource swing between the two sides at the time of advice."""

    model_config = ConfigDict(frozen=True)

    delta: float
    delta_percent: float


class CandidateAdvice(BaseModel):
    """A not-yet-arbitrated recommendation produced by a rule collaborator."""

    model_config = ConfigDict(frozen=True)

    id: str = Field(default_factory=lambda: f"adv_{uuid4().hex[:12]}")
    priority: AdvicePriority
    message: str
    category: AdviceCategory = AdviceCategory.STRATEGIC
    resource_context: Optional[ResourceContext] = None
    timing_window_seconds: Optional[float] = None
    is_intentional_silence: bool = False
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    session_time: Optional[float] = None    # Elapsed session seconds; stamped on intake
    source: str = EXTERNAL_SOURCE           # Rule or module that produced it


class ConfidenceFactors(BaseModel):
    data_completeness: float = Field(ge=0.0, le=1.0)
    visibility_certainty: float = Field(ge=0.0, le=1.0)
    timing_precision: float = Field(ge=0.0, le=1.0)
    resource_reliability: float = Field(ge=0.0, le=1.0)


class ConfidenceResult(BaseModel):
    """Derived per tick, never persisted."""

    score: float = Field(ge=0.0, le=1.0)
    factors: ConfidenceFactors
    caveats: List[str] = []


class DeliverableAdvice(BaseModel):
    """Advice that passed arbitration, with its final wording."""

    advice: CandidateAdvice
    text: str
    confidence: float = Field(ge=0.0, le=1.0)
    caveats: List[str] = []

    @property
    def priority(self) -> AdvicePriority:
        return self.advice.priority

    @property
    def id(self) -> str:
        return self.advice.id
