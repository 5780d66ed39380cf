"""Arbitration Decision — output of the Priority Arbitrator."""

from datetime import datetime
from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field

from advisory_kernel.models.advice import AdvicePriority, DeliverableAdvice


class ArbitrationVerdict(str, Enum):
    DELIVER = "deliver"
    SUPPRESS = "suppress"


class ArbitrationDecision(BaseModel):
    """The arbitrator's ruling on one candidate advice."""

    advice_id: str
    priority: AdvicePriority
    verdict: ArbitrationVerdict
    reason: str                             # Machine-readable rule name
    confidence: float = Field(ge=0.0, le=1.0)
    deliverable: Optional[DeliverableAdvice] = None
    evaluated_at: datetime

    @property
    def delivered(self) -> bool:
        return self.verdict == ArbitrationVerdict.DELIVER
