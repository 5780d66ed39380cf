"""Tick Report — what one pass of the pipeline did with a snapshot."""

from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel

from advisory_kernel.models.advice import DeliverableAdvice
from advisory_kernel.models.arbitration import ArbitrationDecision
from advisory_kernel.models.trust import ComplianceRecord


class TickReport(BaseModel):
    session_time: float
    processed_at: datetime
    graded: List[ComplianceRecord] = []
    decisions: List[ArbitrationDecision] = []
    delivered: List[DeliverableAdvice] = []
    queued: List[str] = []                  # Advice ids parked in the pending buffer
    dropped: List[str] = []                 # Approved but outside their delivery window
    error: Optional[str] = None             # Set when the tick failed silently
