"""Delivery State — per-session rate limiting state."""

from collections import deque
from datetime import datetime
from typing import Deque, List, Optional

from advisory_kernel.models.advice import DeliverableAdvice


class DeliveredEntry:
    """One message that left the pipeline."""

    def __init__(self, advice: DeliverableAdvice, delivered_at: datetime):
        self.advice = advice
        self.delivered_at = delivered_at

    def to_dict(self) -> dict:
        return {
            "advice_id": self.advice.id,
            "priority": self.advice.priority.value,
            "text": self.advice.text,
            "confidence": self.advice.confidence,
            "delivered_at": self.delivered_at.isoformat(),
        }


class DeliveryState:
    """
    Mutable state owned by exactly one session.

    last_delivered_at is shared by every priority class; None means
    nothing has been delivered yet and any advice may go out.
    """

    def __init__(self, history_capacity: int = 50, pending_capacity: int = 5):
        self.last_delivered_at: Optional[datetime] = None
        self.history: Deque[DeliveredEntry] = deque(maxlen=history_capacity)
        self.pending: Deque[DeliverableAdvice] = deque(maxlen=pending_capacity)

    @property
    def pending_capacity(self) -> int:
        return self.pending.maxlen

    def pending_texts(self) -> List[str]:
        return [a.text for a in self.pending]

    def clear(self) -> None:
        self.last_delivered_at = None
        self.history.clear()
        self.pending.clear()
