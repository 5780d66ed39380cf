"""
Delivery Rate Limiter — the operator's attention budget.

All priority classes share one last-delivered clock:

  GAME_ENDING  no spacing
  CRITICAL     fixed cooldown
  HIGH         30s, parked in the pending buffer when early
  MEDIUM       60s, dropped when early
  LOW          120s, dropped when early

The limiter holds no state of its own; every call receives the
session's DeliveryState.
"""

import logging
from datetime import datetime, timezone
from enum import Enum
from typing import Optional

from advisory_kernel.delivery.state import DeliveredEntry, DeliveryState
from advisory_kernel.models.advice import AdvicePriority, DeliverableAdvice
from advisory_kernel.models.config import PipelineConfig

logger = logging.getLogger(__name__)


class RateDecision(str, Enum):
    SEND = "send"
    QUEUED = "queued"
    DROPPED = "dropped"


class DeliveryRateLimiter:

    def __init__(self, config: Optional[PipelineConfig] = None):
        self.config = config or PipelineConfig()

    def new_state(self) -> DeliveryState:
        return DeliveryState(
            history_capacity=self.config.delivery_history_capacity,
            pending_capacity=self.config.pending_buffer_capacity,
        )

    def _elapsed(self, state: DeliveryState, current_time: datetime) -> Optional[float]:
        if state.last_delivered_at is None:
            return None
        return (current_time - state.last_delivered_at).total_seconds()

    def is_allowed(
        self,
        priority: AdvicePriority,
        state: DeliveryState,
        current_time: datetime,
    ) -> bool:
        if priority == AdvicePriority.GAME_ENDING:
            return True
        elapsed = self._elapsed(state, current_time)
        if elapsed is None:
            return True
        return elapsed >= self.config.spacing_for(priority)

    def should_send(
        self,
        advice: DeliverableAdvice,
        state: DeliveryState,
        current_time: Optional[datetime] = None,
    ) -> RateDecision:
        """
        Returns a RateDecision. HIGH advice that arrives too early comes
        back QUEUED for the caller to enqueue; MEDIUM and LOW are dropped.
        """
        if current_time is None:
            current_time = datetime.now(timezone.utc)

        if self.is_allowed(advice.priority, state, current_time):
            return RateDecision.SEND

        if advice.priority == AdvicePriority.HIGH:
            return RateDecision.QUEUED

        logger.debug(
            "Dropping %s advice %s: spacing not met", advice.priority.value, advice.id
        )
        return RateDecision.DROPPED

    def enqueue(
        self,
        advice: DeliverableAdvice,
        state: DeliveryState,
    ) -> Optional[DeliverableAdvice]:
        """
        Park advice. Returns whatever did not make it into the buffer: the
        incoming advice when identical text is already waiting, or the
        oldest entry when a full buffer evicts it. None otherwise.
        """
        if advice.text in state.pending_texts():
            logger.debug("Advice %s already pending under another id", advice.id)
            return advice
        evicted = None
        if len(state.pending) == state.pending_capacity:
            evicted = state.pending[0]
            logger.debug("Pending buffer full, evicting %s", evicted.id)
        state.pending.append(advice)
        return evicted

    def mark_sent(
        self,
        advice: DeliverableAdvice,
        state: DeliveryState,
        current_time: Optional[datetime] = None,
    ) -> None:
        """Record a delivery. Called before the channel is attempted."""
        if current_time is None:
            current_time = datetime.now(timezone.utc)
        state.last_delivered_at = current_time
        state.history.append(DeliveredEntry(advice, current_time))

    def next_pending(
        self,
        state: DeliveryState,
        current_time: Optional[datetime] = None,
    ) -> Optional[DeliverableAdvice]:
        """Pop the oldest pending advice once HIGH spacing allows it."""
        if current_time is None:
            current_time = datetime.now(timezone.utc)
        if not state.pending:
            return None
        if not self.is_allowed(state.pending[0].priority, state, current_time):
            return None
        return state.pending.popleft()

    def reset(self, state: DeliveryState) -> None:
        state.clear()
