"""
Delivery Dispatcher — hands approved advice to the outbound channel.

Behavioral Contract:
- One attempt per message, no retries
- The rate limiter has already recorded the delivery; the channel's
  result never feeds back into decision state
- Channel faults and absent channels fall back to passive recording
- Inside a running event loop the send is a fire-and-forget task;
  outside one it runs to completion
"""

import asyncio
import logging
from collections import deque
from datetime import datetime, timezone
from typing import Deque, List, Optional, Protocol, Set

from advisory_kernel.models.advice import DeliverableAdvice

logger = logging.getLogger(__name__)


class DeliveryError(Exception):
    """Raised by channels that cannot reach the operator."""
    pass


class DeliveryChannel(Protocol):
    async def deliver(self, text: str) -> bool:
        ...


class LogOnlyChannel:
    """Default channel: writes advice to the log and reports success."""

    async def deliver(self, text: str) -> bool:
        logger.info("Advice: %s", text)
        return True


class DeliveryDispatcher:

    def __init__(
        self,
        channel: Optional[DeliveryChannel] = None,
        undelivered_capacity: int = 50,
    ):
        self.channel = channel
        self.undelivered: Deque[dict] = deque(maxlen=undelivered_capacity)
        self._tasks: Set[asyncio.Task] = set()

    def dispatch(self, advice: DeliverableAdvice) -> None:
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            loop = None

        if loop is None:
            asyncio.run(self.send(advice))
            return

        task = loop.create_task(self.send(advice))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def send(self, advice: DeliverableAdvice) -> bool:
        if self.channel is None:
            self._record_undelivered(advice, "no channel")
            return False

        try:
            delivered = await self.channel.deliver(advice.text)
        except Exception as e:
            logger.warning("Delivery of %s failed: %s", advice.id, e)
            self._record_undelivered(advice, str(e))
            return False

        if not delivered:
            logger.warning("Channel declined advice %s", advice.id)
            self._record_undelivered(advice, "declined")
        return delivered

    def _record_undelivered(self, advice: DeliverableAdvice, reason: str) -> None:
        self.undelivered.append({
            "advice_id": advice.id,
            "priority": advice.priority.value,
            "text": advice.text,
            "reason": reason,
            "recorded_at": datetime.now(timezone.utc).isoformat(),
        })

    @property
    def in_flight(self) -> int:
        return len(self._tasks)

    async def drain(self) -> List[bool]:
        """Wait for every in-flight send (used at shutdown)."""
        if not self._tasks:
            return []
        return await asyncio.gather(*list(self._tasks))
