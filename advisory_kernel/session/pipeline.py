"""
Advisory Session — the per-tick orchestrator.

One instance per active session. Each snapshot drives one tick:

  1. Lifecycle      in_progress starts a session, post_session ends it
  2. Grading        advice delivered last tick is graded against this snapshot
  3. Intake         rule catalog output plus explicit candidates
  4. Scoring        Confidence Scorer, one result per candidate
  5. Arbitration    Priority Arbitrator against the current Trust Profile
  6. Delivery       Rate Limiter, then Delivery Dispatcher, highest priority first
  7. Drain          at most one pending HIGH advice, once spacing allows

A tick never raises. Faults are logged and yield a report with `error` set.
"""

import asyncio
import logging
from datetime import datetime, timezone
from typing import List, Optional

from advisory_kernel.arbitration.arbitrator import PriorityArbitrator
from advisory_kernel.confidence.scorer import ConfidenceScorer
from advisory_kernel.delivery.dispatcher import (
    DeliveryChannel,
    DeliveryDispatcher,
    LogOnlyChannel,
)
from advisory_kernel.delivery.limiter import DeliveryRateLimiter, RateDecision
from advisory_kernel.ledger.store import OutcomeLedger
from advisory_kernel.models.advice import CandidateAdvice, DeliverableAdvice
from advisory_kernel.models.config import PipelineConfig
from advisory_kernel.models.ledger import SessionSummary
from advisory_kernel.models.session import TickReport
from advisory_kernel.models.snapshot import SessionState, Snapshot
from advisory_kernel.rules.catalog import RuleCatalog, default_catalog
from advisory_kernel.trust.calibrator import TrustCalibrator

logger = logging.getLogger(__name__)


class AdvisorySession:
    """
    Owns every piece of mutable per-session state: the delivery state,
    the trust calibrator, the outcome ledger and the previous snapshot.
    """

    def __init__(
        self,
        config: Optional[PipelineConfig] = None,
        catalog: Optional[RuleCatalog] = None,
        channel: Optional[DeliveryChannel] = None,
        ledger: Optional[OutcomeLedger] = None,
    ):
        self.config = config or PipelineConfig()
        self.catalog = catalog if catalog is not None else default_catalog()

        self.scorer = ConfidenceScorer(self.config.expected_roster_size)
        self.arbitrator = PriorityArbitrator(self.config)
        self.limiter = DeliveryRateLimiter(self.config)
        self.dispatcher = DeliveryDispatcher(channel or LogOnlyChannel())
        self.calibrator = TrustCalibrator(self.config)
        self.ledger = ledger or OutcomeLedger(self.config)

        self.delivery_state = self.limiter.new_state()
        self._previous: Optional[Snapshot] = None
        self._active = False
        self._started_at: Optional[datetime] = None
        self._running = False
        self.last_summary: Optional[SessionSummary] = None

    @property
    def active(self) -> bool:
        return self._active

    @property
    def status(self) -> dict:
        return {
            "active": self._active,
            "running": self._running,
            "started_at": self._started_at.isoformat() if self._started_at else None,
            "session_time": self._previous.elapsed_seconds if self._previous else None,
            "delivered": len(self.delivery_state.history),
            "pending": len(self.delivery_state.pending),
            "tracked_advice": len(self.calibrator.tracked_advice),
            "ledger_events": self.ledger.count(),
        }

    def update_config(self, config: PipelineConfig) -> None:
        """Swap tunables. Thresholds apply at once; buffer capacities from the next session."""
        self.config = config
        self.scorer = ConfidenceScorer(config.expected_roster_size)
        self.arbitrator = PriorityArbitrator(config)
        self.limiter = DeliveryRateLimiter(config)
        self.calibrator.config = config
        self.ledger.config = config

    # --- Lifecycle ---

    def _reset(self) -> None:
        self.delivery_state = self.limiter.new_state()
        self.calibrator.reset()
        self.ledger.reset()
        self._previous = None

    def start_session(self, current_time: Optional[datetime] = None) -> None:
        if current_time is None:
            current_time = datetime.now(timezone.utc)
        self._reset()
        self._active = True
        self._started_at = current_time
        logger.info("Advisory session started")

    def end_session(self, session_duration_seconds: Optional[float] = None) -> SessionSummary:
        """Ledger still-pending advice as missed, summarize, then clear per-session state."""
        if session_duration_seconds is None:
            session_duration_seconds = self._previous.elapsed_seconds if self._previous else 0.0

        for deliverable in self.delivery_state.pending:
            self._record_missed(deliverable)
        summary = self.ledger.summarize(session_duration_seconds, self.calibrator.profile)
        self.last_summary = summary
        self._reset()
        self._active = False
        self._started_at = None
        logger.info(
            "Advisory session ended after %.0fs with %d ledger events",
            session_duration_seconds, summary.total_events,
        )
        return summary

    # --- Per-tick pipeline ---

    def process_snapshot(
        self,
        snapshot: Snapshot,
        candidates: Optional[List[CandidateAdvice]] = None,
        current_time: Optional[datetime] = None,
    ) -> TickReport:
        if current_time is None:
            current_time = datetime.now(timezone.utc)

        try:
            return self._tick(snapshot, candidates or [], current_time)
        except Exception as e:
            logger.exception("Tick at %.0fs failed", snapshot.elapsed_seconds)
            return TickReport(
                session_time=snapshot.elapsed_seconds,
                processed_at=current_time,
                error=str(e),
            )

    def _tick(
        self,
        snapshot: Snapshot,
        explicit: List[CandidateAdvice],
        current_time: datetime,
    ) -> TickReport:
        report = TickReport(session_time=snapshot.elapsed_seconds, processed_at=current_time)

        if snapshot.session_state == SessionState.IN_PROGRESS and not self._active:
            self.start_session(current_time)
        elif snapshot.session_state == SessionState.POST_SESSION:
            if self._active:
                self.end_session(snapshot.elapsed_seconds)
            return report

        if not self._active:
            return report

        if self._previous is not None:
            report.graded = self._grade(self._previous, snapshot, current_time)

        for advice in self._intake(snapshot, explicit):
            self._decide(advice, snapshot, current_time, report)

        pending = self.limiter.next_pending(self.delivery_state, current_time)
        if pending is not None:
            self._deliver(pending, current_time, report)

        self._previous = snapshot
        return report

    def _grade(self, previous: Snapshot, current: Snapshot, current_time: datetime):
        tracked = [a.id for a in self.calibrator.tracked_advice]
        records = self.calibrator.grade_tracked(previous, current, current_time)

        graded = set()
        for record in records:
            graded.add(record.advice_id)
            self.ledger.resolve(record)
        for advice_id in tracked:
            if advice_id not in graded:
                self.ledger.resolve_unknown(advice_id)
        return records

    def _intake(
        self,
        snapshot: Snapshot,
        explicit: List[CandidateAdvice],
    ) -> List[CandidateAdvice]:
        """Catalog output plus explicit candidates, highest priority first."""
        context = snapshot.resource_context()
        intake = []
        for advice in self.catalog.evaluate(snapshot) + list(explicit):
            update = {}
            if advice.resource_context is None and context is not None:
                update["resource_context"] = context
            if advice.session_time is None:
                update["session_time"] = snapshot.elapsed_seconds
            intake.append(advice.model_copy(update=update) if update else advice)

        # Stable: equal priorities keep their declared order
        return sorted(intake, key=lambda a: a.priority.rank, reverse=True)

    def _decide(
        self,
        advice: CandidateAdvice,
        snapshot: Snapshot,
        current_time: datetime,
        report: TickReport,
    ) -> None:
        confidence = self.scorer.score(snapshot, advice.category, advice.timing_window_seconds)
        decision = self.arbitrator.arbitrate(
            advice, confidence, self.calibrator.profile, current_time
        )
        report.decisions.append(decision)

        if not decision.delivered:
            self.ledger.record_opportunity(advice, decision.confidence, delivered=False)
            return

        deliverable = decision.deliverable
        verdict = self.limiter.should_send(deliverable, self.delivery_state, current_time)
        if verdict == RateDecision.SEND:
            self._deliver(deliverable, current_time, report)
        elif verdict == RateDecision.QUEUED:
            displaced = self.limiter.enqueue(deliverable, self.delivery_state)
            if displaced is deliverable:
                # Identical text already waiting carries this opportunity
                report.dropped.append(advice.id)
                return
            report.queued.append(advice.id)
            if displaced is not None:
                report.dropped.append(displaced.id)
                self._record_missed(displaced)
        else:
            report.dropped.append(advice.id)
            self.ledger.record_opportunity(advice, decision.confidence, delivered=False)

    def _deliver(
        self,
        deliverable: DeliverableAdvice,
        current_time: datetime,
        report: TickReport,
    ) -> None:
        # Decision state is committed before the channel is attempted
        self.limiter.mark_sent(deliverable, self.delivery_state, current_time)
        self.calibrator.register_advice(deliverable.advice)
        self.ledger.note_delivered(deliverable)
        self.ledger.record_opportunity(
            deliverable.advice, deliverable.confidence, delivered=True, text=deliverable.text
        )
        report.delivered.append(deliverable)

        logger.info(
            "Delivering %s advice %s (confidence %.2f)",
            deliverable.priority.value, deliverable.id, deliverable.confidence,
        )
        self.dispatcher.dispatch(deliverable)

    def _record_missed(self, deliverable: DeliverableAdvice) -> None:
        """Queued advice that never reached the operator is a missed opportunity."""
        self.ledger.record_opportunity(deliverable.advice, deliverable.confidence, delivered=False)

    # --- Async consumer ---

    async def run_async(
        self,
        queue: "asyncio.Queue[Snapshot]",
        stop_event: Optional[asyncio.Event] = None,
    ) -> None:
        """Consume snapshots one at a time until stop_event is set."""
        self._running = True
        if stop_event is None:
            stop_event = asyncio.Event()

        try:
            while not stop_event.is_set():
                try:
                    snapshot = await asyncio.wait_for(
                        queue.get(), timeout=self.config.snapshot_poll_seconds
                    )
                except asyncio.TimeoutError:
                    continue
                self.process_snapshot(snapshot)
                queue.task_done()
        finally:
            await self.dispatcher.drain()
            self._running = False
