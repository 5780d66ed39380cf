"""End-to-end tests for the Advisory Session tick pipeline."""

import asyncio
from datetime import datetime, timedelta, timezone

import pytest

from advisory_kernel.models.advice import AdviceCategory, AdvicePriority, CandidateAdvice
from advisory_kernel.models.arbitration import ArbitrationVerdict
from advisory_kernel.models.config import PipelineConfig
from advisory_kernel.models.ledger import LedgerOutcome
from advisory_kernel.models.snapshot import (
    AbilityState,
    OperatorState,
    OpponentState,
    SessionState,
    Snapshot,
    Structure,
    StructureSet,
    StructureTier,
    TeammateState,
)
from advisory_kernel.models.trust import ComplianceGrade
from advisory_kernel.rules.catalog import RuleCatalog, default_catalog
from advisory_kernel.session.pipeline import AdvisorySession

T0 = datetime(2026, 1, 1, 12, 0, tzinfo=timezone.utc)


def _at(seconds: float) -> datetime:
    return T0 + timedelta(seconds=seconds)


def _make_snapshot(
    elapsed: float,
    towers: int = 2,
    health: float = 80,
    state: SessionState = SessionState.IN_PROGRESS,
    team_resources: float = 40000,
) -> Snapshot:
    return Snapshot(
        elapsed_seconds=elapsed,
        session_state=state,
        operator=OperatorState(health_percent=health, harvest_count=100),
        roster=[TeammateState(name=f"ally_{i}") for i in range(5)],
        team_resource_total=team_resources,
        opponents=[
            OpponentState(name=f"opp_{i}", visible=True, position=(i, i), resource_value=8000)
            for i in range(5)
        ],
        structures=StructureSet(opposing=[
            Structure(name=f"t{i}", tier=StructureTier.T1) for i in range(towers)
        ]),
        inventory=["blade"],
        abilities={"ult": AbilityState(name="ult", is_ultimate=True)},
    )


def _make_advice(
    priority: AdvicePriority = AdvicePriority.HIGH,
    message: str = "PUSH NOW",
    category: AdviceCategory = AdviceCategory.PUSH_WINDOW,
    window: float = 20,
) -> CandidateAdvice:
    return CandidateAdvice(
        priority=priority,
        message=message,
        category=category,
        timing_window_seconds=window,
    )


def _make_holding_call() -> CandidateAdvice:
    """Urgent advice outside the ledger's opportunity categories."""
    return _make_advice(AdvicePriority.GAME_ENDING, "Defend NOW", AdviceCategory.COMBAT, 30)


class RecordingChannel:
    def __init__(self):
        self.received = []

    async def deliver(self, text: str) -> bool:
        self.received.append(text)
        return True


class TestLifecycle:
    def setup_method(self):
        self.channel = RecordingChannel()
        self.session = AdvisorySession(catalog=RuleCatalog([]), channel=self.channel)

    def test_in_progress_snapshot_starts_session(self):
        assert not self.session.active
        self.session.process_snapshot(_make_snapshot(300), current_time=_at(0))
        assert self.session.active
        assert self.session.status["session_time"] == 300

    def test_advice_ignored_outside_session(self):
        snapshot = _make_snapshot(300, state=SessionState.PRE_SESSION)
        report = self.session.process_snapshot(snapshot, [_make_advice()], _at(0))
        assert report.decisions == []
        assert self.channel.received == []

    def test_post_session_snapshot_ends_session(self):
        self.session.process_snapshot(_make_snapshot(300), [_make_advice()], _at(0))
        report = self.session.process_snapshot(
            _make_snapshot(1200, state=SessionState.POST_SESSION),
            [_make_advice()],
            _at(900),
        )

        assert report.decisions == []
        assert not self.session.active
        summary = self.session.last_summary
        assert summary.session_duration_seconds == 1200
        # Delivered advice that was never graded is closed out as unknown
        assert summary.total_events == 1
        assert self.session.ledger.count() == 0
        assert len(self.session.delivery_state.history) == 0
        assert self.session.calibrator.tracked_advice == []

    def test_start_session_clears_state(self):
        self.session.process_snapshot(_make_snapshot(300), [_make_advice()], _at(0))
        self.session.start_session(_at(10))
        assert self.session.delivery_state.last_delivered_at is None
        assert self.session.calibrator.tracked_advice == []
        assert self.session.ledger.awaiting_grade == []

    def test_end_session_defaults_to_last_elapsed(self):
        self.session.process_snapshot(_make_snapshot(450), current_time=_at(0))
        summary = self.session.end_session()
        assert summary.session_duration_seconds == 450


class TestTick:
    def setup_method(self):
        self.channel = RecordingChannel()
        self.session = AdvisorySession(catalog=RuleCatalog([]), channel=self.channel)

    def test_delivery_then_compliance(self):
        advice = _make_advice()
        report = self.session.process_snapshot(_make_snapshot(300), [advice], _at(0))

        [delivered] = report.delivered
        assert delivered.text == "Push now."
        assert delivered.confidence == pytest.approx(0.96)
        assert delivered.advice.session_time == 300
        assert self.channel.received == ["Push now."]

        # One opposing structure falls ten seconds later
        report = self.session.process_snapshot(_make_snapshot(310, towers=1), current_time=_at(10))
        [record] = report.graded
        assert record.advice_id == advice.id
        assert record.grade == ComplianceGrade.FULL
        assert record.response_latency_seconds == 10

        [event] = self.session.ledger.events()
        assert event.outcome == LedgerOutcome.ACTED_ON
        assert event.advice_text == "Push now."

    def test_advice_graded_only_once(self):
        self.session.process_snapshot(_make_snapshot(300), [_make_advice()], _at(0))
        self.session.process_snapshot(_make_snapshot(310), current_time=_at(10))
        report = self.session.process_snapshot(_make_snapshot(320), current_time=_at(20))
        assert report.graded == []
        assert len(self.session.calibrator.history) == 1

    def test_skipped_grade_closes_ledger_entry_as_unknown(self):
        self.session.process_snapshot(_make_snapshot(300), [_make_advice()], _at(0))
        bare = Snapshot(elapsed_seconds=310, session_state=SessionState.IN_PROGRESS)
        report = self.session.process_snapshot(bare, current_time=_at(10))
        assert report.graded == []
        [event] = self.session.ledger.events()
        assert event.outcome == LedgerOutcome.UNKNOWN

    def test_highest_priority_first(self):
        high = _make_advice(AdvicePriority.HIGH, "PUSH NOW")
        ending = _make_advice(
            AdvicePriority.GAME_ENDING, "END NOW", AdviceCategory.END_GAME, window=30
        )
        report = self.session.process_snapshot(_make_snapshot(300), [high, ending], _at(0))

        assert [d.priority for d in report.delivered] == [AdvicePriority.GAME_ENDING]
        assert report.queued == [high.id]
        assert [d.advice_id for d in report.decisions] == [ending.id, high.id]

    def test_queued_high_drains_after_spacing(self):
        self.session.process_snapshot(_make_snapshot(300), [_make_advice()], _at(0))
        report = self.session.process_snapshot(
            _make_snapshot(310), [_make_advice(message="Take the tower")], _at(10)
        )
        assert len(report.queued) == 1
        assert self.session.delivery_state.pending_texts() == ["Take the tower."]

        report = self.session.process_snapshot(_make_snapshot(320), current_time=_at(20))
        assert report.delivered == []

        report = self.session.process_snapshot(_make_snapshot(330), current_time=_at(30))
        assert [d.text for d in report.delivered] == ["Take the tower."]
        assert self.channel.received == ["Push now.", "Take the tower."]

    def test_evicted_queued_advice_recorded_as_missed(self):
        self.session.process_snapshot(_make_snapshot(300), [_make_holding_call()], _at(0))
        lanes = [_make_advice(message=f"Push lane {i}") for i in range(1, 7)]
        for i, advice in enumerate(lanes[:5], start=1):
            self.session.process_snapshot(_make_snapshot(300 + i), [advice], _at(i))

        report = self.session.process_snapshot(_make_snapshot(306), [lanes[5]], _at(6))

        assert report.queued == [lanes[5].id]
        assert report.dropped == [lanes[0].id]
        [event] = self.session.ledger.events(outcome=LedgerOutcome.MISSED)
        assert event.advice_id == lanes[0].id
        assert event.session_time == 301
        assert len(self.session.delivery_state.pending) == 5

    def test_duplicate_queued_text_reported_as_dropped(self):
        self.session.process_snapshot(_make_snapshot(300), [_make_holding_call()], _at(0))
        first = _make_advice(message="Take the tower")
        again = _make_advice(message="Take the tower")
        self.session.process_snapshot(_make_snapshot(301), [first], _at(1))
        report = self.session.process_snapshot(_make_snapshot(302), [again], _at(2))

        assert report.queued == []
        assert report.dropped == [again.id]
        assert self.session.delivery_state.pending_texts() == ["Take the tower."]

        # The waiting twin carries the opportunity into the ledger
        summary = self.session.end_session()
        [missed] = summary.missed_push_opportunities
        assert missed.advice_id == first.id

    def test_pending_advice_recorded_as_missed_at_session_end(self):
        self.session.process_snapshot(_make_snapshot(300), [_make_holding_call()], _at(0))
        pushes = [_make_advice(message=f"Push lane {i}") for i in range(1, 9)]
        for i, advice in enumerate(pushes, start=1):
            self.session.process_snapshot(_make_snapshot(300 + i), [advice], _at(i))

        summary = self.session.end_session()

        assert len(summary.missed_push_opportunities) == 8
        assert {e.advice_id for e in summary.missed_push_opportunities} == {a.id for a in pushes}
        assert self.session.delivery_state.pending_texts() == []

    def test_dropped_opportunity_recorded_as_missed(self):
        self.session.process_snapshot(_make_snapshot(300), [_make_advice()], _at(0))
        medium = _make_advice(AdvicePriority.MEDIUM, "Take an objective", AdviceCategory.PUSH, 90)
        report = self.session.process_snapshot(_make_snapshot(310), [medium], _at(10))

        assert report.dropped == [medium.id]
        missed = self.session.ledger.events(outcome=LedgerOutcome.MISSED)
        assert "Push window: Take an objective" in [e.description for e in missed]

    def test_low_confidence_suppressed_and_missed(self):
        snapshot = Snapshot(elapsed_seconds=300, session_state=SessionState.IN_PROGRESS)
        report = self.session.process_snapshot(snapshot, [_make_advice()], _at(0))

        [decision] = report.decisions
        assert decision.verdict == ArbitrationVerdict.SUPPRESS
        assert decision.reason == "low_confidence"
        # 0.2 * 0.15 + 0.3 * 0 + 0.4 * 0.9 + 0.1 * 0.3
        assert decision.confidence == pytest.approx(0.42)
        assert self.channel.received == []

        [event] = self.session.ledger.events()
        assert event.outcome == LedgerOutcome.MISSED
        assert event.confidence == pytest.approx(0.42)

    def test_rule_catalog_feeds_the_pipeline(self):
        session = AdvisorySession(catalog=default_catalog(), channel=self.channel)
        report = session.process_snapshot(_make_snapshot(300, health=10), current_time=_at(0))
        [delivered] = report.delivered
        assert delivered.priority == AdvicePriority.CRITICAL
        assert delivered.advice.source == "low_health"

    def test_templated_rule_does_not_flood_the_ledger(self):
        session = AdvisorySession(catalog=default_catalog(), channel=self.channel)
        for i in range(30):
            snapshot = _make_snapshot(300 + i * 0.3, team_resources=50000 + i * 7)
            session.process_snapshot(snapshot, current_time=_at(i * 0.3))

        events = session.ledger.events()
        assert 1 <= len(events) <= 2
        assert {e.opportunity_key for e in events} == {"push:resource_lead"}
        summary = session.end_session()
        assert len(summary.missed_push_opportunities) <= 2

    def test_tick_failure_is_reported_not_raised(self, monkeypatch):
        def broken(*args, **kwargs):
            raise RuntimeError("scorer exploded")

        monkeypatch.setattr(self.session.scorer, "score", broken)
        report = self.session.process_snapshot(_make_snapshot(300), [_make_advice()], _at(0))
        assert report.error == "scorer exploded"
        assert report.delivered == []

    def test_channel_failure_does_not_affect_decisions(self):
        class DownChannel:
            async def deliver(self, text):
                raise ConnectionError("offline")

        session = AdvisorySession(catalog=RuleCatalog([]), channel=DownChannel())
        report = session.process_snapshot(_make_snapshot(300), [_make_advice()], _at(0))
        assert len(report.delivered) == 1
        assert session.delivery_state.last_delivered_at == _at(0)
        assert session.dispatcher.undelivered[0]["reason"] == "offline"

    def test_config_update_applies_to_next_tick(self):
        self.session.update_config(PipelineConfig(
            suppress_below_confidence=0.99,
            value_override_confidence=1.0,
        ))
        report = self.session.process_snapshot(_make_snapshot(300), [_make_advice()], _at(0))
        assert report.decisions[0].reason == "low_confidence"


class TestAsyncConsumer:
    def test_run_async_processes_queue(self):
        channel = RecordingChannel()
        session = AdvisorySession(
            config=PipelineConfig(snapshot_poll_seconds=0.05),
            catalog=default_catalog(),
            channel=channel,
        )

        async def main():
            queue = asyncio.Queue()
            stop = asyncio.Event()
            task = asyncio.create_task(session.run_async(queue, stop))

            await queue.put(_make_snapshot(300, health=10))
            await queue.put(_make_snapshot(301, health=10))
            await queue.join()
            assert session.status["running"]

            stop.set()
            await task

        asyncio.run(main())

        assert not session.status["running"]
        # The second CRITICAL advice falls inside the cooldown
        assert len(channel.received) == 1
        assert session.status["session_time"] == 301
