"""
Outcome Ledger — append-only record of opportunities and what became of them.

Every opportunity-type advice the pipeline sees produces at most one
LedgerEvent per dedupe window:
- Undelivered advice is recorded as missed immediately
- Delivered advice waits for its compliance grade, then is recorded as
  acted_on / missed / unknown
- Turning points are recorded explicitly by the caller

At session end the ledger produces a SessionSummary with a
confidence-weighted analysis and templated recommendations.
"""

import json
import logging
import sqlite3
from datetime import datetime, timezone
from typing import Dict, List, Optional, Tuple
from uuid import uuid4

from advisory_kernel.models.advice import (
    EXTERNAL_SOURCE,
    AdviceCategory,
    AdvicePriority,
    CandidateAdvice,
    DeliverableAdvice,
    ResourceContext,
)
from advisory_kernel.models.config import PipelineConfig
from advisory_kernel.models.ledger import (
    ConfidenceWeightedAnalysis,
    EventSeverity,
    LedgerEvent,
    LedgerEventType,
    LedgerOutcome,
    SessionSummary,
)
from advisory_kernel.models.trust import ComplianceGrade, ComplianceRecord, TrustProfile

logger = logging.getLogger(__name__)

CATEGORY_EVENT_TYPES: Dict[AdviceCategory, LedgerEventType] = {
    AdviceCategory.PUSH: LedgerEventType.PUSH_OPPORTUNITY,
    AdviceCategory.OBJECTIVE: LedgerEventType.PUSH_OPPORTUNITY,
    AdviceCategory.PUSH_WINDOW: LedgerEventType.PUSH_OPPORTUNITY,
    AdviceCategory.END_GAME: LedgerEventType.PUSH_OPPORTUNITY,
    AdviceCategory.RETREAT: LedgerEventType.DISENGAGE_OPPORTUNITY,
    AdviceCategory.DISENGAGE: LedgerEventType.DISENGAGE_OPPORTUNITY,
}

EVENT_LABELS = {
    LedgerEventType.PUSH_OPPORTUNITY: "Push window",
    LedgerEventType.DISENGAGE_OPPORTUNITY: "Disengage opportunity",
}

GRADE_OUTCOMES = {
    ComplianceGrade.FULL: LedgerOutcome.ACTED_ON,
    ComplianceGrade.PARTIAL: LedgerOutcome.ACTED_ON,
    ComplianceGrade.DELAYED: LedgerOutcome.ACTED_ON,
    ComplianceGrade.AMBIGUOUS: LedgerOutcome.UNKNOWN,
    ComplianceGrade.NONE: LedgerOutcome.MISSED,
}

HIGH_CONFIDENCE = 0.7
LOW_CONFIDENCE = 0.5
HIGH_WEIGHT = 0.7
CRITICAL_ADVICE_THRESHOLD = 5


def event_weight(confidence: float, context: Optional[ResourceContext]) -> float:
    """Confidence, boosted when the resource swing was large."""
    weight = confidence
    if context:
        swing = abs(context.delta_percent)
        if swing > 20:
            weight += 0.2
        elif swing > 10:
            weight += 0.1
    return max(0.0, min(1.0, weight))


def opportunity_key(advice: CandidateAdvice) -> str:
    """
    Identity of the opportunity behind an advice. Rule output is keyed by
    the rule, since its message embeds live numbers that change per tick;
    external advice has no rule and is keyed by its message.
    """
    if advice.source != EXTERNAL_SOURCE:
        return f"{advice.category.value}:{advice.source}"
    return f"{advice.category.value}:{advice.message}"


def _severity_for(priority: AdvicePriority) -> EventSeverity:
    if priority in (AdvicePriority.GAME_ENDING, AdvicePriority.CRITICAL):
        return EventSeverity.HIGH
    return EventSeverity.MEDIUM


class OutcomeLedger:
    """
    Append-only opportunity ledger.
    SQLite-backed; in-memory by default.
    """

    def __init__(
        self,
        config: Optional[PipelineConfig] = None,
        db_path: str = ":memory:",
    ):
        self.config = config or PipelineConfig()
        self.db_path = db_path
        self._conn = sqlite3.connect(db_path, check_same_thread=False)
        self._conn.row_factory = sqlite3.Row
        self._init_schema()

        # Delivered advice waiting for its compliance grade: id → (advice, confidence, text)
        self._awaiting: Dict[str, Tuple[CandidateAdvice, float, str]] = {}
        self._critical_delivered = 0

    def _init_schema(self) -> None:
        self._conn.execute("""
            CREATE TABLE IF NOT EXISTS ledger_events (
                id TEXT PRIMARY KEY,
                event_type TEXT NOT NULL,
                description TEXT NOT NULL,
                opportunity_key TEXT NOT NULL,
                session_time REAL NOT NULL,
                confidence REAL NOT NULL,
                weight REAL NOT NULL,
                outcome TEXT NOT NULL,
                severity TEXT NOT NULL,
                advice_id TEXT,
                record_json TEXT NOT NULL,
                created_at TEXT NOT NULL DEFAULT (datetime('now'))
            )
        """)
        self._conn.execute("""
            CREATE INDEX IF NOT EXISTS idx_ledger_key ON ledger_events(event_type, opportunity_key)
        """)
        self._conn.commit()

    # --- Recording ---

    def event_type_for(self, category: AdviceCategory) -> Optional[LedgerEventType]:
        return CATEGORY_EVENT_TYPES.get(category)

    def append(self, event: LedgerEvent) -> Optional[LedgerEvent]:
        """
        Append an event unless one for the same opportunity (type and
        opportunity key) was recorded within the dedupe window.
        Returns None when deduped.
        """
        row = self._conn.execute(
            "SELECT session_time FROM ledger_events "
            "WHERE event_type = ? AND opportunity_key = ? ORDER BY rowid DESC LIMIT 1",
            (event.event_type.value, event.opportunity_key),
        ).fetchone()
        if row and event.session_time - row["session_time"] < self.config.ledger_dedupe_seconds:
            return None

        self._conn.execute(
            """
            INSERT INTO ledger_events (
                id, event_type, description, opportunity_key, session_time,
                confidence, weight, outcome, severity, advice_id, record_json
            ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (
                event.id,
                event.event_type.value,
                event.description,
                event.opportunity_key,
                event.session_time,
                event.confidence,
                event.weight,
                event.outcome.value,
                event.severity.value,
                event.advice_id,
                json.dumps(event.model_dump(mode="json")),
            ),
        )
        self._conn.commit()
        logger.debug(
            "Ledger event recorded: %s at %.0fs (%s)",
            event.event_type.value, event.session_time, event.outcome.value,
        )
        return event

    def _build_event(
        self,
        advice: CandidateAdvice,
        confidence: float,
        outcome: LedgerOutcome,
        session_time: float,
        text: Optional[str] = None,
    ) -> LedgerEvent:
        event_type = CATEGORY_EVENT_TYPES[advice.category]
        return LedgerEvent(
            id=f"evt_{uuid4().hex[:12]}",
            event_type=event_type,
            description=f"{EVENT_LABELS[event_type]}: {advice.message}",
            opportunity_key=opportunity_key(advice),
            session_time=session_time,
            confidence=max(0.0, min(1.0, confidence)),
            weight=event_weight(confidence, advice.resource_context),
            outcome=outcome,
            severity=_severity_for(advice.priority),
            advice_id=advice.id,
            advice_text=text,
            resource_context=advice.resource_context,
            recorded_at=datetime.now(timezone.utc),
        )

    def record_opportunity(
        self,
        advice: CandidateAdvice,
        confidence: float,
        delivered: bool,
        text: Optional[str] = None,
    ) -> Optional[LedgerEvent]:
        """
        Note an opportunity-type advice. Undelivered advice is a missed
        opportunity now; delivered advice is held until it is graded.
        """
        if advice.category not in CATEGORY_EVENT_TYPES:
            return None

        if delivered:
            self._awaiting[advice.id] = (advice, confidence, text or advice.message)
            return None

        event = self._build_event(advice, confidence, LedgerOutcome.MISSED, advice.session_time or 0.0)
        return self.append(event)

    def note_delivered(self, advice: DeliverableAdvice) -> None:
        if advice.priority in (AdvicePriority.GAME_ENDING, AdvicePriority.CRITICAL):
            self._critical_delivered += 1

    def resolve(self, record: ComplianceRecord) -> Optional[LedgerEvent]:
        """Close out a delivered opportunity with its compliance grade."""
        return self._resolve(record.advice_id, GRADE_OUTCOMES[record.grade])

    def resolve_unknown(self, advice_id: str) -> Optional[LedgerEvent]:
        """Close out a delivered opportunity whose grade was skipped."""
        return self._resolve(advice_id, LedgerOutcome.UNKNOWN)

    def _resolve(self, advice_id: str, outcome: LedgerOutcome) -> Optional[LedgerEvent]:
        pending = self._awaiting.pop(advice_id, None)
        if pending is None:
            return None
        advice, confidence, text = pending
        event = self._build_event(advice, confidence, outcome, advice.session_time or 0.0, text)
        return self.append(event)

    @property
    def awaiting_grade(self) -> List[str]:
        return list(self._awaiting)

    def record_turning_point(
        self,
        description: str,
        session_time: float,
        severity: EventSeverity = EventSeverity.HIGH,
        confidence: float = 1.0,
    ) -> Optional[LedgerEvent]:
        event = LedgerEvent(
            id=f"evt_{uuid4().hex[:12]}",
            event_type=LedgerEventType.TURNING_POINT,
            description=description,
            opportunity_key=description,
            session_time=session_time,
            confidence=confidence,
            weight=confidence,
            outcome=LedgerOutcome.UNKNOWN,
            severity=severity,
            recorded_at=datetime.now(timezone.utc),
        )
        return self.append(event)

    # --- Queries ---

    def _deserialize(self, row: sqlite3.Row) -> LedgerEvent:
        return LedgerEvent.model_validate_json(row["record_json"])

    def events(
        self,
        event_type: Optional[LedgerEventType] = None,
        outcome: Optional[LedgerOutcome] = None,
    ) -> List[LedgerEvent]:
        query = "SELECT record_json FROM ledger_events"
        clauses, params = [], []
        if event_type:
            clauses.append("event_type = ?")
            params.append(event_type.value)
        if outcome:
            clauses.append("outcome = ?")
            params.append(outcome.value)
        if clauses:
            query += " WHERE " + " AND ".join(clauses)
        query += " ORDER BY rowid"
        rows = self._conn.execute(query, params).fetchall()
        return [self._deserialize(r) for r in rows]

    def count(self) -> int:
        row = self._conn.execute("SELECT COUNT(*) as cnt FROM ledger_events").fetchone()
        return row["cnt"]

    # --- Session end ---

    def summarize(
        self,
        session_duration_seconds: float,
        trust_profile: Optional[TrustProfile] = None,
    ) -> SessionSummary:
        # Anything still awaiting a grade will never get one
        for advice_id in list(self._awaiting):
            self.resolve_unknown(advice_id)

        events = self.events()
        missed_push = [
            e for e in events
            if e.event_type == LedgerEventType.PUSH_OPPORTUNITY
            and e.outcome == LedgerOutcome.MISSED
        ]
        missed_disengage = [
            e for e in events
            if e.event_type == LedgerEventType.DISENGAGE_OPPORTUNITY
            and e.outcome == LedgerOutcome.MISSED
        ]
        turning_points = [e for e in events if e.event_type == LedgerEventType.TURNING_POINT]

        all_missed = missed_push + missed_disengage
        confidences = [e.confidence for e in events if e.confidence > 0]
        analysis = ConfidenceWeightedAnalysis(
            high_confidence_missed=sum(1 for e in all_missed if e.confidence >= HIGH_CONFIDENCE),
            low_confidence_missed=sum(1 for e in all_missed if e.confidence < LOW_CONFIDENCE),
            high_confidence_acted_on=sum(
                1 for e in events
                if e.outcome == LedgerOutcome.ACTED_ON and e.confidence >= HIGH_CONFIDENCE
            ),
            average_confidence=sum(confidences) / len(confidences) if confidences else 0.0,
        )

        summary = SessionSummary(
            session_duration_seconds=session_duration_seconds,
            total_events=len(events),
            missed_push_opportunities=missed_push,
            missed_disengage_opportunities=missed_disengage,
            turning_points=turning_points,
            recommendations=self._recommendations(
                analysis, missed_push, missed_disengage, turning_points
            ),
            analysis=analysis,
            trust_profile=trust_profile,
            generated_at=datetime.now(timezone.utc),
        )

        logger.info(
            "Session summary generated: duration=%.0fs events=%d missed_push=%d "
            "high_confidence_missed=%d low_confidence_missed=%d",
            session_duration_seconds,
            len(events),
            len(missed_push),
            analysis.high_confidence_missed,
            analysis.low_confidence_missed,
        )
        return summary

    def _recommendations(
        self,
        analysis: ConfidenceWeightedAnalysis,
        missed_push: List[LedgerEvent],
        missed_disengage: List[LedgerEvent],
        turning_points: List[LedgerEvent],
    ) -> List[str]:
        recs = []

        if analysis.high_confidence_missed > 0:
            recs.append(
                f"You missed {analysis.high_confidence_missed} high-confidence "
                f"opportunity window(s) - These were critical opportunities"
            )
        if analysis.low_confidence_missed > 0 and analysis.high_confidence_missed == 0:
            recs.append(
                f"You missed {analysis.low_confidence_missed} low-certainty "
                f"suggestion(s) - These were less critical"
            )

        heavy = [e for e in missed_push if e.weight >= HIGH_WEIGHT]
        if heavy:
            recs.append(
                f"{len(heavy)} high-importance push window(s) missed - Review these carefully"
            )

        if missed_disengage:
            recs.append(
                f"Missed {len(missed_disengage)} disengage opportunity(ies) - "
                f"Improve risk assessment"
            )

        major = [e for e in turning_points if e.severity == EventSeverity.HIGH]
        if major:
            recs.append(
                f"{len(major)} turning point(s) identified - Review these key moments"
            )

        if self._critical_delivered > CRITICAL_ADVICE_THRESHOLD:
            recs.append(
                "Many critical situations occurred - Focus on preventing mistakes earlier"
            )

        if not recs:
            recs.append("Good decision making overall - Keep up the solid play")
        return recs

    def reset(self) -> None:
        """Session boundary: drop every event and pending grade."""
        self._conn.execute("DELETE FROM ledger_events")
        self._conn.commit()
        self._awaiting.clear()
        self._critical_delivered = 0

    def close(self) -> None:
        self._conn.close()


def _clock(seconds: float) -> str:
    seconds = max(0, int(seconds))
    return f"{seconds // 60}:{seconds % 60:02d}"


def format_summary(summary: SessionSummary) -> str:
    """Plain-text rendering of a session summary."""
    lines = [
        "=== SESSION ANALYSIS ===",
        f"Session Duration: {_clock(summary.session_duration_seconds)}",
        "",
    ]

    if summary.missed_push_opportunities:
        lines.append("MISSED PUSH WINDOWS:")
        ordered = sorted(summary.missed_push_opportunities, key=lambda e: e.weight, reverse=True)
        for event in ordered:
            lines.append(
                f"  - {_clock(event.session_time)} - {event.description}"
                f" [Confidence: {event.confidence * 100:.0f}%]"
                f" [Weight: {event.weight * 100:.0f}%]"
            )
            if event.advice_text:
                lines.append(f"    Advice: {event.advice_text}")
        lines.append("")

    if summary.missed_disengage_opportunities:
        lines.append("MISSED DISENGAGE OPPORTUNITIES:")
        for event in summary.missed_disengage_opportunities:
            lines.append(f"  - {_clock(event.session_time)} - {event.description}")
        lines.append("")

    if summary.turning_points:
        lines.append("TURNING POINTS:")
        for event in summary.turning_points:
            lines.append(
                f"  - {_clock(event.session_time)} - {event.description}"
                f" ({event.severity.value} impact)"
            )
        lines.append("")

    lines.append("RECOMMENDATIONS:")
    lines.extend(f"  - {rec}" for rec in summary.recommendations)
    lines.append("")

    analysis = summary.analysis
    lines.append("CONFIDENCE-WEIGHTED ANALYSIS:")
    lines.append(f"  High-confidence missed: {analysis.high_confidence_missed}")
    lines.append(f"  Low-confidence missed: {analysis.low_confidence_missed}")
    lines.append(f"  High-confidence acted on: {analysis.high_confidence_acted_on}")
    lines.append(f"  Average confidence: {analysis.average_confidence * 100:.1f}%")

    return "\n".join(lines)
