"""
Advisory Kernel API — FastAPI endpoints.

Exposes one advisory session over REST for:
- Session lifecycle
- Snapshot ingestion (one tick per request)
- Manual confidence scoring
- Trust profile and compliance history
- Delivery history and the pending buffer
- Outcome ledger queries and the session summary
- Configuration
"""

from typing import List, Optional

from fastapi import FastAPI, HTTPException
from pydantic import BaseModel

from advisory_kernel.delivery.dispatcher import DeliveryChannel
from advisory_kernel.ledger.store import format_summary
from advisory_kernel.models.advice import AdviceCategory, CandidateAdvice
from advisory_kernel.models.config import PipelineConfig
from advisory_kernel.models.ledger import EventSeverity, LedgerEventType, LedgerOutcome
from advisory_kernel.models.snapshot import Snapshot
from advisory_kernel.session.pipeline import AdvisorySession
from advisory_kernel.settings.loader import load_config


# --- Request/Response Models ---

class SnapshotRequest(BaseModel):
    snapshot: Snapshot
    candidates: List[CandidateAdvice] = []


class ScoreRequest(BaseModel):
    snapshot: Snapshot
    category: AdviceCategory = AdviceCategory.STRATEGIC
    timing_window_seconds: Optional[float] = None


class TurningPointRequest(BaseModel):
    description: str
    session_time: float
    severity: EventSeverity = EventSeverity.HIGH


# --- Application Factory ---

def create_app(
    session: Optional[AdvisorySession] = None,
    config: Optional[PipelineConfig] = None,
    channel: Optional[DeliveryChannel] = None,
) -> FastAPI:
    """Create and configure the FastAPI application."""

    app = FastAPI(
        title="Advisory Kernel API",
        description="Advice arbitration pipeline",
        version="0.1.0",
    )

    advisory = session or AdvisorySession(config=config, channel=channel)
    app.state.session = advisory

    # === SESSION ===

    @app.post("/session/start")
    def start_session():
        """Begin a session, clearing all per-session state."""
        advisory.start_session()
        return advisory.status

    @app.post("/session/end")
    def end_session():
        """End the active session and return its summary."""
        if not advisory.active:
            raise HTTPException(404, "No active session")
        summary = advisory.end_session()
        return summary.model_dump(mode="json")

    @app.get("/session/status")
    def session_status():
        return advisory.status

    # === SNAPSHOTS ===

    @app.post("/snapshots")
    def ingest_snapshot(req: SnapshotRequest):
        """Run one pipeline tick."""
        report = advisory.process_snapshot(req.snapshot, req.candidates)
        return report.model_dump(mode="json")

    @app.post("/confidence/score")
    def score_confidence(req: ScoreRequest):
        """Manual confidence scoring (for testing)."""
        result = advisory.scorer.score(
            req.snapshot, req.category, req.timing_window_seconds
        )
        return result.model_dump(mode="json")

    # === TRUST ===

    @app.get("/trust/profile")
    def trust_profile():
        return advisory.calibrator.profile.model_dump(mode="json")

    @app.get("/trust/history")
    def trust_history(limit: int = 50):
        """Most recent compliance records, oldest first."""
        records = advisory.calibrator.history[-limit:] if limit > 0 else []
        return [r.model_dump(mode="json") for r in records]

    # === DELIVERY ===

    @app.get("/delivery/history")
    def delivery_history():
        return [entry.to_dict() for entry in advisory.delivery_state.history]

    @app.get("/delivery/pending")
    def delivery_pending():
        return [a.model_dump(mode="json") for a in advisory.delivery_state.pending]

    @app.get("/delivery/undelivered")
    def delivery_undelivered():
        """Messages the channel failed to deliver."""
        return list(advisory.dispatcher.undelivered)

    # === LEDGER ===

    @app.get("/ledger/events")
    def ledger_events(
        event_type: Optional[LedgerEventType] = None,
        outcome: Optional[LedgerOutcome] = None,
    ):
        events = advisory.ledger.events(event_type=event_type, outcome=outcome)
        return [e.model_dump(mode="json") for e in events]

    @app.post("/ledger/turning-points")
    def record_turning_point(req: TurningPointRequest):
        if not advisory.active:
            raise HTTPException(404, "No active session")
        event = advisory.ledger.record_turning_point(
            req.description, req.session_time, req.severity
        )
        if event is None:
            return {"status": "deduplicated"}
        return event.model_dump(mode="json")

    @app.get("/ledger/summary")
    def ledger_summary(text: bool = False):
        """Summary of the most recently ended session."""
        summary = advisory.last_summary
        if summary is None:
            raise HTTPException(404, "No session summary available")
        if text:
            return {"text": format_summary(summary)}
        return summary.model_dump(mode="json")

    # === CONFIG ===

    @app.get("/config")
    def get_config():
        return advisory.config.model_dump()

    @app.put("/config")
    def update_config(new_config: PipelineConfig):
        advisory.update_config(new_config)
        return new_config.model_dump()

    return app


# Default application instance
app = create_app(config=load_config())
