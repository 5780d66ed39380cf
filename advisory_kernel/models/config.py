"""Pipeline configuration."""

from pydantic import BaseModel, Field

from advisory_kernel.models.advice import AdvicePriority


class PipelineConfig(BaseModel):
    """Tunable constants for the arbitration pipeline."""

    # Delivery spacing (seconds since the last delivered message)
    critical_cooldown_seconds: float = 10.0
    high_spacing_seconds: float = 30.0
    medium_spacing_seconds: float = 60.0
    low_spacing_seconds: float = 120.0
    pending_buffer_capacity: int = Field(ge=1, default=5)
    delivery_history_capacity: int = Field(ge=1, default=50)

    # Arbitration thresholds
    suppress_below_confidence: float = Field(ge=0.0, le=1.0, default=0.5)
    low_priority_min_confidence: float = Field(ge=0.0, le=1.0, default=0.7)
    value_override_confidence: float = Field(ge=0.0, le=1.0, default=0.85)
    value_override_resource_delta: float = 10000.0
    value_override_precedes_confidence: bool = True

    # Trust calibration
    compliance_history_capacity: int = Field(ge=1, default=100)
    trust_min_history: int = Field(ge=1, default=10)
    trust_variance_ceiling: float = 0.3
    trust_certainty_floor: float = 0.7
    delayed_compliance_seconds: float = 20.0

    # Scoring and ledger
    expected_roster_size: int = Field(ge=1, default=5)
    snapshot_poll_seconds: float = Field(gt=0, default=1.0)
    ledger_dedupe_seconds: float = 30.0

    def spacing_for(self, priority: AdvicePriority) -> float:
        """Minimum seconds since the last delivery for a priority class."""
        return {
            AdvicePriority.GAME_ENDING: 0.0,
            AdvicePriority.CRITICAL: self.critical_cooldown_seconds,
            AdvicePriority.HIGH: self.high_spacing_seconds,
            AdvicePriority.MEDIUM: self.medium_spacing_seconds,
            AdvicePriority.LOW: self.low_spacing_seconds,
        }[priority]
