"""Tests for the pydantic data models."""

from datetime import datetime, timezone

import pytest
from pydantic import ValidationError

from advisory_kernel.models import (
    AdvicePriority,
    CandidateAdvice,
    ComplianceGrade,
    ComplianceRecord,
    ConfidenceFactors,
    OperatorState,
    OpponentState,
    PipelineConfig,
    Snapshot,
    Structure,
    StructureSet,
    StructureTier,
    TrustProfile,
    VerbosityLevel,
    ExplanationLevel,
)


def _make_structures(alive: int = 3, destroyed: int = 1) -> StructureSet:
    opposing = [
        Structure(name=f"t{i}", tier=StructureTier.T1) for i in range(alive)
    ] + [
        Structure(name=f"d{i}", tier=StructureTier.T2, health_percent=0, destroyed=True)
        for i in range(destroyed)
    ]
    return StructureSet(opposing=opposing)


class TestAdvicePriority:
    def test_total_order(self):
        ordered = sorted(AdvicePriority, key=lambda p: p.rank, reverse=True)
        assert ordered == [
            AdvicePriority.GAME_ENDING,
            AdvicePriority.CRITICAL,
            AdvicePriority.HIGH,
            AdvicePriority.MEDIUM,
            AdvicePriority.LOW,
        ]

    def test_string_values(self):
        assert AdvicePriority("CRITICAL") == AdvicePriority.CRITICAL


class TestCandidateAdvice:
    def test_generated_id(self):
        advice = CandidateAdvice(priority=AdvicePriority.HIGH, message="PUSH NOW")
        assert advice.id.startswith("adv_")
        assert len(advice.id) == len("adv_") + 12

    def test_ids_are_unique(self):
        a = CandidateAdvice(priority=AdvicePriority.LOW, message="x")
        b = CandidateAdvice(priority=AdvicePriority.LOW, message="x")
        assert a.id != b.id

    def test_frozen(self):
        advice = CandidateAdvice(priority=AdvicePriority.HIGH, message="PUSH NOW")
        with pytest.raises(ValidationError):
            advice.message = "changed"

    def test_annotation_by_copy(self):
        advice = CandidateAdvice(priority=AdvicePriority.HIGH, message="PUSH NOW")
        stamped = advice.model_copy(update={"session_time": 120.0})
        assert stamped.session_time == 120.0
        assert advice.session_time is None
        assert stamped.id == advice.id

    def test_created_at_is_timezone_aware(self):
        advice = CandidateAdvice(priority=AdvicePriority.LOW, message="x")
        assert advice.created_at.tzinfo is not None


class TestSnapshot:
    def test_minimal_snapshot_is_valid(self):
        snapshot = Snapshot(elapsed_seconds=0)
        assert snapshot.operator is None
        assert snapshot.opponents == []

    def test_negative_elapsed_rejected(self):
        with pytest.raises(ValidationError):
            Snapshot(elapsed_seconds=-1)

    def test_health_bounds(self):
        with pytest.raises(ValidationError):
            OperatorState(health_percent=120)

    def test_opposing_resource_total_unknown(self):
        snapshot = Snapshot(
            elapsed_seconds=10,
            opponents=[OpponentState(name="a"), OpponentState(name="b")],
        )
        assert snapshot.opposing_resource_total() is None

    def test_opposing_resource_total_partial(self):
        snapshot = Snapshot(
            elapsed_seconds=10,
            opponents=[
                OpponentState(name="a", resource_value=1000),
                OpponentState(name="b"),
            ],
        )
        assert snapshot.opposing_resource_total() == 1000.0

    def test_resource_context(self):
        snapshot = Snapshot(
            elapsed_seconds=10,
            team_resource_total=12000,
            opponents=[
                OpponentState(name="a", resource_value=5000),
                OpponentState(name="b", resource_value=5000),
            ],
        )
        context = snapshot.resource_context()
        assert context.delta == 2000
        assert context.delta_percent == pytest.approx(20.0)

    def test_resource_context_missing_side(self):
        snapshot = Snapshot(elapsed_seconds=10, team_resource_total=12000)
        assert snapshot.resource_context() is None

    def test_live_opposing_structures(self):
        snapshot = Snapshot(elapsed_seconds=10, structures=_make_structures(3, 2))
        assert snapshot.live_opposing_structures() == 3

    def test_live_opposing_structures_missing(self):
        assert Snapshot(elapsed_seconds=10).live_opposing_structures() is None

    def test_opposing_core(self):
        structures = StructureSet(opposing=[
            Structure(name="tower", tier=StructureTier.T4),
            Structure(name="core", tier=StructureTier.CORE, health_percent=60),
        ])
        snapshot = Snapshot(elapsed_seconds=10, structures=structures)
        assert snapshot.opposing_core().name == "core"


class TestConfidenceFactors:
    def test_bounds_enforced(self):
        with pytest.raises(ValidationError):
            ConfidenceFactors(
                data_completeness=1.2,
                visibility_certainty=0.5,
                timing_precision=0.5,
                resource_reliability=0.5,
            )


class TestTrustModel:
    def test_neutral_defaults(self):
        profile = TrustProfile()
        assert profile.compliance_rate == 0.5
        assert profile.positive_outcome_rate == 0.5
        assert profile.mean_response_latency_seconds == 0.0
        assert profile.verbosity == VerbosityLevel.MEDIUM
        assert profile.explanation == ExplanationLevel.STANDARD

    @pytest.mark.parametrize("grade,followed", [
        (ComplianceGrade.FULL, True),
        (ComplianceGrade.PARTIAL, True),
        (ComplianceGrade.AMBIGUOUS, True),
        (ComplianceGrade.DELAYED, True),
        (ComplianceGrade.NONE, False),
    ])
    def test_followed(self, grade, followed):
        advice = CandidateAdvice(priority=AdvicePriority.HIGH, message="PUSH NOW")
        record = ComplianceRecord(
            advice_id=advice.id,
            advice=advice,
            grade=grade,
            certainty=0.5,
            session_time=10,
            graded_at=datetime(2026, 1, 1, tzinfo=timezone.utc),
        )
        assert record.followed is followed


class TestPipelineConfig:
    def test_spacing(self):
        config = PipelineConfig()
        assert config.spacing_for(AdvicePriority.GAME_ENDING) == 0
        assert config.spacing_for(AdvicePriority.CRITICAL) == 10
        assert config.spacing_for(AdvicePriority.HIGH) == 30
        assert config.spacing_for(AdvicePriority.MEDIUM) == 60
        assert config.spacing_for(AdvicePriority.LOW) == 120

    def test_critical_cooldown_configurable(self):
        config = PipelineConfig(critical_cooldown_seconds=30)
        assert config.spacing_for(AdvicePriority.CRITICAL) == 30

    def test_invalid_threshold_rejected(self):
        with pytest.raises(ValidationError):
            PipelineConfig(suppress_below_confidence=1.5)
