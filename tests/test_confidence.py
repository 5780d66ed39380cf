"""Tests for the Confidence Scorer."""

import pytest

from advisory_kernel.confidence.scorer import (
    DEFAULT_WEIGHTS,
    FULLY_RELIABLE_CAVEAT,
    OPPORTUNITY_WEIGHTS,
    ConfidenceScorer,
    data_completeness,
    resource_reliability,
    timing_precision,
    visibility_certainty,
    weights_for,
)
from advisory_kernel.models.advice import AdviceCategory
from advisory_kernel.models.snapshot import (
    AbilityState,
    OperatorState,
    OpponentState,
    Snapshot,
    Structure,
    StructureSet,
    StructureTier,
    TeammateState,
)


def _make_full_snapshot() -> Snapshot:
    return Snapshot(
        elapsed_seconds=600,
        operator=OperatorState(health_percent=80, harvest_count=100),
        roster=[TeammateState(name=f"ally_{i}") for i in range(5)],
        team_resource_total=50000,
        opponents=[
            OpponentState(name=f"opp_{i}", visible=True, position=(i, i), resource_value=8000)
            for i in range(5)
        ],
        structures=StructureSet(opposing=[Structure(name="t1", tier=StructureTier.T1)]),
        inventory=["blade"],
        abilities={"ult": AbilityState(name="ult", is_ultimate=True)},
    )


class TestFactors:
    def test_full_snapshot_factors(self):
        snapshot = _make_full_snapshot()
        assert data_completeness(snapshot) == pytest.approx(1.0)
        assert visibility_certainty(snapshot) == pytest.approx(1.0)
        assert resource_reliability(snapshot) == pytest.approx(1.0)

    def test_empty_snapshot_completeness(self):
        # 1.0 - 0.3 - 0.2 - 0.1 - 0.1 = 0.3, averaged with an empty roster
        assert data_completeness(Snapshot(elapsed_seconds=0)) == pytest.approx(0.15)

    def test_partial_roster(self):
        snapshot = _make_full_snapshot().model_copy(
            update={"roster": [TeammateState(name="ally")]}
        )
        assert data_completeness(snapshot) == pytest.approx((1.0 + 0.2) / 2)

    def test_visibility_empty_opponents_uses_expected_roster(self):
        assert visibility_certainty(Snapshot(elapsed_seconds=0)) == 0.0

    def test_visibility_many_unaccounted(self):
        snapshot = Snapshot(
            elapsed_seconds=0,
            opponents=[OpponentState(name="a", visible=True)]
            + [OpponentState(name=f"h{i}") for i in range(4)],
        )
        assert visibility_certainty(snapshot) == pytest.approx(0.2 * 0.7)

    def test_visibility_position_bonus(self):
        snapshot = Snapshot(
            elapsed_seconds=0,
            opponents=[
                OpponentState(name="a", visible=True, position=(1, 2)),
                OpponentState(name="b", visible=True),
                OpponentState(name="c"),
            ],
        )
        assert visibility_certainty(snapshot) == pytest.approx(2 / 3 + 0.2)

    @pytest.mark.parametrize("window,expected", [
        (None, 0.5),
        (10, 0.9),
        (29.9, 0.9),
        (30, 0.8),
        (59, 0.8),
        (60, 0.6),
        (119, 0.6),
        (120, 0.4),
        (600, 0.4),
    ])
    def test_timing_precision(self, window, expected):
        assert timing_precision(window) == expected

    def test_resource_neither_side(self):
        assert resource_reliability(Snapshot(elapsed_seconds=0)) == 0.3

    def test_resource_operator_side_only(self):
        snapshot = Snapshot(elapsed_seconds=0, team_resource_total=20000)
        assert resource_reliability(snapshot) == 0.6

    def test_resource_partially_known(self):
        snapshot = Snapshot(
            elapsed_seconds=0,
            team_resource_total=20000,
            opponents=[
                OpponentState(name="a", resource_value=5000),
                OpponentState(name="b", resource_value=5000),
                OpponentState(name="c"),
                OpponentState(name="d"),
            ],
        )
        assert resource_reliability(snapshot) == pytest.approx(0.75)


class TestWeights:
    def test_opportunity_categories(self):
        for category in (
            AdviceCategory.PUSH,
            AdviceCategory.OBJECTIVE,
            AdviceCategory.PUSH_WINDOW,
            AdviceCategory.END_GAME,
        ):
            assert weights_for(category) is OPPORTUNITY_WEIGHTS

    def test_other_categories(self):
        assert weights_for(AdviceCategory.RETREAT) is DEFAULT_WEIGHTS
        assert weights_for(AdviceCategory.MAINTAIN) is DEFAULT_WEIGHTS

    def test_weights_sum_to_one(self):
        assert sum(OPPORTUNITY_WEIGHTS.values()) == pytest.approx(1.0)
        assert sum(DEFAULT_WEIGHTS.values()) == pytest.approx(1.0)


class TestConfidenceScorer:
    def setup_method(self):
        self.scorer = ConfidenceScorer()

    def test_full_snapshot_opportunity(self):
        result = self.scorer.score(_make_full_snapshot(), AdviceCategory.PUSH_WINDOW, 20)
        # 0.2 + 0.3 + 0.4 * 0.9 + 0.1
        assert result.score == pytest.approx(0.96)
        assert result.caveats == [FULLY_RELIABLE_CAVEAT]

    def test_full_snapshot_without_timing_window(self):
        result = self.scorer.score(_make_full_snapshot(), AdviceCategory.RETREAT)
        # 0.3 + 0.3 + 0.2 * 0.5 + 0.2
        assert result.score == pytest.approx(0.9)
        assert result.caveats == ["Timing window unclear"]

    def test_empty_snapshot(self):
        result = self.scorer.score(Snapshot(elapsed_seconds=0), AdviceCategory.STRATEGIC)
        # 0.3 * 0.15 + 0.3 * 0 + 0.2 * 0.5 + 0.2 * 0.3
        assert result.score == pytest.approx(0.205)
        assert result.caveats == [
            "Limited snapshot data",
            "Uncertain opposing positions",
            "Timing window unclear",
            "Resource data incomplete",
        ]

    def test_factors_reported(self):
        result = self.scorer.score(_make_full_snapshot(), AdviceCategory.PUSH, 45)
        assert result.factors.timing_precision == 0.8
        for value in result.factors.model_dump().values():
            assert 0.0 <= value <= 1.0

    def test_pure(self):
        snapshot = _make_full_snapshot()
        first = self.scorer.score(snapshot, AdviceCategory.PUSH, 20)
        second = self.scorer.score(snapshot, AdviceCategory.PUSH, 20)
        assert first == second

    def test_expected_roster_size(self):
        scorer = ConfidenceScorer(expected_roster_size=2)
        snapshot = Snapshot(
            elapsed_seconds=0,
            roster=[TeammateState(name="a"), TeammateState(name="b")],
        )
        result = scorer.score(snapshot, AdviceCategory.STRATEGIC)
        assert result.factors.data_completeness == pytest.approx((0.3 + 1.0) / 2)
