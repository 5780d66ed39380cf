"""
Confidence Scorer — how much the pipeline should trust a piece of advice.

Four independent factors, each in [0, 1]:
- Data completeness: are the core snapshot sections present?
- Visibility certainty: how much of the opposing side can we observe?
- Timing precision: how narrow is the advice's timing window?
- Resource reliability: how much of the resource picture is known?

The factors are combined by a weighted sum whose weights depend on the
advice category. Pure function of its inputs: no state, no side effects.
"""

import logging
from typing import Dict, List, Optional

from advisory_kernel.models.advice import (
    OPPORTUNITY_CATEGORIES,
    AdviceCategory,
    ConfidenceFactors,
    ConfidenceResult,
)
from advisory_kernel.models.snapshot import Snapshot

logger = logging.getLogger(__name__)

OPPORTUNITY_WEIGHTS: Dict[str, float] = {
    "data_completeness": 0.2,
    "visibility_certainty": 0.3,
    "timing_precision": 0.4,
    "resource_reliability": 0.1,
}

DEFAULT_WEIGHTS: Dict[str, float] = {
    "data_completeness": 0.3,
    "visibility_certainty": 0.3,
    "timing_precision": 0.2,
    "resource_reliability": 0.2,
}

# (factor, threshold, caveat): the caveat is emitted when factor < threshold
CAVEAT_THRESHOLDS = [
    ("data_completeness", 0.7, "Limited snapshot data"),
    ("visibility_certainty", 0.6, "Uncertain opposing positions"),
    ("timing_precision", 0.7, "Timing window unclear"),
    ("resource_reliability", 0.7, "Resource data incomplete"),
]

FULLY_RELIABLE_CAVEAT = "High confidence - all data reliable"


def _clamp(value: float) -> float:
    return max(0.0, min(1.0, value))


def weights_for(category: AdviceCategory) -> Dict[str, float]:
    """Weight profile for an advice category."""
    if category in OPPORTUNITY_CATEGORIES:
        return OPPORTUNITY_WEIGHTS
    return DEFAULT_WEIGHTS


def data_completeness(snapshot: Snapshot, expected_roster_size: int = 5) -> float:
    completeness = 1.0

    if snapshot.operator is None:
        completeness -= 0.3
    if snapshot.structures is None:
        completeness -= 0.2
    if not snapshot.inventory:
        completeness -= 0.1
    if not snapshot.abilities:
        completeness -= 0.1

    roster = snapshot.roster or []
    roster_fraction = _clamp(len(roster) / expected_roster_size)
    return _clamp((completeness + roster_fraction) / 2)


def visibility_certainty(snapshot: Snapshot, expected_roster_size: int = 5) -> float:
    opponents = snapshot.opponents
    total = len(opponents) or expected_roster_size
    visible = sum(1 for o in opponents if o.visible)

    certainty = visible / total
    if any(o.position is not None for o in opponents):
        certainty = min(1.0, certainty + 0.2)
    if total - visible >= 3:
        certainty *= 0.7
    return _clamp(certainty)


def timing_precision(timing_window_seconds: Optional[float]) -> float:
    """Step function of the timing-window width; narrower is more precise."""
    if not timing_window_seconds:
        return 0.5
    if timing_window_seconds < 30:
        return 0.9
    if timing_window_seconds < 60:
        return 0.8
    if timing_window_seconds < 120:
        return 0.6
    return 0.4


def resource_reliability(snapshot: Snapshot) -> float:
    ours_known = bool(snapshot.team_resource_total and snapshot.team_resource_total > 0)
    theirs_known = snapshot.opposing_resource_total() is not None

    if ours_known and theirs_known:
        opponents = snapshot.opponents
        with_value = sum(1 for o in opponents if o.resource_value)
        return _clamp(0.5 + 0.5 * (with_value / max(len(opponents), 1)))
    if ours_known:
        return 0.6
    return 0.3


class ConfidenceScorer:
    """Scores a snapshot + advice category into a Confidence Result."""

    def __init__(self, expected_roster_size: int = 5):
        self.expected_roster_size = expected_roster_size

    def score(
        self,
        snapshot: Snapshot,
        category: AdviceCategory,
        timing_window_seconds: Optional[float] = None,
    ) -> ConfidenceResult:
        factors = ConfidenceFactors(
            data_completeness=data_completeness(snapshot, self.expected_roster_size),
            visibility_certainty=visibility_certainty(snapshot, self.expected_roster_size),
            timing_precision=timing_precision(timing_window_seconds),
            resource_reliability=resource_reliability(snapshot),
        )

        weights = weights_for(category)
        values = factors.model_dump()
        score = _clamp(sum(values[name] * w for name, w in weights.items()))

        caveats: List[str] = [
            caveat
            for name, threshold, caveat in CAVEAT_THRESHOLDS
            if values[name] < threshold
        ]
        if not caveats:
            caveats.append(FULLY_RELIABLE_CAVEAT)

        logger.debug(
            "Confidence for %s: %.2f (%s)", category.value, score, ", ".join(caveats)
        )
        return ConfidenceResult(score=score, factors=factors, caveats=caveats)
