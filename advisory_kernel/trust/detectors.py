"""
Compliance detectors — one per kind of advice.

Each detector diffs two consecutive snapshots and returns a
(grade, certainty) pair. Detectors raise IncompleteSnapshotError when the
snapshots lack the sections they need; the calibrator skips the grade
rather than guessing.
"""

from enum import Enum
from typing import Callable, Dict, Tuple

from advisory_kernel.models.advice import AdviceCategory, CandidateAdvice
from advisory_kernel.models.snapshot import Snapshot
from advisory_kernel.models.trust import ComplianceGrade, ComplianceOutcome


class IncompleteSnapshotError(Exception):
    """Raised when a snapshot lacks the sections a detector needs."""
    pass


class ComplianceKind(str, Enum):
    OBJECTIVE = "objective"
    DISENGAGE = "disengage"
    RESOURCE_ACCUMULATION = "resource_accumulation"
    END_CONDITION = "end_condition"
    UNOBSERVABLE = "unobservable"


CATEGORY_KINDS: Dict[AdviceCategory, ComplianceKind] = {
    AdviceCategory.PUSH: ComplianceKind.OBJECTIVE,
    AdviceCategory.OBJECTIVE: ComplianceKind.OBJECTIVE,
    AdviceCategory.PUSH_WINDOW: ComplianceKind.OBJECTIVE,
    AdviceCategory.END_GAME: ComplianceKind.END_CONDITION,
    AdviceCategory.RETREAT: ComplianceKind.DISENGAGE,
    AdviceCategory.DISENGAGE: ComplianceKind.DISENGAGE,
    AdviceCategory.FARM: ComplianceKind.RESOURCE_ACCUMULATION,
    AdviceCategory.GROUP: ComplianceKind.UNOBSERVABLE,
    AdviceCategory.COMBAT: ComplianceKind.UNOBSERVABLE,
    AdviceCategory.ITEM_BUILD: ComplianceKind.UNOBSERVABLE,
    AdviceCategory.STRATEGIC: ComplianceKind.UNOBSERVABLE,
    AdviceCategory.MAINTAIN: ComplianceKind.UNOBSERVABLE,
}

Detection = Tuple[ComplianceGrade, float]


def kind_for(category: AdviceCategory) -> ComplianceKind:
    return CATEGORY_KINDS[category]


def _require_operator(snapshot: Snapshot):
    if snapshot.operator is None:
        raise IncompleteSnapshotError("operator section missing")
    return snapshot.operator


def _require_structure_count(snapshot: Snapshot) -> int:
    count = snapshot.live_opposing_structures()
    if count is None:
        raise IncompleteSnapshotError("structures section missing")
    return count


def detect_objective(previous: Snapshot, current: Snapshot) -> Detection:
    """Objective taken → full; opposing structure below half → partial."""
    lost = _require_structure_count(previous) - _require_structure_count(current)
    if lost > 0:
        return ComplianceGrade.FULL, 0.9

    damaged = [
        s for s in current.structures.opposing
        if not s.destroyed and s.health_percent < 50
    ]
    if damaged:
        return ComplianceGrade.PARTIAL, 0.6

    return ComplianceGrade.NONE, 0.7


def detect_disengage(previous: Snapshot, current: Snapshot) -> Detection:
    before = _require_operator(previous)
    after = _require_operator(current)
    if before.health_percent is None or after.health_percent is None:
        raise IncompleteSnapshotError("operator health missing")

    health_gain = after.health_percent - before.health_percent
    avoided_death = before.health_percent < 30 and after.health_percent > before.health_percent

    if health_gain > 15 or avoided_death:
        return ComplianceGrade.FULL, 0.8
    if health_gain > 5:
        return ComplianceGrade.PARTIAL, 0.5
    if after.deaths == before.deaths:
        # Survived, but that could be luck as much as compliance
        return ComplianceGrade.AMBIGUOUS, 0.4
    return ComplianceGrade.NONE, 0.6


def detect_resource_accumulation(previous: Snapshot, current: Snapshot) -> Detection:
    before = _require_operator(previous)
    after = _require_operator(current)
    if before.harvest_count is None or after.harvest_count is None:
        raise IncompleteSnapshotError("harvest count missing")

    elapsed = current.elapsed_seconds - previous.elapsed_seconds
    rate = (after.harvest_count - before.harvest_count) / elapsed if elapsed > 0 else 0.0

    if rate > 0.5:
        return ComplianceGrade.FULL, 0.7
    if rate > 0.2:
        return ComplianceGrade.PARTIAL, 0.5
    return ComplianceGrade.NONE, 0.6


def detect_end_condition(previous: Snapshot, current: Snapshot) -> Detection:
    before = previous.opposing_core()
    after = current.opposing_core()
    if before is None or after is None:
        raise IncompleteSnapshotError("opposing core missing")

    if after.destroyed or after.health_percent == 0:
        return ComplianceGrade.FULL, 1.0
    if before.health_percent - after.health_percent > 0:
        return ComplianceGrade.PARTIAL, 0.7
    return ComplianceGrade.NONE, 0.6


def detect_unobservable(previous: Snapshot, current: Snapshot) -> Detection:
    """Passive observation cannot tell whether this kind of advice was acted on."""
    return ComplianceGrade.AMBIGUOUS, 0.3


DETECTORS: Dict[ComplianceKind, Callable[[Snapshot, Snapshot], Detection]] = {
    ComplianceKind.OBJECTIVE: detect_objective,
    ComplianceKind.DISENGAGE: detect_disengage,
    ComplianceKind.RESOURCE_ACCUMULATION: detect_resource_accumulation,
    ComplianceKind.END_CONDITION: detect_end_condition,
    ComplianceKind.UNOBSERVABLE: detect_unobservable,
}

# Adding a category or kind without a handler fails at import.
assert set(CATEGORY_KINDS) == set(AdviceCategory), "unmapped advice category"
assert set(DETECTORS) == set(ComplianceKind), "compliance kind without detector"


def detect(advice: CandidateAdvice, previous: Snapshot, current: Snapshot) -> Detection:
    return DETECTORS[kind_for(advice.category)](previous, current)


def assess_outcome(
    advice: CandidateAdvice,
    previous: Snapshot,
    current: Snapshot,
) -> ComplianceOutcome:
    """
    Label what following the advice led to.

    Absence of evidence is not evidence of failure: anything that cannot
    be observed is "unknown", never "negative".
    """
    kind = kind_for(advice.category)
    died = (
        previous.operator is not None
        and current.operator is not None
        and current.operator.deaths > previous.operator.deaths
    )

    if kind in (ComplianceKind.OBJECTIVE, ComplianceKind.END_CONDITION):
        before = previous.live_opposing_structures()
        after = current.live_opposing_structures()
        if before is not None and after is not None and before - after > 0:
            return ComplianceOutcome.NEUTRAL if died else ComplianceOutcome.POSITIVE

    if kind == ComplianceKind.DISENGAGE and current.operator is not None and not died:
        return ComplianceOutcome.POSITIVE

    return ComplianceOutcome.UNKNOWN
