"""
Trust Calibrator — compliance tracking and the operator's trust profile.

The Conservative Rule: a handful of noisy or low-certainty readings must
never swing the profile. Updates are applied only when the history is
long enough and its recent tail is either consistent or confidently graded.

Compliance Tracking (per tick):
- Delivered advice is registered in a tracking map
- On the next snapshot every tracked advice is graded once and forgotten
- Malformed snapshots are skipped, never guessed at

Profile Calibration (gated):
- Certainty- and grade-weighted compliance and positive-outcome rates
- Verbosity and explanation depth follow the compliance rate
"""

import logging
from collections import deque
from datetime import datetime, timezone
from statistics import fmean, pvariance
from typing import Deque, Dict, List, Optional

from advisory_kernel.models.advice import CandidateAdvice
from advisory_kernel.models.config import PipelineConfig
from advisory_kernel.models.snapshot import Snapshot
from advisory_kernel.models.trust import (
    ComplianceGrade,
    ComplianceOutcome,
    ComplianceRecord,
    ExplanationLevel,
    TrustProfile,
    VerbosityLevel,
)
from advisory_kernel.trust.detectors import (
    IncompleteSnapshotError,
    assess_outcome,
    detect,
)

logger = logging.getLogger(__name__)

GRADE_MULTIPLIERS: Dict[ComplianceGrade, float] = {
    ComplianceGrade.FULL: 1.0,
    ComplianceGrade.NONE: 1.0,
    ComplianceGrade.DELAYED: 0.7,
    ComplianceGrade.PARTIAL: 0.5,
    ComplianceGrade.AMBIGUOUS: 0.2,
}

HIGH_COMPLIANCE = 0.75
LOW_COMPLIANCE = 0.25


def record_weight(record: ComplianceRecord) -> float:
    """Certainty scaled by how informative the grade is, clamped to [0, 1]."""
    weight = record.certainty * GRADE_MULTIPLIERS[record.grade]
    return max(0.0, min(1.0, weight))


class TrustCalibrator:
    """
    Grades issued advice against subsequent snapshots and maintains
    the Trust Profile. One instance per session.
    """

    def __init__(self, config: Optional[PipelineConfig] = None):
        self.config = config or PipelineConfig()
        self._history: Deque[ComplianceRecord] = deque(
            maxlen=self.config.compliance_history_capacity
        )
        self._tracking: Dict[str, CandidateAdvice] = {}
        self._profile = TrustProfile()

    # --- Compliance Tracking ---

    def register_advice(self, advice: CandidateAdvice) -> str:
        """Track delivered advice so the next snapshot can grade it."""
        self._tracking[advice.id] = advice
        return advice.id

    @property
    def tracked_advice(self) -> List[CandidateAdvice]:
        return list(self._tracking.values())

    def grade_tracked(
        self,
        previous: Snapshot,
        current: Snapshot,
        graded_at: Optional[datetime] = None,
    ) -> List[ComplianceRecord]:
        """
        Grade every tracked advice against the (previous, current) pair,
        then stop tracking it. Returns the records that were appended.
        """
        records = []
        for advice_id in list(self._tracking):
            advice = self._tracking.pop(advice_id)
            record = self.check_compliance(advice, previous, current, graded_at)
            if record is not None:
                records.append(record)
        return records

    def check_compliance(
        self,
        advice: CandidateAdvice,
        previous: Snapshot,
        current: Snapshot,
        graded_at: Optional[datetime] = None,
    ) -> Optional[ComplianceRecord]:
        """
        Grade one advice. Returns None (and appends nothing) when the
        snapshots are too incomplete to judge.
        """
        try:
            grade, certainty = detect(advice, previous, current)
        except IncompleteSnapshotError as e:
            logger.debug("Skipping compliance grade for %s: %s", advice.id, e)
            return None

        latency = None
        if grade != ComplianceGrade.NONE:
            latency = max(0.0, current.elapsed_seconds - (advice.session_time or 0.0))
            if (
                grade in (ComplianceGrade.FULL, ComplianceGrade.PARTIAL)
                and latency > self.config.delayed_compliance_seconds
            ):
                grade = ComplianceGrade.DELAYED

        record = ComplianceRecord(
            advice_id=advice.id,
            advice=advice,
            grade=grade,
            certainty=max(0.0, min(1.0, certainty)),
            outcome=assess_outcome(advice, previous, current),
            response_latency_seconds=latency,
            session_time=current.elapsed_seconds,
            graded_at=graded_at or datetime.now(timezone.utc),
        )
        self.append_record(record)

        logger.debug(
            "Compliance check: %s (certainty: %.0f%%), outcome: %s",
            record.grade.value,
            record.certainty * 100,
            record.outcome.value,
        )
        return record

    def append_record(self, record: ComplianceRecord) -> None:
        """Append to the bounded history and recalibrate if the gate allows."""
        self._history.append(record)
        if self.should_update_profile():
            self._update_profile()

    @property
    def history(self) -> List[ComplianceRecord]:
        return list(self._history)

    # --- Profile Calibration ---

    def should_update_profile(self) -> bool:
        """Noise filter: enough history, and a consistent or certain recent tail."""
        window = self.config.trust_min_history
        if len(self._history) < window:
            return False

        recent = list(self._history)[-window:]
        followed = [1.0 if r.followed else 0.0 for r in recent]
        variance = pvariance(followed)
        mean_certainty = fmean(r.certainty for r in recent)

        return (
            variance < self.config.trust_variance_ceiling
            or mean_certainty > self.config.trust_certainty_floor
        )

    def _update_profile(self) -> None:
        weighted = [(r, record_weight(r)) for r in self._history]
        total_weight = sum(w for _, w in weighted)
        if total_weight == 0:
            return

        followed = [(r, w) for r, w in weighted if r.followed]
        followed_weight = sum(w for _, w in followed)

        profile = self._profile.model_copy()
        profile.compliance_rate = followed_weight / total_weight

        if followed and followed_weight > 0:
            positive_weight = sum(
                w for r, w in followed if r.outcome == ComplianceOutcome.POSITIVE
            )
            profile.positive_outcome_rate = positive_weight / followed_weight

        timed = [
            (r.response_latency_seconds, r.certainty)
            for r in self._history
            if r.response_latency_seconds is not None
        ]
        latency_weight = sum(c for _, c in timed)
        if latency_weight > 0:
            profile.mean_response_latency_seconds = (
                sum(t * c for t, c in timed) / latency_weight
            )

        if profile.compliance_rate > HIGH_COMPLIANCE:
            # Operator listens: say less, explain less
            profile.verbosity = VerbosityLevel.LOW
            profile.explanation = ExplanationLevel.MINIMAL
        elif profile.compliance_rate < LOW_COMPLIANCE:
            profile.verbosity = VerbosityLevel.HIGH
            profile.explanation = ExplanationLevel.DETAILED
        else:
            profile.verbosity = VerbosityLevel.MEDIUM
            profile.explanation = ExplanationLevel.STANDARD

        profile.updates_applied += 1
        self._profile = profile

    @property
    def profile(self) -> TrustProfile:
        """A copy of the current profile; callers never mutate it in place."""
        return self._profile.model_copy()

    def should_reduce_verbosity(self) -> bool:
        return self._profile.verbosity == VerbosityLevel.LOW

    def should_increase_explanation(self) -> bool:
        return self._profile.explanation == ExplanationLevel.DETAILED

    def reset(self) -> None:
        """Session boundary: forget everything."""
        self._history = deque(maxlen=self.config.compliance_history_capacity)
        self._tracking.clear()
        self._profile = TrustProfile()
