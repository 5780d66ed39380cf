"""
Priority Arbitrator — decides whether a candidate advice is spoken.

Behavioral Contract:
- GAME_ENDING advice is always delivered
- CRITICAL advice is always delivered (only the rate limiter's cooldown applies)
- Everything else passes an ordered chain of confidence and trust rules
- Returns an ArbitrationDecision with a machine-readable reason
- Never mutates the advice, the confidence result or the trust profile

Rule order (first match wins):
  1. GAME_ENDING                                  → deliver
  2. CRITICAL                                     → deliver
  3. intentional silence                          → confidence rules, then
                                                    deliver only when explanation is detailed
  4. verbosity low, LOW, value override
     (if configured to precede)                   → deliver
  5. confidence < 0.5                             → suppress
  6. confidence < 0.7 and LOW                     → suppress
  7. verbosity low, LOW, no value override        → suppress
  8. otherwise                                    → deliver
"""

import logging
from datetime import datetime, timezone
from typing import Optional

from advisory_kernel.arbitration.language import (
    add_explanation,
    format_for_priority,
    soften_language,
)
from advisory_kernel.models.advice import (
    AdvicePriority,
    CandidateAdvice,
    ConfidenceResult,
    DeliverableAdvice,
)
from advisory_kernel.models.arbitration import ArbitrationDecision, ArbitrationVerdict
from advisory_kernel.models.config import PipelineConfig
from advisory_kernel.models.trust import ExplanationLevel, TrustProfile, VerbosityLevel

logger = logging.getLogger(__name__)


class PriorityArbitrator:
    """Stateless gate between the confidence scorer and the rate limiter."""

    def __init__(self, config: Optional[PipelineConfig] = None):
        self.config = config or PipelineConfig()

    def is_value_override(self, advice: CandidateAdvice, confidence: float) -> bool:
        """High confidence or a large resource swing earns a hearing regardless of trust."""
        if confidence > self.config.value_override_confidence:
            return True
        context = advice.resource_context
        if context and abs(context.delta) > self.config.value_override_resource_delta:
            return True
        return False

    def arbitrate(
        self,
        advice: CandidateAdvice,
        confidence: ConfidenceResult,
        profile: TrustProfile,
        current_time: Optional[datetime] = None,
    ) -> ArbitrationDecision:
        if current_time is None:
            current_time = datetime.now(timezone.utc)

        score = max(0.0, min(1.0, confidence.score))
        verdict, reason = self._rule(advice, score, profile)

        deliverable = None
        if verdict == ArbitrationVerdict.DELIVER:
            deliverable = self.shape(advice, confidence, profile)
        else:
            logger.debug(
                "Suppressing %s advice %s (%s, confidence %.2f)",
                advice.priority.value, advice.id, reason, score,
            )

        return ArbitrationDecision(
            advice_id=advice.id,
            priority=advice.priority,
            verdict=verdict,
            reason=reason,
            confidence=score,
            deliverable=deliverable,
            evaluated_at=current_time,
        )

    def _rule(self, advice: CandidateAdvice, score: float, profile: TrustProfile):
        deliver, suppress = ArbitrationVerdict.DELIVER, ArbitrationVerdict.SUPPRESS
        cfg = self.config

        if advice.priority == AdvicePriority.GAME_ENDING:
            return deliver, "game_ending"
        if advice.priority == AdvicePriority.CRITICAL:
            return deliver, "critical"

        if advice.is_intentional_silence:
            if score < cfg.suppress_below_confidence:
                return suppress, "low_confidence"
            if score < cfg.low_priority_min_confidence and advice.priority == AdvicePriority.LOW:
                return suppress, "low_priority_low_confidence"
            if profile.explanation != ExplanationLevel.DETAILED:
                return suppress, "silence_not_requested"
            return deliver, "silence_explained"

        # The override only ever rescues LOW advice from verbosity suppression
        trust_gated = (
            profile.verbosity == VerbosityLevel.LOW and advice.priority == AdvicePriority.LOW
        )
        override = trust_gated and self.is_value_override(advice, score)
        if override and cfg.value_override_precedes_confidence:
            return deliver, "value_override"

        if score < cfg.suppress_below_confidence:
            return suppress, "low_confidence"
        if score < cfg.low_priority_min_confidence and advice.priority == AdvicePriority.LOW:
            return suppress, "low_priority_low_confidence"

        if trust_gated:
            if not override:
                return suppress, "trust_verbosity"
            return deliver, "value_override"

        return deliver, "approved"

    def shape(
        self,
        advice: CandidateAdvice,
        confidence: ConfidenceResult,
        profile: TrustProfile,
    ) -> DeliverableAdvice:
        """Final wording: soften, explain, then format for stress."""
        score = max(0.0, min(1.0, confidence.score))
        text = soften_language(advice.message, score)
        if profile.explanation == ExplanationLevel.DETAILED and not advice.is_intentional_silence:
            text = add_explanation(text, confidence.caveats)
        text = format_for_priority(text, advice.priority)

        return DeliverableAdvice(
            advice=advice,
            text=text,
            confidence=score,
            caveats=list(confidence.caveats),
        )
