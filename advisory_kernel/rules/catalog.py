"""
Rule Catalog — data-driven producers of candidate advice.

Each AdviceRule pairs a condition over a Snapshot with a message template.
The condition returns the template fields when it fires, or None. Rules
are evaluated in declared order; a rule that raises is logged and skipped.

Deployments register their own rules; the pipeline only arbitrates what
the rules produce.
"""

import logging
from typing import Callable, Dict, List, Optional

from pydantic import BaseModel, ConfigDict

from advisory_kernel.models.advice import AdviceCategory, AdvicePriority, CandidateAdvice
from advisory_kernel.models.snapshot import Snapshot, StructureTier

logger = logging.getLogger(__name__)

Condition = Callable[[Snapshot], Optional[dict]]


class AdviceRule(BaseModel):
    model_config = ConfigDict(frozen=True)

    name: str
    condition: Condition
    priority: AdvicePriority
    category: AdviceCategory
    template: str
    timing_window_seconds: Optional[float] = None
    is_intentional_silence: bool = False

    def build(self, snapshot: Snapshot, fields: dict) -> CandidateAdvice:
        return CandidateAdvice(
            priority=self.priority,
            message=self.template.format(**fields),
            category=self.category,
            resource_context=snapshot.resource_context(),
            timing_window_seconds=self.timing_window_seconds,
            is_intentional_silence=self.is_intentional_silence,
            session_time=snapshot.elapsed_seconds,
            source=self.name,
        )


class RuleCatalog:

    def __init__(self, rules: Optional[List[AdviceRule]] = None):
        self._rules: List[AdviceRule] = list(rules or [])

    def register(self, rule: AdviceRule) -> None:
        if any(r.name == rule.name for r in self._rules):
            raise ValueError(f"Rule '{rule.name}' is already registered")
        self._rules.append(rule)

    def unregister(self, name: str) -> None:
        self._rules = [r for r in self._rules if r.name != name]

    @property
    def rules(self) -> List[AdviceRule]:
        return list(self._rules)

    def evaluate(self, snapshot: Snapshot) -> List[CandidateAdvice]:
        """Run every rule against the snapshot, in declared order."""
        candidates = []
        for rule in self._rules:
            try:
                fields = rule.condition(snapshot)
                if fields is None:
                    continue
                candidates.append(rule.build(snapshot, fields))
            except Exception:
                logger.exception("Rule '%s' failed; skipping", rule.name)
        return candidates


# --- Default conditions ---

def core_exposed(snapshot: Snapshot) -> Optional[dict]:
    """Opposing core is standing and either damaged or unprotected."""
    core = snapshot.opposing_core()
    if core is None or core.destroyed:
        return None
    guards = [
        s for s in snapshot.structures.opposing
        if s.tier != StructureTier.CORE and not s.destroyed
    ]
    if core.health_percent < 50 or not guards:
        return {"core_health": core.health_percent}
    return None


def low_health(snapshot: Snapshot) -> Optional[dict]:
    operator = snapshot.operator
    if operator is None or not operator.alive or operator.health_percent is None:
        return None
    if operator.health_percent < 25:
        return {"health": operator.health_percent}
    return None


def opponents_down(snapshot: Snapshot) -> Optional[dict]:
    dead = sum(1 for o in snapshot.opponents if not o.alive)
    if dead >= 3:
        return {"dead": dead}
    return None


def resource_lead(snapshot: Snapshot) -> Optional[dict]:
    context = snapshot.resource_context()
    if context is None or context.delta_percent <= 20:
        return None
    return {"delta": context.delta, "delta_percent": context.delta_percent}


def waiting_on_cooldowns(snapshot: Snapshot) -> Optional[dict]:
    """Most ultimates are coming back soon: holding is the right call."""
    ultimates = [a for a in (snapshot.abilities or {}).values() if a.is_ultimate]
    recharging = [a for a in ultimates if 0 < a.cooldown_remaining < 60]
    if recharging and len(recharging) >= len(ultimates) * 0.5:
        return {"count": len(recharging)}
    return None


DEFAULT_RULES: List[Dict] = [
    {
        "name": "core_exposed",
        "condition": core_exposed,
        "priority": AdvicePriority.GAME_ENDING,
        "category": AdviceCategory.END_GAME,
        "template": "Opposing core at {core_health:.0f}%. END NOW",
        "timing_window_seconds": 30,
    },
    {
        "name": "low_health",
        "condition": low_health,
        "priority": AdvicePriority.CRITICAL,
        "category": AdviceCategory.RETREAT,
        "template": "Health {health:.0f}%. BACK NOW",
        "timing_window_seconds": 10,
    },
    {
        "name": "opponents_down",
        "condition": opponents_down,
        "priority": AdvicePriority.HIGH,
        "category": AdviceCategory.PUSH_WINDOW,
        "template": "{dead} opponents down. PUSH NOW",
        "timing_window_seconds": 20,
    },
    {
        "name": "resource_lead",
        "condition": resource_lead,
        "priority": AdvicePriority.MEDIUM,
        "category": AdviceCategory.PUSH,
        "template": "Resource lead of {delta:.0f}. Take an objective",
        "timing_window_seconds": 90,
    },
    {
        "name": "hold_position",
        "condition": waiting_on_cooldowns,
        "priority": AdvicePriority.LOW,
        "category": AdviceCategory.MAINTAIN,
        "template": "Key abilities on cooldown - wait before engaging",
        "is_intentional_silence": True,
    },
]


def default_catalog() -> RuleCatalog:
    return RuleCatalog([AdviceRule(**definition) for definition in DEFAULT_RULES])
