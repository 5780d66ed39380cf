"""Snapshot — immutable point-in-time view of session state."""

from enum import Enum
from typing import Dict, List, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field

from advisory_kernel.models.advice import ResourceContext


class SessionState(str, Enum):
    PRE_SESSION = "pre_session"
    IN_PROGRESS = "in_progress"
    POST_SESSION = "post_session"
    UNKNOWN = "unknown"


class StructureTier(str, Enum):
    T1 = "t1"
    T2 = "t2"
    T3 = "t3"
    T4 = "t4"
    CORE = "core"                           # The end-condition target


class OperatorState(BaseModel):
    """The primary actor controlled by the operator."""

    model_config = ConfigDict(frozen=True)

    team: str = "allied"
    health_percent: Optional[float] = Field(default=None, ge=0, le=100)
    alive: bool = True
    deaths: int = 0
    harvest_count: Optional[int] = None     # Resource units gathered so far
    level: int = 1
    position: Optional[Tuple[float, float]] = None


class TeammateState(BaseModel):
    model_config = ConfigDict(frozen=True)

    name: str
    alive: bool = True
    resource_value: Optional[float] = None


class OpponentState(BaseModel):
    """An opposing entity, as far as the snapshot source can observe it."""

    model_config = ConfigDict(frozen=True)

    name: str
    visible: bool = False
    alive: bool = True
    position: Optional[Tuple[float, float]] = None
    resource_value: Optional[float] = None  # None = not known


class Structure(BaseModel):
    model_config = ConfigDict(frozen=True)

    name: str
    tier: StructureTier
    health_percent: float = Field(ge=0, le=100, default=100.0)
    destroyed: bool = False


class StructureSet(BaseModel):
    model_config = ConfigDict(frozen=True)

    allied: List[Structure] = []
    opposing: List[Structure] = []


class AbilityState(BaseModel):
    model_config = ConfigDict(frozen=True)

    name: str
    cooldown_remaining: float = 0.0
    is_ultimate: bool = False


class Snapshot(BaseModel):
    """
    One timestamped observation of session state.

    Produced by an external collaborator at an irregular cadence. Every
    section is optional: a partially-populated snapshot is still valid,
    it just yields lower confidence and fewer compliance grades.
    """

    model_config = ConfigDict(frozen=True)

    elapsed_seconds: float = Field(ge=0)
    session_state: SessionState = SessionState.UNKNOWN
    operator: Optional[OperatorState] = None
    roster: Optional[List[TeammateState]] = None
    team_resource_total: Optional[float] = None
    opponents: List[OpponentState] = []
    structures: Optional[StructureSet] = None
    inventory: Optional[List[str]] = None
    abilities: Optional[Dict[str, AbilityState]] = None

    def opposing_resource_total(self) -> Optional[float]:
        """Sum of the known opposing resource values, None if none are known."""
        known = [o.resource_value for o in self.opponents if o.resource_value]
        if not known:
            return None
        return float(sum(known))

    def live_opposing_structures(self) -> Optional[int]:
        """Count of opposing structures still standing."""
        if self.structures is None:
            return None
        return sum(1 for s in self.structures.opposing if not s.destroyed)

    def opposing_core(self) -> Optional[Structure]:
        if self.structures is None:
            return None
        for structure in self.structures.opposing:
            if structure.tier == StructureTier.CORE:
                return structure
        return None

    def resource_context(self) -> Optional[ResourceContext]:
        """Resource delta between the two sides, when both are known."""
        ours = self.team_resource_total
        theirs = self.opposing_resource_total()
        if not ours or theirs is None:
            return None
        delta = ours - theirs
        return ResourceContext(
            delta=delta,
            delta_percent=(delta / theirs) * 100 if theirs > 0 else 0.0,
        )
