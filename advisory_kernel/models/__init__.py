"""Advisory Kernel data models."""

from advisory_kernel.models.advice import (
    AdviceCategory,
    AdvicePriority,
    CandidateAdvice,
    ConfidenceFactors,
    ConfidenceResult,
    DeliverableAdvice,
    ResourceContext,
)
from advisory_kernel.models.arbitration import ArbitrationDecision, ArbitrationVerdict
from advisory_kernel.models.config import PipelineConfig
from advisory_kernel.models.ledger import (
    ConfidenceWeightedAnalysis,
    EventSeverity,
    LedgerEvent,
    LedgerEventType,
    LedgerOutcome,
    SessionSummary,
)
from advisory_kernel.models.session import TickReport
from advisory_kernel.models.snapshot import (
    AbilityState,
    OperatorState,
    OpponentState,
    SessionState,
    Snapshot,
    Structure,
    StructureSet,
    StructureTier,
    TeammateState,
)
from advisory_kernel.models.trust import (
    ComplianceGrade,
    ComplianceOutcome,
    ComplianceRecord,
    ExplanationLevel,
    TrustProfile,
    VerbosityLevel,
)

__all__ = [
    "AbilityState",
    "AdviceCategory",
    "AdvicePriority",
    "ArbitrationDecision",
    "ArbitrationVerdict",
    "CandidateAdvice",
    "ComplianceGrade",
    "ComplianceOutcome",
    "ComplianceRecord",
    "ConfidenceFactors",
    "ConfidenceResult",
    "ConfidenceWeightedAnalysis",
    "DeliverableAdvice",
    "EventSeverity",
    "ExplanationLevel",
    "LedgerEvent",
    "LedgerEventType",
    "LedgerOutcome",
    "OperatorState",
    "OpponentState",
    "PipelineConfig",
    "ResourceContext",
    "SessionState",
    "SessionSummary",
    "Snapshot",
    "Structure",
    "StructureSet",
    "StructureTier",
    "TeammateState",
    "TickReport",
    "TrustProfile",
    "VerbosityLevel",
]
