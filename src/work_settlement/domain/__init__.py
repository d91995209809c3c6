"""Domain layer - pure business logic with zero framework dependencies."""

from work_settlement.domain.collaborators import (
    ChargeRequest,
    GeoPoint,
    PaymentCode,
    PaymentRail,
    UserDirectory,
    UserProfile,
)
from work_settlement.domain.enums import (
    ChargeStatus,
    ChargeType,
    ContractStatus,
    EngagementStatus,
    EventType,
    PartyRole,
    ProposalStatus,
)
from work_settlement.domain.exceptions import (
    AlreadyTerminalError,
    InvalidStateError,
    InvariantViolationError,
    NotFoundError,
    WorkSettlementError,
)
from work_settlement.domain.money import MoneyBreakdown, compute_breakdown
from work_settlement.domain.payment_terms import (
    PaymentTerms,
    TermsResolution,
    parse_terms,
    resolve_terms,
)
from work_settlement.domain.state_machine import (
    ChargeStateMachine,
    ContractStateMachine,
    EngagementStateMachine,
    validate_transition,
)

__all__ = [
    "ChargeRequest",
    "GeoPoint",
    "PaymentCode",
    "PaymentRail",
    "UserDirectory",
    "UserProfile",
    "ChargeStatus",
    "ChargeType",
    "ContractStatus",
    "EngagementStatus",
    "EventType",
    "PartyRole",
    "ProposalStatus",
    "AlreadyTerminalError",
    "InvalidStateError",
    "InvariantViolationError",
    "NotFoundError",
    "WorkSettlementError",
    "MoneyBreakdown",
    "compute_breakdown",
    "PaymentTerms",
    "TermsResolution",
    "parse_terms",
    "resolve_terms",
    "ChargeStateMachine",
    "ContractStateMachine",
    "EngagementStateMachine",
    "validate_transition",
]
