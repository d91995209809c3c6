"""Domain exceptions for the settlement pipeline.

These exceptions are framework-agnostic and represent business rule violations.
They are caught and translated to HTTP responses by the API layer's middleware.
"""


class WorkSettlementError(Exception):
    """Base exception for all domain errors."""

    def __init__(self, message: str, code: str = "WORK_SETTLEMENT_ERROR") -> None:
        self.message = message
        self.code = code
        super().__init__(self.message)


# --- State Errors ---


class InvalidStateError(WorkSettlementError):
    """Raised when an attempted transition is not allowed from the current state.

    Example: checked_out -> checked_in (transitions never move backward).
    """

    def __init__(
        self,
        current_state: str,
        attempted: str,
        code: str = "INVALID_STATE",
        message: str | None = None,
    ) -> None:
        super().__init__(
            message=message or f"Invalid state transition: {attempted} from {current_state}",
            code=code,
        )
        self.current_state = current_state
        self.attempted = attempted


class ContractNotExecutedError(InvalidStateError):
    """Raised when work or money would move before both parties have signed."""

    def __init__(self, engagement_id: str, contract_status: str | None) -> None:
        status = contract_status or "missing"
        super().__init__(
            current_state=status,
            attempted="requires fully_executed contract",
            code="CONTRACT_NOT_EXECUTED",
            message=f"Contract for engagement {engagement_id} is not fully executed ({status})",
        )
        self.engagement_id = engagement_id


class NegotiationClosedError(InvalidStateError):
    """Raised when terms change is attempted after the contract was executed."""

    def __init__(self, engagement_id: str) -> None:
        super().__init__(
            current_state="fully_executed",
            attempted="negotiate",
            code="NEGOTIATION_CLOSED",
            message=f"Payment terms are locked for engagement {engagement_id}",
        )
        self.engagement_id = engagement_id


class ConcurrentModificationError(WorkSettlementError):
    """Raised when a row changed underneath a transition (stale version)."""

    def __init__(self, entity: str, entity_id: str) -> None:
        super().__init__(
            message=f"{entity} {entity_id} was modified concurrently; reload and retry",
            code="CONCURRENT_MODIFICATION",
        )
        self.entity = entity
        self.entity_id = entity_id


# --- Terminal / Invariant Errors ---


class AlreadyTerminalError(WorkSettlementError):
    """Raised when mutating an entity that already reached a final state."""

    def __init__(self, entity: str, entity_id: str, status: str) -> None:
        super().__init__(
            message=f"{entity} {entity_id} is already {status}",
            code="ALREADY_TERMINAL",
        )
        self.entity = entity
        self.entity_id = entity_id
        self.status = status


class ChargeAlreadyTerminalError(AlreadyTerminalError):
    """Raised when a paid/expired/cancelled charge receives another transition."""

    def __init__(self, charge_id: str, status: str) -> None:
        super().__init__(entity="Charge", entity_id=charge_id, status=status)
        self.charge_id = charge_id


class InvariantViolationError(WorkSettlementError):
    """Raised when an operation would create a second active charge of one type."""

    def __init__(self, message: str) -> None:
        super().__init__(message=message, code="INVARIANT_VIOLATION")


# --- Lookup Errors ---


class NotFoundError(WorkSettlementError):
    """Raised when an engagement, proposal, contract or charge ID does not exist."""

    def __init__(self, entity: str, entity_id: str) -> None:
        super().__init__(
            message=f"{entity} not found: {entity_id}",
            code=f"{entity.upper()}_NOT_FOUND",
        )
        self.entity = entity
        self.entity_id = entity_id


class EngagementNotFoundError(NotFoundError):
    def __init__(self, engagement_id: str) -> None:
        super().__init__("Engagement", engagement_id)


class ProposalNotFoundError(NotFoundError):
    def __init__(self, proposal_id: str) -> None:
        super().__init__("Proposal", proposal_id)


class ContractNotFoundError(NotFoundError):
    def __init__(self, engagement_id: str) -> None:
        super().__init__("Contract", engagement_id)


class ChargeNotFoundError(NotFoundError):
    def __init__(self, charge_id: str) -> None:
        super().__init__("Charge", charge_id)


# --- Input Errors ---


class PartyMismatchError(WorkSettlementError):
    """Raised when a party acts on the other party's side of an engagement."""

    def __init__(self, engagement_id: str, role: str, actor_id: str) -> None:
        super().__init__(
            message=f"User {actor_id} is not the {role} of engagement {engagement_id}",
            code="PARTY_MISMATCH",
        )


class InvalidAmountError(WorkSettlementError, ValueError):
    """Raised for negative, fractional or otherwise unusable money inputs."""

    def __init__(self, message: str) -> None:
        super().__init__(message=message, code="INVALID_AMOUNT")


# --- Payment Rail Errors ---


class PaymentRailError(WorkSettlementError):
    """Raised when the instant-payment rail rejects or cannot render a charge."""

    def __init__(self, message: str, correlation_id: str | None = None) -> None:
        super().__init__(message=message, code="PAYMENT_RAIL_ERROR")
        self.correlation_id = correlation_id


class UserDirectoryError(WorkSettlementError):
    """Raised when the user service cannot be reached or answers with an error."""

    def __init__(self, message: str, user_id: str | None = None) -> None:
        super().__init__(message=message, code="USER_DIRECTORY_ERROR")
        self.user_id = user_id
