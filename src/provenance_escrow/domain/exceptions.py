"""Domain exceptions for the provenance escrow.

These exceptions are framework-agnostic and represent rule violations.
Every rejected escrow operation raises one of them with a specific code;
the API layer's middleware translates them to HTTP responses. A proof that
simply does not verify is not an exception, it is a ``False`` result.
"""


class EscrowError(Exception):
    """Base exception for all domain errors."""

    def __init__(self, message: str, code: str = "ESCROW_ERROR") -> None:
        self.message = message
        self.code = code
        super().__init__(self.message)


# --- Input Errors ---


class ValidationError(EscrowError):
    """Raised when an input is malformed or out of range."""

    def __init__(self, message: str, field: str | None = None) -> None:
        super().__init__(message=message, code="VALIDATION_ERROR")
        self.field = field


# --- State Errors ---


class StateError(EscrowError):
    """Raised when an operation is not legal in the current phase."""

    def __init__(self, message: str, code: str = "INVALID_STATE") -> None:
        super().__init__(message=message, code=code)


class InvalidPhaseTransitionError(StateError):
    """Raised when the phase guard rejects a transition.

    Example: LISTED -> DELIVERED (must go through PURCHASED, ORDER_CONFIRMED, BOUND).
    """

    def __init__(self, current_phase: str, event: str) -> None:
        super().__init__(
            message=f"Transition '{event}' not allowed from phase {current_phase}",
            code="INVALID_PHASE_TRANSITION",
        )
        self.current_phase = current_phase
        self.event = event


class AlreadyPurchasedError(StateError):
    """Raised on a second purchase attempt."""

    def __init__(self, product_id: int) -> None:
        super().__init__(
            message=f"Product {product_id} already purchased",
            code="ALREADY_PURCHASED",
        )
        self.product_id = product_id


class CommitmentFrozenError(StateError):
    """Raised when the price commitment has already been set."""

    def __init__(self, product_id: int) -> None:
        super().__init__(
            message=f"Price commitment of product {product_id} is frozen",
            code="COMMITMENT_FROZEN",
        )


class CommitmentNotSetError(StateError):
    """Raised when a product is bought before its price commitment was frozen."""

    def __init__(self, product_id: int) -> None:
        super().__init__(
            message=f"Price commitment of product {product_id} has not been set",
            code="COMMITMENT_NOT_SET",
        )


class TransporterAlreadyAssignedError(StateError):
    """Raised when a transporter is already bound, or the bound one withdraws."""

    def __init__(self, product_id: int, transporter: str) -> None:
        super().__init__(
            message=f"Transporter {transporter} already assigned to product {product_id}",
            code="TRANSPORTER_ALREADY_ASSIGNED",
        )
        self.transporter = transporter


class DeadlineError(StateError):
    """Raised when an operation falls on the wrong side of a window deadline."""

    def __init__(self, message: str, deadline: float) -> None:
        super().__init__(message=message, code="DEADLINE")
        self.deadline = deadline


class ReentrantCallError(StateError):
    """Raised when an escrow operation is entered again before it returned."""

    def __init__(self, product_id: int, operation: str) -> None:
        super().__init__(
            message=f"Re-entrant call to '{operation}' on product {product_id}",
            code="REENTRANT_CALL",
        )


# --- Authorization Errors ---


class AuthorizationError(EscrowError):
    """Raised when the caller may not perform the operation."""

    def __init__(self, message: str) -> None:
        super().__init__(message=message, code="UNAUTHORIZED")


# --- Funds Errors ---


class FundsError(EscrowError):
    """Raised when attached value is wrong for the operation."""

    def __init__(self, message: str, code: str = "FUNDS_ERROR") -> None:
        super().__init__(message=message, code=code)


class InsufficientFundsError(FundsError):
    """Raised when a wallet cannot cover a debit."""

    def __init__(self, account: str, required: int, available: int) -> None:
        super().__init__(
            message=(
                f"Insufficient funds in {account}: required {required} wei, "
                f"available {available} wei"
            ),
            code="INSUFFICIENT_FUNDS",
        )
        self.account = account
        self.required = required
        self.available = available


# --- Lookup Errors ---


class ProductNotFoundError(EscrowError):
    """Raised when a product address is not known to the factory."""

    def __init__(self, address: str) -> None:
        super().__init__(
            message=f"Product not found: {address}",
            code="PRODUCT_NOT_FOUND",
        )
        self.address = address


class ContentNotFoundError(EscrowError):
    """Raised when a content address cannot be resolved by the VC store."""

    def __init__(self, cid: str) -> None:
        super().__init__(
            message=f"Content not found: {cid}",
            code="CONTENT_NOT_FOUND",
        )
        self.cid = cid


# --- External Service Errors ---


class ProofServiceError(EscrowError):
    """Raised when the proof backend cannot be reached or answers garbage."""

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message=message, code="PROOF_SERVICE_ERROR")
        self.status_code = status_code


class ContentStoreError(EscrowError):
    """Raised when the VC store rejects an upload or read."""

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message=message, code="CONTENT_STORE_ERROR")
        self.status_code = status_code
