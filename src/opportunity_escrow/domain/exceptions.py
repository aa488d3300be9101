"""Domain exceptions for the opportunity escrow core.

These exceptions are framework-agnostic and represent business rule violations.
They are caught and translated to HTTP responses by the API layer's middleware.
"""


class PortalError(Exception):
    """Base exception for all domain errors."""

    retryable: bool = False

    def __init__(self, message: str, code: str = "PORTAL_ERROR") -> None:
        self.message = message
        self.code = code
        super().__init__(self.message)


# --- Lookup Errors ---


class NotFoundError(PortalError):
    """Raised when an account, condition, opportunity or milestone id is unknown."""

    def __init__(self, entity: str, entity_id: str) -> None:
        super().__init__(
            message=f"{entity} not found: {entity_id}",
            code="NOT_FOUND",
        )
        self.entity = entity
        self.entity_id = entity_id


# --- State Errors ---


class InvalidStateError(PortalError):
    """Raised when an operation is not valid from the current status.

    Example: funding an escrow account that is already funded.
    """

    def __init__(self, current_state: str, operation: str) -> None:
        super().__init__(
            message=f"Cannot {operation.replace('_', ' ')} while status is '{current_state}'",
            code="INVALID_STATE",
        )
        self.current_state = current_state
        self.operation = operation


# --- Ledger Errors ---


class InsufficientFundsError(PortalError):
    """Raised when a release or fee exceeds the available escrow balance."""

    def __init__(self, requested: str, available: str) -> None:
        super().__init__(
            message=(
                f"Insufficient funds to release: requested {requested}, "
                f"available {available}"
            ),
            code="INSUFFICIENT_FUNDS",
        )
        self.requested = requested
        self.available = available


class InvalidAmountError(PortalError):
    """Raised when an amount is not positive or does not match the pledge."""

    def __init__(self, message: str) -> None:
        super().__init__(message=message, code="INVALID_AMOUNT")


class ReleaseConditionsRequiredError(PortalError):
    """Raised when an escrow account is opened without any release condition."""

    def __init__(self) -> None:
        super().__init__(
            message="At least one release condition is required to open an escrow account",
            code="RELEASE_CONDITIONS_REQUIRED",
        )


class ConcurrentModificationError(PortalError):
    """Raised when an account kept changing underneath us until retries ran out."""

    retryable = True

    def __init__(self, account_id: str, attempts: int) -> None:
        super().__init__(
            message=(
                f"Escrow account {account_id} was modified concurrently "
                f"({attempts} attempts); retry the operation"
            ),
            code="CONCURRENT_MODIFICATION",
        )
        self.account_id = account_id


class LedgerUnavailableError(PortalError):
    """Raised when the backing store times out or refuses the transaction."""

    retryable = True

    def __init__(self, detail: str) -> None:
        super().__init__(
            message="The escrow ledger is temporarily unavailable; retry the operation",
            code="LEDGER_UNAVAILABLE",
        )
        self.detail = detail


# --- Rule Registry Errors ---


class DuplicateRuleError(PortalError):
    """Raised when a custom rule reuses an id already in the registry."""

    def __init__(self, rule_id: str) -> None:
        super().__init__(
            message=f"A validation rule with id '{rule_id}' is already registered",
            code="DUPLICATE_RULE",
        )
        self.rule_id = rule_id


# --- Idempotency Errors ---


class DuplicateOperationError(PortalError):
    """Raised when a duplicate idempotency key is detected."""

    def __init__(self, idempotency_key: str) -> None:
        super().__init__(
            message=f"Duplicate operation detected for key: {idempotency_key}",
            code="DUPLICATE_OPERATION",
        )
