"""Typed exceptions for provisioning and billing failures."""


class ProvisioningError(Exception):
    """Base class for all provisioning/billing errors."""


class ValidationError(ProvisioningError):
    """Bad input. Raised before any state is mutated."""


class NotFoundError(ValidationError):
    """Referenced entity does not exist."""


class InsufficientFunds(ProvisioningError):
    """Wallet balance cannot cover a debit. Raised before any state is mutated."""

    def __init__(self, required_cents: int, available_cents: int):
        self.required_cents = required_cents
        self.available_cents = available_cents
        super().__init__(
            f"Insufficient wallet balance. Required: {required_cents} cents, "
            f"available: {available_cents} cents"
        )


class ConflictError(ProvisioningError):
    """Unique constraint violated (e.g. domain name already taken)."""


class ExternalServiceError(ProvisioningError):
    """
    Registrar or payment gateway call failed.

    Always retryable from the job queue's point of view; `retryable` records
    whether the remote side called it transient, for logs only.
    """

    service = "external"

    def __init__(self, message: str, retryable: bool = True):
        self.retryable = retryable
        super().__init__(message)


class ExhaustedRetries(ProvisioningError):
    """A job used up its attempts. Triggers the terminal failed transition."""

    def __init__(self, job_type: str, target_id: str, attempts: int, last_error: str | None):
        self.job_type = job_type
        self.target_id = target_id
        self.attempts = attempts
        self.last_error = last_error
        super().__init__(
            f"{job_type} for {target_id} failed after {attempts} attempts: {last_error}"
        )


class InvalidStateTransition(ProvisioningError):
    """
    Transition requested from an unexpected current state.

    Logged and ignored by callers so duplicate job delivery stays harmless.
    """

    def __init__(self, entity: str, current: str, target: str):
        self.entity = entity
        self.current = current
        self.target = target
        super().__init__(f"{entity}: cannot move from '{current}' to '{target}'")


class InvalidRefund(ProvisioningError):
    """Refund request exceeds what was paid or targets a non-refundable record."""
