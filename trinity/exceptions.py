"""Exception classes for the agent orchestrator."""

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from trinity.types.payments import PaymentRequirement


class TrinityError(Exception):
    """Base exception for all orchestrator errors."""

    status_code = 500

    def __init__(
        self, code: str, message: str, request_id: str | None = None
    ) -> None:
        self.code = code
        self.message = message
        self.request_id = request_id
        super().__init__(f"[{code}] {message}")


class ConfigurationError(TrinityError):
    """Raised when configuration is invalid or missing."""

    def __init__(self, message: str) -> None:
        super().__init__("CONFIGURATION_ERROR", message)


class BadRequestError(TrinityError):
    """Raised when a request is malformed."""

    status_code = 400


class UnauthorizedError(TrinityError):
    """Raised when the caller's wallet signature is missing or invalid."""

    status_code = 401


class PaymentRequiredError(TrinityError):
    """Raised when a paid endpoint is called without a verified payment."""

    status_code = 402

    def __init__(
        self,
        message: str,
        requirement: "PaymentRequirement",
        request_id: str | None = None,
    ) -> None:
        super().__init__("PAYMENT_REQUIRED", message, request_id)
        self.requirement = requirement


class ForbiddenError(TrinityError):
    """Raised when the caller does not control the resource."""

    status_code = 403


class NotFoundError(TrinityError):
    """Raised when a resource is not found."""

    status_code = 404


class ConflictError(TrinityError):
    """Raised on state conflicts (disallowed transition, double rating, etc.)."""

    status_code = 409


class ValidationError(TrinityError):
    """Raised on validation errors."""

    status_code = 422


class RateLimitedError(TrinityError):
    """Raised when rate limited."""

    status_code = 429

    def __init__(
        self,
        code: str,
        message: str,
        retry_after: int,
        request_id: str | None = None,
    ) -> None:
        super().__init__(code, message, request_id)
        self.retry_after = retry_after


class ServerError(TrinityError):
    """Raised on upstream server errors (5xx) and connection failures."""

    pass


class ProviderError(TrinityError):
    """Raised when an external provider returns an unusable response."""

    status_code = 502


class ChainError(TrinityError):
    """Raised when a contract call reverts or the chain is not configured."""

    status_code = 502


class DuplicateJobError(TrinityError):
    """Raised when a queue job with the same id already exists."""

    status_code = 409

    def __init__(self, job_id: str) -> None:
        super().__init__("DUPLICATE_JOB", f"Job {job_id} already exists")
        self.job_id = job_id


class JobStalledError(TrinityError):
    """Raised for a queue job whose worker stopped before finishing it."""

    def __init__(self, job_id: str) -> None:
        super().__init__("JOB_STALLED", f"Job {job_id} stalled: its worker stopped while processing")
        self.job_id = job_id
