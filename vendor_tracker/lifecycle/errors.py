"""Lifecycle error kinds.

Every failure the engine reports carries a stable kind and a user-safe
message. Only InternalFailure is unexpected; all other kinds are ordinary
control flow that the API layer maps to a transport status.
"""

from enum import Enum


class ErrorKind(Enum):
    """Stable failure kinds."""

    VALIDATION_FAILURE = "validation_failure"
    NOT_FOUND = "not_found"
    GONE = "gone"
    FORBIDDEN = "forbidden"
    PRECONDITION_FAILED = "precondition_failed"
    OTP_EXPIRED = "otp_expired"
    OTP_MISMATCH = "otp_mismatch"
    DEPENDENCY_FAILURE = "dependency_failure"
    INTERNAL_FAILURE = "internal_failure"


HTTP_STATUS = {
    ErrorKind.VALIDATION_FAILURE: 400,
    ErrorKind.NOT_FOUND: 404,
    ErrorKind.GONE: 410,
    ErrorKind.FORBIDDEN: 403,
    ErrorKind.PRECONDITION_FAILED: 409,
    ErrorKind.OTP_EXPIRED: 400,
    ErrorKind.OTP_MISMATCH: 400,
    ErrorKind.DEPENDENCY_FAILURE: 502,
    ErrorKind.INTERNAL_FAILURE: 500,
}


class LifecycleError(Exception):
    """Base lifecycle error with kind, user-safe message and optional hint."""

    kind = ErrorKind.INTERNAL_FAILURE

    def __init__(self, message: str, hint: str | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.hint = hint

    @property
    def status_code(self) -> int:
        return HTTP_STATUS[self.kind]

    def __str__(self) -> str:
        return f"{self.kind.value}: {self.message}"


class ValidationFailure(LifecycleError):
    """Raised when input is missing or malformed."""

    kind = ErrorKind.VALIDATION_FAILURE


class EventNotFound(LifecycleError):
    """Raised when no event exists for an identifier."""

    kind = ErrorKind.NOT_FOUND

    def __init__(self, event_id) -> None:
        super().__init__("Event not found")
        self.event_id = event_id


class EventGone(LifecycleError):
    """Raised when an event is soft-deleted and was not explicitly requested."""

    kind = ErrorKind.GONE

    def __init__(self, event_id) -> None:
        super().__init__("Event has been deleted")
        self.event_id = event_id


class Forbidden(LifecycleError):
    """Raised when the caller does not own the event."""

    kind = ErrorKind.FORBIDDEN

    def __init__(self) -> None:
        super().__init__("Not authorized to access this event")


class PreconditionFailed(LifecycleError):
    """Raised when a transition is attempted out of order."""

    kind = ErrorKind.PRECONDITION_FAILED


class OTPExpired(LifecycleError):
    """Raised when an OTP is verified after its time-to-live."""

    kind = ErrorKind.OTP_EXPIRED

    def __init__(self) -> None:
        super().__init__("OTP has expired", hint="Request a new OTP and try again.")


class OTPMismatch(LifecycleError):
    """Raised when a supplied OTP does not match the last issued code."""

    kind = ErrorKind.OTP_MISMATCH

    def __init__(self) -> None:
        super().__init__("Invalid OTP")


class DependencyFailure(LifecycleError):
    """Raised when the image store or notifier fails.

    misconfigured separates a service that cannot work until an operator
    fixes its settings from a transient failure worth retrying.
    """

    kind = ErrorKind.DEPENDENCY_FAILURE

    def __init__(self, message: str, hint: str | None = None, misconfigured: bool = False) -> None:
        super().__init__(message, hint=hint)
        self.misconfigured = misconfigured

    @property
    def status_code(self) -> int:
        return 503 if self.misconfigured else HTTP_STATUS[self.kind]


class InternalFailure(LifecycleError):
    """Raised for anything unanticipated."""

    kind = ErrorKind.INTERNAL_FAILURE
