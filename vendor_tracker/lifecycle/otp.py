"""One-time password generation and validation.

Two lifecycle gates are guarded by an OTP sent to the customer: the event
start and the event close. Each gate has its own code slot on the event.
Codes are six digits, drawn fresh on every issuance, and valid for a fixed
time-to-live measured from when they were sent.
"""
import hmac
import secrets
from dataclasses import dataclass
from datetime import datetime, timedelta
from enum import Enum

from vendor_tracker.lifecycle.errors import OTPExpired, OTPMismatch, PreconditionFailed
from vendor_tracker.lifecycle.state import as_utc
from vendor_tracker.models import Event

OTP_LOW = 100000
OTP_HIGH = 999999


class OTPPurpose(str, Enum):
    START = "start"
    CLOSING = "closing"


@dataclass(frozen=True)
class OTPRecord:
    """A snapshot of one OTP slot on an event."""

    code: str | None
    sent_at: datetime | None
    verified_at: datetime | None
    is_verified: bool

    @property
    def issued(self) -> bool:
        return self.code is not None and self.sent_at is not None


def generate_otp() -> str:
    """Return a uniformly drawn six-digit code (100000-999999 inclusive)."""
    return str(OTP_LOW + secrets.randbelow(OTP_HIGH - OTP_LOW + 1))


def read_otp(event: Event, purpose: OTPPurpose) -> OTPRecord:
    """Read the OTP slot for a purpose."""
    prefix = f"{purpose.value}_otp_"
    return OTPRecord(
        code=getattr(event, prefix + "code"),
        sent_at=as_utc(getattr(event, prefix + "sent_at")),
        verified_at=as_utc(getattr(event, prefix + "verified_at")),
        is_verified=getattr(event, prefix + "is_verified"),
    )


def write_otp(event: Event, purpose: OTPPurpose, record: OTPRecord) -> None:
    """Overwrite the OTP slot for a purpose."""
    prefix = f"{purpose.value}_otp_"
    setattr(event, prefix + "code", record.code)
    setattr(event, prefix + "sent_at", record.sent_at)
    setattr(event, prefix + "verified_at", record.verified_at)
    setattr(event, prefix + "is_verified", record.is_verified)


def is_expired(record: OTPRecord, now: datetime, ttl: timedelta) -> bool:
    """A code is expired once strictly more than ttl has passed since it was sent."""
    return now - record.sent_at > ttl


def check_otp(record: OTPRecord, supplied: str, now: datetime, ttl: timedelta) -> None:
    """
    Validate a supplied code against an issued OTP.

    Raises:
        PreconditionFailed: No code was issued, or it was already verified.
        OTPExpired: The code's time-to-live has passed.
        OTPMismatch: The supplied code differs from the last issued code.
    """
    if not record.issued:
        raise PreconditionFailed("OTP has not been requested")
    if record.is_verified:
        raise PreconditionFailed("OTP has already been verified")
    if is_expired(record, now, ttl):
        raise OTPExpired()
    if not hmac.compare_digest(record.code.encode(), (supplied or "").encode()):
        raise OTPMismatch()
