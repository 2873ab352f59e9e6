"""Vendor identity from bearer tokens.

Vendor registration and login live in the auth service, which signs
HS256 JWTs with the shared SECRET_KEY. This module only verifies those
tokens and turns them into a VendorIdentity for ownership checks.
"""
import logging
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import JWTError, jwt

from vendor_tracker.core.config import settings

logger = logging.getLogger(__name__)

bearer = HTTPBearer(auto_error=False)


@dataclass(frozen=True)
class VendorIdentity:
    vendor_id: str


def create_access_token(vendor_id: str, expires_delta: timedelta = timedelta(days=7)) -> str:
    """Sign a vendor token (used by tooling and tests)."""
    payload = {"sub": vendor_id, "exp": datetime.now(UTC) + expires_delta}
    return jwt.encode(payload, settings.secret_key, algorithm=settings.jwt_algorithm)


def decode_token(token: str) -> dict | None:
    """Return the token's claims, or None if it is invalid or expired."""
    try:
        return jwt.decode(token, settings.secret_key, algorithms=[settings.jwt_algorithm])
    except JWTError as e:
        logger.warning(f"Rejected vendor token: {e}")
        return None


def get_current_vendor(
    credentials: HTTPAuthorizationCredentials | None = Depends(bearer),
) -> VendorIdentity:
    """Dependency resolving the calling vendor, or 401."""
    credentials_exception = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Not authorized, token missing or invalid",
        headers={"WWW-Authenticate": "Bearer"},
    )
    if credentials is None:
        raise credentials_exception

    payload = decode_token(credentials.credentials)
    if payload is None or not payload.get("sub"):
        raise credentials_exception

    return VendorIdentity(vendor_id=str(payload["sub"]))
