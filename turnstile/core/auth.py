"""Session token helpers.

JWT creation and decoding for authenticated sessions issued after a
successful credential check.
"""

import uuid
from datetime import UTC, datetime, timedelta
from typing import NamedTuple

import jwt

from turnstile.core.config import settings

_ALGORITHM = "HS256"


def create_jwt(
    *,
    account_id: str,
    secret: str,
    expires_delta: timedelta | None = None,
    now: datetime | None = None,
) -> str:
    """Create a signed JWT with standard claims.

    Args:
        account_id: Account UUID string for the sub claim.
        secret: HMAC signing secret.
        expires_delta: Time until expiration. Defaults to the configured
            session TTL.
        now: Issue time. Defaults to the current time.

    Returns:
        Encoded JWT string.
    """
    issued_at = now or datetime.now(UTC)
    ttl = expires_delta or timedelta(minutes=settings.session_ttl_minutes)
    payload = {
        "sub": account_id,
        "aud": settings.auth_audience,
        "iss": settings.auth_issuer,
        "exp": issued_at + ttl,
        # Fractional seconds; compared against sessions_invalidated_before
        "iat": issued_at.timestamp(),
    }
    return jwt.encode(payload, secret, algorithm=_ALGORITHM)


class SessionClaims(NamedTuple):
    """Validated claims of a session JWT."""

    account_id: uuid.UUID
    issued_at: float


def decode_session_claims(token: str, *, secret: str) -> SessionClaims:
    """Decode a session JWT and return its subject and issue time.

    Args:
        token: Encoded JWT string.
        secret: HMAC signing secret.

    Returns:
        SessionClaims with the account UUID and the iat as a POSIX timestamp.

    Raises:
        jwt.InvalidTokenError: If the signature, audience, issuer or expiry
            check fails, or the sub or iat claim is malformed.
    """
    payload = jwt.decode(
        token,
        secret,
        algorithms=[_ALGORITHM],
        audience=settings.auth_audience,
        issuer=settings.auth_issuer,
        options={"require": ["sub", "exp", "iat"]},
    )
    try:
        return SessionClaims(
            account_id=uuid.UUID(payload["sub"]),
            issued_at=float(payload["iat"]),
        )
    except (ValueError, TypeError) as exc:
        msg = "Invalid sub or iat claim"
        raise jwt.InvalidTokenError(msg) from exc


def decode_jwt(token: str, *, secret: str) -> uuid.UUID:
    """Decode a session JWT and return the account id it was issued for.

    Raises:
        jwt.InvalidTokenError: If any check in decode_session_claims() fails.
    """
    return decode_session_claims(token, secret=secret).account_id
