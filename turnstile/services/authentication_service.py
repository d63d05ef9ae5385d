"""Credential verification and session issuance.

Checks an email/password pair, stamps the account's last sign-in time,
issues a signed session JWT and publishes AccountAuthenticated.

Security considerations:
- Unknown email and wrong password raise the same InvalidCredentialsError
- A bcrypt comparison against DUMMY_HASH runs for unknown emails so the
  response time does not reveal whether an account exists
- Unverified accounts may sign in; gating on verification is the caller's
  decision
- Logout and password reset stamp sessions_invalidated_before; any session
  JWT issued before the stamp is rejected
"""

import uuid
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta

import jwt
import structlog
from sqlalchemy.ext.asyncio import AsyncSession

from turnstile.core.auth import SessionClaims, create_jwt, decode_session_claims
from turnstile.core.config import settings
from turnstile.core.errors import InvalidCredentialsError
from turnstile.core.passwords import DUMMY_HASH, PasswordHasher
from turnstile.events import AccountAuthenticated, EventBus
from turnstile.models.account import Account
from turnstile.repositories.account_repository import AccountRepository
from turnstile.schemas.account import AccountProfile
from turnstile.services.account_service import AccountService

logger = structlog.get_logger()


@dataclass(frozen=True)
class AuthenticatedSession:
    """Result of a successful sign-in.

    Attributes:
        account: The authenticated account.
        token: Signed session JWT.
        expires_at: When the session token stops being accepted.
    """

    account: Account
    token: str
    expires_at: datetime

    @property
    def profile(self) -> AccountProfile:
        """Public view of the authenticated account."""
        return AccountProfile.from_account(self.account)


class AuthenticationService:
    """Signs accounts in and validates their session tokens.

    Args:
        db: Async database session.
        account_service: Used to record the sign-in time.
        event_bus: Receives AccountAuthenticated after each sign-in.
        password_hasher: Must be the hasher the credentials were stored with.
    """

    def __init__(
        self,
        db: AsyncSession,
        *,
        account_service: AccountService,
        event_bus: EventBus,
        password_hasher: PasswordHasher,
    ) -> None:
        self._db = db
        self._accounts = account_service
        self._events = event_bus
        self._hasher = password_hasher

    async def authenticate(self, email: str, password: str) -> AuthenticatedSession:
        """Verify credentials and issue a session.

        Args:
            email: Account email (case-insensitive).
            password: Plain-text password.

        Returns:
            AuthenticatedSession with the account and its session token.

        Raises:
            InvalidCredentialsError: If the email is unknown or the password
                does not match.
        """
        account = await AccountRepository.get_by_email(self._db, email)

        if account is None:
            # Security: always perform a hash comparison to prevent timing attacks.
            self._hasher.verify(password, DUMMY_HASH)
            logger.info("authentication_failed", reason="unknown_account")
            raise InvalidCredentialsError()

        if not self._hasher.verify(password, account.password_hash):
            logger.info(
                "authentication_failed",
                reason="bad_password",
                account_id=str(account.id),
            )
            raise InvalidCredentialsError()

        account = await self._accounts.update_last_authenticated_at(account.id)

        ttl = timedelta(minutes=settings.session_ttl_minutes)
        now = datetime.now(UTC)
        token = create_jwt(
            account_id=str(account.id),
            secret=settings.auth_secret.get_secret_value(),
            expires_delta=ttl,
            now=now,
        )

        logger.info("authentication_succeeded", account_id=str(account.id))
        self._events.publish(AccountAuthenticated(account))
        return AuthenticatedSession(account=account, token=token, expires_at=now + ttl)

    async def resolve_session(self, token: str) -> Account:
        """Return the account a session token was issued for.

        Args:
            token: Session JWT.

        Returns:
            The Account named by the token.

        Raises:
            InvalidCredentialsError: If the token is invalid, expired or
                revoked, or the account no longer exists.
        """
        claims = _decode_claims(token)
        account = await AccountRepository.get_by_id(self._db, claims.account_id)
        if account is None:
            raise InvalidCredentialsError("Invalid session")

        revoked_at = account.sessions_invalidated_before
        if revoked_at is not None:
            # SQLite drops tzinfo on round trip
            if revoked_at.tzinfo is None:
                revoked_at = revoked_at.replace(tzinfo=UTC)
            if claims.issued_at < revoked_at.timestamp():
                logger.info(
                    "session_rejected", reason="revoked", account_id=str(account.id)
                )
                raise InvalidCredentialsError("Invalid session")
        return account

    async def logout(self, token: str) -> None:
        """End the session and every other session of the same account.

        Args:
            token: Session JWT being signed out.

        Raises:
            InvalidCredentialsError: If the token is not a live session,
                including one that was already signed out.
        """
        account = await self.resolve_session(token)
        await self._accounts.invalidate_sessions(account.id)
        logger.info("logout_succeeded", account_id=str(account.id))


def _decode_claims(token: str) -> SessionClaims:
    try:
        return decode_session_claims(
            token, secret=settings.auth_secret.get_secret_value()
        )
    except jwt.InvalidTokenError as exc:
        raise InvalidCredentialsError("Invalid session") from exc


def decode_session_token(token: str) -> uuid.UUID:
    """Validate a session JWT and return its account id.

    Revocation is not checked here; use AuthenticationService.resolve_session
    for that.

    Args:
        token: Session JWT.

    Returns:
        Account UUID.

    Raises:
        InvalidCredentialsError: If any JWT check fails.
    """
    return _decode_claims(token).account_id
