"""Account lifecycle service.

Creation, partial updates, email verification and password reset. Token
issuance and consumption always go through TokenService; this service owns
the account state change and the lifecycle event that follows it.

Ordering per operation: load, check, mutate, flush, consume token, commit,
publish. Each public method commits once, so a verification or reset is
recorded together with the deletion of its token. Events are published only
after the commit succeeds.

Verification state machine:
    unverified --verify(id, valid token)--> verified (terminal)
    verified   --verify(id, any token)----> AlreadyVerifiedError
"""

import logging
import uuid
from collections.abc import Callable
from datetime import UTC, datetime, timedelta

from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from turnstile.core.config import settings
from turnstile.core.errors import (
    AlreadyVerifiedError,
    ConflictError,
    InvalidOrExpiredTokenError,
    NotFoundError,
    ValidationError,
)
from turnstile.core.passwords import PasswordHasher
from turnstile.events import (
    AccountPasswordChanged,
    AccountRegistered,
    AccountUpdated,
    AccountVerified,
    EventBus,
    PasswordResetCompleted,
    PasswordResetRequested,
    VerificationRequested,
)
from turnstile.models.account import Account
from turnstile.repositories.account_repository import AccountRepository
from turnstile.schemas.account import AccountCreate, AccountUpdate
from turnstile.services.token_service import (
    DEFAULT_TOKEN_DURATION,
    DEFAULT_TOKEN_LENGTH,
    TokenService,
)

logger = logging.getLogger(__name__)

# Fallback given name when neither a name nor an email local part is available
_DEFAULT_GIVEN_NAME = "User"


def _utcnow() -> datetime:
    return datetime.now(UTC)


def derive_given_name(email: str, given_name: str | None = None) -> str:
    """Pick the display given name for a new account.

    Args:
        email: Email as supplied by the caller.
        given_name: Explicit given name, if any.

    Returns:
        The explicit name, else the email local part, else "User".
    """
    if given_name:
        return given_name
    return email.split("@", 1)[0] or _DEFAULT_GIVEN_NAME


class AccountService:
    """Orchestrates account state changes, tokens and lifecycle events.

    Args:
        db: Async database session. The service commits it once per
            successful operation.
        event_bus: Bus that receives lifecycle events after each commit.
        password_hasher: One-way hash used for credentials.
        token_service: Token store. Defaults to a TokenService on ``db``.
        clock: Returns the current time. Defaults to UTC wall clock.
    """

    def __init__(
        self,
        db: AsyncSession,
        *,
        event_bus: EventBus,
        password_hasher: PasswordHasher,
        token_service: TokenService | None = None,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self._db = db
        self._events = event_bus
        self._hasher = password_hasher
        self._clock = clock
        self._tokens = token_service or TokenService(db, clock=clock)

    async def _get_account(self, account_id: uuid.UUID) -> Account:
        account = await AccountRepository.get_by_id(self._db, account_id)
        if account is None:
            raise NotFoundError("Account", str(account_id))
        return account

    # =========================================================================
    # Creation and profile updates
    # =========================================================================

    async def create(self, data: AccountCreate) -> Account:
        """Register a new account.

        The first account ever created is privileged. The count-then-insert
        sequence is not serialized; concurrent first registrations can both
        observe zero accounts.

        Args:
            data: Registration input.

        Returns:
            The persisted Account.

        Raises:
            ValidationError: If email or password is missing.
            ConflictError: If the email is already registered.
        """
        if not data.email:
            raise ValidationError("Email is required to create an account")
        if not data.password:
            raise ValidationError("Password is required to create an account")

        existing = await AccountRepository.count(self._db)

        try:
            account = await AccountRepository.create(
                self._db,
                email=data.email,
                password_hash=self._hasher.hash(data.password),
                given_name=derive_given_name(data.email, data.given_name),
                family_name=data.family_name or None,
                is_privileged=existing == 0,
            )
            await self._db.commit()
        except IntegrityError as exc:
            await self._db.rollback()
            raise ConflictError(
                code="EMAIL_ALREADY_EXISTS",
                message="Email already registered",
            ) from exc

        logger.info(
            "Account %s created (privileged=%s)", account.id, account.is_privileged
        )
        self._events.publish(AccountRegistered(account))
        return account

    async def update(self, account_id: uuid.UUID, data: AccountUpdate) -> Account:
        """Apply a partial update.

        Only fields the caller supplied are written. Email is never changed.
        AccountUpdated is published even when nothing changed.

        Args:
            account_id: Account to update.
            data: Partial update.

        Returns:
            The updated Account.

        Raises:
            NotFoundError: If the account does not exist.
        """
        await self._get_account(account_id)

        fields = data.present_fields()
        changes: dict[str, str | None] = {}
        if "given_name" in fields:
            changes["given_name"] = fields["given_name"]
        if "family_name" in fields:
            changes["family_name"] = fields["family_name"]
        password_changed = bool(fields.get("password"))
        if password_changed:
            changes["password_hash"] = self._hasher.hash(fields["password"])

        account = await AccountRepository.update(self._db, account_id, **changes)
        if account is None:
            raise NotFoundError("Account", str(account_id))
        await self._db.commit()

        self._events.publish(AccountUpdated(account))
        if password_changed:
            self._events.publish(AccountPasswordChanged(account))
        return account

    async def update_last_authenticated_at(self, account_id: uuid.UUID) -> Account:
        """Stamp the account with the current time as its last sign-in.

        No event is published.

        Args:
            account_id: Account that authenticated.

        Returns:
            The updated Account.

        Raises:
            NotFoundError: If the account does not exist.
        """
        await self._get_account(account_id)
        account = await AccountRepository.update(
            self._db, account_id, last_authenticated_at=self._clock()
        )
        if account is None:
            raise NotFoundError("Account", str(account_id))
        await self._db.commit()
        return account

    async def invalidate_sessions(self, account_id: uuid.UUID) -> Account:
        """Revoke every session token issued to the account so far.

        The stamp is wall time, like session JWT issue times, not the
        injected clock.

        Args:
            account_id: Account to sign out everywhere.

        Returns:
            The updated Account.

        Raises:
            NotFoundError: If the account does not exist.
        """
        account = await AccountRepository.update(
            self._db, account_id, sessions_invalidated_before=datetime.now(UTC)
        )
        if account is None:
            raise NotFoundError("Account", str(account_id))
        await self._db.commit()
        logger.info("Sessions invalidated for account %s", account_id)
        return account

    async def delete(self, account_id: uuid.UUID) -> None:
        """Delete an account and, through the foreign key, all its tokens.

        Raises:
            NotFoundError: If the account does not exist.
        """
        if not await AccountRepository.delete(self._db, account_id):
            raise NotFoundError("Account", str(account_id))
        await self._db.commit()
        logger.info("Account %s deleted", account_id)

    # =========================================================================
    # Email verification
    # =========================================================================

    async def request_verification(self, account_id: uuid.UUID) -> str | None:
        """Issue an email verification token.

        Args:
            account_id: Account to verify.

        Returns:
            The raw token, or None if the account is already verified.

        Raises:
            NotFoundError: If the account does not exist.
        """
        account = await self._get_account(account_id)
        if account.is_verified:
            return None

        token = await self._tokens.generate(
            account,
            settings.verification_token_length,
            timedelta(minutes=settings.verification_token_ttl_minutes),
        )
        await self._db.commit()

        self._events.publish(VerificationRequested(account, token=token))
        return token

    async def verify(self, account_id: uuid.UUID, token_value: str | None) -> Account:
        """Complete email verification with a token.

        The already-verified check runs before the token is looked at, so a
        verified account never inspects or consumes a token.

        Args:
            account_id: Account being verified.
            token_value: Token delivered to the account owner.

        Returns:
            The verified Account.

        Raises:
            NotFoundError: If the account does not exist.
            AlreadyVerifiedError: If the account is already verified.
            InvalidOrExpiredTokenError: If the token does not validate.
        """
        account = await self._get_account(account_id)
        if account.is_verified:
            raise AlreadyVerifiedError()

        account_token = await self._tokens.verify(token_value, account)
        if account_token is None:
            raise InvalidOrExpiredTokenError()

        verified = await AccountRepository.update(
            self._db, account.id, verified_at=self._clock()
        )
        if verified is None:
            raise NotFoundError("Account", str(account_id))
        await self._tokens.consume(account_token)
        await self._db.commit()

        logger.info("Account %s verified", account_id)
        self._events.publish(AccountVerified(verified))
        return verified

    # =========================================================================
    # Password reset
    # =========================================================================

    async def request_password_reset(self, email: str) -> None:
        """Issue a password reset token if the email belongs to an account.

        Security: an unknown email returns silently with no event, so the
        caller cannot tell whether an account exists.

        Args:
            email: Email address to reset.
        """
        account = await AccountRepository.get_by_email(self._db, email)
        if account is None:
            return

        token = await self._tokens.generate(
            account, DEFAULT_TOKEN_LENGTH, DEFAULT_TOKEN_DURATION
        )
        await self._db.commit()

        self._events.publish(PasswordResetRequested(account, token=token))

    async def reset_password(
        self, token_value: str | None, new_password: str
    ) -> Account:
        """Replace the credential of the account that owns a reset token.

        The token alone authorizes the change. No strength rules are applied
        here; an empty password is accepted. Every session issued before the
        reset is revoked.

        Args:
            token_value: Reset token delivered to the account owner.
            new_password: New plain-text password.

        Returns:
            The updated Account.

        Raises:
            InvalidOrExpiredTokenError: If the token does not resolve to a
                live token.
        """
        account_token = await self._tokens.find_token_with_account(token_value)
        if account_token is None:
            raise InvalidOrExpiredTokenError()

        account = await AccountRepository.update(
            self._db,
            account_token.account_id,
            password_hash=self._hasher.hash(new_password),
            sessions_invalidated_before=datetime.now(UTC),
        )
        if account is None:
            raise InvalidOrExpiredTokenError()
        await self._tokens.consume(account_token)
        await self._db.commit()

        logger.info("Password reset completed for account %s", account.id)
        self._events.publish(PasswordResetCompleted(account))
        return account
