"""Single-use numeric token service.

Generates, validates and retires short-lived numeric tokens scoped to one
account. The service does not know why a token was issued; email
verification and password reset both use it.

Failure semantics:
- Invalid, expired, foreign, empty or missing tokens are signalled by a
  ``None`` result, never by an exception.
- Database errors propagate unchanged.
- Mutations are flushed, not committed; the caller owns the transaction.
"""

import logging
import secrets
from collections.abc import Callable
from datetime import UTC, datetime, timedelta

from sqlalchemy.ext.asyncio import AsyncSession

from turnstile.models.account import Account
from turnstile.models.account_token import AccountToken
from turnstile.repositories.account_token_repository import AccountTokenRepository

logger = logging.getLogger(__name__)

DEFAULT_TOKEN_LENGTH = 6
DEFAULT_TOKEN_DURATION = timedelta(hours=1)

# Re-draws allowed when a new value collides with a live token.
_MAX_GENERATION_ATTEMPTS = 10


def _utcnow() -> datetime:
    return datetime.now(UTC)


def random_numeric_token(length: int) -> str:
    """Draw a uniformly random string of ``length`` decimal digits.

    Each digit is independent, so leading zeros occur and the value space
    is ``10 ** length``.

    Args:
        length: Number of digits. Must be at least 1.

    Returns:
        Digit string of exactly ``length`` characters.

    Raises:
        ValueError: If length is less than 1.
    """
    if length < 1:
        msg = f"Token length must be at least 1, got {length}"
        raise ValueError(msg)
    return "".join(secrets.choice("0123456789") for _ in range(length))


class TokenService:
    """Issues and consumes AccountTokens.

    Args:
        db: Async database session.
        clock: Returns the current time. Defaults to UTC wall clock.
    """

    def __init__(
        self,
        db: AsyncSession,
        *,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self._db = db
        self._clock = clock

    async def generate(
        self,
        account: Account,
        length: int = DEFAULT_TOKEN_LENGTH,
        duration: timedelta = DEFAULT_TOKEN_DURATION,
    ) -> str:
        """Issue a new numeric token for an account.

        A negative duration is accepted and yields an already-expired token.

        Args:
            account: Owner of the token.
            length: Number of digits.
            duration: Time until expiry, measured from now.

        Returns:
            The raw token value.

        Raises:
            ValueError: If length is less than 1.
        """
        now = self._clock()
        for _ in range(_MAX_GENERATION_ATTEMPTS):
            value = random_numeric_token(length)
            if not await AccountTokenRepository.live_token_exists(
                self._db, token=value, now=now
            ):
                break
        else:
            # Value space nearly exhausted for this length; the account-scoped
            # lookup in verify() still works, only find_token_with_account()
            # becomes ambiguous for the colliding value.
            logger.warning(
                "Token value collision persisted after %d attempts (length=%d)",
                _MAX_GENERATION_ATTEMPTS,
                length,
            )

        await AccountTokenRepository.create(
            self._db,
            account_id=account.id,
            token=value,
            expires_at=now + duration,
        )
        return value

    async def verify(
        self, token_value: str | None, account: Account
    ) -> AccountToken | None:
        """Validate a token for a specific account.

        Args:
            token_value: Raw token value supplied by the caller.
            account: Account the token must belong to.

        Returns:
            The matching AccountToken if it belongs to ``account`` and expires
            strictly after now, None otherwise.
        """
        if not token_value:
            return None
        return await AccountTokenRepository.get_live_for_account(
            self._db,
            token=token_value,
            account_id=account.id,
            now=self._clock(),
        )

    async def find_token_with_account(
        self, token_value: str | None
    ) -> AccountToken | None:
        """Look up a live token without knowing its owner.

        The returned token has its ``account`` relationship loaded. A value
        shared by more than one live token is ambiguous and treated as not
        found.

        Args:
            token_value: Raw token value supplied by the caller.

        Returns:
            The AccountToken with its account, or None.
        """
        if not token_value:
            return None
        matches = await AccountTokenRepository.list_live_with_account(
            self._db, token=token_value, now=self._clock()
        )
        if len(matches) != 1:
            if matches:
                logger.warning("Ambiguous token lookup rejected")
            return None
        return matches[0]

    async def delete(self, token_value: str | None) -> None:
        """Consume a token. Absent, empty or None values are a no-op.

        Args:
            token_value: Raw token value.
        """
        if not token_value:
            return
        await AccountTokenRepository.delete_by_token(self._db, token=token_value)

    async def consume(self, account_token: AccountToken) -> None:
        """Retire exactly the token row that was validated.

        Other live tokens that happen to share the value, including ones
        owned by other accounts, are left alone.

        Args:
            account_token: Token returned by verify() or
                find_token_with_account().
        """
        await AccountTokenRepository.delete_by_id(self._db, account_token.id)

    async def delete_expired(self) -> int:
        """Delete every token whose expiry is at or before now.

        Returns:
            Number of tokens deleted.
        """
        deleted = await AccountTokenRepository.delete_expired(
            self._db, now=self._clock()
        )
        if deleted:
            logger.info("Deleted %d expired tokens", deleted)
        return deleted
