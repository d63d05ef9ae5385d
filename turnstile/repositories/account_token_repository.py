"""Repository for AccountToken CRUD operations.

Single-use numeric tokens scoped to one account with an absolute expiry.
Every expiry comparison runs in SQL against a caller-supplied ``now`` so the
service layer owns the clock.
"""

import uuid
from datetime import datetime

from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from turnstile.models.account_token import AccountToken


class AccountTokenRepository:
    """Stateless repository for AccountToken table operations.

    All methods are static; no instance state.
    """

    @staticmethod
    async def create(
        db: AsyncSession,
        *,
        account_id: uuid.UUID,
        token: str,
        expires_at: datetime,
    ) -> AccountToken:
        """Store a new token.

        Args:
            db: Async database session.
            account_id: Owning account.
            token: Token value.
            expires_at: Token expiry timestamp.

        Returns:
            Created AccountToken.
        """
        account_token = AccountToken(
            account_id=account_id,
            token=token,
            expires_at=expires_at,
        )
        db.add(account_token)
        await db.flush()
        return account_token

    @staticmethod
    async def get_live_for_account(
        db: AsyncSession,
        *,
        token: str,
        account_id: uuid.UUID,
        now: datetime,
    ) -> AccountToken | None:
        """Look up an unexpired token owned by a specific account.

        Args:
            db: Async database session.
            token: Token value.
            account_id: Account the token must belong to.
            now: Reference time; the token must expire strictly after it.

        Returns:
            AccountToken if found, None otherwise.
        """
        stmt = (
            select(AccountToken)
            .where(
                AccountToken.token == token,
                AccountToken.account_id == account_id,
                AccountToken.expires_at > now,
            )
            .limit(1)
        )
        result = await db.execute(stmt)
        return result.scalars().first()

    @staticmethod
    async def list_live_with_account(
        db: AsyncSession,
        *,
        token: str,
        now: datetime,
        limit: int = 2,
    ) -> list[AccountToken]:
        """Look up unexpired tokens by value across all accounts.

        The owning account is eagerly loaded on each result.

        Args:
            db: Async database session.
            token: Token value.
            now: Reference time; tokens must expire strictly after it.
            limit: Maximum number of rows to return.

        Returns:
            Matching tokens (possibly empty).
        """
        stmt = (
            select(AccountToken)
            .options(selectinload(AccountToken.account))
            .where(
                AccountToken.token == token,
                AccountToken.expires_at > now,
            )
            .limit(limit)
        )
        result = await db.execute(stmt)
        return list(result.scalars().all())

    @staticmethod
    async def live_token_exists(
        db: AsyncSession,
        *,
        token: str,
        now: datetime,
    ) -> bool:
        """Check whether any unexpired token has this value.

        Args:
            db: Async database session.
            token: Token value.
            now: Reference time.

        Returns:
            True if a live token with this value exists.
        """
        stmt = (
            select(AccountToken.id)
            .where(
                AccountToken.token == token,
                AccountToken.expires_at > now,
            )
            .limit(1)
        )
        result = await db.execute(stmt)
        return result.first() is not None

    @staticmethod
    async def delete_by_token(db: AsyncSession, *, token: str) -> int:
        """Delete tokens with this value (single-use cleanup).

        Args:
            db: Async database session.
            token: Token value.

        Returns:
            Number of deleted rows.
        """
        stmt = delete(AccountToken).where(AccountToken.token == token)
        result = await db.execute(stmt)
        row_count: int = result.rowcount  # type: ignore[attr-defined]
        return row_count

    @staticmethod
    async def delete_by_id(db: AsyncSession, token_id: uuid.UUID) -> bool:
        """Delete one token row by primary key.

        Args:
            db: Async database session.
            token_id: AccountToken primary key.

        Returns:
            True if a row was deleted, False if it did not exist.
        """
        stmt = delete(AccountToken).where(AccountToken.id == token_id)
        result = await db.execute(stmt)
        row_count: int = result.rowcount  # type: ignore[attr-defined]
        return row_count > 0

    @staticmethod
    async def delete_expired(db: AsyncSession, *, now: datetime) -> int:
        """Delete all expired tokens (periodic cleanup).

        A token expiring exactly at ``now`` counts as expired.

        Args:
            db: Async database session.
            now: Reference time.

        Returns:
            Number of deleted rows.
        """
        stmt = (
            delete(AccountToken)
            .where(AccountToken.expires_at <= now)
            .execution_options(synchronize_session="fetch")
        )
        result = await db.execute(stmt)
        row_count: int = result.rowcount  # type: ignore[attr-defined]
        return row_count
