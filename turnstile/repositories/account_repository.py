"""Repository for Account CRUD operations.

Provides database access for the accounts table. Emails are normalized to
lowercase on the way in so lookups are case-insensitive.
"""

import uuid
from datetime import datetime

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from turnstile.models.account import Account

# Fields that may be updated via AccountRepository.update().
# Security: Never add 'id', 'email', 'created_at', or 'updated_at'.
# - id: primary key, immutable
# - email: unique identity, immutable once created
# - created_at/updated_at: server-managed timestamps
# Security: is_privileged is excluded to prevent mass-assignment privilege
# escalation. It is decided once, in AccountRepository.create().
_UPDATABLE_FIELDS: frozenset[str] = frozenset(
    {
        "given_name",
        "family_name",
        "password_hash",
        "verified_at",
        "last_authenticated_at",
        "sessions_invalidated_before",
    }
)


class AccountRepository:
    """Stateless repository for Account table operations.

    All methods are static; no instance state. Pass an AsyncSession
    for every call so the caller controls transaction boundaries.
    """

    @staticmethod
    async def get_by_id(db: AsyncSession, account_id: uuid.UUID) -> Account | None:
        """Fetch an account by primary key.

        Args:
            db: Async database session.
            account_id: UUID primary key.

        Returns:
            Account if found, None otherwise.
        """
        return await db.get(Account, account_id)

    @staticmethod
    async def get_by_email(db: AsyncSession, email: str) -> Account | None:
        """Fetch an account by email address (case-insensitive).

        Args:
            db: Async database session.
            email: Email address to look up.

        Returns:
            Account if found, None otherwise.
        """
        stmt = select(Account).where(Account.email == email.strip().lower())
        result = await db.execute(stmt)
        return result.scalar_one_or_none()

    @staticmethod
    async def count(db: AsyncSession) -> int:
        """Count all accounts.

        Args:
            db: Async database session.

        Returns:
            Number of rows in the accounts table.
        """
        result = await db.execute(select(func.count()).select_from(Account))
        return int(result.scalar_one())

    @staticmethod
    async def create(
        db: AsyncSession,
        *,
        email: str,
        password_hash: str,
        given_name: str | None = None,
        family_name: str | None = None,
        is_privileged: bool = False,
    ) -> Account:
        """Create a new account.

        Email is normalized to lowercase before storage.

        Args:
            db: Async database session.
            email: Account email address.
            password_hash: One-way hash of the credential.
            given_name: Given name.
            family_name: Family name.
            is_privileged: Privileged flag, fixed for the account's lifetime.

        Returns:
            Created Account with database-generated fields populated.

        Raises:
            sqlalchemy.exc.IntegrityError: If email already exists.
        """
        account = Account(
            email=email.strip().lower(),
            password_hash=password_hash,
            given_name=given_name,
            family_name=family_name,
            is_privileged=is_privileged,
        )
        db.add(account)
        await db.flush()
        await db.refresh(account)
        return account

    @staticmethod
    async def update(
        db: AsyncSession,
        account_id: uuid.UUID,
        **kwargs: str | datetime | None,
    ) -> Account | None:
        """Update account fields.

        Only fields in _UPDATABLE_FIELDS are allowed. Unknown field names
        raise ValueError.

        Args:
            db: Async database session.
            account_id: UUID of the account to update.
            **kwargs: Field names and values to update.

        Returns:
            Updated Account if found, None if account does not exist.

        Raises:
            ValueError: If an unknown field name is passed.
        """
        unknown = set(kwargs) - _UPDATABLE_FIELDS
        if unknown:
            msg = f"Unknown fields: {', '.join(sorted(unknown))}"
            raise ValueError(msg)

        account = await db.get(Account, account_id)
        if account is None:
            return None

        for field, value in kwargs.items():
            setattr(account, field, value)

        await db.flush()
        await db.refresh(account)
        return account

    @staticmethod
    async def delete(db: AsyncSession, account_id: uuid.UUID) -> bool:
        """Delete an account. Its tokens go with it (ON DELETE CASCADE).

        Args:
            db: Async database session.
            account_id: UUID of the account to delete.

        Returns:
            True if an account was deleted, False if it did not exist.
        """
        account = await db.get(Account, account_id)
        if account is None:
            return False
        await db.delete(account)
        await db.flush()
        return True
