"""Account model - identity and credential record.

Email is unique and immutable once created. ``is_privileged`` is decided
once, at creation, from the number of accounts that already exist.
"""

import uuid
from datetime import datetime
from typing import TYPE_CHECKING

from sqlalchemy import Boolean, String, Uuid, text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from turnstile.models.base import Base, TimestampMixin

if TYPE_CHECKING:
    from turnstile.models.account_token import AccountToken


class Account(Base, TimestampMixin):
    """Account for authentication.

    Attributes:
        id: UUID primary key.
        email: Unique email address, stored lowercase.
        password_hash: One-way hash of the account credential.
        given_name: Given (first) name.
        family_name: Family (last) name.
        is_privileged: True only for the first account ever created.
        verified_at: Timestamp when email was verified. NULL = unverified.
        last_authenticated_at: Timestamp of the last successful sign-in.
        sessions_invalidated_before: Session JWTs issued before this are
            rejected. Set on logout and password reset.
        created_at: Account creation timestamp (from TimestampMixin).
        updated_at: Last modification timestamp (from TimestampMixin).
    """

    __tablename__ = "accounts"

    id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        primary_key=True,
        default=uuid.uuid4,
    )
    email: Mapped[str] = mapped_column(
        String(255),
        unique=True,
        nullable=False,
    )
    password_hash: Mapped[str] = mapped_column(
        String(255),
        nullable=False,
    )
    given_name: Mapped[str | None] = mapped_column(
        String(255),
        nullable=True,
    )
    family_name: Mapped[str | None] = mapped_column(
        String(255),
        nullable=True,
    )
    is_privileged: Mapped[bool] = mapped_column(
        Boolean,
        nullable=False,
        server_default=text("false"),
        default=False,
    )
    verified_at: Mapped[datetime | None] = mapped_column(
        nullable=True,
    )
    last_authenticated_at: Mapped[datetime | None] = mapped_column(
        nullable=True,
    )
    sessions_invalidated_before: Mapped[datetime | None] = mapped_column(
        nullable=True,
    )

    # Tokens are removed by the ON DELETE CASCADE foreign key
    tokens: Mapped[list["AccountToken"]] = relationship(
        "AccountToken",
        back_populates="account",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )

    @property
    def is_verified(self) -> bool:
        """Whether the account has completed email verification."""
        return self.verified_at is not None

    @property
    def full_name(self) -> str | None:
        """Given and family name joined by a space, or None if neither is set."""
        parts = [part for part in (self.given_name, self.family_name) if part]
        return " ".join(parts) or None
