"""Account token model - single-use numeric tokens.

One row per outstanding token. The same shape serves email verification
and password reset; there is no purpose column. Rows are created at
issuance, deleted on consumption or by the expiry sweep, and never updated.
"""

import uuid
from datetime import datetime
from typing import TYPE_CHECKING

from sqlalchemy import DateTime, ForeignKey, String, Uuid, func
from sqlalchemy.orm import Mapped, mapped_column, relationship

from turnstile.models.base import Base

if TYPE_CHECKING:
    from turnstile.models.account import Account


class AccountToken(Base):
    """Single-use, time-limited token owned by one account.

    Attributes:
        id: UUID primary key.
        account_id: FK to the owning account (cascade on delete).
        token: Numeric token value. Leading zeros are significant.
        expires_at: Absolute expiry timestamp.
        created_at: Issuance timestamp.
    """

    __tablename__ = "account_tokens"

    id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        primary_key=True,
        default=uuid.uuid4,
    )
    account_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("accounts.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    token: Mapped[str] = mapped_column(
        String(64),
        nullable=False,
        index=True,
    )
    expires_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        index=True,
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        nullable=False,
    )

    account: Mapped["Account"] = relationship(
        "Account",
        back_populates="tokens",
    )
