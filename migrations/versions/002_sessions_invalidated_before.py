"""Add accounts.sessions_invalidated_before.

Revision ID: 002_sessions_invalidated_before
Revises: 001_accounts_and_tokens
Create Date: 2026-10-19

Session JWTs issued before this timestamp are rejected. Set on logout and
on password reset.
"""

from collections.abc import Sequence

import sqlalchemy as sa
from alembic import op

revision: str = "002_sessions_invalidated_before"
down_revision: str | None = "001_accounts_and_tokens"
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def upgrade() -> None:
    op.add_column(
        "accounts",
        sa.Column(
            "sessions_invalidated_before",
            sa.DateTime(timezone=True),
            nullable=True,
        ),
    )


def downgrade() -> None:
    with op.batch_alter_table("accounts") as batch_op:
        batch_op.drop_column("sessions_invalidated_before")
