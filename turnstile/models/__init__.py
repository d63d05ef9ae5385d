"""SQLAlchemy ORM models for Turnstile.

All models are exported from this module for convenient imports:
    from turnstile.models import Account, AccountToken

Models are organized by domain:
- account.py: Account
- account_token.py: AccountToken (FK to accounts, cascade delete)
"""

from turnstile.models.account import Account
from turnstile.models.account_token import AccountToken
from turnstile.models.base import Base, TimestampMixin

__all__ = [
    # Base classes
    "Base",
    "TimestampMixin",
    # Models
    "Account",
    "AccountToken",
]
