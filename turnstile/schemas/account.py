"""Account input and output schemas.

AccountCreate and AccountUpdate carry caller input into AccountService.
AccountUpdate has PATCH semantics: a field the caller did not supply is
absent from ``model_fields_set`` and leaves the stored value untouched,
while a field supplied as None is present and clears the value.
"""

import uuid
from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict

from turnstile.models.account import Account


class AccountCreate(BaseModel):
    """Input for AccountService.create().

    Email and password are optional at the schema level so the service can
    report their absence as a ValidationError.

    Attributes:
        email: Account email address.
        password: Plain-text password, hashed before storage.
        given_name: Given name. Defaults to the email's local part.
        family_name: Family name.
    """

    model_config = ConfigDict(extra="forbid")

    email: str | None = None
    password: str | None = None
    given_name: str | None = None
    family_name: str | None = None


class AccountUpdate(BaseModel):
    """Partial update for AccountService.update().

    Unknown keys (including ``email``) are ignored; email is immutable.

    Attributes:
        given_name: New given name, or None to clear.
        family_name: New family name, or None to clear.
        password: New plain-text password. Empty or None leaves the
            credential unchanged.
    """

    model_config = ConfigDict(extra="ignore")

    given_name: str | None = None
    family_name: str | None = None
    password: str | None = None

    def present_fields(self) -> dict[str, Any]:
        """Return only the fields the caller explicitly supplied."""
        return {name: getattr(self, name) for name in self.model_fields_set}


class AccountProfile(BaseModel):
    """Public view of an account.

    ``is_privileged`` is only included for privileged accounts.
    """

    model_config = ConfigDict(extra="forbid")

    id: uuid.UUID
    email: str
    given_name: str | None
    family_name: str | None
    full_name: str | None
    is_verified: bool
    last_authenticated_at: datetime | None
    is_privileged: bool | None = None

    @classmethod
    def from_account(cls, account: Account) -> "AccountProfile":
        """Build a profile from an Account row."""
        return cls(
            id=account.id,
            email=account.email,
            given_name=account.given_name,
            family_name=account.family_name,
            full_name=account.full_name,
            is_verified=account.is_verified,
            last_authenticated_at=account.last_authenticated_at,
            is_privileged=True if account.is_privileged else None,
        )
