"""Pydantic input/output schemas for the account services."""

from turnstile.schemas.account import AccountCreate, AccountProfile, AccountUpdate

__all__ = [
    "AccountCreate",
    "AccountProfile",
    "AccountUpdate",
]
