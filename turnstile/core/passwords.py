"""One-way credential hashing.

The account layer only ever sees a ``PasswordHasher``; plaintext passwords
are hashed on the way in and compared through ``verify``. bcrypt is the
shipped implementation.
"""

from typing import Protocol

import bcrypt

from turnstile.core.config import settings

# Pre-computed bcrypt hash for timing-safe comparison on account-not-found.
# Security: prevents account enumeration via response time differences.
# Pre-generated to avoid ~300ms bcrypt computation on every startup.
DUMMY_HASH = "$2b$12$ZP2PVB8yI35X.mkRqcUPUuSzJA1CNRt4dZ7X3cyrfJu.2S3w.Qen2"


class PasswordHasher(Protocol):
    """Hash-and-verify capability injected into the account services."""

    def hash(self, password: str) -> str:
        """Return a one-way hash of ``password``."""
        ...

    def verify(self, password: str, password_hash: str) -> bool:
        """Return True if ``password`` matches ``password_hash``."""
        ...


class BcryptPasswordHasher:
    """bcrypt-backed PasswordHasher.

    Args:
        rounds: bcrypt cost factor. Defaults to ``settings.bcrypt_rounds``.
    """

    def __init__(self, rounds: int | None = None) -> None:
        self._rounds = rounds if rounds is not None else settings.bcrypt_rounds

    def hash(self, password: str) -> str:
        return bcrypt.hashpw(
            password.encode(), bcrypt.gensalt(rounds=self._rounds)
        ).decode()

    def verify(self, password: str, password_hash: str) -> bool:
        try:
            return bcrypt.checkpw(password.encode(), password_hash.encode())
        except ValueError:
            # Malformed stored hash
            return False
