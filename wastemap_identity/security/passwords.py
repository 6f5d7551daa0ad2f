"""bcrypt-backed password hashing."""

from __future__ import annotations

import bcrypt

MIN_PASSWORD_LENGTH = 6
# bcrypt only reads the first 72 bytes of its input.
MAX_PASSWORD_BYTES = 72


class PasswordHasher:
    """Salted adaptive hashing with a fixed bcrypt work factor."""

    def __init__(self, rounds: int = 10) -> None:
        self._rounds = rounds
        # Verified against when the email is unknown so both login failure
        # paths spend the same bcrypt time.
        self._dummy_hash = self.hash("not-a-real-password")

    def hash(self, plaintext: str) -> str:
        salt = bcrypt.gensalt(rounds=self._rounds)
        return bcrypt.hashpw(plaintext.encode("utf-8"), salt).decode("utf-8")

    def verify(self, plaintext: str, password_hash: str) -> bool:
        """Return ``True`` when ``plaintext`` matches; malformed hashes never match."""
        try:
            return bcrypt.checkpw(plaintext.encode("utf-8"), password_hash.encode("utf-8"))
        except ValueError:
            return False

    def burn(self, plaintext: str) -> None:
        self.verify(plaintext, self._dummy_hash)
