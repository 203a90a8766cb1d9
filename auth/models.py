"""
auth/models.py -- Domain dataclass for the credential store.

Pattern: Data class (pure data container, zero logic beyond shaping). The
store does the persistence; routes map User to the public response shape.

Layer rule: no imports from api/, core/ or resources/.
"""

from __future__ import annotations

from dataclasses import dataclass


@dataclass
class User:
    """A registered identity.

    email is unique and compared case-sensitively, exactly as stored.
    password_hash is a bcrypt string; the plaintext is never kept anywhere.
    id and created_at are None until the store assigns them in append().
    """

    email: str
    name: str
    password_hash: str
    id: int | None = None
    created_at: str | None = None  # ISO 8601, UTC

    def public_view(self) -> dict:
        """Fields safe to return to clients. Never includes the hash."""
        return {"id": self.id, "email": self.email, "name": self.name}
