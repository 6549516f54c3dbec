"""
models/user.py
--------------
Domain model for application users.
"""

from dataclasses import dataclass
from datetime import datetime
from typing import Optional


@dataclass
class User:
    """
    Represents a registered user.

    Attributes:
        id: Database primary key (UUID as text).
        email: Lower-cased login email.
        password: Password hash; None when the narrow projection was used.
        created_at: Timestamp when the record was created.
        updated_at: Timestamp of the last update.
    """
    id: Optional[str] = None
    email: Optional[str] = None
    password: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @classmethod
    def from_row(cls, row: dict) -> "User":
        """Build a User from a dict row, ignoring columns the model lacks."""
        return cls(
            id=str(row["id"]) if row.get("id") is not None else None,
            email=row.get("email"),
            password=row.get("password"),
            created_at=row.get("created_at"),
            updated_at=row.get("updated_at"),
        )

    def __str__(self) -> str:
        return f"{self.email} ({self.id})"
