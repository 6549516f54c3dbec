"""
services/user_service.py
------------------------
Business logic for user profiles and registration.
Password hashing happens before this layer; only hashes arrive here.
"""

from typing import Optional

from models.conditions import ConditionMap, ConditionMapSet, RawFragment, assignments, returning, where
from models.user import User
from repositories.user_repo import USER_COLUMNS, UserRepository
from utils.logger import get_logger

logger = get_logger(__name__)


class EmailTakenError(ValueError):
    """Another account already uses this email."""


def _normalize(email: str) -> str:
    return email.strip().lower()


class UserService:
    """Profile lookups, signup and email changes."""

    def __init__(self, repo: UserRepository):
        self.repo = repo

    def get_profile(self, user_id: str) -> Optional[User]:
        """Return the user without the password hash, or None."""
        return self.repo.find_by_key_val("id", user_id)

    def is_email_taken(self, email: str) -> bool:
        return self.repo.exists("email", _normalize(email))

    def signup(self, email: str, password_hash: str) -> User:
        """
        Register a new user.

        Raises:
            EmailTakenError: If the email is already registered.
        """
        email = _normalize(email)
        if self.repo.exists("email", email):
            raise EmailTakenError(f"Email already in use: {email}")
        self.repo.create(ConditionMapSet(
            inserts=[ConditionMap([("email", email), ("password", password_hash)])],
        ))
        logger.info(f"Registered user {email}")
        return self.repo.find_by_key_val("email", email)

    def change_email(self, user_id: str, new_email: str) -> Optional[User]:
        """
        Change a user's email while holding a row lock on that user.

        Returns:
            The updated user, or None if no such user exists.

        Raises:
            EmailTakenError: If another account uses `new_email`.
        """
        new_email = _normalize(new_email)
        tx = self.repo.begin()
        try:
            if self.repo.find_and_lock_by_key_val(tx, "id", user_id) is None:
                tx.rollback()
                return None
            if self.repo.exists_tx(tx, "email", new_email):
                raise EmailTakenError(f"Email already in use: {new_email}")
            rows = self.repo.update_by_map_tx(tx, where(
                ConditionMap([("id", user_id)]),
                set_map=assignments([
                    ("email", new_email),
                    ("updated_at", RawFragment("updated_at = NOW()")),
                ]),
                returning=returning(*USER_COLUMNS),
            ))
            tx.commit()
        except EmailTakenError:
            tx.rollback()
            raise
        except Exception as e:
            if not tx.closed:
                tx.rollback()
            logger.error(f"Failed to change email for user {user_id}: {e}")
            raise
        logger.info(f"Changed email for user {user_id}")
        return rows[0] if rows else None
