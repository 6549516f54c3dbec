"""
repositories/user_repo.py
--------------------------
Data access layer for user records.
"""

from models.user import User
from repositories.base_repo import Repository

USER_TABLE = "users"

# Columns returned when preload is False; the password hash is left out.
USER_COLUMNS = ("id", "email", "created_at", "updated_at")


class UserRepository(Repository[User]):
    """Repository for the users table."""

    table_name = USER_TABLE
    columns = USER_COLUMNS
    record_factory = User.from_row
