"""
db/transaction.py
-----------------
Caller-owned transaction bound to one pooled connection.

The connection stays checked out from `begin()` until `commit()` or
`rollback()` returns. Nothing is cleaned up implicitly: a transaction
that is never terminated keeps its connection.
"""

from typing import Any, Optional, Sequence

from db.errors import TransactionClosedError
from models.operators import Op
from utils.logger import get_logger

logger = get_logger(__name__)


class Transaction:
    """Handle exposing query / commit / rollback on a dedicated session."""

    def __init__(self, session):
        self._session = session
        self.closed = False

    @classmethod
    def begin(cls, pool) -> "Transaction":
        """Check out a session from `pool` and issue BEGIN on it."""
        session = pool.connect()
        try:
            session.query(Op.BEGIN)
        except Exception:
            session.release()
            raise
        logger.debug("Transaction started.")
        return cls(session)

    def _ensure_open(self) -> None:
        if self.closed:
            raise TransactionClosedError("Transaction already committed or rolled back.")

    def query(self, sql: str, args: Optional[Sequence[Any]] = None) -> list[dict]:
        self._ensure_open()
        return self._session.query(sql, args)

    def _finish(self, statement: str) -> None:
        self._ensure_open()
        self.closed = True
        try:
            self._session.query(statement)
        finally:
            self._session.release()
        logger.debug(f"Transaction finished with {statement}.")

    def commit(self) -> None:
        self._finish(Op.COMMIT)

    def rollback(self) -> None:
        self._finish(Op.ROLLBACK)
