"""
repositories/base_repo.py
-------------------------
Generic table-bound repository built on the query generator.

Every verb comes in two flavours: the plain one runs on the shared pool,
the `_tx` one runs on a caller-owned Transaction. Row-locking reads only
exist in the transactional flavour, because a FOR UPDATE lock taken on
the bare pool is released as soon as the statement finishes.
"""

from typing import Any, Callable, Generic, Optional, Protocol, Sequence, TypeVar, Union

from db.errors import TransactionRequiredError
from db.generator import (
    Query,
    build_count,
    build_delete,
    build_exists,
    build_insert,
    build_select,
    build_sum,
    build_update,
)
from db.transaction import Transaction
from models.conditions import ConditionMap, ConditionMapSet, where
from utils.logger import get_logger

logger = get_logger(__name__)

T = TypeVar("T")


class Executor(Protocol):
    def query(self, sql: str, args: Optional[Sequence[Any]] = None) -> list[dict]: ...


class PoolLike(Executor, Protocol):
    def connect(self) -> Any: ...


class Repository(Generic[T]):
    """
    CRUD, locking reads, counts and raw execution for one table.

    The table, projection and record factory can be passed in, or declared
    once on a subclass as class attributes; constructor arguments win.

    Args:
        pool: Anything exposing `query(sql, args)` and `connect()`.
        table_name: Table every statement targets.
        columns: Narrow projection used when `preload` is False.
            None selects all columns; an empty list is rejected.
        record_factory: Turns a row dict into a record. Rows are
            returned as dicts when omitted.
    """

    table_name: str = ""
    columns: Optional[Sequence[str]] = None
    record_factory: Optional[Callable[[dict], T]] = None

    def __init__(
        self,
        pool: PoolLike,
        table_name: Optional[str] = None,
        columns: Optional[Sequence[str]] = None,
        record_factory: Optional[Callable[[dict], T]] = None,
    ):
        cls = type(self)
        table_name = table_name or cls.table_name
        if columns is None:
            columns = cls.columns
        if record_factory is None:
            # Read off the class so a plain function is not bound to self.
            record_factory = cls.record_factory

        if not table_name:
            raise ValueError("Repository needs a table name")
        if columns is not None and not len(columns):
            raise ValueError("columns must be None (all columns) or non-empty")
        self.pool = pool
        self.table_name = table_name
        self.columns = list(columns) if columns is not None else None
        self.record_factory = record_factory

    # ── HELPERS ───────────────────────────────────────────

    def _projection(self, preload: bool) -> str:
        if preload or self.columns is None:
            return "*"
        return ", ".join(self.columns)

    def _decode(self, row: dict) -> Union[T, dict]:
        return self.record_factory(row) if self.record_factory else row

    def _one(self, rows: list[dict]) -> Optional[Union[T, dict]]:
        return self._decode(rows[0]) if rows else None

    def _all(self, rows: list[dict]) -> list:
        return [self._decode(r) for r in rows]

    def _query(self, executor: Executor, q: Query) -> list[dict]:
        logger.debug(f"[{self.table_name}] {q.sql} {q.args}")
        return executor.query(q.sql, q.args)

    @staticmethod
    def _require_tx(tx: Any) -> Transaction:
        if not isinstance(tx, Transaction):
            raise TransactionRequiredError(
                f"Expected an open Transaction, got {type(tx).__name__}"
            )
        return tx

    @staticmethod
    def _key_val(key: str, val: Any) -> ConditionMapSet:
        return where(ConditionMap([(key, val)]))

    # ── TRANSACTIONS ──────────────────────────────────────

    def begin(self) -> Transaction:
        """Start a transaction on a dedicated connection. Caller must end it."""
        return Transaction.begin(self.pool)

    # ── EXISTS ────────────────────────────────────────────

    def _exists(self, executor: Executor, key: str, value: Any) -> bool:
        rows = self._query(executor, build_exists(self.table_name, key, value))
        return bool(rows[0].get("exists")) if rows else False

    def exists(self, key: str, value: Any) -> bool:
        """True if at least one row has `key = value`."""
        return self._exists(self.pool, key, value)

    def exists_tx(self, tx: Transaction, key: str, value: Any) -> bool:
        return self._exists(self._require_tx(tx), key, value)

    # ── CREATE ────────────────────────────────────────────

    def create(self, m: ConditionMapSet) -> None:
        """
        Insert one or more rows, optionally as an upsert.

        Raises:
            SchemaMismatchError: If the rows do not share the same columns.
        """
        self._query(self.pool, build_insert(self.table_name, m))

    def create_tx(self, tx: Transaction, m: ConditionMapSet) -> None:
        self._query(self._require_tx(tx), build_insert(self.table_name, m))

    # ── READ ──────────────────────────────────────────────

    def find_by_key_val(self, key: str, val: Any, preload: bool = False):
        """First row where `key = val`, or None."""
        q = build_select(self.table_name, self._key_val(key, val), self._projection(preload))
        return self._one(self._query(self.pool, q))

    def find_by_key_val_tx(self, tx: Transaction, key: str, val: Any, preload: bool = False):
        q = build_select(self.table_name, self._key_val(key, val), self._projection(preload))
        return self._one(self._query(self._require_tx(tx), q))

    def find_all_by_key_val(self, key: str, val: Any, preload: bool = False) -> list:
        q = build_select(self.table_name, self._key_val(key, val), self._projection(preload))
        return self._all(self._query(self.pool, q))

    def find_all_by_key_val_tx(self, tx: Transaction, key: str, val: Any, preload: bool = False) -> list:
        q = build_select(self.table_name, self._key_val(key, val), self._projection(preload))
        return self._all(self._query(self._require_tx(tx), q))

    def find_and_lock_by_key_val(self, tx: Transaction, key: str, val: Any, preload: bool = False):
        """Like find_by_key_val, holding a FOR UPDATE lock until `tx` ends."""
        q = build_select(
            self.table_name, self._key_val(key, val), self._projection(preload), lock=True
        )
        return self._one(self._query(self._require_tx(tx), q))

    def find_all_and_lock_by_key_val(self, tx: Transaction, key: str, val: Any, preload: bool = False) -> list:
        q = build_select(
            self.table_name, self._key_val(key, val), self._projection(preload), lock=True
        )
        return self._all(self._query(self._require_tx(tx), q))

    def find_by_map(self, m: ConditionMapSet, preload: bool = False):
        """
        First row matching the where-maps (after ordering), or None.

        No LIMIT is added: every matching row is fetched and all but the
        first are discarded. Pass `pagination` to narrow the read.
        """
        q = build_select(self.table_name, m, self._projection(preload))
        return self._one(self._query(self.pool, q))

    def find_by_map_tx(self, tx: Transaction, m: ConditionMapSet, preload: bool = False):
        q = build_select(self.table_name, m, self._projection(preload))
        return self._one(self._query(self._require_tx(tx), q))

    def find_all_by_map(self, m: ConditionMapSet, preload: bool = False) -> list:
        """All rows matching the where-maps, with joins, ordering and pagination."""
        q = build_select(self.table_name, m, self._projection(preload))
        return self._all(self._query(self.pool, q))

    def find_all_by_map_tx(self, tx: Transaction, m: ConditionMapSet, preload: bool = False) -> list:
        q = build_select(self.table_name, m, self._projection(preload))
        return self._all(self._query(self._require_tx(tx), q))

    def find_and_lock_by_map(self, tx: Transaction, m: ConditionMapSet, preload: bool = False):
        """
        First matching row, read FOR UPDATE inside `tx`.

        The lock covers every row the where-maps match, not just the one
        returned. Use `pagination` (e.g. `Pagination(limit=1)`) to lock one.
        """
        q = build_select(self.table_name, m, self._projection(preload), lock=True)
        return self._one(self._query(self._require_tx(tx), q))

    def find_all_and_lock_by_map(self, tx: Transaction, m: ConditionMapSet, preload: bool = False) -> list:
        q = build_select(self.table_name, m, self._projection(preload), lock=True)
        return self._all(self._query(self._require_tx(tx), q))

    # ── UPDATE ────────────────────────────────────────────

    def _update(self, executor: Executor, m: ConditionMapSet) -> Optional[list]:
        rows = self._query(executor, build_update(self.table_name, m))
        if m.has_returning:
            return self._all(rows)
        return None

    def update_by_map(self, m: ConditionMapSet) -> Optional[list]:
        """
        Apply `m.set_map` to rows matching the where-maps.

        Returns:
            The RETURNING rows (possibly empty) when `m.returning` has
            columns, otherwise None.
        """
        return self._update(self.pool, m)

    def update_by_map_tx(self, tx: Transaction, m: ConditionMapSet) -> Optional[list]:
        return self._update(self._require_tx(tx), m)

    # ── AGGREGATES ────────────────────────────────────────

    def _count(self, executor: Executor, m: ConditionMapSet) -> int:
        rows = self._query(executor, build_count(self.table_name, m))
        return int(rows[0]["count"]) if rows else 0

    def count_by_map(self, m: ConditionMapSet) -> int:
        """Rows matching the where-maps; the whole table when there are none."""
        return self._count(self.pool, m)

    def count_by_map_tx(self, tx: Transaction, m: ConditionMapSet) -> int:
        return self._count(self._require_tx(tx), m)

    def _sum(self, executor: Executor, m: ConditionMapSet, columns: Sequence[str]) -> dict:
        q = build_sum(self.table_name, ConditionMap([(c, None) for c in columns]), m)
        rows = self._query(executor, q)
        return rows[0] if rows else {}

    def sum_by_map(self, m: ConditionMapSet, *columns: str) -> dict:
        """SUM of each column over matching rows, keyed by bare column name."""
        return self._sum(self.pool, m, columns)

    def sum_by_map_tx(self, tx: Transaction, m: ConditionMapSet, *columns: str) -> dict:
        return self._sum(self._require_tx(tx), m, columns)

    # ── DELETE ────────────────────────────────────────────

    def delete_by_map(self, m: ConditionMapSet) -> None:
        """Delete rows matching the where-maps. An empty filter is refused."""
        self._query(self.pool, build_delete(self.table_name, m))

    def delete_by_map_tx(self, tx: Transaction, m: ConditionMapSet) -> None:
        self._query(self._require_tx(tx), build_delete(self.table_name, m))

    # ── RAW ───────────────────────────────────────────────

    def _execute(self, executor: Executor, sql: str, args: Optional[Sequence[Any]]):
        rows = self._query(executor, Query(sql, list(args or [])))
        if len(rows) == 1:
            return self._decode(rows[0])
        return self._all(rows)

    def execute(self, sql: str, args: Optional[Sequence[Any]] = None):
        """
        Run hand-written SQL.

        Returns:
            A single record when exactly one row comes back, otherwise a
            list (empty for zero rows).
        """
        return self._execute(self.pool, sql, args)

    def execute_tx(self, tx: Transaction, sql: str, args: Optional[Sequence[Any]] = None):
        return self._execute(self._require_tx(tx), sql, args)
