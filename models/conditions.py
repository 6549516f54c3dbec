"""
models/conditions.py
--------------------
Condition model consumed by the query generator.

A ConditionMap is an ordered list of (column, value) pairs plus the
operators used to compare each pair and to glue the pairs together.
A ConditionMapSet bundles every clause of one statement.

Entry order is significant: it fixes placeholder numbering and the
column order of INSERT statements.
"""

from dataclasses import dataclass, field
from typing import Any, Iterable, Mapping, Optional, Sequence, Union

from models.operators import Op


# ── Values ────────────────────────────────────────────────

@dataclass(frozen=True)
class Literal:
    """A value bound as a placeholder argument."""
    value: Any


@dataclass(frozen=True)
class RawFragment:
    """SQL text emitted verbatim in place of the whole entry. Never bound."""
    sql: str


@dataclass(frozen=True)
class OperatorFragment:
    """
    Emits ``key operator value`` verbatim.

    Used for column-to-column comparisons such as
    ``users.id = orders.user_id``; the value is not bound.
    """
    operator: str
    value: Any


@dataclass(frozen=True)
class MergeFragment:
    """
    Right-hand side built from the column itself.

    Shapes:
        MergeFragment(column="other")                -> key = other
        MergeFragment(Op.PLUS, column="bonus")       -> key = key + bonus
        MergeFragment(Op.PLUS, values=(10, 5))       -> key = key + $1 + $2
    """
    operator: Optional[str] = None
    values: Sequence[Any] = ()
    column: Optional[str] = None


Value = Union[Literal, RawFragment, OperatorFragment, MergeFragment]

_FRAGMENTS = (Literal, RawFragment, OperatorFragment, MergeFragment)


def as_value(value: Any) -> Value:
    """Wrap a plain Python value as a Literal; fragments pass through."""
    if isinstance(value, _FRAGMENTS):
        return value
    return Literal(value)


# ── Maps ──────────────────────────────────────────────────

Entries = Union[Mapping[str, Any], Iterable[tuple[str, Any]]]


@dataclass
class ConditionMap:
    """
    Ordered column/value conditions for a single clause.

    Attributes:
        entries: (column, value) pairs, or a dict in insertion order.
        join: Connective placed between entries (AND, OR or ',').
        comparison: Operator applied between each column and its value.
    """
    entries: Entries = ()
    join: str = Op.AND
    comparison: str = Op.EQUAL

    def __post_init__(self) -> None:
        if isinstance(self.entries, Mapping):
            pairs = self.entries.items()
        else:
            pairs = self.entries
        self.entries = tuple((str(k), v) for k, v in pairs)

    def __len__(self) -> int:
        return len(self.entries)

    def __iter__(self):
        return iter(self.entries)

    def keys(self) -> list[str]:
        """Column names in entry order."""
        return [k for k, _ in self.entries]

    def get(self, key: str, default: Any = None) -> Any:
        for k, v in self.entries:
            if k == key:
                return v
        return default


@dataclass(frozen=True)
class Pagination:
    """LIMIT / OFFSET settings. A limit of 0 or None means no LIMIT."""
    limit: Optional[int] = None
    offset: Optional[int] = None


@dataclass
class ConditionMapSet:
    """
    Full statement descriptor.

    Attributes:
        inserts: One map per row to insert; all rows share the first row's keys.
        conflict: Columns of the ON CONFLICT target (upsert).
        where: WHERE groups, each parenthesized and joined by `where_join`.
        set_map: UPDATE assignments (also the DO UPDATE SET of an upsert).
        returning: RETURNING columns.
        joins: JOIN ... ON groups joined by `join_join`.
        join_table: Join head such as "LEFT JOIN orders o"; required with joins.
        order: ORDER BY column -> direction.
        pagination: LIMIT / OFFSET.
    """
    inserts: list[ConditionMap] = field(default_factory=list)
    conflict: Sequence[str] = ()
    where: list[ConditionMap] = field(default_factory=list)
    where_join: str = Op.AND
    set_map: Optional[ConditionMap] = None
    returning: Optional[ConditionMap] = None
    joins: list[ConditionMap] = field(default_factory=list)
    join_join: str = Op.AND
    join_table: Optional[str] = None
    order: Optional[ConditionMap] = None
    pagination: Optional[Pagination] = None

    @property
    def has_returning(self) -> bool:
        return self.returning is not None and len(self.returning) > 0


def where(*maps: ConditionMap, join: str = Op.AND, **kwargs) -> ConditionMapSet:
    """Shortcut for a ConditionMapSet that only carries WHERE groups."""
    return ConditionMapSet(where=list(maps), where_join=join, **kwargs)


def returning(*columns: str) -> ConditionMap:
    """RETURNING map listing bare column names."""
    return ConditionMap([(c, None) for c in columns], join=Op.COMMA)


def assignments(entries: Entries) -> ConditionMap:
    """SET map: comma-joined equality assignments."""
    return ConditionMap(entries, join=Op.COMMA, comparison=Op.EQUAL)
