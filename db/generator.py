"""
db/generator.py
---------------
Turns condition maps into PostgreSQL text with `$n` placeholders plus the
argument list that goes with it.

Every function here is pure. Functions that bind arguments take a `start`
index so that a single placeholder counter runs left to right across the
whole statement: the first argument of a clause is numbered right after
the last argument of the clause emitted before it.
"""

from collections.abc import Sequence
from typing import Any, NamedTuple, Optional, assert_never

from db.errors import QueryShapeError, SchemaMismatchError
from models.conditions import (
    ConditionMap,
    ConditionMapSet,
    Literal,
    MergeFragment,
    OperatorFragment,
    RawFragment,
    as_value,
)
from models.operators import (
    NULL_OPERATORS,
    ORDER_DIRECTIONS,
    RANGE_OPERATORS,
    SET_OPERATORS,
    Op,
)


class Query(NamedTuple):
    """SQL text and its positional arguments."""
    sql: str
    args: list


def _empty() -> Query:
    return Query("", [])


class _Binder:
    """Appends arguments and hands out the matching placeholder."""

    def __init__(self, start: int):
        self.start = start
        self.args: list = []

    def __call__(self, value: Any) -> str:
        self.args.append(value)
        return f"${self.start + len(self.args) - 1}"


def _glue(parts: list[str], join: str) -> str:
    if join == Op.COMMA:
        return ", ".join(parts)
    return f" {join} ".join(parts)


def _bare_column(key: str) -> str:
    return key.rsplit(".", 1)[-1]


def _is_sequence(value: Any) -> bool:
    return isinstance(value, Sequence) and not isinstance(value, (str, bytes))


# ── Single map ────────────────────────────────────────────

def _render_merge(key: str, frag: MergeFragment, bind: _Binder, no_args: bool) -> str:
    if frag.column and not frag.operator:
        return frag.column
    col = _bare_column(key)
    if frag.column:
        return f"{col} {frag.operator} {frag.column}"
    if not frag.operator or not frag.values:
        raise QueryShapeError(
            f"Merge on '{key}' needs a column, or an operator with values"
        )
    if no_args:
        raise QueryShapeError(f"Merge on '{key}' binds values; not allowed here")
    chained = f" {frag.operator} ".join(bind(v) for v in frag.values)
    return f"{col} {frag.operator} {chained}"


def _render_literal(key: str, value: Any, comparison: str, bind: _Binder) -> str:
    if comparison in NULL_OPERATORS:
        return f"{key} {comparison}"
    if comparison in SET_OPERATORS:
        if not _is_sequence(value) or not value:
            raise QueryShapeError(
                f"'{key} {comparison}' needs a non-empty list, got {value!r}"
            )
        marks = ", ".join(bind(v) for v in value)
        return f"{key} {comparison} ({marks})"
    if comparison in RANGE_OPERATORS:
        if not _is_sequence(value) or len(value) != 2:
            raise QueryShapeError(
                f"'{key} {comparison}' needs a (low, high) pair, got {value!r}"
            )
        low, high = value
        return f"{key} {comparison} {bind(low)} AND {bind(high)}"
    return f"{key} {comparison} {bind(value)}"


def _render_inline(key: str, value: Any, comparison: str) -> str:
    if comparison in NULL_OPERATORS:
        return f"{key} {comparison}"
    if comparison in SET_OPERATORS or comparison in RANGE_OPERATORS:
        raise QueryShapeError(
            f"'{key} {comparison}' binds values; not allowed here"
        )
    return f"{key} {comparison} {value}"


def _render_entry(key: str, raw: Any, comparison: str, bind: _Binder, no_args: bool) -> str:
    value = as_value(raw)
    match value:
        case RawFragment(sql=sql):
            return sql
        case OperatorFragment(operator=operator, value=rhs):
            return f"{key} {operator} {rhs}"
        case MergeFragment():
            return f"{key} {comparison} {_render_merge(key, value, bind, no_args)}"
        case Literal(value=literal):
            if no_args:
                return _render_inline(key, literal, comparison)
            return _render_literal(key, literal, comparison, bind)
        case _:
            assert_never(value)


def render_map(m: ConditionMap, start: int = 1, no_args: bool = False) -> Query:
    """
    Render one ConditionMap.

    With `no_args`, literal values are written in place instead of being
    bound; JOIN ... ON conditions use this since they compare columns.

    >>> render_map(ConditionMap([("email", "a@b.com"), ("active", True)]))
    Query(sql='email = $1 AND active = $2', args=['a@b.com', True])
    """
    bind = _Binder(start)
    parts = [
        _render_entry(key, value, m.comparison, bind, no_args)
        for key, value in m.entries
    ]
    return Query(_glue(parts, m.join), bind.args)


# ── Groups: WHERE / JOIN ──────────────────────────────────

def _render_groups(maps: list[ConditionMap], join: str, start: int, no_args: bool) -> Query:
    groups: list[str] = []
    args: list = []
    for cm in maps:
        if not len(cm):
            continue
        q = render_map(cm, start + len(args), no_args)
        groups.append(f"({q.sql})")
        args.extend(q.args)
    return Query(_glue(groups, join), args)


def render_where(m: ConditionMapSet, start: int = 1) -> Query:
    """WHERE body: each non-empty map parenthesized, joined by `where_join`."""
    return _render_groups(m.where, m.where_join, start, no_args=False)


def render_join(m: ConditionMapSet) -> Query:
    """JOIN ... ON body. Values are column references, so nothing is bound."""
    return _render_groups(m.joins, m.join_join, 1, no_args=True)


# ── RETURNING / aggregates ────────────────────────────────

def render_returning(m: Optional[ConditionMap]) -> str:
    if m is None:
        return ""
    cols = []
    for key, value in m.entries:
        if value and m.comparison:
            cols.append(f"{key} {m.comparison} {value}")
        else:
            cols.append(key)
    return ", ".join(cols)


def render_sum(m: ConditionMap, aliased: bool = False) -> str:
    """SUM(col) per key; with `aliased`, each is named after its bare column."""
    if aliased:
        return ", ".join(f"SUM({k}) AS {_bare_column(k)}" for k in m.keys())
    return ", ".join(f"SUM({k})" for k in m.keys())


# ── UPDATE / INSERT ───────────────────────────────────────

def render_update(m: ConditionMapSet, start: int = 1) -> Query:
    """
    `SET ... [WHERE ...] [RETURNING ...]`.

    SET arguments come first, then WHERE arguments, matching the order the
    placeholders appear in the text.
    """
    if m.set_map is None or not len(m.set_map):
        raise QueryShapeError("UPDATE needs at least one assignment in set_map")
    s = render_map(m.set_map, start)
    w = render_where(m, start + len(s.args))
    sql = f"SET {s.sql}"
    if w.sql:
        sql += f" WHERE {w.sql}"
    r = render_returning(m.returning)
    if r:
        sql += f" RETURNING {r}"
    return Query(sql, s.args + w.args)


def _alignment(m: ConditionMapSet) -> list[str]:
    if not m.inserts:
        raise QueryShapeError("INSERT needs at least one row")
    alignment = m.inserts[0].keys()
    if not alignment:
        raise QueryShapeError("INSERT rows need at least one column")
    for i, row in enumerate(m.inserts[1:], start=1):
        if row.keys() != alignment:
            raise SchemaMismatchError(i, alignment, row.keys())
    return alignment


def render_insert(m: ConditionMapSet, start: int = 1) -> Query:
    """
    `(cols) VALUES (...), (...) [ON CONFLICT ...]`.

    Column order comes from the first row. Every other row must carry the
    same columns in the same order or SchemaMismatchError is raised before
    anything is rendered. RETURNING is only emitted on the DO UPDATE branch;
    asking for it on a plain or DO NOTHING insert raises QueryShapeError.
    """
    alignment = _alignment(m)
    bind = _Binder(start)
    tuples = []
    for row in m.inserts:
        marks = []
        for key, raw in row.entries:
            value = as_value(raw)
            if not isinstance(value, Literal):
                raise QueryShapeError(f"INSERT value for '{key}' must be a literal")
            marks.append(bind(value.value))
        tuples.append(f"({', '.join(marks)})")
    sql = f"({', '.join(alignment)}) VALUES {', '.join(tuples)}"
    args = bind.args

    has_set = m.set_map is not None and len(m.set_map) > 0
    if m.conflict:
        target = ", ".join(m.conflict)
        if not has_set:
            sql += f" ON CONFLICT ({target}) DO NOTHING"
        else:
            s = render_map(m.set_map, start + len(args))
            sql += f" ON CONFLICT ({target}) DO UPDATE SET {s.sql}"
            args = args + s.args
            r = render_returning(m.returning)
            if r:
                sql += f" RETURNING {r}"
    elif has_set:
        raise QueryShapeError("DO UPDATE needs conflict columns")
    if m.has_returning and not (m.conflict and has_set):
        raise QueryShapeError("RETURNING on INSERT needs an ON CONFLICT ... DO UPDATE")
    return Query(sql, args)


# ── ORDER BY / LIMIT / OFFSET ─────────────────────────────

def render_order(m: ConditionMapSet) -> str:
    if m.order is None or not len(m.order):
        return ""
    parts = []
    for col, direction in m.order.entries:
        if direction is None:
            parts.append(col)
            continue
        d = str(direction).upper()
        if d not in ORDER_DIRECTIONS:
            raise QueryShapeError(f"Bad sort direction for '{col}': {direction!r}")
        parts.append(f"{col} {d}")
    return "ORDER BY " + ", ".join(parts)


def _check_count(name: str, value: Any) -> int:
    if isinstance(value, bool) or not isinstance(value, int) or value < 0:
        raise QueryShapeError(f"{name} must be a non-negative integer, got {value!r}")
    return value


def render_pagination(m: ConditionMapSet) -> str:
    p = m.pagination
    if p is None:
        return ""
    parts = []
    if p.limit:
        parts.append(f"LIMIT {_check_count('limit', p.limit)}")
    if p.offset is not None:
        parts.append(f"OFFSET {_check_count('offset', p.offset)}")
    return " ".join(parts)


# ── Statements ────────────────────────────────────────────

def build_exists(table: str, key: str, value: Any) -> Query:
    return Query(f"SELECT EXISTS(SELECT 1 FROM {table} WHERE {key} = $1)", [value])


def build_select(
    table: str,
    m: ConditionMapSet,
    columns: str = "*",
    lock: bool = False,
) -> Query:
    """
    `SELECT cols FROM table [JOIN ... ON ...] [WHERE ...] [ORDER BY ...]
    [LIMIT/OFFSET] [FOR UPDATE]`.
    """
    parts = [f"SELECT {columns} FROM {table}"]
    j = render_join(m)
    if j.sql:
        if not m.join_table:
            raise QueryShapeError("join conditions given without join_table")
        parts.append(f"{m.join_table} ON {j.sql}")
    w = render_where(m)
    if w.sql:
        parts.append(f"WHERE {w.sql}")
    for clause in (render_order(m), render_pagination(m)):
        if clause:
            parts.append(clause)
    if lock:
        parts.append("FOR UPDATE")
    return Query(" ".join(parts), w.args)


def build_count(table: str, m: ConditionMapSet) -> Query:
    w = render_where(m)
    sql = f"SELECT COUNT(*) FROM {table}"
    if w.sql:
        sql += f" WHERE {w.sql}"
    return Query(sql, w.args)


def build_sum(table: str, sums: ConditionMap, m: ConditionMapSet) -> Query:
    if not len(sums):
        raise QueryShapeError("SUM needs at least one column")
    w = render_where(m)
    sql = f"SELECT {render_sum(sums, aliased=True)} FROM {table}"
    if w.sql:
        sql += f" WHERE {w.sql}"
    return Query(sql, w.args)


def build_insert(table: str, m: ConditionMapSet) -> Query:
    q = render_insert(m)
    return Query(f"INSERT INTO {table} {q.sql}", q.args)


def build_update(table: str, m: ConditionMapSet) -> Query:
    q = render_update(m)
    return Query(f"UPDATE {table} {q.sql}", q.args)


def build_delete(table: str, m: ConditionMapSet) -> Query:
    w = render_where(m)
    if not w.sql:
        raise QueryShapeError(f"Refusing DELETE on '{table}' without a WHERE clause")
    return Query(f"DELETE FROM {table} WHERE {w.sql}", w.args)
