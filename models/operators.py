"""
models/operators.py
-------------------
SQL operator and keyword vocabulary shared by the condition model,
the query generator and the repositories.
"""


class Op:
    """Namespace of SQL operator strings."""

    # ── Comparison ────────────────────────────────────────
    EQUAL = "="
    NOT_EQUAL = "!="
    GREATER_THAN = ">"
    GREATER_THAN_OR_EQUAL = ">="
    LESS_THAN = "<"
    LESS_THAN_OR_EQUAL = "<="
    LIKE = "LIKE"
    NOT_LIKE = "NOT LIKE"
    ILIKE = "ILIKE"
    IN = "IN"
    NOT_IN = "NOT IN"
    IS_NULL = "IS NULL"
    IS_NOT_NULL = "IS NOT NULL"
    BETWEEN = "BETWEEN"
    NOT_BETWEEN = "NOT BETWEEN"

    # ── Connectives ───────────────────────────────────────
    AND = "AND"
    OR = "OR"
    NOT = "NOT"
    COMMA = ","

    # ── Arithmetic / string ───────────────────────────────
    PLUS = "+"
    MINUS = "-"
    MULTIPLY = "*"
    DIVIDE = "/"
    CONCAT = "||"
    AS = "AS"

    # ── Ordering ──────────────────────────────────────────
    ASC = "ASC"
    DESC = "DESC"

    # ── Transaction control ───────────────────────────────
    BEGIN = "BEGIN"
    COMMIT = "COMMIT"
    ROLLBACK = "ROLLBACK"


SET_OPERATORS = frozenset({Op.IN, Op.NOT_IN})
RANGE_OPERATORS = frozenset({Op.BETWEEN, Op.NOT_BETWEEN})
NULL_OPERATORS = frozenset({Op.IS_NULL, Op.IS_NOT_NULL})
ORDER_DIRECTIONS = frozenset({Op.ASC, Op.DESC})
