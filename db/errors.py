"""
db/errors.py
------------
Exceptions raised by the database layer itself.
Driver errors (psycopg2.Error and subclasses) are never wrapped.
"""


class QueryShapeError(ValueError):
    """A condition map cannot be rendered into valid SQL."""


class SchemaMismatchError(QueryShapeError):
    """Insert rows do not share the first row's ordered column list."""

    def __init__(self, row_index: int, expected: list[str], actual: list[str]):
        self.row_index = row_index
        self.expected = expected
        self.actual = actual
        super().__init__(
            f"Insert row {row_index} has columns {actual}, expected {expected}"
        )


class TransactionRequiredError(TypeError):
    """A transactional or row-locking call was made without a Transaction."""


class TransactionClosedError(RuntimeError):
    """The transaction was already committed or rolled back."""
