import sys
from pathlib import Path

import pytest

# Ensure project root on sys.path
_PROJECT_ROOT = Path(__file__).resolve().parent.parent
if str(_PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(_PROJECT_ROOT))

_CONTROL = {"BEGIN", "COMMIT", "ROLLBACK"}


class FakeSession:
    """Dedicated connection handed out by FakePool.connect()."""

    def __init__(self, pool):
        self.pool = pool
        self.calls = []
        self.released = False

    def query(self, sql, args=None):
        self.calls.append((sql, list(args or [])))
        return self.pool._next(sql)

    def release(self):
        self.released = True


class FakePool:
    """
    Records every statement and answers from a queue of canned results.

    BEGIN / COMMIT / ROLLBACK never consume a queued result. Queue an
    exception instance to make the next statement raise it.
    """

    def __init__(self):
        self.calls = []
        self.sessions = []
        self._results = []

    def queue(self, *results):
        self._results.extend(results)

    def _next(self, sql):
        if sql in _CONTROL:
            return []
        if not self._results:
            return []
        result = self._results.pop(0)
        if isinstance(result, Exception):
            raise result
        return result

    def query(self, sql, args=None):
        self.calls.append((sql, list(args or [])))
        return self._next(sql)

    def connect(self):
        session = FakeSession(self)
        self.sessions.append(session)
        return session


@pytest.fixture()
def pool():
    return FakePool()


@pytest.fixture()
def repo(pool):
    from repositories.base_repo import Repository
    return Repository(pool, "users", columns=["id", "email"])


@pytest.fixture()
def user_repo(pool):
    from repositories.user_repo import UserRepository
    return UserRepository(pool)
