"""
Repository tests against a recording fake pool.
"""

import pytest

from db.errors import QueryShapeError, SchemaMismatchError, TransactionRequiredError
from models.conditions import (
    ConditionMap,
    ConditionMapSet,
    Pagination,
    assignments,
    returning,
    where,
)
from models.operators import Op
from models.user import User
from repositories.base_repo import Repository


def _by_email(email="a@b.com", **kwargs):
    return where(ConditionMap([("email", email)]), **kwargs)


class TestConstruction:

    def test_requires_table_name(self, pool):
        with pytest.raises(ValueError):
            Repository(pool, "")

    def test_rejects_empty_projection(self, pool):
        with pytest.raises(ValueError):
            Repository(pool, "users", columns=[])

    def test_default_projection_is_all_columns(self, pool):
        repo = Repository(pool, "users")
        repo.find_by_key_val("id", 1)
        assert pool.calls == [("SELECT * FROM users WHERE (id = $1)", [1])]

    def test_subclass_declares_table_as_class_attributes(self, pool):
        def to_email(row):
            return row["email"]

        class EmailRepo(Repository[str]):
            table_name = "accounts"
            columns = ("email",)
            record_factory = to_email

        repo = EmailRepo(pool)
        pool.queue([{"email": "a@b.com"}])
        assert repo.find_by_key_val("id", 1) == "a@b.com"
        assert pool.calls == [("SELECT email FROM accounts WHERE (id = $1)", [1])]

    def test_constructor_arguments_override_class_attributes(self, pool):
        class AccountRepo(Repository):
            table_name = "accounts"
            columns = ("email",)

        repo = AccountRepo(pool, "archived_accounts", columns=["id"])
        repo.find_by_key_val("id", 1)
        assert pool.calls == [("SELECT id FROM archived_accounts WHERE (id = $1)", [1])]

    def test_subclass_without_table_name_is_rejected(self, pool):
        class Nameless(Repository):
            pass

        with pytest.raises(ValueError):
            Nameless(pool)

    def test_user_repository_defaults(self, user_repo):
        assert user_repo.table_name == "users"
        assert user_repo.columns == ["id", "email", "created_at", "updated_at"]
        assert user_repo._decode({"id": "u1", "email": "a@b.com"}) == User(id="u1", email="a@b.com")


class TestExists:

    def test_true(self, repo, pool):
        pool.queue([{"exists": True}])
        assert repo.exists("email", "a@b.com") is True
        assert pool.calls == [("SELECT EXISTS(SELECT 1 FROM users WHERE email = $1)", ["a@b.com"])]

    def test_false_when_missing(self, repo, pool):
        pool.queue([{"exists": False}])
        assert repo.exists("email", "x") is False

    def test_false_when_no_rows(self, repo):
        assert repo.exists("email", "x") is False


class TestCreate:

    def test_batch_insert(self, repo, pool):
        repo.create(ConditionMapSet(inserts=[
            ConditionMap({"email": "a", "pass": "x"}),
            ConditionMap({"email": "b", "pass": "y"}),
        ]))
        assert pool.calls == [
            ("INSERT INTO users (email, pass) VALUES ($1, $2), ($3, $4)", ["a", "x", "b", "y"]),
        ]

    def test_mismatch_fails_before_any_query(self, repo, pool):
        with pytest.raises(SchemaMismatchError):
            repo.create(ConditionMapSet(inserts=[
                ConditionMap({"email": "a", "pass": "x"}),
                ConditionMap({"pass": "y", "email": "b"}),
            ]))
        assert pool.calls == []

    def test_upsert_returns_nothing(self, repo, pool):
        pool.queue([{"id": 1}])
        result = repo.create(ConditionMapSet(
            inserts=[ConditionMap({"email": "a"})],
            conflict=["email"],
            set_map=assignments({"email": "a"}),
            returning=returning("id"),
        ))
        assert result is None
        assert pool.calls[0][0].endswith("ON CONFLICT (email) DO UPDATE SET email = $2 RETURNING id")

    def test_create_tx_runs_on_session(self, repo, pool):
        tx = repo.begin()
        repo.create_tx(tx, ConditionMapSet(inserts=[ConditionMap({"email": "a"})]))
        assert pool.calls == []
        assert pool.sessions[0].calls[-1] == ("INSERT INTO users (email) VALUES ($1)", ["a"])


class TestFind:

    def test_by_key_val_uses_narrow_projection(self, repo, pool):
        pool.queue([{"id": 1, "email": "a@b.com"}])
        row = repo.find_by_key_val("email", "a@b.com")
        assert row == {"id": 1, "email": "a@b.com"}
        assert pool.calls == [("SELECT id, email FROM users WHERE (email = $1)", ["a@b.com"])]

    def test_by_key_val_preload_selects_everything(self, repo, pool):
        repo.find_by_key_val("email", "a@b.com", preload=True)
        assert pool.calls[0][0] == "SELECT * FROM users WHERE (email = $1)"

    def test_by_key_val_missing_is_none(self, repo):
        assert repo.find_by_key_val("email", "nobody") is None

    def test_all_by_key_val(self, repo, pool):
        pool.queue([{"id": 1}, {"id": 2}])
        assert repo.find_all_by_key_val("active", True) == [{"id": 1}, {"id": 2}]

    def test_all_by_map_orders_and_paginates(self, repo, pool):
        m = where(
            ConditionMap([("active", True)]),
            ConditionMap([("id", [1, 2, 3])], comparison=Op.IN),
            order=ConditionMap([("id", Op.DESC)]),
            pagination=Pagination(limit=2, offset=4),
        )
        repo.find_all_by_map(m)
        assert pool.calls == [(
            "SELECT id, email FROM users WHERE (active = $1) AND (id IN ($2, $3, $4)) "
            "ORDER BY id DESC LIMIT 2 OFFSET 4",
            [True, 1, 2, 3],
        )]

    def test_by_map_returns_first_row(self, repo, pool):
        pool.queue([{"id": 1}, {"id": 2}])
        assert repo.find_by_map(_by_email()) == {"id": 1}

    def test_by_map_without_where_scans_table(self, repo, pool):
        repo.find_all_by_map(ConditionMapSet(), preload=True)
        assert pool.calls == [("SELECT * FROM users", [])]

    def test_record_factory_decodes_rows(self, user_repo, pool):
        pool.queue([{"id": "u1", "email": "a@b.com"}])
        user = user_repo.find_by_key_val("id", "u1")
        assert isinstance(user, User)
        assert user.email == "a@b.com"
        assert pool.calls[0][0] == "SELECT id, email, created_at, updated_at FROM users WHERE (id = $1)"

    def test_by_key_val_tx_runs_on_session(self, repo, pool):
        tx = repo.begin()
        pool.queue([{"id": 1, "email": "a"}])
        assert repo.find_by_key_val_tx(tx, "id", 1) == {"id": 1, "email": "a"}
        assert pool.sessions[0].calls[-1] == ("SELECT id, email FROM users WHERE (id = $1)", [1])
        assert pool.calls == []

    def test_all_by_key_val_tx_runs_on_session(self, repo, pool):
        tx = repo.begin()
        pool.queue([{"id": 1}, {"id": 2}])
        assert repo.find_all_by_key_val_tx(tx, "active", True) == [{"id": 1}, {"id": 2}]
        assert pool.sessions[0].calls[-1] == ("SELECT id, email FROM users WHERE (active = $1)", [True])
        assert pool.calls == []

    def test_by_map_tx_runs_on_session(self, repo, pool):
        tx = repo.begin()
        pool.queue([{"id": 1}, {"id": 2}])
        assert repo.find_by_map_tx(tx, _by_email()) == {"id": 1}
        assert pool.sessions[0].calls[-1] == ("SELECT id, email FROM users WHERE (email = $1)", ["a@b.com"])
        assert pool.calls == []

    def test_all_by_map_tx_runs_on_session(self, repo, pool):
        tx = repo.begin()
        pool.queue([{"id": 1}, {"id": 2}])
        rows = repo.find_all_by_map_tx(tx, _by_email(pagination=Pagination(limit=2)), preload=True)
        assert rows == [{"id": 1}, {"id": 2}]
        assert pool.sessions[0].calls[-1] == ("SELECT * FROM users WHERE (email = $1) LIMIT 2", ["a@b.com"])
        assert pool.calls == []


class TestLocking:

    def test_lock_requires_transaction(self, repo, pool):
        with pytest.raises(TransactionRequiredError):
            repo.find_and_lock_by_key_val(pool, "id", 1)
        with pytest.raises(TransactionRequiredError):
            repo.find_all_and_lock_by_map(None, _by_email())
        assert pool.calls == []

    def test_lock_by_key_val(self, repo, pool):
        tx = repo.begin()
        pool.queue([{"id": 1, "email": "a"}])
        row = repo.find_and_lock_by_key_val(tx, "id", 1)
        assert row == {"id": 1, "email": "a"}
        session = pool.sessions[0]
        assert session.calls == [
            ("BEGIN", []),
            ("SELECT id, email FROM users WHERE (id = $1) FOR UPDATE", [1]),
        ]

    def test_lock_all_by_map_puts_for_update_last(self, repo, pool):
        tx = repo.begin()
        m = _by_email(order=ConditionMap([("id", "asc")]), pagination=Pagination(limit=10))
        repo.find_all_and_lock_by_map(tx, m, preload=True)
        sql = pool.sessions[0].calls[-1][0]
        assert sql == "SELECT * FROM users WHERE (email = $1) ORDER BY id ASC LIMIT 10 FOR UPDATE"

    def test_lock_all_by_key_val(self, repo, pool):
        tx = repo.begin()
        pool.queue([{"id": 1, "email": "a"}, {"id": 2, "email": "a"}])
        rows = repo.find_all_and_lock_by_key_val(tx, "email", "a")
        assert len(rows) == 2
        assert pool.sessions[0].calls[-1] == ("SELECT id, email FROM users WHERE (email = $1) FOR UPDATE", ["a"])
        assert pool.calls == []

    def test_lock_by_map_narrowed_to_one_row(self, repo, pool):
        tx = repo.begin()
        repo.find_and_lock_by_map(tx, _by_email(pagination=Pagination(limit=1)))
        sql = pool.sessions[0].calls[-1][0]
        assert sql == "SELECT id, email FROM users WHERE (email = $1) LIMIT 1 FOR UPDATE"

    def test_lock_after_commit_is_refused(self, repo, pool):
        from db.errors import TransactionClosedError
        tx = repo.begin()
        tx.commit()
        with pytest.raises(TransactionClosedError):
            repo.find_and_lock_by_map(tx, _by_email())

    def test_tx_variants_reject_the_pool(self, repo, pool):
        with pytest.raises(TransactionRequiredError):
            repo.update_by_map_tx(pool, _by_email(set_map=assignments({"email": "b"})))
        with pytest.raises(TransactionRequiredError):
            repo.execute_tx(pool, "SELECT 1")


class TestUpdate:

    def test_returning_yields_rows(self, repo, pool):
        pool.queue([{"id": 1, "email": "b"}])
        rows = repo.update_by_map(_by_email(
            set_map=assignments({"email": "b"}),
            returning=returning("id", "email"),
        ))
        assert rows == [{"id": 1, "email": "b"}]
        assert pool.calls == [(
            "UPDATE users SET email = $1 WHERE (email = $2) RETURNING id, email",
            ["b", "a@b.com"],
        )]

    def test_returning_with_no_match_is_empty_list(self, repo):
        rows = repo.update_by_map(_by_email(set_map=assignments({"email": "b"}), returning=returning("id")))
        assert rows == []

    def test_without_returning_is_none(self, repo, pool):
        assert repo.update_by_map(_by_email(set_map=assignments({"email": "b"}))) is None
        assert "RETURNING" not in pool.calls[0][0]

    def test_update_tx(self, repo, pool):
        tx = repo.begin()
        pool.queue([{"id": 1}])
        rows = repo.update_by_map_tx(tx, _by_email(set_map=assignments({"email": "b"}), returning=returning("id")))
        assert rows == [{"id": 1}]
        assert pool.calls == []


class TestAggregates:

    def test_count_whole_table(self, repo, pool):
        pool.queue([{"count": 42}])
        assert repo.count_by_map(ConditionMapSet()) == 42
        assert pool.calls == [("SELECT COUNT(*) FROM users", [])]

    def test_count_filtered(self, repo, pool):
        pool.queue([{"count": "3"}])
        assert repo.count_by_map(_by_email()) == 3
        assert pool.calls[0] == ("SELECT COUNT(*) FROM users WHERE (email = $1)", ["a@b.com"])

    def test_sum(self, pool):
        repo = Repository(pool, "expenses")
        pool.queue([{"amount": 10, "fee": 2}])
        totals = repo.sum_by_map(where(ConditionMap([("user_id", 7)])), "amount", "fee")
        assert totals == {"amount": 10, "fee": 2}
        assert pool.calls == [(
            "SELECT SUM(amount) AS amount, SUM(fee) AS fee FROM expenses WHERE (user_id = $1)",
            [7],
        )]


    def test_count_tx_runs_on_session(self, repo, pool):
        tx = repo.begin()
        pool.queue([{"count": 5}])
        assert repo.count_by_map_tx(tx, _by_email()) == 5
        assert pool.sessions[0].calls[-1] == ("SELECT COUNT(*) FROM users WHERE (email = $1)", ["a@b.com"])
        assert pool.calls == []

    def test_sum_tx_runs_on_session(self, pool):
        repo = Repository(pool, "expenses")
        tx = repo.begin()
        pool.queue([{"amount": 10}])
        assert repo.sum_by_map_tx(tx, where(ConditionMap([("user_id", 7)])), "amount") == {"amount": 10}
        assert pool.sessions[0].calls[-1] == (
            "SELECT SUM(amount) AS amount FROM expenses WHERE (user_id = $1)",
            [7],
        )
        assert pool.calls == []


class TestDelete:

    def test_delete(self, repo, pool):
        repo.delete_by_map(_by_email())
        assert pool.calls == [("DELETE FROM users WHERE (email = $1)", ["a@b.com"])]

    def test_delete_without_filter_refused(self, repo, pool):
        with pytest.raises(QueryShapeError):
            repo.delete_by_map(ConditionMapSet())
        assert pool.calls == []

    def test_delete_tx(self, repo, pool):
        tx = repo.begin()
        repo.delete_by_map_tx(tx, _by_email())
        assert pool.sessions[0].calls[-1] == ("DELETE FROM users WHERE (email = $1)", ["a@b.com"])


class TestExecute:

    def test_single_row_is_unwrapped(self, repo, pool):
        pool.queue([{"n": 1}])
        assert repo.execute("SELECT 1 AS n") == {"n": 1}

    def test_many_rows_stay_a_list(self, repo, pool):
        pool.queue([{"n": 1}, {"n": 2}])
        assert repo.execute("SELECT n FROM t WHERE n > $1", [0]) == [{"n": 1}, {"n": 2}]
        assert pool.calls == [("SELECT n FROM t WHERE n > $1", [0])]

    def test_zero_rows_is_empty_list(self, repo):
        assert repo.execute("DELETE FROM t") == []

    def test_execute_tx(self, repo, pool):
        tx = repo.begin()
        pool.queue([{"n": 1}])
        assert repo.execute_tx(tx, "SELECT 1 AS n") == {"n": 1}
        assert pool.sessions[0].calls[-1] == ("SELECT 1 AS n", [])
