"""Tests for transactions."""

import duckdb
import pytest

from relquery.sql.command import insert, update
from relquery.sql.query import select
from relquery.sql.transaction import Step, Transaction, transaction
from relquery.validation import TransactionError
from tests.utils import scalar


def test_steps_run_in_order(db):
    """Test that results are returned in step order."""
    tx = transaction(
        insert("roles", {"name": "viewer"}, returning="id"),
        insert("roles", {"name": "owner"}, returning="id"),
        adapter=db,
    )
    assert tx.execute() == [{"id": 3}, {"id": 4}]


def test_deferred_step_sees_prior_results(db):
    """Test that deferred steps are built from earlier results."""
    tx = transaction(
        insert("people", {"name": "Carol"}, returning="id"),
        lambda results: insert("users", {"login": "carol", "person_id": results[0]["id"]}, returning="id"),
        adapter=db,
    )
    person, user = tx.execute()
    assert scalar(db, "SELECT person_id FROM users WHERE id = ?", [user["id"]]) == person["id"]


def test_marked_step_is_the_result(db):
    """Test that the step marked as result is returned alone."""
    tx = Transaction(
        steps=(
            insert("roles", {"name": "viewer"}, returning="id"),
            Step(select("roles", ["name"], {"id": 1}), result=True),
        ),
        adapter=db,
    )
    assert tx.execute() == [{"name": "admin"}]


def test_combine(db):
    """Test combining all results."""
    tx = transaction(
        update("users", {"password": "a"}, {"id": 1}),
        update("users", {"password": "b"}, {"id": [1, 2]}),
        adapter=db,
        combine=sum,
    )
    assert tx.execute() == 3


def test_then_appends_steps(db):
    """Test building a transaction step by step."""
    tx = transaction(adapter=db).then(insert("roles", {"name": "viewer"}, returning="id"), result=True)
    tx = tx.then(lambda results: update("roles", {"name": "reader"}, {"id": results[0]["id"]}))
    assert tx.execute() == {"id": 3}
    assert scalar(db, "SELECT name FROM roles WHERE id = 3") == "reader"


def test_rollback_on_failure(db):
    """Test that a failing step undoes the earlier ones."""
    tx = transaction(
        insert("roles", {"name": "viewer"}, returning="id"),
        insert("missing_table", {"name": "x"}),
        adapter=db,
    )
    with pytest.raises(duckdb.Error):
        tx.execute()
    assert scalar(db, "SELECT COUNT(*) FROM roles") == 2
    assert not db.in_transaction


def test_unique_violation_undoes_every_step(db):
    """Test that a constraint failure midway leaves nothing behind."""
    tx = transaction(
        insert("people", {"name": "Carol"}, returning="id"),
        update("users", {"password": "changed"}, {"id": 1}),
        insert("roles", {"id": 1, "name": "duplicate"}),
        insert("roles", {"name": "viewer"}, returning="id"),
        adapter=db,
    )
    with pytest.raises(duckdb.ConstraintException):
        tx.execute()
    assert scalar(db, "SELECT COUNT(*) FROM people") == 3
    assert scalar(db, "SELECT password FROM users WHERE id = 1") == "secret"
    assert db.fetch_all("SELECT name FROM roles ORDER BY id") == [{"name": "admin"}, {"name": "editor"}]
    assert not db.in_transaction


def test_rollback_on_deferred_failure(db):
    """Test that exceptions raised while building a step roll back too."""

    def failing(results):
        raise ValueError("cannot build step")

    tx = transaction(insert("roles", {"name": "viewer"}, returning="id"), failing, adapter=db)
    with pytest.raises(ValueError, match="cannot build step"):
        tx.execute()
    assert scalar(db, "SELECT COUNT(*) FROM roles") == 2


def test_nested_transaction_propagates(db):
    """Test that a nested transaction joins the enclosing one."""
    inner = transaction(
        insert("roles", {"name": "viewer"}, returning="id"),
        insert("roles", {"name": "owner"}, returning="id"),
    )
    outer = transaction(insert("roles", {"name": "guest"}, returning="id"), inner, adapter=db)
    assert outer.execute() == [{"id": 3}, [{"id": 4}, {"id": 5}]]


def test_nested_failure_rolls_back_everything(db):
    """Test atomicity across nesting levels."""
    inner = transaction(insert("roles", {"name": "viewer"}, returning="id"), insert("missing_table", {"x": 1}))
    outer = transaction(insert("roles", {"name": "guest"}, returning="id"), inner, adapter=db)
    with pytest.raises(duckdb.Error):
        outer.execute()
    assert scalar(db, "SELECT COUNT(*) FROM roles") == 2


def test_transaction_inside_active_transaction_requires_propagate(db):
    """Test that a transaction does not silently join an active one."""
    tx = transaction(update("users", {"password": "x"}, {"id": 1}), adapter=db)
    with db.transaction():
        with pytest.raises(TransactionError, match="already active"):
            tx.execute()
        assert tx.execute(propagate=True) == [1]


def test_deferred_step_may_skip(db):
    """Test that a deferred step returning None is skipped."""
    tx = transaction(lambda results: None, select("roles", ["id"], {"id": 1}), adapter=db)
    assert tx.execute() == [None, [{"id": 1}]]


def test_transaction_without_adapter():
    """Test that executing needs an adapter."""
    with pytest.raises(TransactionError):
        transaction(insert("roles", {"name": "x"})).execute()
