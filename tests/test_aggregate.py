"""Tests for creating, updating and deleting entities with their relations."""

import duckdb
import pytest

from relquery import Insert, Transaction, Update
from relquery.validation import QueryShapeError
from tests.utils import scalar


def test_create_plain(repo, db):
    """Test that a payload without embeds is a single insert."""
    command = repo["role"].create({"name": "viewer"})
    assert isinstance(command, Insert)
    assert command.execute() == {"id": 3}
    assert scalar(db, "SELECT name FROM roles WHERE id = 3") == "viewer"


def test_create_with_has_many(repo, db):
    """Test creating a parent with its children."""
    command = repo["document"].create({"status": "draft", "items": [{"qty": 1}, {"qty": 2}]})
    assert isinstance(command, Transaction)
    assert command.execute() == {"id": 1}
    assert db.fetch_all("SELECT document_id, qty FROM doc_items ORDER BY qty") == [
        {"document_id": 1, "qty": 1},
        {"document_id": 1, "qty": 2},
    ]


def test_create_with_belongs_to(repo, db):
    """Test that the owner is inserted first and its key is used."""
    result = repo["user"].create({"login": "carol", "person": {"name": "Carol"}}).execute()
    assert result == {"id": 3}
    assert scalar(db, "SELECT person_id FROM users WHERE id = 3") == 4
    assert scalar(db, "SELECT name FROM people WHERE id = 4") == "Carol"


def test_create_links_existing_owner(repo, db):
    """Test that an embedded owner given by key only is linked, not inserted."""
    result = repo["user"].create({"login": "dave", "person": {"id": 2}}).execute()
    assert result == {"id": 3}
    assert scalar(db, "SELECT person_id FROM users WHERE id = 3") == 2
    assert scalar(db, "SELECT COUNT(*) FROM people") == 3


def test_create_with_has_one_and_many_to_many(repo, db):
    """Test dependents and link rows created after the root."""
    result = repo["user"].create(
        {
            "login": "erin",
            "person": {"id": 1},
            "profile": {"bio": "hello"},
            "roles": [{"id": 1}, {"name": "viewer"}],
        }
    ).execute()
    assert result == {"id": 3}
    assert scalar(db, "SELECT bio FROM profiles WHERE user_id = 3") == "hello"
    links = db.fetch_all("SELECT role_id FROM user_roles WHERE user_id = 3 ORDER BY role_id")
    assert links == [{"role_id": 1}, {"role_id": 3}]
    assert scalar(db, "SELECT name FROM roles WHERE id = 3") == "viewer"


def test_create_orders_owner_root_and_children(repo, db):
    """Test that the owner is inserted before the row and the children after it."""
    result = repo["employee"].create(
        {"salary": 10, "person": {"name": "Dana"}, "subordinates": [{"salary": 1}, {"salary": 2}]}
    ).execute()
    assert result == {"id": 3}
    assert scalar(db, "SELECT name FROM people WHERE id = 4") == "Dana"
    assert db.fetch_all("SELECT id, person_id, supervisor_id, salary FROM employees WHERE id >= 3 ORDER BY id") == [
        {"id": 3, "person_id": 4, "supervisor_id": None, "salary": 10},
        {"id": 4, "person_id": None, "supervisor_id": 3, "salary": 1},
        {"id": 5, "person_id": None, "supervisor_id": 3, "salary": 2},
    ]


def test_create_is_atomic(repo, db):
    """Test that a failing dependent undoes the whole aggregate."""
    with pytest.raises(duckdb.Error):
        repo["document"].create({"status": "draft", "items": [{"qty": 1}, {"missing": 2}]}).execute()
    assert scalar(db, "SELECT COUNT(*) FROM documents") == 0
    assert scalar(db, "SELECT COUNT(*) FROM doc_items") == 0


def test_create_prepare(db):
    """Test that payloads pass through prepare."""
    from relquery import create_repository

    repo = create_repository(
        "sql",
        {"role": {"table": "roles", "prepare": lambda data: {**data, "name": data["name"].lower()}}},
        adapter=db,
    )
    repo["role"].create({"name": "VIEWER"}).execute()
    assert scalar(db, "SELECT name FROM roles WHERE id = 3") == "viewer"


def test_create_rejects_scalar_embed(repo):
    """Test that relation keys must hold mappings."""
    with pytest.raises(QueryShapeError, match="must be a mapping"):
        repo["user"].create({"login": "x", "person": 1})


def test_update_plain(repo, db):
    """Test that an update on own fields is a single statement."""
    command = repo["user"].update({"password": "changed"}, {"login": "bob"})
    assert isinstance(command, Update)
    assert command.compile() == ("UPDATE users SET password = ? WHERE login = ?", ["changed", "bob"])
    assert command.execute() == 1


def test_update_respects_entity_filter(repo, db):
    """Test that rows excluded by the entity filter are not updated."""
    assert repo["person"].update({"name": "Casper"}, {"id": 3}).execute() == 0
    assert scalar(db, "SELECT name FROM people WHERE id = 3") == "Ghost"


def test_update_with_embedded_owner(repo, db):
    """Test updating a row and the row it belongs to."""
    count = repo["user"].update({"password": "x", "person": {"name": "Alice Doe"}}, {"id": 1}).execute()
    assert count == 2
    assert scalar(db, "SELECT password FROM users WHERE id = 1") == "x"
    assert scalar(db, "SELECT name FROM people WHERE id = 1") == "Alice Doe"


def test_update_with_embedded_dependent(repo, db):
    """Test updating the has_one side of a row."""
    count = repo["user"].update({"profile": {"bio": "updated"}}, {"login": "alice"}).execute()
    assert count == 1
    assert scalar(db, "SELECT bio FROM profiles WHERE user_id = 1") == "updated"


def test_update_by_related_field(repo, db):
    """Test an update restricted through a relation."""
    command = repo["user"].update({"password": "p"}, {"person/name": "Jane Doe"})
    assert isinstance(command, Transaction)
    assert command.execute() == 1
    assert db.fetch_all("SELECT login FROM users WHERE password = 'p'") == [{"login": "alice"}]


def test_update_matching_nothing(repo):
    """Test that an update through a relation matching no rows does nothing."""
    assert repo["user"].update({"password": "p"}, {"person/name": "Nobody"}).execute() == 0


def test_update_adds_has_many_items(repo, db):
    """Test that listed children are created for every matched row."""
    db.execute("INSERT INTO documents (status) VALUES ('draft'), ('draft'), ('final')")
    count = repo["document"].update({"items": [{"qty": 1}, {"qty": 2}]}, {"status": "draft"}).execute()
    assert count == 4
    assert db.fetch_all("SELECT document_id, qty FROM doc_items ORDER BY document_id, qty") == [
        {"document_id": 1, "qty": 1},
        {"document_id": 1, "qty": 2},
        {"document_id": 2, "qty": 1},
        {"document_id": 2, "qty": 2},
    ]


def test_update_with_has_many_items_and_columns(repo, db):
    """Test updating a row while adding children to it."""
    db.execute("INSERT INTO documents (status) VALUES ('draft')")
    assert repo["document"].update({"status": "final", "items": [{"qty": 5}]}, {"id": 1}).execute() == 2
    assert scalar(db, "SELECT status FROM documents WHERE id = 1") == "final"
    assert scalar(db, "SELECT qty FROM doc_items WHERE document_id = 1") == 5
    assert repo["document"].update({"items": [{"qty": 6}]}, {"id": 99}).execute() == 0
    assert scalar(db, "SELECT COUNT(*) FROM doc_items") == 1


def test_update_rejects_list_for_single_relation(repo):
    """Test that belongs_to and has_one embeds must be mappings in updates."""
    with pytest.raises(QueryShapeError, match="must be a mapping to update"):
        repo["user"].update({"profile": [{"bio": "x"}]}, {"id": 1})


def test_update_through_join_table_rejected(repo):
    """Test that many-to-many embeds cannot be updated."""
    with pytest.raises(QueryShapeError, match="join table"):
        repo["user"].update({"roles": {"name": "x"}}, {"id": 1})


def test_delete_plain(repo, db):
    """Test a plain delete."""
    assert repo["role"].delete({"name": "editor"}).execute() == 1
    assert scalar(db, "SELECT COUNT(*) FROM roles") == 1


def test_delete_by_related_field(repo, db):
    """Test a delete restricted through a relation."""
    command = repo["user"].delete({"person/name": "John Roe"})
    assert isinstance(command, Transaction)
    assert command.execute() == 1
    assert db.fetch_all("SELECT login FROM users") == [{"login": "alice"}]


def test_delete_matching_nothing(repo, db):
    """Test that a delete through a relation matching no rows deletes nothing."""
    assert repo["user"].delete({"person/name": "Ghost"}).execute() == 0
    assert scalar(db, "SELECT COUNT(*) FROM users") == 2


def test_link_many_to_many(repo, db):
    """Test creating and removing a link row."""
    assert repo["user"].create_relation(2, "roles", 1).execute() == {"user_id": 2, "role_id": 1}
    assert scalar(db, "SELECT COUNT(*) FROM user_roles WHERE user_id = 2") == 2
    assert repo["user"].delete_relation(1, "roles", 2).execute() == 1
    assert db.fetch_all("SELECT role_id FROM user_roles WHERE user_id = 1") == [{"role_id": 1}]


def test_link_belongs_to(repo, db):
    """Test setting and clearing a foreign key on the entity itself."""
    assert repo["employee"].delete_relation(2, "supervisor", 1).execute() == 1
    assert scalar(db, "SELECT supervisor_id FROM employees WHERE id = 2") is None
    assert repo["employee"].create_relation(1, "supervisor", 2).execute() == 1
    assert scalar(db, "SELECT supervisor_id FROM employees WHERE id = 1") == 2


def test_link_has_one(repo, db):
    """Test moving the related row's foreign key."""
    assert repo["user"].create_relation(2, "profile", 1).execute() == 1
    assert scalar(db, "SELECT user_id FROM profiles WHERE id = 1") == 2
    assert repo["user"].delete_relation(1, "profile", 1).execute() == 0
    assert repo["user"].delete_relation(2, "profile", 1).execute() == 1
    assert scalar(db, "SELECT user_id FROM profiles WHERE id = 1") is None
