"""Pytest configuration and fixtures."""

import pytest

from relquery import create_repository
from relquery.db.duckdb import DuckDBAdapter

SCHEMA = [
    "CREATE SEQUENCE people_seq START 1",
    "CREATE TABLE people (id INTEGER PRIMARY KEY DEFAULT nextval('people_seq'), name VARCHAR, "
    "email VARCHAR, deleted BOOLEAN DEFAULT false)",
    "CREATE SEQUENCE users_seq START 1",
    "CREATE TABLE users (id INTEGER PRIMARY KEY DEFAULT nextval('users_seq'), login VARCHAR, "
    "password VARCHAR, person_id INTEGER)",
    "CREATE SEQUENCE employees_seq START 1",
    "CREATE TABLE employees (id INTEGER PRIMARY KEY DEFAULT nextval('employees_seq'), person_id INTEGER, "
    "supervisor_id INTEGER, salary INTEGER)",
    "CREATE SEQUENCE roles_seq START 1",
    "CREATE TABLE roles (id INTEGER PRIMARY KEY DEFAULT nextval('roles_seq'), name VARCHAR)",
    "CREATE TABLE user_roles (user_id INTEGER, role_id INTEGER)",
    "CREATE SEQUENCE profiles_seq START 1",
    "CREATE TABLE profiles (id INTEGER PRIMARY KEY DEFAULT nextval('profiles_seq'), user_id INTEGER, bio VARCHAR)",
    "CREATE SEQUENCE documents_seq START 1",
    "CREATE TABLE documents (id INTEGER PRIMARY KEY DEFAULT nextval('documents_seq'), status VARCHAR)",
    "CREATE SEQUENCE doc_items_seq START 1",
    "CREATE TABLE doc_items (id INTEGER PRIMARY KEY DEFAULT nextval('doc_items_seq'), document_id INTEGER, qty INTEGER)",
]

SEED = [
    "INSERT INTO people (name, email) VALUES ('Jane Doe', 'jane@example.com')",
    "INSERT INTO people (name) VALUES ('John Roe')",
    "INSERT INTO people (name, deleted) VALUES ('Ghost', true)",
    "INSERT INTO users (login, password, person_id) VALUES ('alice', 'secret', 1)",
    "INSERT INTO users (login, password, person_id) VALUES ('bob', 'hunter2', 2)",
    "INSERT INTO employees (person_id, supervisor_id, salary) VALUES (1, NULL, 100)",
    "INSERT INTO employees (person_id, supervisor_id, salary) VALUES (2, 1, 50)",
    "INSERT INTO roles (name) VALUES ('admin')",
    "INSERT INTO roles (name) VALUES ('editor')",
    "INSERT INTO user_roles VALUES (1, 1), (1, 2), (2, 2)",
    "INSERT INTO profiles (user_id, bio) VALUES (1, 'hi')",
]

ENTITIES = {
    "person": {
        "table": "people",
        "filter": {"deleted": False},
        "relations": {
            "user": {"type": "has-one", "entity": "user", "fk": "person_id"},
            "employee": {"type": "has-one", "entity": "employee", "fk": "person_id"},
        },
    },
    "user": {
        "table": "users",
        "relations": {
            "person": {"type": "belongs-to", "entity": "person", "fk": "person_id"},
            "profile": {"type": "has-one", "entity": "profile", "fk": "user_id"},
            "roles": {
                "type": "has-many",
                "entity": "role",
                "fk": "user_id",
                "join_table": "user_roles",
                "rfk": "role_id",
            },
        },
    },
    "employee": {
        "table": "employees",
        "relations": {
            "person": {"type": "belongs-to", "entity": "person", "fk": "person_id", "eager": True},
            "supervisor": {"type": "belongs-to", "entity": "employee", "fk": "supervisor_id"},
            "subordinates": {"type": "has-many", "entity": "employee", "fk": "supervisor_id"},
        },
    },
    "role": {"table": "roles"},
    "profile": {"table": "profiles"},
    "document": {
        "table": "documents",
        "relations": {"items": {"type": "has-many", "entity": "doc_item", "fk": "document_id"}},
    },
    "doc_item": {"table": "doc_items"},
}


@pytest.fixture
def adapter():
    """Fresh in-memory DuckDB adapter."""
    adapter = DuckDBAdapter(":memory:")
    yield adapter
    adapter.close()


@pytest.fixture
def db(adapter):
    """DuckDB adapter with the people/users/employees schema and seed data."""
    for statement in SCHEMA + SEED:
        adapter.execute(statement)
    return adapter


@pytest.fixture
def repo(db):
    """Repository of the seeded schema, with fields read from the database."""
    return create_repository("sql", ENTITIES, adapter=db)
