"""relquery: relation-aware SQL query builder and entity mapping."""

__version__ = "0.1.0"

from relquery.core.clause import Aliased, Call, F, Field, Join, Op, and_, conjoin, fn, not_, or_
from relquery.core.entity import Entity
from relquery.core.instance import Instance
from relquery.core.registry import create_repository, register_backend
from relquery.core.relation import BelongsTo, HasMany, HasOne
from relquery.core.repository import Repository
from relquery.sql.command import Delete, Insert, Update, delete, insert, update
from relquery.sql.query import Query, select
from relquery.sql.transaction import Step, Transaction, transaction
from relquery.validation import CompileError, MappingError, QueryShapeError, RelqueryError, TransactionError

__all__ = [
    "Aliased",
    "BelongsTo",
    "Call",
    "CompileError",
    "Delete",
    "Entity",
    "F",
    "Field",
    "HasMany",
    "HasOne",
    "Insert",
    "Instance",
    "Join",
    "MappingError",
    "Op",
    "Query",
    "QueryShapeError",
    "RelqueryError",
    "Repository",
    "Step",
    "Transaction",
    "TransactionError",
    "Update",
    "and_",
    "conjoin",
    "connect",
    "create_repository",
    "delete",
    "fn",
    "insert",
    "not_",
    "or_",
    "register_backend",
    "select",
    "transaction",
    "update",
]


def __getattr__(name):  # Lazy import to avoid importing database drivers on package import
    if name == "connect":
        from relquery.db import connect

        return connect
    raise AttributeError(name)
