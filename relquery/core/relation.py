"""Relation definitions between entities."""

from collections.abc import Mapping
from typing import Annotated, Any, Literal

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, model_validator


class BaseRelation(BaseModel):
    """Fields shared by every relation kind."""

    model_config = ConfigDict(extra="forbid", frozen=True)

    entity: str = Field(description="Name of the related entity")
    fk: str = Field(description="Foreign key column")
    filter: Any = Field(default=None, description="Clause restricting the related rows")

    @model_validator(mode="before")
    @classmethod
    def normalize_type(cls, data: Any) -> Any:
        if isinstance(data, Mapping) and isinstance(data.get("type"), str):
            data = {**data, "type": data["type"].replace("-", "_")}
        return data


class BelongsTo(BaseRelation):
    """This entity holds ``fk`` pointing at the related entity's primary key."""

    type: Literal["belongs_to"] = "belongs_to"
    eager: bool = Field(default=False, description="Always join and project the related entity")

    @property
    def join_table(self) -> None:
        return None


class HasOne(BaseRelation):
    """The related entity holds ``fk`` pointing at this entity's primary key."""

    type: Literal["has_one"] = "has_one"
    eager: bool = Field(default=False, description="Always join and project the related entity")

    @property
    def join_table(self) -> None:
        return None


class HasMany(BaseRelation):
    """Many related rows, either owning ``fk`` or linked through ``join_table``.

    With a join table, ``fk`` is the join table column pointing at this
    entity and ``rfk`` the column pointing at the related entity.
    """

    type: Literal["has_many"] = "has_many"
    join_table: str | None = Field(default=None, description="Link table for many-to-many relations")
    rfk: str | None = Field(default=None, description="Join table column pointing at the related entity")

    @model_validator(mode="after")
    def check_join_table(self) -> "HasMany":
        if (self.join_table is None) != (self.rfk is None):
            raise ValueError("join_table and rfk must be given together")
        return self

    @property
    def eager(self) -> bool:
        return False


Relation = Annotated[BelongsTo | HasOne | HasMany, Field(discriminator="type")]

_relation_adapter = TypeAdapter(Relation)


def parse_relation(data: Any) -> BelongsTo | HasOne | HasMany:
    """Parse a relation descriptor, accepting ``"belongs-to"`` style type names.

    Raises:
        pydantic.ValidationError: If the descriptor is malformed
    """
    if isinstance(data, BaseRelation):
        return data
    if isinstance(data, Mapping) and isinstance(data.get("type"), str):
        data = {**data, "type": data["type"].replace("-", "_")}
    return _relation_adapter.validate_python(data)


def parse_relations(relations: Mapping[str, Any] | None) -> dict[str, BelongsTo | HasOne | HasMany]:
    return {name: parse_relation(relation) for name, relation in (relations or {}).items()}
