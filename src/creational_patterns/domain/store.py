"""
Persistence models for the database walkthrough (Factory Method pattern).

  - `EntitySchema` is one parsed schema source (e.g. `Users.json`).
  - `ManagedObjectModel` is what you get after merging several sources into
    one schema for a container.
  - `StoreDescriptor` tells the store engine how to open one backing store.

These are plain data; nothing here touches the disk.
"""

from enum import Enum
from pathlib import Path

from pydantic import BaseModel, ConfigDict, Field, model_validator

from creational_patterns.errors import SchemaMergeError


class StoreKind(str, Enum):
    PERSISTENT = "persistent"  # On-disk SQLite file
    IN_MEMORY = "in-memory"    # Gone when the store is closed; used by tests


class AttributeType(str, Enum):
    """Attribute types and the SQLite column type each one maps to."""

    STRING = "string"
    INTEGER = "integer"
    DECIMAL = "decimal"
    BOOLEAN = "boolean"
    DATE = "date"
    BINARY = "binary"

    @property
    def column_type(self) -> str:
        return _COLUMN_TYPES[self]


_COLUMN_TYPES = {
    AttributeType.STRING: "TEXT",
    AttributeType.INTEGER: "INTEGER",
    AttributeType.DECIMAL: "NUMERIC",
    AttributeType.BOOLEAN: "INTEGER",
    AttributeType.DATE: "TEXT",
    AttributeType.BINARY: "BLOB",
}


# ── Schemas ──────────────────────────────────────────────────────────


class Attribute(BaseModel):
    model_config = ConfigDict(frozen=True)

    name: str = Field(..., min_length=1)
    type: AttributeType
    optional: bool = True


class Entity(BaseModel):
    model_config = ConfigDict(frozen=True)

    name: str = Field(..., min_length=1)
    attributes: tuple[Attribute, ...] = ()


class EntitySchema(BaseModel):
    """One schema source, as read from a `<name>.json` resource."""

    model_config = ConfigDict(frozen=True)

    name: str = Field(..., min_length=1)
    version: int = Field(default=1, ge=1)
    entities: tuple[Entity, ...] = ()


class ManagedObjectModel(BaseModel):
    """The unified schema a container is built with."""

    model_config = ConfigDict(frozen=True)

    source_names: tuple[str, ...]
    entities: tuple[Entity, ...]

    @classmethod
    def by_merging(cls, schemas: list[EntitySchema]) -> "ManagedObjectModel":
        """Merge schema sources, keeping entity order.

        Two sources declaring the same entity cannot be merged.
        """
        seen: dict[str, str] = {}
        entities: list[Entity] = []
        for schema in schemas:
            for entity in schema.entities:
                if entity.name in seen:
                    raise SchemaMergeError(
                        schema.name,
                        f"entity {entity.name!r} is already defined by {seen[entity.name]!r}",
                    )
                seen[entity.name] = schema.name
                entities.append(entity)
        return cls(source_names=tuple(s.name for s in schemas), entities=tuple(entities))

    def entity(self, name: str) -> Entity:
        for entity in self.entities:
            if entity.name == name:
                return entity
        raise KeyError(name)


# ── Store configuration ──────────────────────────────────────────────


class StoreDescriptor(BaseModel):
    """How to open one backing store.

    `location` is required for persistent stores and must be absent for
    in-memory ones.
    """

    model_config = ConfigDict(frozen=True)

    kind: StoreKind
    location: Path | None = None
    read_only: bool = False
    auto_migrate: bool = True        # Add missing columns to existing tables
    auto_infer_mapping: bool = True  # Work out the column mapping without a mapping model

    @model_validator(mode="after")
    def _check_location(self) -> "StoreDescriptor":
        if self.kind is StoreKind.PERSISTENT and self.location is None:
            raise ValueError("persistent stores need a location")
        if self.kind is StoreKind.IN_MEMORY and self.location is not None:
            raise ValueError("in-memory stores have no location")
        return self
