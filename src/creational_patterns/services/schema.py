"""
Schema source resolution.

A database variant only *names* its schema sources ("Users", "Billing");
a `SchemaResolver` turns each name into a parsed `EntitySchema`. The
container-building algorithm depends on the Protocol, so tests can hand in
schemas from memory while the app reads the JSON files bundled with the
package.
"""

import logging
from pathlib import Path
from typing import Protocol

from pydantic import ValidationError

from creational_patterns.domain.store import EntitySchema
from creational_patterns.errors import SchemaResolutionError

logger = logging.getLogger(__name__)

BUNDLED_RESOURCES = Path(__file__).resolve().parent.parent / "resources"


class SchemaResolver(Protocol):
    def resolve(self, name: str) -> EntitySchema: ...


class BundleSchemaResolver:
    """Reads `<name>.json` files from a resource directory."""

    def __init__(self, directory: Path = BUNDLED_RESOURCES) -> None:
        self.directory = Path(directory)

    def resolve(self, name: str) -> EntitySchema:
        path = self.directory / f"{name}.json"
        try:
            raw = path.read_text(encoding="utf-8")
        except FileNotFoundError:
            raise SchemaResolutionError(name, f"no resource at {path}") from None
        except OSError as exc:
            raise SchemaResolutionError(name, f"cannot read {path}: {exc}") from exc
        try:
            schema = EntitySchema.model_validate_json(raw)
        except ValidationError as exc:
            raise SchemaResolutionError(name, f"cannot parse {path}") from exc
        if schema.name != name:
            raise SchemaResolutionError(name, f"{path} declares schema {schema.name!r}")
        logger.debug("Resolved schema %s (v%d) from %s", name, schema.version, path)
        return schema


class StaticSchemaResolver:
    """Serves schemas from a dict. Handy in tests."""

    def __init__(self, schemas: dict[str, EntitySchema]) -> None:
        self._schemas = dict(schemas)

    def resolve(self, name: str) -> EntitySchema:
        try:
            return self._schemas[name]
        except KeyError:
            raise SchemaResolutionError(name, "unknown schema") from None
