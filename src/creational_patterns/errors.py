"""
Recoverable persistence errors.

Everything raised while building a database container derives from
`PersistenceError`, so callers can decide on retry or abort with a single
`except`. Programmer errors (mixing coffee shop families) are *not* part of
this hierarchy; those raise `AssertionError`.
"""

from typing import Any


class PersistenceError(Exception):
    """Base class for schema and store failures."""


class SchemaResolutionError(PersistenceError):
    """A schema source could not be located or parsed."""

    def __init__(self, name: str, reason: str) -> None:
        super().__init__(f"Schema {name!r}: {reason}")
        self.name = name
        self.reason = reason


class SchemaMergeError(SchemaResolutionError):
    """Two schema sources define the same entity."""


class StoreInitializationError(PersistenceError):
    """A backing store failed to open."""

    def __init__(self, message: str, descriptor: Any = None) -> None:
        super().__init__(message)
        self.descriptor = descriptor


class StoreMigrationError(StoreInitializationError):
    """An existing store does not match the schema and may not be migrated."""


class StoreLoadTimeoutError(StoreInitializationError):
    """Stores did not finish loading within the configured timeout."""
