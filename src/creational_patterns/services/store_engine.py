"""
Store engine: opens the backing storage for a container.

The container-building algorithm only knows the `StoreEngine` Protocol:
"open a store for this schema and this descriptor", "close it again".
`SQLiteStoreEngine` is the engine the app uses. It is built on aiosqlite, so
opening several stores can be awaited concurrently and cancelled when one of
them fails.

Each entity becomes one table with an integer `pk` column plus one column per
attribute. Opening an existing file compares tables with the schema:
  - missing tables are created,
  - missing columns are added, but only when the descriptor allows both
    automatic migration and mapping inference; otherwise the open fails.
"""

import asyncio
import logging
import sqlite3
from dataclasses import dataclass, field
from typing import Protocol

import aiosqlite

from creational_patterns.domain.store import (
    Attribute,
    Entity,
    ManagedObjectModel,
    StoreDescriptor,
    StoreKind,
)
from creational_patterns.errors import StoreInitializationError, StoreMigrationError

logger = logging.getLogger(__name__)


@dataclass
class StoreHandle:
    """An opened store. Owned by the container that loaded it."""

    descriptor: StoreDescriptor
    connection: aiosqlite.Connection
    entity_names: tuple[str, ...] = field(default_factory=tuple)

    async def table_names(self) -> list[str]:
        async with self.connection.execute(
            "SELECT name FROM sqlite_master WHERE type = 'table' ORDER BY name"
        ) as cursor:
            rows = await cursor.fetchall()
        return [row[0] for row in rows]


class StoreEngine(Protocol):
    async def open_store(self, model: ManagedObjectModel, descriptor: StoreDescriptor) -> StoreHandle: ...

    async def close_store(self, handle: StoreHandle) -> None: ...


def _quote(identifier: str) -> str:
    return '"' + identifier.replace('"', '""') + '"'


def _column(attribute: Attribute, *, adding: bool = False) -> str:
    column = f"{_quote(attribute.name)} {attribute.type.column_type}"
    # SQLite cannot add a NOT NULL column without a default to an existing table.
    if not attribute.optional and not adding:
        column += " NOT NULL"
    return column


class SQLiteStoreEngine:
    """SQLite stores via aiosqlite.

    `busy_timeout` is how long one statement waits for a lock held by another
    connection before SQLite gives up.
    """

    def __init__(self, busy_timeout: float = 5.0) -> None:
        self.busy_timeout = busy_timeout

    async def open_store(self, model: ManagedObjectModel, descriptor: StoreDescriptor) -> StoreHandle:
        logger.info("Opening %s store %s", descriptor.kind.value, descriptor.location or ":memory:")
        try:
            connection = await self._connect(descriptor)
        except (sqlite3.Error, OSError) as exc:
            # Let aiosqlite's worker report its shutdown while this loop still runs.
            await asyncio.sleep(0)
            raise StoreInitializationError(
                f"Cannot open {descriptor.kind.value} store {descriptor.location}: {exc}", descriptor
            ) from exc

        try:
            for entity in model.entities:
                await self._ensure_table(connection, entity, descriptor)
            if not descriptor.read_only:
                await connection.commit()
        except sqlite3.Error as exc:
            await connection.close()
            raise StoreInitializationError(f"Cannot prepare store: {exc}", descriptor) from exc
        except asyncio.CancelledError:
            # A statement may still be waiting on a lock; queue the shutdown
            # behind it instead of waiting for it.
            connection.stop()
            raise
        except BaseException:
            await connection.close()
            raise

        logger.info("Store ready with %d entities", len(model.entities))
        return StoreHandle(
            descriptor=descriptor,
            connection=connection,
            entity_names=tuple(e.name for e in model.entities),
        )

    async def close_store(self, handle: StoreHandle) -> None:
        await handle.connection.close()
        logger.debug("Closed store %s", handle.descriptor.location or ":memory:")

    # ── Helpers ──────────────────────────────────────────────────

    async def _connect(self, descriptor: StoreDescriptor) -> aiosqlite.Connection:
        if descriptor.kind is StoreKind.IN_MEMORY:
            return await aiosqlite.connect(":memory:", timeout=self.busy_timeout)
        location = descriptor.location.expanduser().resolve()
        if descriptor.read_only:
            if not location.is_file():
                raise FileNotFoundError(f"no store file at {location}")
            return await aiosqlite.connect(f"{location.as_uri()}?mode=ro", uri=True, timeout=self.busy_timeout)
        location.parent.mkdir(parents=True, exist_ok=True)
        return await aiosqlite.connect(str(location), timeout=self.busy_timeout)

    async def _ensure_table(
        self, connection: aiosqlite.Connection, entity: Entity, descriptor: StoreDescriptor
    ) -> None:
        async with connection.execute(f"PRAGMA table_info({_quote(entity.name)})") as cursor:
            existing = {row[1] for row in await cursor.fetchall()}

        if not existing:
            if descriptor.read_only:
                raise StoreMigrationError(f"Read-only store has no table for {entity.name!r}", descriptor)
            columns = ", ".join(['"pk" INTEGER PRIMARY KEY'] + [_column(a) for a in entity.attributes])
            await connection.execute(f"CREATE TABLE {_quote(entity.name)} ({columns})")
            logger.debug("Created table %s", entity.name)
            return

        missing = [a for a in entity.attributes if a.name not in existing]
        if not missing:
            return
        if descriptor.read_only or not (descriptor.auto_migrate and descriptor.auto_infer_mapping):
            raise StoreMigrationError(
                f"Table {entity.name!r} is missing columns {[a.name for a in missing]} "
                "and automatic migration is disabled",
                descriptor,
            )
        for attribute in missing:
            await connection.execute(
                f"ALTER TABLE {_quote(entity.name)} ADD COLUMN {_column(attribute, adding=True)}"
            )
        logger.info("Migrated table %s: added %s", entity.name, ", ".join(a.name for a in missing))
