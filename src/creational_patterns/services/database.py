"""
Database factories (Factory Method pattern).

The **Factory Method pattern** fixes the *algorithm* that creates an object
and lets variants supply the parts that differ. Here the object is a
`PersistentContainer` and the algorithm lives in one free function,
`make_persistent_container()`:

    1. resolve the variant's schema sources and merge them into one model
    2. create the container with that model
    3. attach the variant's store descriptors
    4. open every store and block until all are ready (or one fails)

A variant is a small `DatabaseProperties` record with the two hooks, not a
subclass overriding another one:

    APP            Users + Invoices + Billing, SQLite file on disk
    APP_TESTS      same schemas as APP, in-memory store
    BILLING_TESTS  Billing schema only, in-memory store

`DatabaseFactoryProvider` is the factory of factories: it maps the closed
`DatabaseConfiguration` enum onto exactly one variant.

Store loading is asynchronous (aiosqlite), but `make_persistent_container()`
is a plain blocking call. The stores are opened on a long-lived loader loop in
a daemon thread while the calling thread waits on the result, which also makes
the call safe from code that already runs inside an event loop.
"""

import asyncio
import logging
import threading
from collections.abc import Coroutine
from enum import Enum
from pathlib import Path
from typing import Any, Protocol, TypeVar, assert_never

from pydantic import BaseModel, ConfigDict, Field

from creational_patterns.config import CreationalSettings, get_settings
from creational_patterns.domain.store import ManagedObjectModel, StoreDescriptor, StoreKind
from creational_patterns.errors import StoreInitializationError, StoreLoadTimeoutError
from creational_patterns.services.schema import BundleSchemaResolver, SchemaResolver
from creational_patterns.services.store_engine import SQLiteStoreEngine, StoreEngine, StoreHandle

logger = logging.getLogger(__name__)

T = TypeVar("T")

_LOADER_LOOP: asyncio.AbstractEventLoop | None = None
_LOADER_LOCK = threading.Lock()

APP_SCHEMAS: tuple[str, ...] = ("Users", "Invoices", "Billing")
BILLING_SCHEMAS: tuple[str, ...] = ("Billing",)


# ── Variants ─────────────────────────────────────────────────────────


class DatabaseFactory(Protocol):
    """The two hooks a database variant supplies."""

    @property
    def entity_model_sources(self) -> tuple[str, ...]: ...

    @property
    def store_descriptors(self) -> tuple[StoreDescriptor, ...]: ...


class DatabaseProperties(BaseModel):
    """A concrete database variant. Satisfies `DatabaseFactory`."""

    model_config = ConfigDict(frozen=True)

    entity_model_sources: tuple[str, ...] = Field(..., min_length=1)
    store_descriptors: tuple[StoreDescriptor, ...] = Field(..., min_length=1)


def in_memory_store() -> StoreDescriptor:
    """Descriptor shared by every test variant. No URL needed."""
    return StoreDescriptor(kind=StoreKind.IN_MEMORY, auto_migrate=True, auto_infer_mapping=True)


def app_database(settings: CreationalSettings) -> DatabaseProperties:
    location = settings.store_directory / f"{settings.app_identifier}.sqlite"
    return DatabaseProperties(
        entity_model_sources=APP_SCHEMAS,
        store_descriptors=(
            StoreDescriptor(
                kind=StoreKind.PERSISTENT,
                location=location,
                read_only=False,
                auto_migrate=True,
                auto_infer_mapping=True,
            ),
        ),
    )


def app_tests_database(settings: CreationalSettings) -> DatabaseProperties:
    # App tests need every app schema, only the store moves into memory.
    return app_database(settings).model_copy(update={"store_descriptors": (in_memory_store(),)})


def billing_tests_database() -> DatabaseProperties:
    """The Billing module ships its own schema and is tested against it alone."""
    return DatabaseProperties(entity_model_sources=BILLING_SCHEMAS, store_descriptors=(in_memory_store(),))


class DatabaseConfiguration(str, Enum):
    """Every database setup the app knows about.

    Adding a configuration means adding a member here *and* a case in
    `DatabaseFactoryProvider.create()`.
    """

    APP = "app"
    APP_TESTS = "app-tests"
    BILLING_TESTS = "billing-tests"


class DatabaseFactoryProvider:
    """Factory of factories: configuration name -> database variant."""

    def __init__(self, settings: CreationalSettings | None = None) -> None:
        self.settings = settings or get_settings()

    def create(self, kind: DatabaseConfiguration) -> DatabaseFactory:
        match kind:
            case DatabaseConfiguration.APP:
                return app_database(self.settings)
            case DatabaseConfiguration.APP_TESTS:
                return app_tests_database(self.settings)
            case DatabaseConfiguration.BILLING_TESTS:
                return billing_tests_database()
            case _:
                assert_never(kind)


# ── Blocking bridge ──────────────────────────────────────────────────


def _loader_loop() -> asyncio.AbstractEventLoop:
    """Event loop on a daemon thread, started on first use and never closed.

    aiosqlite workers that finish after a timeout still post their results
    to this loop, so it has to outlive every call.
    """
    global _LOADER_LOOP
    with _LOADER_LOCK:
        if _LOADER_LOOP is None:
            loop = asyncio.new_event_loop()
            threading.Thread(target=loop.run_forever, name="store-loader", daemon=True).start()
            _LOADER_LOOP = loop
        return _LOADER_LOOP


def _run_blocking(coro: Coroutine[Any, Any, T], timeout: float | None) -> T:
    """Run `coro` on the loader loop and block until it finishes.

    The timeout is enforced inside the loader loop, so a timed-out coroutine
    is cancelled and unwound before this function returns.
    """
    future = asyncio.run_coroutine_threadsafe(asyncio.wait_for(coro, timeout), _loader_loop())
    return future.result()


# ── Container ────────────────────────────────────────────────────────


class StoreSummary(BaseModel):
    model_config = ConfigDict(frozen=True)

    kind: StoreKind
    location: Path | None
    read_only: bool


class ContainerDescription(BaseModel):
    """What a loaded container holds, as printed by the CLI."""

    model_config = ConfigDict(frozen=True)

    name: str
    sources: list[str]
    entities: list[str]
    stores: list[StoreSummary]


class PersistentContainer:
    """A merged schema plus the stores opened for it.

    Only `make_persistent_container()` hands out containers, and only after
    every store has loaded.
    """

    def __init__(self, name: str, managed_object_model: ManagedObjectModel, engine: StoreEngine) -> None:
        self.name = name
        self.managed_object_model = managed_object_model
        self.persistent_store_descriptions: tuple[StoreDescriptor, ...] = ()
        self.stores: list[StoreHandle] = []
        self._engine = engine

    async def load_persistent_stores(self) -> list[StoreHandle]:
        """Open all described stores concurrently.

        On the first failure the remaining opens are cancelled, stores that
        already opened are closed again, and the error is raised.
        """
        descriptors = self.persistent_store_descriptions
        tasks = [
            asyncio.create_task(self._engine.open_store(self.managed_object_model, d), name=f"open-store-{i}")
            for i, d in enumerate(descriptors)
        ]
        if not tasks:
            return []

        try:
            await asyncio.wait(tasks, return_when=asyncio.FIRST_EXCEPTION)
        except asyncio.CancelledError:
            await self._abort(tasks)
            raise

        failed = [(t, d) for t, d in zip(tasks, descriptors) if t.done() and not t.cancelled() and t.exception()]
        if failed:
            task, descriptor = failed[0]
            error = task.exception()
            await self._abort(tasks)
            logger.error("Store %s failed to load: %s", descriptor.location or ":memory:", error)
            if isinstance(error, StoreInitializationError):
                raise error
            raise StoreInitializationError(f"Store failed to load: {error}", descriptor) from error

        self.stores = [t.result() for t in tasks]
        for handle in self.stores:
            logger.info("Loaded %s store %s", handle.descriptor.kind.value, handle.descriptor.location or ":memory:")
        return self.stores

    async def aclose(self) -> None:
        stores, self.stores = self.stores, []
        for handle in stores:
            await self._engine.close_store(handle)

    def close(self) -> None:
        if self.stores:
            _run_blocking(self.aclose(), None)

    def __enter__(self) -> "PersistentContainer":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    def describe(self) -> ContainerDescription:
        return ContainerDescription(
            name=self.name,
            sources=list(self.managed_object_model.source_names),
            entities=[e.name for e in self.managed_object_model.entities],
            stores=[
                StoreSummary(
                    kind=h.descriptor.kind,
                    location=h.descriptor.location,
                    read_only=h.descriptor.read_only,
                )
                for h in self.stores
            ],
        )

    async def _abort(self, tasks: list[asyncio.Task]) -> None:
        for task in tasks:
            task.cancel()
        results = await asyncio.gather(*tasks, return_exceptions=True)
        for result in results:
            if isinstance(result, StoreHandle):
                await self._engine.close_store(result)


def make_persistent_container(
    factory: DatabaseFactory,
    *,
    resolver: SchemaResolver | None = None,
    engine: StoreEngine | None = None,
    timeout: float | None = None,
    name: str = "-",
) -> PersistentContainer:
    """Build a ready-to-use container for a database variant.

    Blocks the calling thread until every store is loaded.

    Raises:
        SchemaResolutionError: a schema source is missing, unreadable, or
            clashes with another source.
        StoreInitializationError: the first store that failed to open.
        StoreLoadTimeoutError: stores were still loading after `timeout`
            seconds (defaults to `CREATIONAL_STORE_LOAD_TIMEOUT`).
    """
    resolver = resolver or BundleSchemaResolver()
    if timeout is None:
        timeout = get_settings().store_load_timeout
    engine = engine or SQLiteStoreEngine(busy_timeout=timeout)

    schemas = [resolver.resolve(source) for source in factory.entity_model_sources]
    model = ManagedObjectModel.by_merging(schemas)
    container = PersistentContainer(name, model, engine)
    container.persistent_store_descriptions = tuple(factory.store_descriptors)

    logger.info(
        "Loading %d store(s) for %s with schemas %s",
        len(container.persistent_store_descriptions),
        name,
        ", ".join(model.source_names),
    )
    try:
        _run_blocking(container.load_persistent_stores(), timeout)
    except TimeoutError as exc:
        raise StoreLoadTimeoutError(f"Stores for {name} did not load within {timeout}s") from exc
    return container
