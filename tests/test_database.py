import asyncio
import sqlite3
import time
from pathlib import Path

import pytest

from creational_patterns.domain.store import (
    Attribute,
    AttributeType,
    Entity,
    EntitySchema,
    StoreDescriptor,
    StoreKind,
)
from creational_patterns.errors import (
    SchemaMergeError,
    SchemaResolutionError,
    StoreInitializationError,
    StoreLoadTimeoutError,
)
from creational_patterns.services.database import (
    APP_SCHEMAS,
    DatabaseConfiguration,
    DatabaseFactoryProvider,
    DatabaseProperties,
    StoreSummary,
    make_persistent_container,
)
from creational_patterns.services.schema import StaticSchemaResolver
from creational_patterns.services.store_engine import SQLiteStoreEngine, StoreHandle


class FakeEngine:
    """Store engine driven by the descriptor's file name.

    ok-*    opens immediately
    slow-*  opens after `slow_delay` seconds
    fail-*  raises after `fail_delay` seconds
    boom-*  raises a plain RuntimeError
    """

    def __init__(self, slow_delay: float = 5.0, fail_delay: float = 0.0):
        self.slow_delay = slow_delay
        self.fail_delay = fail_delay
        self.opened: list[str] = []
        self.closed: list[str] = []
        self.cancelled: list[str] = []

    async def open_store(self, model, descriptor):
        name = descriptor.location.name if descriptor.location else "memory"
        try:
            if name.startswith("slow"):
                await asyncio.sleep(self.slow_delay)
            elif name.startswith("fail"):
                await asyncio.sleep(self.fail_delay)
                raise StoreInitializationError(f"{name} is corrupt", descriptor)
            elif name.startswith("boom"):
                raise RuntimeError(f"{name} exploded")
        except asyncio.CancelledError:
            self.cancelled.append(name)
            raise
        self.opened.append(name)
        return StoreHandle(descriptor=descriptor, connection=None, entity_names=tuple(e.name for e in model.entities))

    async def close_store(self, handle):
        self.closed.append(handle.descriptor.location.name if handle.descriptor.location else "memory")


def schema(name: str, *entities: str) -> EntitySchema:
    return EntitySchema(
        name=name,
        entities=tuple(
            Entity(name=e, attributes=(Attribute(name="title", type=AttributeType.STRING),)) for e in entities
        ),
    )


RESOLVER = StaticSchemaResolver({"Users": schema("Users", "User"), "Billing": schema("Billing", "Charge")})


def on_disk(*names: str) -> DatabaseProperties:
    return DatabaseProperties(
        entity_model_sources=("Users",),
        store_descriptors=tuple(StoreDescriptor(kind=StoreKind.PERSISTENT, location=Path(n)) for n in names),
    )


# ── Variants and selector ────────────────────────────────────────────


def test_app_and_app_tests_share_schemas_but_not_store_kind(settings):
    provider = DatabaseFactoryProvider(settings)
    app = provider.create(DatabaseConfiguration.APP)
    app_tests = provider.create(DatabaseConfiguration.APP_TESTS)

    assert app.entity_model_sources == app_tests.entity_model_sources == APP_SCHEMAS
    assert [d.kind for d in app.store_descriptors] == [StoreKind.PERSISTENT]
    assert [d.kind for d in app_tests.store_descriptors] == [StoreKind.IN_MEMORY]
    assert app.store_descriptors[0].location == settings.store_directory / "com.example.app.sqlite"


def test_billing_tests_use_only_the_billing_schema(settings):
    billing = DatabaseFactoryProvider(settings).create(DatabaseConfiguration.BILLING_TESTS)
    app = DatabaseFactoryProvider(settings).create(DatabaseConfiguration.APP)

    assert billing.entity_model_sources == ("Billing",)
    assert set(billing.entity_model_sources) < set(app.entity_model_sources)
    assert [d.kind for d in billing.store_descriptors] == [StoreKind.IN_MEMORY]


@pytest.mark.parametrize("kind", list(DatabaseConfiguration))
def test_every_configuration_maps_to_a_variant(settings, kind):
    factory = DatabaseFactoryProvider(settings).create(kind)
    assert factory is not None
    assert factory.entity_model_sources
    assert factory.store_descriptors


def test_plain_string_configuration_is_accepted(settings):
    assert DatabaseFactoryProvider(settings).create(DatabaseConfiguration("billing-tests")).entity_model_sources == ("Billing",)


def test_unknown_configuration_cannot_be_named():
    with pytest.raises(ValueError):
        DatabaseConfiguration("staging")


# ── Container building ───────────────────────────────────────────────


def test_app_tests_container_is_ready_in_memory(settings):
    factory = DatabaseFactoryProvider(settings).create(DatabaseConfiguration.APP_TESTS)

    with make_persistent_container(factory, name="app-tests") as container:
        description = container.describe()
        tables = asyncio.run(container.stores[0].table_names())

    assert description.sources == list(APP_SCHEMAS)
    assert description.stores == [StoreSummary(kind=StoreKind.IN_MEMORY, location=None, read_only=False)]
    assert {"User", "Invoice", "Charge"} <= set(tables)
    assert container.stores == []


def test_app_container_writes_sqlite_file(settings):
    factory = DatabaseFactoryProvider(settings).create(DatabaseConfiguration.APP)

    container = make_persistent_container(factory)
    container.close()

    assert (settings.store_directory / "com.example.app.sqlite").exists()


def test_billing_container_only_has_billing_entities(settings):
    factory = DatabaseFactoryProvider(settings).create(DatabaseConfiguration.BILLING_TESTS)

    with make_persistent_container(factory) as container:
        entities = container.describe().entities

    assert entities == ["PaymentMethod", "Charge"]


def test_missing_schema_fails_before_any_store_opens():
    engine = FakeEngine()
    factory = DatabaseProperties(
        entity_model_sources=("Users", "Ghost"),
        store_descriptors=(StoreDescriptor(kind=StoreKind.IN_MEMORY),),
    )

    with pytest.raises(SchemaResolutionError):
        make_persistent_container(factory, resolver=RESOLVER, engine=engine)
    assert engine.opened == []


def test_conflicting_schemas_fail_to_merge():
    resolver = StaticSchemaResolver({"Users": schema("Users", "User"), "Accounts": schema("Accounts", "User")})
    factory = DatabaseProperties(
        entity_model_sources=("Users", "Accounts"),
        store_descriptors=(StoreDescriptor(kind=StoreKind.IN_MEMORY),),
    )

    with pytest.raises(SchemaMergeError):
        make_persistent_container(factory, resolver=resolver, engine=FakeEngine())


def test_all_stores_loaded_on_success():
    engine = FakeEngine(slow_delay=0.05)

    container = make_persistent_container(on_disk("ok-1", "slow-2", "ok-3"), resolver=RESOLVER, engine=engine)

    assert [h.descriptor.location.name for h in container.stores] == ["ok-1", "slow-2", "ok-3"]
    assert sorted(engine.opened) == ["ok-1", "ok-3", "slow-2"]


def test_first_store_error_is_raised_and_nothing_is_left_open():
    engine = FakeEngine(slow_delay=5.0)

    with pytest.raises(StoreInitializationError, match="fail-2 is corrupt") as excinfo:
        make_persistent_container(on_disk("ok-1", "fail-2", "slow-3"), resolver=RESOLVER, engine=engine)

    assert excinfo.value.descriptor.location == Path("fail-2")
    # The slow open was cancelled and the store that did open was closed again.
    assert engine.cancelled == ["slow-3"]
    assert engine.closed == ["ok-1"]


def test_earliest_failure_wins():
    engine = FakeEngine(fail_delay=0.3)

    with pytest.raises(StoreInitializationError, match="boom-2 exploded"):
        make_persistent_container(on_disk("fail-1", "boom-2"), resolver=RESOLVER, engine=engine)
    assert engine.cancelled == ["fail-1"]


def test_unexpected_engine_errors_are_wrapped():
    with pytest.raises(StoreInitializationError) as excinfo:
        make_persistent_container(on_disk("boom-1"), resolver=RESOLVER, engine=FakeEngine())

    assert isinstance(excinfo.value.__cause__, RuntimeError)
    assert excinfo.value.descriptor.location == Path("boom-1")


def test_slow_stores_time_out():
    engine = FakeEngine(slow_delay=30.0)

    with pytest.raises(StoreLoadTimeoutError):
        make_persistent_container(on_disk("ok-1", "slow-2"), resolver=RESOLVER, engine=engine, timeout=0.1)

    assert engine.cancelled == ["slow-2"]
    assert engine.closed == ["ok-1"]


def test_default_timeout_comes_from_settings(monkeypatch):
    monkeypatch.setenv("CREATIONAL_STORE_LOAD_TIMEOUT", "0.1")

    with pytest.raises(StoreLoadTimeoutError):
        make_persistent_container(on_disk("slow-1"), resolver=RESOLVER, engine=FakeEngine(slow_delay=30.0))


def test_can_be_called_from_running_event_loop():
    async def scenario():
        return make_persistent_container(on_disk("ok-1"), resolver=RESOLVER, engine=FakeEngine())

    container = asyncio.run(scenario())
    assert len(container.stores) == 1


# ── Locked store files ───────────────────────────────────────────────


@pytest.fixture
def locked_app_store(settings):
    """An app store file another connection holds an EXCLUSIVE lock on."""
    factory = DatabaseFactoryProvider(settings).create(DatabaseConfiguration.APP)
    make_persistent_container(factory).close()

    holder = sqlite3.connect(settings.store_directory / "com.example.app.sqlite", isolation_level=None)
    holder.execute("BEGIN EXCLUSIVE")
    try:
        yield factory
    finally:
        holder.execute("ROLLBACK")
        holder.close()


def test_locked_store_times_out_on_schedule(locked_app_store):
    # The engine would wait 5s for the lock; the load timeout must still win.
    started = time.monotonic()
    with pytest.raises(StoreLoadTimeoutError):
        make_persistent_container(locked_app_store, engine=SQLiteStoreEngine(busy_timeout=5.0), timeout=0.2)

    assert time.monotonic() - started < 2.0


def test_default_engine_waits_on_locks_no_longer_than_timeout(locked_app_store):
    started = time.monotonic()
    with pytest.raises(StoreInitializationError):
        make_persistent_container(locked_app_store, timeout=0.2)

    assert time.monotonic() - started < 2.0
