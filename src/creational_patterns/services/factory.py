"""
Dependencies root for the app (service locator, injected).

`AppDependencies` is created once at startup and owns exactly one
`AppSession`, built eagerly in the constructor. Anything that needs the
session receives it from the root instead of reaching for a global:

    deps = AppDependencies()
    screen = LaunchScreen(app_session=deps.app_session)

The collaborators used by the database walkthrough are lazily created and
cached per root, following the same "build once, hand out the same object"
rule.

Tests build their own root and can swap the session constructor:

    deps = AppDependencies(settings=test_settings, session_factory=FakeSession)
"""

import logging
from collections.abc import Callable

from creational_patterns.config import CreationalSettings, get_settings
from creational_patterns.domain.coffee_shop import CoffeeShopFactoryProvider
from creational_patterns.services.database import DatabaseFactoryProvider
from creational_patterns.services.schema import BundleSchemaResolver, SchemaResolver
from creational_patterns.services.session import AppSession, SessionDependencies
from creational_patterns.services.store_engine import SQLiteStoreEngine, StoreEngine

logger = logging.getLogger(__name__)


class AppDependencies:
    """Owns the single AppSession and caches shared collaborators."""

    def __init__(
        self,
        settings: CreationalSettings | None = None,
        session_factory: Callable[[SessionDependencies], AppSession] = AppSession,
    ) -> None:
        self.settings = settings or get_settings()
        self.app_session = session_factory(SessionDependencies(settings=self.settings))
        logger.info("Dependencies root created with session %s", self.app_session.session_id)

        self._schema_resolver: SchemaResolver | None = None
        self._store_engine: StoreEngine | None = None
        self._database_provider: DatabaseFactoryProvider | None = None
        self._coffee_shop_provider: CoffeeShopFactoryProvider | None = None

    @property
    def schema_resolver(self) -> SchemaResolver:
        if self._schema_resolver is None:
            self._schema_resolver = BundleSchemaResolver()
        return self._schema_resolver

    @property
    def store_engine(self) -> StoreEngine:
        if self._store_engine is None:
            self._store_engine = SQLiteStoreEngine(busy_timeout=self.settings.store_load_timeout)
        return self._store_engine

    @property
    def database_provider(self) -> DatabaseFactoryProvider:
        if self._database_provider is None:
            self._database_provider = DatabaseFactoryProvider(self.settings)
        return self._database_provider

    @property
    def coffee_shop_provider(self) -> CoffeeShopFactoryProvider:
        if self._coffee_shop_provider is None:
            self._coffee_shop_provider = CoffeeShopFactoryProvider(default_locale=self.settings.locale)
        return self._coffee_shop_provider
