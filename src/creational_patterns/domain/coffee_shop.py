"""
Coffee shop factories (Abstract Factory pattern).

The **Abstract Factory pattern** creates *families* of related objects
without the client naming their concrete classes. The client holds a
`CoffeeShopFactory` (a Protocol) and calls `make_coffee()`, `make_tea()`,
`make_water()` and `make_sugar()`; which latte or which sugar it gets depends
on the concrete factory picked at startup.

The important rule: products of one family must not be mixed with products
of another. Every factory tags the sugar it makes, and refuses sugar it did
not make itself. Passing foreign sugar is a bug at the call site, so it is
reported with an `AssertionError` rather than a recoverable exception.

Factories hold no mutable state, so a single handle can be shared freely
between threads.
"""

import logging
import random
import uuid
from typing import Protocol, assert_never

from creational_patterns.domain.models import (
    Coffee,
    GraySugar,
    Locale,
    Order,
    Sugar,
    Tea,
    Water,
    WhiteSugar,
)

logger = logging.getLogger(__name__)


class CoffeeShopFactory(Protocol):
    """Interface every shop family implements.

    Structural subtyping: concrete factories do not inherit from it.
    """

    locale: Locale

    def make_coffee(self, sugar: Sugar) -> Coffee: ...

    def make_tea(self, sugar: Sugar) -> Tea: ...

    def make_water(self) -> Water: ...

    def make_sugar(self, spoons: int) -> Sugar: ...


def _require_own_sugar(sugar: Sugar, sugar_type: type[Sugar], origin: str) -> None:
    # An explicit raise instead of `assert` so the check survives `python -O`.
    if type(sugar) is not sugar_type or sugar.origin != origin:
        raise AssertionError(
            f"{type(sugar).__name__} from another factory cannot be used here; "
            f"expected {sugar_type.__name__} made by this factory"
        )


class EuropeanCoffeeShopFactory:
    """EU family: Latte, Green Tea, Arctic Water, white sugar."""

    locale = Locale.EU

    def __init__(self) -> None:
        self._origin = uuid.uuid4().hex

    def make_coffee(self, sugar: Sugar) -> Coffee:
        _require_own_sugar(sugar, WhiteSugar, self._origin)
        return Coffee(name="Latte", sugar=sugar)

    def make_tea(self, sugar: Sugar) -> Tea:
        _require_own_sugar(sugar, WhiteSugar, self._origin)
        return Tea(name="Green Tea", sugar=sugar)

    def make_water(self) -> Water:
        return Water(name="Arctic Water")

    def make_sugar(self, spoons: int) -> Sugar:
        return WhiteSugar(spoons=spoons, origin=self._origin)


class USACoffeeShopFactory:
    """US family: Espresso, Black Tea, Filtered Water, gray sugar."""

    locale = Locale.US

    def __init__(self) -> None:
        self._origin = uuid.uuid4().hex

    def make_coffee(self, sugar: Sugar) -> Coffee:
        _require_own_sugar(sugar, GraySugar, self._origin)
        return Coffee(name="Espresso", sugar=sugar)

    def make_tea(self, sugar: Sugar) -> Tea:
        _require_own_sugar(sugar, GraySugar, self._origin)
        return Tea(name="Black Tea", sugar=sugar)

    def make_water(self) -> Water:
        return Water(name="Filtered Water")

    def make_sugar(self, spoons: int) -> Sugar:
        return GraySugar(spoons=spoons, origin=self._origin)


class CoffeeShopFactoryProvider:
    """Picks the shop family for the current market.

    Selection order: explicit `locale` argument, then `default_locale`
    (usually `CREATIONAL_LOCALE` from settings), then a random market.
    """

    def __init__(self, default_locale: Locale | None = None, rng: random.Random | None = None) -> None:
        self.default_locale = default_locale
        self._rng = rng or random.Random()

    def make_factory(self, locale: Locale | None = None) -> CoffeeShopFactory:
        chosen = locale or self.default_locale or self._rng.choice(list(Locale))
        match chosen:
            case Locale.EU:
                factory: CoffeeShopFactory = EuropeanCoffeeShopFactory()
            case Locale.US:
                factory = USACoffeeShopFactory()
            case _:
                assert_never(chosen)
        logger.info("Opening %s coffee shop", factory.locale.value)
        return factory


def place_order(factory: CoffeeShopFactory, spoons: tuple[int, int, int] = (1, 2, 0)) -> Order:
    """Build the sample order: two coffees, one tea and a water.

    Every sugar comes from the same factory that makes the drinks.
    """
    first, second, tea = spoons
    return Order(
        drinks=[
            factory.make_coffee(factory.make_sugar(first)),
            factory.make_coffee(factory.make_sugar(second)),
            factory.make_tea(factory.make_sugar(tea)),
            factory.make_water(),
        ]
    )
