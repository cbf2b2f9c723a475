"""
Domain models for the coffee shop (Abstract Factory walkthrough).

All models use Pydantic v2 BaseModel with `frozen=True`: a drink is a value,
once it leaves the factory nobody may change what went into it.

Two kinds of objects live here:
  - **Products** the client actually uses: Coffee, Tea, Water (the `Drink`
    tagged union) collected into an `Order`.
  - **Ingredients** shared between products of one shop: `Sugar`. Each
    factory family ships its own Sugar subtype, and this is what separates
    one family from another. Sugar made by one shop must never end up in a
    drink made by another shop ("family purity").

Enums inherit from (str, Enum) so they serialize as plain strings in JSON.
"""

from enum import Enum
from typing import Annotated, Literal

from pydantic import BaseModel, ConfigDict, Field


class Locale(str, Enum):
    """Markets the app is released in. Each one gets its own shop family."""

    EU = "eu"  # App released in the EU market
    US = "us"  # App released in the US market


# ── Ingredients ──────────────────────────────────────────────────────


class Sugar(BaseModel):
    """Base ingredient. Never created directly; ask a factory for it.

    `origin` tags the factory instance that produced the sugar. Factories
    compare it (together with the concrete subtype) before using the sugar.
    """

    model_config = ConfigDict(frozen=True)

    spoons: int = Field(..., ge=0)
    origin: str = Field(..., repr=False)


class WhiteSugar(Sugar):
    """Sugar of the European shop family."""

    family: Literal["white"] = "white"


class GraySugar(Sugar):
    """Sugar of the US shop family."""

    family: Literal["gray"] = "gray"


# `family` keeps the concrete sugar type when a drink is loaded from JSON.
FamilySugar = WhiteSugar | GraySugar


# ── Products ─────────────────────────────────────────────────────────


class Coffee(BaseModel):
    model_config = ConfigDict(frozen=True)

    kind: Literal["coffee"] = "coffee"
    name: str  # e.g. "Latte", "Espresso"
    sugar: FamilySugar  # The exact Sugar instance the drink was made with


class Tea(BaseModel):
    model_config = ConfigDict(frozen=True)

    kind: Literal["tea"] = "tea"
    name: str
    sugar: FamilySugar


class Water(BaseModel):
    """Water has no ingredients, so any shop can hand it out."""

    model_config = ConfigDict(frozen=True)

    kind: Literal["water"] = "water"
    name: str


# Tagged union: the `kind` field tells pydantic which drink model to build
# when an order is loaded back from JSON.
Drink = Annotated[Coffee | Tea | Water, Field(discriminator="kind")]


class Order(BaseModel):
    """An ordered sequence of drinks, only used to exercise a factory."""

    model_config = ConfigDict(frozen=True)

    drinks: list[Drink] = Field(default_factory=list)
