"""
CLI: run each creational pattern walkthrough from the terminal.

Usage:
    # Abstract Factory: order drinks from a shop picked for the market
    python -m creational_patterns.cli order --locale eu --spoons 1 2 0

    # Factory Method: build a database container from a named configuration
    python -m creational_patterns.cli database --configuration app-tests

    # Singleton: show that both session variants hand out one instance
    python -m creational_patterns.cli session

Settings come from `CREATIONAL_*` environment variables (see config.py).
"""

import argparse
import logging

from pydantic import BaseModel, ConfigDict

from creational_patterns.config import get_settings
from creational_patterns.domain.coffee_shop import place_order
from creational_patterns.domain.models import Locale
from creational_patterns.errors import PersistenceError
from creational_patterns.services.database import DatabaseConfiguration, make_persistent_container
from creational_patterns.services.factory import AppDependencies
from creational_patterns.services.session import SharedSession

logger = logging.getLogger(__name__)


def _non_negative(value: str) -> int:
    spoons = int(value)
    if spoons < 0:
        raise argparse.ArgumentTypeError("spoons cannot be negative")
    return spoons


def _positive_seconds(value: str) -> float:
    seconds = float(value)
    if not seconds > 0:
        raise argparse.ArgumentTypeError("timeout must be a positive number of seconds")
    return seconds


class SessionReport(BaseModel):
    model_config = ConfigDict(frozen=True)

    shared_session: str
    shared_session_is_unique: bool
    app_session: str
    app_session_is_unique: bool
    app_session_touches: int


def run_order(args: argparse.Namespace, deps: AppDependencies) -> int:
    locale = Locale(args.locale) if args.locale else None
    factory = deps.coffee_shop_provider.make_factory(locale)
    order = place_order(factory, spoons=tuple(args.spoons))
    logger.info("Order of %d drinks from the %s shop", len(order.drinks), factory.locale.value)
    print(order.model_dump_json(indent=2))
    return 0


def run_database(args: argparse.Namespace, deps: AppDependencies) -> int:
    configuration = DatabaseConfiguration(args.configuration)
    factory = deps.database_provider.create(configuration)
    try:
        container = make_persistent_container(
            factory,
            resolver=deps.schema_resolver,
            engine=deps.store_engine,
            timeout=args.timeout if args.timeout is not None else deps.settings.store_load_timeout,
            name=configuration.value,
        )
    except PersistenceError as exc:
        logger.error("Could not build the %s database: %s", configuration.value, exc)
        return 1
    with container:
        print(container.describe().model_dump_json(indent=2))
    return 0


def run_session(args: argparse.Namespace, deps: AppDependencies) -> int:
    first, second = SharedSession.shared(), SharedSession.shared()
    # Both "consumers" receive the root's reference instead of building one.
    consumers = [deps.app_session, deps.app_session]
    for session in consumers:
        session.touch()
    report = SessionReport(
        shared_session=first.session_id,
        shared_session_is_unique=first is second,
        app_session=deps.app_session.session_id,
        app_session_is_unique=consumers[0] is consumers[1],
        app_session_touches=deps.app_session.touches,
    )
    print(report.model_dump_json(indent=2))
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Creational design pattern walkthroughs")
    sub = parser.add_subparsers(dest="command", required=True)

    order = sub.add_parser("order", help="Abstract Factory: order drinks from one shop family")
    order.add_argument("--locale", choices=[loc.value for loc in Locale], default=None, help="Market; random if omitted")
    order.add_argument(
        "--spoons", type=_non_negative, nargs=3, default=[1, 2, 0], metavar=("COFFEE1", "COFFEE2", "TEA"),
        help="Spoons of sugar for each sweetened drink",
    )
    order.set_defaults(handler=run_order)

    database = sub.add_parser("database", help="Factory Method: build a database container")
    database.add_argument(
        "--configuration", required=True, choices=[c.value for c in DatabaseConfiguration],
        help="Which database setup to build",
    )
    database.add_argument("--timeout", type=_positive_seconds, default=None, help="Seconds to wait for stores to load")
    database.set_defaults(handler=run_database)

    session = sub.add_parser("session", help="Singleton: compare both session variants")
    session.set_defaults(handler=run_session)
    return parser


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    settings = get_settings()
    logging.basicConfig(
        level=settings.log_level.upper(), format="%(asctime)s [%(levelname)s] %(name)s: %(message)s"
    )
    return args.handler(args, AppDependencies(settings))


if __name__ == "__main__":
    raise SystemExit(main())
