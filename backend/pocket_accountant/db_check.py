"""Pre-flight checks for ``DATABASE_URL``: format, connectivity and schema setup."""

from __future__ import annotations

import argparse
import logging
from dataclasses import dataclass, field

from sqlalchemy import inspect, text
from sqlalchemy.engine import Engine, make_url
from sqlalchemy.exc import ArgumentError, SQLAlchemyError

from . import models  # noqa: F401
from .config import get_settings
from .db import Base, build_engine
from .migrations import run_migrations

logger = logging.getLogger(__name__)

EXPECTED_TABLES = ("users", "categories", "purchases", "category_limits")


@dataclass(slots=True)
class UrlReport:
    issues: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.issues


def validate_database_url(url: str) -> UrlReport:
    """Check that ``url`` is a usable SQLAlchemy URL with every part a server database needs."""
    report = UrlReport()
    try:
        parsed = make_url(url.strip())
    except ArgumentError as exc:
        report.issues.append(f"Could not parse the URL: {exc}")
        return report

    backend = parsed.get_backend_name()
    if backend == "sqlite":
        return report
    if backend != "postgresql":
        report.warnings.append(f"Unexpected database backend {backend!r}; PostgreSQL or SQLite is expected.")

    if not parsed.username:
        report.issues.append("The user name is missing (usually postgres).")
    if not parsed.password:
        report.issues.append("The password is missing.")
    elif str(parsed.password).startswith(("http://", "https://")):
        report.issues.append("The password looks like a URL; use the database password instead.")
    if not parsed.host:
        report.issues.append("The host is missing.")
    if parsed.port is None:
        report.warnings.append("No port given; the driver default (5432) will be used.")
    if not parsed.database:
        report.issues.append("The database name is missing (usually postgres).")
    if backend == "postgresql" and "sslmode" not in parsed.query:
        report.warnings.append("Add ?sslmode=require for hosted databases.")
    return report


def check_connection(engine: Engine) -> list[str]:
    """Run ``SELECT 1`` and return the expected tables that are missing."""
    with engine.connect() as connection:
        connection.execute(text("SELECT 1"))
    existing = set(inspect(engine).get_table_names())
    return [name for name in EXPECTED_TABLES if name not in existing]


def setup_database(engine: Engine) -> None:
    Base.metadata.create_all(bind=engine)
    run_migrations(engine)


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(description="Check the bot database configuration.")
    parser.add_argument("--url", help="database URL to check instead of DATABASE_URL")
    parser.add_argument("--setup", action="store_true", help="create missing tables and run migrations")
    args = parser.parse_args(argv)

    settings = get_settings()
    logging.basicConfig(
        level=settings.log_level.upper(),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )
    url = args.url or settings.database_url

    report = validate_database_url(url)
    for warning in report.warnings:
        logger.warning(warning)
    if not report.ok:
        for issue in report.issues:
            logger.error(issue)
        return 1

    engine = build_engine(url)
    try:
        if args.setup:
            setup_database(engine)
        missing = check_connection(engine)
    except SQLAlchemyError as exc:
        logger.error("Could not connect to the database: %s", exc)
        return 2
    finally:
        engine.dispose()

    if missing:
        logger.warning("Missing tables: %s. Run with --setup to create them.", ", ".join(missing))
        return 1
    logger.info("Database is reachable and the schema is complete.")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
