from __future__ import annotations

import logging

from sqlalchemy import inspect, text
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError

logger = logging.getLogger(__name__)

# Columns added to category_limits after the first release, with their DDL type and default.
_LIMIT_COLUMNS: dict[str, tuple[str, str | None]] = {
    "threshold": ("INTEGER", "75"),
    "last_notified_at": ("TIMESTAMP", None),
}


def _ensure_limit_columns(engine: Engine) -> None:
    inspector = inspect(engine)
    try:
        columns = {column["name"] for column in inspector.get_columns("category_limits")}
    except SQLAlchemyError as exc:  # pragma: no cover
        logger.error("Failed to inspect category_limits table: %s", exc)
        return

    missing = [name for name in _LIMIT_COLUMNS if name not in columns]
    if not missing:
        return

    dialect = engine.dialect.name.lower()
    try:
        with engine.begin() as connection:
            for name in missing:
                column_type, default = _LIMIT_COLUMNS[name]
                logger.info("Adding %s column to category_limits table.", name)
                add_column_sql = f"ALTER TABLE category_limits ADD COLUMN {name} {column_type}"
                if default is None:
                    connection.execute(text(add_column_sql))
                elif dialect == "sqlite":
                    connection.execute(text(f"{add_column_sql} NOT NULL DEFAULT {default}"))
                else:
                    connection.execute(text(add_column_sql))
                    connection.execute(
                        text(f"UPDATE category_limits SET {name} = {default} WHERE {name} IS NULL")
                    )
                    connection.execute(
                        text(f"ALTER TABLE category_limits ALTER COLUMN {name} SET DEFAULT {default}")
                    )
                    connection.execute(
                        text(f"ALTER TABLE category_limits ALTER COLUMN {name} SET NOT NULL")
                    )
    except SQLAlchemyError as exc:  # pragma: no cover
        logger.error("Failed to migrate category_limits: %s", exc)


def run_migrations(engine: Engine) -> None:
    """Execute lightweight, idempotent migrations on application start."""
    _ensure_limit_columns(engine)
