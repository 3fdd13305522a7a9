from __future__ import annotations

import asyncio
import logging

import asyncpg
from sqlalchemy.engine import make_url

from tabletip_api.observability.logging import configure_logging
from tabletip_api.settings import get_settings

logger = logging.getLogger("tabletip_api.scripts.ensure_database")


def _quote_identifier(value: str) -> str:
    return '"' + value.replace('"', '""') + '"'


def _build_admin_url(database_url: str) -> tuple[str, str] | None:
    """Return the maintenance database URL and target name, or None for non-Postgres URLs."""
    url = make_url(database_url)
    if not url.drivername.startswith("postgresql"):
        return None
    target_database = url.database or "tabletip"
    admin_url = url.set(database="postgres", drivername="postgresql").render_as_string(
        hide_password=False
    )
    return admin_url, target_database


async def ensure_database() -> None:
    configure_logging()
    built = _build_admin_url(get_settings().database_url)
    if built is None:
        logger.info("ensure_database_skipped", extra={"reason": "not_postgres"})
        return

    admin_url, target_database = built
    if target_database in {"postgres", ""}:
        return

    conn = await asyncpg.connect(admin_url)
    try:
        exists = await conn.fetchval(
            "SELECT 1 FROM pg_database WHERE datname = $1",
            target_database,
        )
        if exists:
            return
        await conn.execute(f"CREATE DATABASE {_quote_identifier(target_database)}")
        logger.info("database_created", extra={"database": target_database})
    finally:
        await conn.close()


if __name__ == "__main__":
    asyncio.run(ensure_database())
