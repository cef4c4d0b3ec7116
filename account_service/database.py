"""PostgreSQL pool and schema management for the credential store.

The pool is created once at application startup. Store operations that run
before that, or after the pool is closed, fail with ``StoreUnavailable``
rather than a bare runtime error.
"""

import asyncio
from pathlib import Path
from typing import Optional

import asyncpg
import structlog

from account_service.config import Settings, get_settings
from account_service.errors import StoreUnavailable

logger = structlog.get_logger(__name__)

MIGRATIONS_DIR = Path(__file__).parent.parent / "migrations"

_CONNECT_ERRORS = (OSError, asyncio.TimeoutError, asyncpg.PostgresError)

_pool: Optional[asyncpg.Pool] = None


async def get_pool() -> asyncpg.Pool:
    """Return the credential store pool.

    Raises:
        StoreUnavailable: If ``init_database`` has not run or the pool was closed
    """
    if _pool is None:
        raise StoreUnavailable("Credential store pool is not initialized")
    return _pool


async def init_database(settings: Optional[Settings] = None) -> asyncpg.Pool:
    """Create the pool, bounding both connection setup and each command.

    Calling it again while a pool exists returns the existing pool.

    Raises:
        StoreUnavailable: If PostgreSQL cannot be reached
    """
    global _pool

    if _pool is not None:
        return _pool

    settings = settings or get_settings()
    try:
        _pool = await asyncpg.create_pool(
            settings.postgres_url,
            min_size=settings.db_pool_min_size,
            max_size=settings.db_pool_max_size,
            timeout=settings.db_command_timeout,
            command_timeout=settings.db_command_timeout,
        )
    except _CONNECT_ERRORS as e:
        logger.error("credential_store_connect_failed", error=str(e))
        raise StoreUnavailable() from e

    logger.info(
        "credential_store_connected",
        min_size=settings.db_pool_min_size,
        max_size=settings.db_pool_max_size,
    )
    return _pool


async def close_database() -> None:
    global _pool

    if _pool is None:
        return
    pool, _pool = _pool, None
    await pool.close()
    logger.info("credential_store_closed")


async def run_migrations(migrations_dir: Path = MIGRATIONS_DIR) -> list[str]:
    """Apply pending ``*.sql`` files in name order, each exactly once.

    Applied file names are recorded in ``schema_migrations``; each file runs
    in its own transaction together with its ledger row.

    Returns:
        Names of the files applied by this call
    """
    pool = await get_pool()
    files = sorted(migrations_dir.glob("*.sql"))
    if not files:
        logger.warning("migrations_not_found", path=str(migrations_dir))
        return []

    applied: list[str] = []
    async with pool.acquire() as conn:
        await conn.execute(
            """
            CREATE TABLE IF NOT EXISTS schema_migrations (
                name TEXT PRIMARY KEY,
                applied_at TIMESTAMPTZ NOT NULL DEFAULT now()
            )
            """
        )
        done = {row["name"] for row in await conn.fetch("SELECT name FROM schema_migrations")}

        for path in files:
            if path.name in done:
                continue
            async with conn.transaction():
                await conn.execute(path.read_text())
                await conn.execute(
                    "INSERT INTO schema_migrations (name) VALUES ($1)", path.name
                )
            applied.append(path.name)
            logger.info("migration_applied", file=path.name)

    return applied


async def health_check() -> bool:
    """Return True if the store is reachable and the ``users`` table exists."""
    try:
        pool = await get_pool()
        async with pool.acquire(timeout=get_settings().db_command_timeout) as conn:
            return bool(await conn.fetchval("SELECT to_regclass('public.users') IS NOT NULL"))
    except (StoreUnavailable, *_CONNECT_ERRORS) as e:
        logger.warning("credential_store_unhealthy", error=str(e))
        return False
