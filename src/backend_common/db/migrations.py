"""Checksum-tracked SQL migrations applied on service startup."""
from __future__ import annotations

import asyncio
import hashlib
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Awaitable, Callable, Protocol

import asyncpg  # type: ignore[import-untyped]
import structlog

logger = structlog.get_logger(__name__)

_SCHEMA_MIGRATIONS_DDL = """
CREATE TABLE IF NOT EXISTS schema_migrations (
    version text PRIMARY KEY,
    checksum text NOT NULL,
    applied_at timestamptz NOT NULL DEFAULT now()
);
"""


class SettingsProtocol(Protocol):
    database_url: Any


@dataclass(frozen=True)
class Migration:
    version: str
    path: Path
    sql: str

    @property
    def checksum(self) -> str:
        return hashlib.sha256(self.sql.encode("utf-8")).hexdigest()


def load_migrations(migrations_dir: Path) -> list[Migration]:
    """Read ``*.sql`` files ordered by name; the file stem is the version."""
    migrations: list[Migration] = []
    seen: set[str] = set()
    for path in sorted(migrations_dir.glob("*.sql")):
        if path.stem in seen:
            raise ValueError(f"Duplicate migration version detected: {path.stem}")
        seen.add(path.stem)
        migrations.append(Migration(path.stem, path, path.read_text(encoding="utf-8")))
    return migrations


def pending_migrations(migrations: list[Migration], applied: dict[str, str]) -> list[Migration]:
    """Return migrations not yet applied; raise if an applied file was edited."""
    pending: list[Migration] = []
    for migration in migrations:
        recorded = applied.get(migration.version)
        if recorded is None:
            pending.append(migration)
        elif recorded != migration.checksum:
            raise RuntimeError(
                f"Checksum mismatch for {migration.version}: "
                f"{recorded} (db) != {migration.checksum} (file)"
            )
    return pending


async def _connect(database_url: str, *, retries: int, retry_delay: float) -> asyncpg.Connection | None:
    for attempt in range(1, retries + 1):
        try:
            return await asyncpg.connect(database_url)
        except (OSError, asyncpg.PostgresError) as exc:
            logger.warning(
                "migrations: database connection failed",
                attempt=attempt,
                max_attempts=retries,
                error=str(exc),
            )
            if attempt < retries:
                await asyncio.sleep(retry_delay)
    return None


def create_migration_runner(
    settings: SettingsProtocol,
    migrations_dir: Path,
    *,
    retries: int = 5,
    retry_delay: float = 2.0,
) -> Callable[[Any], Awaitable[None]]:
    """Create an aiohttp ``on_startup`` hook applying pending migrations."""

    async def apply_migrations_on_startup(_app: Any = None) -> None:
        if not migrations_dir.exists():
            logger.warning("migrations: directory not found, skipping", path=str(migrations_dir))
            return
        migrations = load_migrations(migrations_dir)
        if not migrations:
            logger.warning("migrations: nothing to apply", path=str(migrations_dir))
            return

        conn = await _connect(str(settings.database_url), retries=retries, retry_delay=retry_delay)
        if conn is None:
            raise RuntimeError("Could not connect to the database to apply migrations")

        try:
            await conn.execute(_SCHEMA_MIGRATIONS_DDL)
            rows = await conn.fetch("SELECT version, checksum FROM schema_migrations")
            pending = pending_migrations(migrations, {r["version"]: r["checksum"] for r in rows})
            if not pending:
                logger.info("migrations: up to date")
                return
            for migration in pending:
                logger.info("migrations: applying", version=migration.version)
                async with conn.transaction():
                    await conn.execute(migration.sql)
                    await conn.execute(
                        "INSERT INTO schema_migrations (version, checksum) VALUES ($1, $2)",
                        migration.version,
                        migration.checksum,
                    )
            logger.info("migrations: applied", count=len(pending))
        finally:
            await conn.close()

    return apply_migrations_on_startup
