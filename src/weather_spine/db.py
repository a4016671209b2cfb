"""PostgreSQL database connection and migration management using psycopg3."""

from contextlib import contextmanager
from pathlib import Path
from typing import Iterator

import structlog
from psycopg import Connection
from psycopg.rows import dict_row
from psycopg_pool import ConnectionPool

from weather_spine.config import get_settings

logger = structlog.get_logger()

# Global connection pool
_pool: ConnectionPool | None = None


def get_pool() -> ConnectionPool:
    """Get or create connection pool."""
    global _pool
    if _pool is None:
        settings = get_settings()
        _pool = ConnectionPool(
            settings.database_url,
            min_size=2,
            max_size=10,
            kwargs={"row_factory": dict_row},
            open=True,
        )
    return _pool


def close_pool() -> None:
    """Close connection pool."""
    global _pool
    if _pool is not None:
        _pool.close()
        _pool = None


@contextmanager
def get_connection() -> Iterator[Connection]:
    """Get a connection from the pool."""
    with get_pool().connection() as conn:
        yield conn


def find_migrations_dir() -> Path:
    """Locate the migrations directory (repo checkout or working directory)."""
    possible_paths = [
        Path(__file__).parent.parent.parent / "migrations",
        Path("migrations"),
    ]
    for path in possible_paths:
        if path.exists():
            return path
    raise FileNotFoundError(f"Migrations directory not found. Tried: {possible_paths}")


def init_db(migrations_dir: Path | None = None) -> list[str]:
    """Apply pending SQL migrations. Returns the names of applied files."""
    migrations_dir = migrations_dir or find_migrations_dir()
    logger.info("running_migrations", migrations_dir=str(migrations_dir))

    applied_now: list[str] = []
    with get_connection() as conn:
        conn.execute("""
            CREATE TABLE IF NOT EXISTS _migrations (
                filename TEXT PRIMARY KEY,
                applied_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
            )
        """)
        conn.commit()

        result = conn.execute("SELECT filename FROM _migrations")
        applied = {row["filename"] for row in result.fetchall()}

        for migration_file in sorted(migrations_dir.glob("*.sql")):
            if migration_file.name in applied:
                logger.debug("migration_already_applied", filename=migration_file.name)
                continue

            logger.info("applying_migration", filename=migration_file.name)
            conn.execute(migration_file.read_text())
            conn.execute(
                "INSERT INTO _migrations (filename) VALUES (%s)",
                (migration_file.name,),
            )
            conn.commit()
            applied_now.append(migration_file.name)

            logger.info("migration_applied", filename=migration_file.name)

    return applied_now
