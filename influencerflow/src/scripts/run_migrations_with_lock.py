from __future__ import annotations

import asyncio
import subprocess
import sys

import asyncpg

from influencerflow.src.config import DATABASE_URL


# Serializes migrations across replicas starting at the same time.
MIGRATION_LOCK_ID = 712340001
ALEMBIC_CMD = ["alembic", "-c", "influencerflow/alembic.ini", "upgrade", "head"]


def _asyncpg_dsn(database_url: str) -> str | None:
    """Plain postgresql:// DSN for asyncpg, or None for non-postgres databases."""
    for prefix in ("postgresql+asyncpg://", "postgresql+psycopg2://", "postgresql://", "postgres://"):
        if database_url.startswith(prefix):
            return "postgresql://" + database_url[len(prefix) :]
    return None


def _upgrade() -> int:
    return subprocess.run(ALEMBIC_CMD, check=True).returncode


async def _run() -> int:
    if not DATABASE_URL:
        print("DATABASE_URL is not set; skipping migrations.", file=sys.stderr)
        return 0

    dsn = _asyncpg_dsn(DATABASE_URL)
    if dsn is None:
        # Advisory locks are postgres-only; local sqlite has a single writer anyway.
        return _upgrade()

    conn = await asyncpg.connect(dsn)
    try:
        await conn.execute("SELECT pg_advisory_lock($1);", MIGRATION_LOCK_ID)
        try:
            return _upgrade()
        finally:
            await conn.execute("SELECT pg_advisory_unlock($1);", MIGRATION_LOCK_ID)
    finally:
        await conn.close()


def main() -> None:
    raise SystemExit(asyncio.run(_run()))


if __name__ == "__main__":
    main()
