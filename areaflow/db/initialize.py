"""
AreaFlow Database Schema Management.

Lightweight migration system:
- Tracks current schema version in a `schema_version` table
- Only runs migrations that haven't been applied yet
- Each migration is a (version, description, SQL) tuple
- Safe for concurrent startup (uses advisory lock)

Usage:
    db = Database(dsn="postgresql://...")
    await db.initialize()
    await ensure_schema(db)
"""

import logging
from typing import List, Tuple

from .database import Database

logger = logging.getLogger(__name__)

# ──────────────────────────────────────────────────────────────
# Migration registry
#
# Append-only. Never modify or delete existing entries.
# Each entry: (version, description, sql)
# ──────────────────────────────────────────────────────────────
MIGRATIONS: List[Tuple[int, str, str]] = [
    (
        1,
        "Create connections table",
        """
        CREATE TABLE IF NOT EXISTS connections (
            id              UUID PRIMARY KEY DEFAULT gen_random_uuid(),
            user_id         TEXT NOT NULL,
            service         TEXT NOT NULL,
            access_token    TEXT,
            refresh_token   TEXT,
            expires_at      TIMESTAMPTZ,
            provider_data   JSONB NOT NULL DEFAULT '{}',
            created_at      TIMESTAMPTZ NOT NULL DEFAULT NOW(),
            updated_at      TIMESTAMPTZ NOT NULL DEFAULT NOW(),
            UNIQUE (user_id, service)
        );
        """,
    ),
    (
        2,
        "Create areas table",
        """
        CREATE TABLE IF NOT EXISTS areas (
            id                  UUID PRIMARY KEY DEFAULT gen_random_uuid(),
            user_id             TEXT NOT NULL,
            name                TEXT NOT NULL,
            description         TEXT,
            enabled             BOOLEAN NOT NULL DEFAULT TRUE,
            last_triggered_at   TIMESTAMPTZ,
            trigger_count       INTEGER NOT NULL DEFAULT 0,
            created_at          TIMESTAMPTZ NOT NULL DEFAULT NOW(),
            updated_at          TIMESTAMPTZ NOT NULL DEFAULT NOW()
        );
        CREATE INDEX IF NOT EXISTS idx_areas_enabled ON areas (enabled);
        """,
    ),
    (
        3,
        "Create area_triggers table",
        """
        CREATE TABLE IF NOT EXISTS area_triggers (
            id              UUID PRIMARY KEY DEFAULT gen_random_uuid(),
            area_id         UUID NOT NULL UNIQUE REFERENCES areas(id) ON DELETE CASCADE,
            service_name    TEXT NOT NULL,
            trigger_name    TEXT NOT NULL,
            params          JSONB NOT NULL DEFAULT '{}',
            metadata        JSONB NOT NULL DEFAULT '{}',
            connection_id   UUID REFERENCES connections(id) ON DELETE SET NULL
        );
        """,
    ),
    (
        4,
        "Create area_reactions table",
        """
        CREATE TABLE IF NOT EXISTS area_reactions (
            id              UUID PRIMARY KEY DEFAULT gen_random_uuid(),
            area_id         UUID NOT NULL REFERENCES areas(id) ON DELETE CASCADE,
            position        INTEGER NOT NULL DEFAULT 0,
            service_name    TEXT NOT NULL,
            reaction_name   TEXT NOT NULL,
            params          JSONB NOT NULL DEFAULT '{}',
            connection_id   UUID REFERENCES connections(id) ON DELETE SET NULL
        );
        CREATE INDEX IF NOT EXISTS idx_area_reactions_area ON area_reactions (area_id, position);
        """,
    ),
]


# ──────────────────────────────────────────────────────────────
# Schema management
# ──────────────────────────────────────────────────────────────

_BOOTSTRAP_SQL = """
CREATE TABLE IF NOT EXISTS schema_version (
    version INTEGER PRIMARY KEY,
    description TEXT NOT NULL,
    applied_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
);
"""

# PostgreSQL advisory lock ID (arbitrary constant, unique to this app)
_LOCK_ID = 4_1207_2026


async def ensure_schema(db: Database) -> None:
    """Apply any pending migrations.

    - Creates the ``schema_version`` tracking table if needed
    - Uses a PostgreSQL advisory lock to prevent concurrent migration runs
    - Skips migrations that have already been applied
    - Each migration runs in its own transaction

    Args:
        db: Initialized Database instance.
    """
    async with db.acquire() as conn:
        await conn.execute("SELECT pg_advisory_lock($1)", _LOCK_ID)
        try:
            await conn.execute(_BOOTSTRAP_SQL)

            row = await conn.fetchrow(
                "SELECT COALESCE(MAX(version), 0) AS v FROM schema_version"
            )
            current = row["v"]

            pending = [(v, d, s) for v, d, s in MIGRATIONS if v > current]
            if not pending:
                logger.debug(f"Schema up to date (version {current})")
                return

            for version, description, sql in pending:
                async with conn.transaction():
                    await conn.execute(sql)
                    await conn.execute(
                        "INSERT INTO schema_version (version, description) VALUES ($1, $2)",
                        version,
                        description,
                    )
                logger.info(f"Migration {version}: {description}")

            logger.info(
                f"Schema migrated {current} -> {pending[-1][0]} "
                f"({len(pending)} migration(s))"
            )
        finally:
            await conn.execute("SELECT pg_advisory_unlock($1)", _LOCK_ID)
