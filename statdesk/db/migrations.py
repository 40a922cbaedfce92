"""
Versioned schema migrations.

Migrations are applied once at startup, in version order, each inside its
own transaction. The rest of the code assumes the fully migrated schema
and never probes for columns at runtime.
"""

from dataclasses import dataclass

from statdesk.db.helpers import DatabaseError, execute_query, fetch_all
from statdesk.db.pool import db_pool
from statdesk.infrastructure.observability.logging import get_logger

logger = get_logger(__name__)


@dataclass(frozen=True, slots=True)
class Migration:
    version: int
    description: str
    statements: tuple[str, ...]


MIGRATIONS: tuple[Migration, ...] = (
    Migration(
        version=1,
        description="Entries and entry values",
        statements=(
            """
            CREATE TABLE IF NOT EXISTS stats_entries (
                id BIGSERIAL PRIMARY KEY,
                user_id BIGINT NOT NULL,
                created_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
                remark TEXT
            )
            """,
            """
            CREATE TABLE IF NOT EXISTS stats_entry_values (
                id BIGSERIAL PRIMARY KEY,
                entry_id BIGINT NOT NULL REFERENCES stats_entries(id) ON DELETE CASCADE,
                section TEXT NOT NULL,
                value_text TEXT NOT NULL
            )
            """,
            "CREATE INDEX IF NOT EXISTS idx_entries_created_at ON stats_entries (created_at)",
            "CREATE INDEX IF NOT EXISTS idx_entry_values_entry ON stats_entry_values (entry_id)",
            """
            CREATE INDEX IF NOT EXISTS idx_entry_values_section_value
                ON stats_entry_values (section, value_text)
            """,
        ),
    ),
    Migration(
        version=2,
        description="Option taxonomy with draft table and publish state",
        statements=(
            """
            CREATE TABLE IF NOT EXISTS option_definitions (
                id BIGSERIAL PRIMARY KEY,
                section TEXT NOT NULL,
                label TEXT NOT NULL,
                sort_order INTEGER NOT NULL DEFAULT 0,
                is_active BOOLEAN NOT NULL DEFAULT TRUE,
                keywords JSONB,
                created_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
            )
            """,
            """
            CREATE TABLE IF NOT EXISTS option_definitions_draft (
                id BIGSERIAL PRIMARY KEY,
                original_id BIGINT UNIQUE REFERENCES option_definitions(id) ON DELETE CASCADE,
                section TEXT NOT NULL,
                label TEXT NOT NULL,
                sort_order INTEGER NOT NULL DEFAULT 0,
                is_active BOOLEAN NOT NULL DEFAULT TRUE,
                keywords JSONB,
                action TEXT NOT NULL CHECK (action IN ('create', 'update', 'delete')),
                created_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
            )
            """,
            """
            CREATE TABLE IF NOT EXISTS publish_state (
                id INTEGER PRIMARY KEY CHECK (id = 1),
                has_pending_changes BOOLEAN NOT NULL DEFAULT FALSE,
                last_published_at TIMESTAMPTZ,
                last_published_by TEXT
            )
            """,
            """
            INSERT INTO publish_state (id, has_pending_changes)
            VALUES (1, FALSE)
            ON CONFLICT (id) DO NOTHING
            """,
            """
            CREATE INDEX IF NOT EXISTS idx_option_definitions_section
                ON option_definitions (section, sort_order, label)
            """,
        ),
    ),
    Migration(
        version=3,
        description="Saved comparison periods",
        statements=(
            """
            CREATE TABLE IF NOT EXISTS saved_periods (
                id BIGSERIAL PRIMARY KEY,
                name TEXT NOT NULL,
                periods JSONB NOT NULL,
                is_active BOOLEAN NOT NULL DEFAULT FALSE,
                created_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
            )
            """,
        ),
    ),
    Migration(
        version=4,
        description="Chart markers",
        statements=(
            """
            CREATE TABLE IF NOT EXISTS chart_markers (
                id BIGSERIAL PRIMARY KEY,
                name TEXT NOT NULL,
                start_date DATE NOT NULL,
                end_date DATE,
                color TEXT NOT NULL DEFAULT '#f59e0b',
                is_active BOOLEAN NOT NULL DEFAULT TRUE,
                created_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
                CHECK (end_date IS NULL OR end_date >= start_date)
            )
            """,
        ),
    ),
)

_BOOKKEEPING_DDL = """
    CREATE TABLE IF NOT EXISTS schema_migrations (
        version INTEGER PRIMARY KEY,
        description TEXT NOT NULL,
        applied_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
    )
"""


def pending_migrations(applied_versions: set[int]) -> list[Migration]:
    """Migrations not yet recorded, in version order."""
    return sorted(
        (m for m in MIGRATIONS if m.version not in applied_versions),
        key=lambda m: m.version,
    )


async def apply_migrations() -> list[int]:
    """
    Bring the schema up to date.

    Returns:
        Versions applied during this call (empty when already current)
    """
    await execute_query(_BOOKKEEPING_DDL)
    rows = await fetch_all("SELECT version FROM schema_migrations")
    todo = pending_migrations({row["version"] for row in rows})

    if not todo:
        logger.info("Database schema up to date", version=MIGRATIONS[-1].version)
        return []

    applied: list[int] = []
    for migration in todo:
        try:
            async with db_pool.transaction() as conn:
                for statement in migration.statements:
                    await execute_query(statement, connection=conn)
                await execute_query(
                    "INSERT INTO schema_migrations (version, description) VALUES (%s, %s)",
                    (migration.version, migration.description),
                    connection=conn,
                )
        except DatabaseError:
            logger.error(
                "Schema migration failed",
                version=migration.version,
                description=migration.description,
            )
            raise

        applied.append(migration.version)
        logger.info(
            "Schema migration applied",
            version=migration.version,
            description=migration.description,
        )

    return applied
