"""DDL for the ledger database.

The DDL is portable between SQLite and PostgreSQL. Timestamps are stored as
UTC ISO-8601 text with fixed microsecond precision, so lexical order equals
chronological order in both engines.
"""

from prediction_ledger.db.backend import Database

SCHEMA_VERSION = 1

SCHEMA_SQL = """
CREATE TABLE IF NOT EXISTS schema_version (
    version INTEGER NOT NULL
);

CREATE TABLE IF NOT EXISTS versioned_documents (
    family TEXT NOT NULL,
    name TEXT NOT NULL,
    community_context TEXT NOT NULL,
    version INTEGER NOT NULL,
    content TEXT NOT NULL,
    description TEXT,
    document_type TEXT,
    tags TEXT NOT NULL DEFAULT '[]',
    created_at TEXT NOT NULL,
    PRIMARY KEY (family, name, community_context, version)
);

CREATE INDEX IF NOT EXISTS idx_documents_community
    ON versioned_documents(family, community_context);

CREATE TABLE IF NOT EXISTS predictions (
    kind TEXT NOT NULL,
    entity_key TEXT NOT NULL,
    model TEXT NOT NULL,
    community_context TEXT NOT NULL,
    reprediction_index INTEGER NOT NULL,
    value TEXT NOT NULL,
    created_at TEXT NOT NULL,
    context_document_names TEXT NOT NULL DEFAULT '[]',
    token_usage TEXT NOT NULL DEFAULT '{}',
    cost DOUBLE PRECISION NOT NULL DEFAULT 0,
    home_team TEXT,
    away_team TEXT,
    starts_at TEXT,
    matchday INTEGER,
    PRIMARY KEY (kind, entity_key, model, community_context, reprediction_index)
);

CREATE INDEX IF NOT EXISTS idx_predictions_teams
    ON predictions(kind, home_team, away_team, model, community_context);
"""


async def apply_schema(db: Database) -> None:
    """Apply the database schema."""
    await db.executescript(SCHEMA_SQL)

    cursor = await db.execute("SELECT version FROM schema_version")
    row = await cursor.fetchone()
    if row is None:
        await db.execute("INSERT INTO schema_version (version) VALUES (?)", (SCHEMA_VERSION,))

    await db.commit()
