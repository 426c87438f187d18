"""Query helpers for the document and prediction tables.

Every lookup here is an equality filter plus at most one ORDER BY field and an
optional LIMIT 1, which is all the document-store contract guarantees. The
statistics helpers at the end aggregate for maintenance reporting only.
"""

import json
from datetime import datetime

from prediction_ledger.db.backend import Database, Row
from prediction_ledger.models.document import DocumentFamily, KpiDocument, VersionedDocument
from prediction_ledger.models.prediction import EntityKind, PredictionRecord, to_utc_iso
from prediction_ledger.models.report import CostSummary

_DOCUMENT_COLUMNS = (
    "family, name, community_context, version, content, description, "
    "document_type, tags, created_at"
)

_PREDICTION_COLUMNS = (
    "kind, entity_key, model, community_context, reprediction_index, value, created_at, "
    "context_document_names, token_usage, cost, home_team, away_team, starts_at, matchday"
)


def row_to_document(row: Row) -> VersionedDocument:
    """Convert a database row to a VersionedDocument (KpiDocument for the KPI family)."""
    family = DocumentFamily(row["family"])
    fields = {
        "name": row["name"],
        "community_context": row["community_context"],
        "content": row["content"],
        "version": row["version"],
        "created_at": datetime.fromisoformat(row["created_at"]),
    }
    if family == DocumentFamily.KPI:
        return KpiDocument(
            **fields,
            description=row["description"] or "",
            document_type=row["document_type"] or "",
            tags=json.loads(row["tags"] or "[]"),
        )
    return VersionedDocument(family=family, **fields)


async def insert_document(
    db: Database,
    document: VersionedDocument,
) -> None:
    """Insert one document version."""
    description = document_type = None
    tags: list[str] = []
    if isinstance(document, KpiDocument):
        description = document.description
        document_type = document.document_type
        tags = document.tags
    await db.execute(
        f"""INSERT INTO versioned_documents ({_DOCUMENT_COLUMNS})
        VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)""",
        (
            document.family.value,
            document.name,
            document.community_context,
            document.version,
            document.content,
            description,
            document_type,
            json.dumps(tags),
            to_utc_iso(document.created_at),
        ),
    )
    await db.commit()


async def select_latest_document(
    db: Database, family: DocumentFamily, name: str, community_context: str
) -> VersionedDocument | None:
    """Highest version of a document, or None."""
    cursor = await db.execute(
        f"""SELECT {_DOCUMENT_COLUMNS} FROM versioned_documents
        WHERE family = ? AND name = ? AND community_context = ?
        ORDER BY version DESC LIMIT 1""",
        (family.value, name, community_context),
    )
    row = await cursor.fetchone()
    return row_to_document(row) if row else None


async def select_document(
    db: Database, family: DocumentFamily, name: str, community_context: str, version: int
) -> VersionedDocument | None:
    """Exact version of a document, or None."""
    cursor = await db.execute(
        f"""SELECT {_DOCUMENT_COLUMNS} FROM versioned_documents
        WHERE family = ? AND name = ? AND community_context = ? AND version = ?""",
        (family.value, name, community_context, version),
    )
    row = await cursor.fetchone()
    return row_to_document(row) if row else None


async def select_document_versions(
    db: Database, family: DocumentFamily, name: str, community_context: str
) -> list[VersionedDocument]:
    """All versions of a document, ascending."""
    cursor = await db.execute(
        f"""SELECT {_DOCUMENT_COLUMNS} FROM versioned_documents
        WHERE family = ? AND name = ? AND community_context = ?
        ORDER BY version""",
        (family.value, name, community_context),
    )
    return [row_to_document(row) for row in await cursor.fetchall()]


async def select_community_documents(
    db: Database, family: DocumentFamily, community_context: str
) -> list[VersionedDocument]:
    """Every version of every document in a community, ordered by name."""
    cursor = await db.execute(
        f"""SELECT {_DOCUMENT_COLUMNS} FROM versioned_documents
        WHERE family = ? AND community_context = ?
        ORDER BY name""",
        (family.value, community_context),
    )
    return [row_to_document(row) for row in await cursor.fetchall()]


async def select_document_names(
    db: Database, family: DocumentFamily, community_context: str
) -> list[str]:
    """Distinct document names in a community, sorted."""
    cursor = await db.execute(
        """SELECT DISTINCT name FROM versioned_documents
        WHERE family = ? AND community_context = ?
        ORDER BY name""",
        (family.value, community_context),
    )
    return [row[0] for row in await cursor.fetchall()]


async def update_document_content(
    db: Database,
    family: DocumentFamily,
    name: str,
    community_context: str,
    version: int,
    content: str,
) -> bool:
    """Overwrite the content of one existing version. Returns True if a row changed."""
    cursor = await db.execute(
        """UPDATE versioned_documents SET content = ?
        WHERE family = ? AND name = ? AND community_context = ? AND version = ?""",
        (content, family.value, name, community_context, version),
    )
    await db.commit()
    return cursor.rowcount > 0


def row_to_prediction(row: Row) -> PredictionRecord:
    """Convert a database row to a PredictionRecord."""
    starts_at_raw = row["starts_at"]
    return PredictionRecord(
        kind=EntityKind(row["kind"]),
        entity_key=row["entity_key"],
        model=row["model"],
        community_context=row["community_context"],
        reprediction_index=row["reprediction_index"],
        value=json.loads(row["value"]),
        created_at=datetime.fromisoformat(row["created_at"]),
        context_document_names=json.loads(row["context_document_names"]),
        token_usage=row["token_usage"],
        cost=row["cost"],
        home_team=row["home_team"],
        away_team=row["away_team"],
        starts_at=datetime.fromisoformat(starts_at_raw) if starts_at_raw else None,
        matchday=row["matchday"],
    )


def _prediction_params(record: PredictionRecord) -> tuple[object, ...]:
    return (
        record.kind.value,
        record.entity_key,
        record.model,
        record.community_context,
        record.reprediction_index,
        json.dumps(record.value),
        to_utc_iso(record.created_at),
        json.dumps(record.context_document_names),
        record.token_usage,
        record.cost,
        record.home_team,
        record.away_team,
        to_utc_iso(record.starts_at) if record.starts_at else None,
        record.matchday,
    )


async def insert_prediction(db: Database, record: PredictionRecord) -> None:
    """Insert one prediction snapshot."""
    await db.execute(
        f"""INSERT INTO predictions ({_PREDICTION_COLUMNS})
        VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)""",
        _prediction_params(record),
    )
    await db.commit()


async def replace_prediction(db: Database, record: PredictionRecord) -> None:
    """Overwrite the snapshot stored at the record's reprediction index."""
    await db.execute(
        """UPDATE predictions SET value = ?, created_at = ?, context_document_names = ?,
        token_usage = ?, cost = ?, matchday = ?
        WHERE kind = ? AND entity_key = ? AND model = ? AND community_context = ?
        AND reprediction_index = ?""",
        (
            json.dumps(record.value),
            to_utc_iso(record.created_at),
            json.dumps(record.context_document_names),
            record.token_usage,
            record.cost,
            record.matchday,
            record.kind.value,
            record.entity_key,
            record.model,
            record.community_context,
            record.reprediction_index,
        ),
    )
    await db.commit()


async def select_latest_prediction(
    db: Database, kind: EntityKind, entity_key: str, model: str, community_context: str
) -> PredictionRecord | None:
    """Snapshot with the highest reprediction index, or None."""
    cursor = await db.execute(
        f"""SELECT {_PREDICTION_COLUMNS} FROM predictions
        WHERE kind = ? AND entity_key = ? AND model = ? AND community_context = ?
        ORDER BY reprediction_index DESC LIMIT 1""",
        (kind.value, entity_key, model, community_context),
    )
    row = await cursor.fetchone()
    return row_to_prediction(row) if row else None


async def select_prediction_at_index(
    db: Database,
    kind: EntityKind,
    entity_key: str,
    model: str,
    community_context: str,
    reprediction_index: int,
) -> PredictionRecord | None:
    """Snapshot at an exact reprediction index, or None."""
    cursor = await db.execute(
        f"""SELECT {_PREDICTION_COLUMNS} FROM predictions
        WHERE kind = ? AND entity_key = ? AND model = ? AND community_context = ?
        AND reprediction_index = ?""",
        (kind.value, entity_key, model, community_context, reprediction_index),
    )
    row = await cursor.fetchone()
    return row_to_prediction(row) if row else None


async def select_latest_by_teams(
    db: Database, home_team: str, away_team: str, model: str, community_context: str
) -> PredictionRecord | None:
    """Most recently created match snapshot for a team pair, across all start times."""
    cursor = await db.execute(
        f"""SELECT {_PREDICTION_COLUMNS} FROM predictions
        WHERE kind = ? AND home_team = ? AND away_team = ? AND model = ?
        AND community_context = ?
        ORDER BY created_at DESC LIMIT 1""",
        (EntityKind.MATCH.value, home_team, away_team, model, community_context),
    )
    row = await cursor.fetchone()
    return row_to_prediction(row) if row else None


async def select_predictions(
    db: Database, kind: EntityKind, model: str, community_context: str
) -> list[PredictionRecord]:
    """Every snapshot of one kind for a model and community, ordered by entity."""
    cursor = await db.execute(
        f"""SELECT {_PREDICTION_COLUMNS} FROM predictions
        WHERE kind = ? AND model = ? AND community_context = ?
        ORDER BY entity_key""",
        (kind.value, model, community_context),
    )
    return [row_to_prediction(row) for row in await cursor.fetchall()]


async def get_ledger_stats(db: Database, community_context: str) -> dict[str, int]:
    """Row counts per document family and prediction kind for one community."""
    stats: dict[str, int] = {}
    for family in DocumentFamily:
        cursor = await db.execute(
            "SELECT COUNT(*) FROM versioned_documents WHERE family = ? AND community_context = ?",
            (family.value, community_context),
        )
        row = await cursor.fetchone()
        stats[f"{family.value}_versions"] = row[0] if row else 0
    for kind in EntityKind:
        cursor = await db.execute(
            "SELECT COUNT(*) FROM predictions WHERE kind = ? AND community_context = ?",
            (kind.value, community_context),
        )
        row = await cursor.fetchone()
        stats[f"{kind.value}_predictions"] = row[0] if row else 0
    return stats


async def get_cost_by_reprediction_index(
    db: Database, community_context: str, model: str | None = None
) -> list[CostSummary]:
    """Prediction count and summed cost per model, kind and reprediction index."""
    sql = (
        "SELECT model, kind, reprediction_index, COUNT(*) AS count, SUM(cost) AS cost "
        "FROM predictions WHERE community_context = ?"
    )
    params: list[object] = [community_context]
    if model is not None:
        sql += " AND model = ?"
        params.append(model)
    sql += " GROUP BY model, kind, reprediction_index ORDER BY model, kind, reprediction_index"
    cursor = await db.execute(sql, params)
    return [
        CostSummary(
            model=row["model"],
            kind=EntityKind(row["kind"]),
            reprediction_index=row["reprediction_index"],
            count=row["count"],
            cost=row["cost"] or 0.0,
        )
        for row in await cursor.fetchall()
    ]
