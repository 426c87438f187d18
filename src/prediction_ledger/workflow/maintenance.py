"""Maintenance operations on stored context documents."""

import csv
import difflib
import io
import logging

from pydantic import BaseModel, Field

from prediction_ledger.models.document import VersionedDocument
from prediction_ledger.store.document_store import VersionedDocumentStore

logger = logging.getLogger(__name__)

HISTORY_PREFIXES = ("recent-history-", "home-history-", "away-history-")
COLLECTED_AT_COLUMN = "Data_Collected_At"
BACKFILLED_HEADER = ["Competition", COLLECTED_AT_COLUMN, "Home_Team", "Away_Team", "Score"]


class BackfillResult(BaseModel):
    """Summary of a Data_Collected_At backfill."""

    dry_run: bool = False
    processed: list[str] = Field(default_factory=list)
    skipped: list[str] = Field(default_factory=list)
    failed: list[str] = Field(default_factory=list)
    versions_rewritten: int = 0


def is_history_document(name: str) -> bool:
    """True for per-team match history CSVs."""
    return name.lower().startswith(HISTORY_PREFIXES)


def has_collected_at_column(content: str) -> bool:
    """True if the CSV header already carries the Data_Collected_At column."""
    for line in content.split("\n"):
        if line.strip():
            return COLLECTED_AT_COLUMN.lower() in line.lower()
    return False


def _row_key(row: dict[str, str]) -> str:
    return "|".join(
        row.get(column) or "" for column in ("Competition", "Home_Team", "Away_Team", "Score")
    )


def history_row_keys(content: str) -> list[str]:
    """Match keys (competition, teams, score) of a history CSV, in row order."""
    return [_row_key(row) for row in csv.DictReader(io.StringIO(content))]


def add_collected_at_column(content: str, collected_at: dict[str, str]) -> str:
    """Rewrite a history CSV with a Data_Collected_At column after Competition."""
    output = io.StringIO()
    writer = csv.writer(output)
    writer.writerow(BACKFILLED_HEADER)
    for row in csv.DictReader(io.StringIO(content)):
        writer.writerow(
            [
                row.get("Competition") or "",
                collected_at.get(_row_key(row), ""),
                row.get("Home_Team") or "",
                row.get("Away_Team") or "",
                row.get("Score") or "",
            ]
        )
    return output.getvalue()


def _collection_label(document: VersionedDocument) -> str:
    label = document.created_at.strftime("%Y-%m-%d")
    return f"{label} (initial)" if document.version == 0 else label


async def backfill_document(
    store: VersionedDocumentStore, name: str, community_context: str, dry_run: bool = False
) -> int | None:
    """Add Data_Collected_At to every version of one history document.

    Each row is dated by the first version that contained it. Returns the
    number of versions rewritten (or that would be, on a dry run), or None if
    the document is missing or already has the column.
    """
    versions = await store.get_document_versions(name, community_context)
    if not versions or has_collected_at_column(versions[-1].content):
        return None

    first_seen: dict[str, str] = {}
    rewritten = 0
    for document in versions:
        label = _collection_label(document)
        for key in history_row_keys(document.content):
            first_seen.setdefault(key, label)
        updated = add_collected_at_column(document.content, first_seen)
        if dry_run:
            logger.info("Dry run: would rewrite %s v%d", name, document.version)
        else:
            await store.rewrite_document_version(
                name, document.version, updated, community_context
            )
        rewritten += 1
    return rewritten


async def backfill_data_collected_at(
    store: VersionedDocumentStore, community_context: str, dry_run: bool = False
) -> BackfillResult:
    """Backfill Data_Collected_At across all history documents of a community."""
    result = BackfillResult(dry_run=dry_run)
    names = [
        name
        for name in await store.list_document_names(community_context)
        if is_history_document(name)
    ]
    for name in names:
        try:
            rewritten = await backfill_document(store, name, community_context, dry_run)
        except Exception:
            logger.exception("Failed to backfill %s", name)
            result.failed.append(name)
            continue
        if rewritten is None:
            result.skipped.append(name)
        else:
            result.processed.append(name)
            result.versions_rewritten += rewritten
    logger.info(
        "Backfill %s: %d processed, %d skipped, %d failed",
        community_context,
        len(result.processed),
        len(result.skipped),
        len(result.failed),
    )
    return result


async def document_changes(
    store: VersionedDocumentStore, name: str, community_context: str
) -> str | None:
    """Unified diff between the latest and previous version of a document.

    Returns None when the document does not exist. Version 0 is diffed
    against an empty document.
    """
    latest = await store.get_latest_document(name, community_context)
    if latest is None:
        return None
    previous_content = ""
    previous_label = f"{name} (none)"
    if latest.version > 0:
        previous = await store.get_document(name, latest.version - 1, community_context)
        if previous is not None:
            previous_content = previous.content
            previous_label = f"{name} v{previous.version}"
    diff = difflib.unified_diff(
        previous_content.splitlines(keepends=True),
        latest.content.splitlines(keepends=True),
        fromfile=previous_label,
        tofile=f"{name} v{latest.version}",
    )
    return "".join(diff)
