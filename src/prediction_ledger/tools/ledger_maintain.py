"""ledger_maintain MCP tool: ledger maintenance operations."""

import logging
from typing import Annotated

from fastmcp import FastMCP
from fastmcp.server.context import Context
from pydantic import Field

from prediction_ledger.config import get_community_context
from prediction_ledger.db.backend import Database
from prediction_ledger.db.queries import get_cost_by_reprediction_index, get_ledger_stats
from prediction_ledger.models.document import DocumentFamily
from prediction_ledger.store.document_store import VersionedDocumentStore
from prediction_ledger.tools.formatters import format_backfill, format_cost_summary
from prediction_ledger.workflow.maintenance import backfill_data_collected_at

logger = logging.getLogger(__name__)

_ACTIONS = {
    "stats",
    "cost",
    "rewrite_version",
    "backfill_collected_at",
}


def register_ledger_maintain(mcp: FastMCP) -> None:
    """Register the ledger_maintain tool with the MCP server."""

    @mcp.tool()
    async def ledger_maintain(
        action: Annotated[
            str,
            Field(
                description=(
                    "Maintenance action: stats, cost, rewrite_version, backfill_collected_at"
                )
            ),
        ],
        community_context: Annotated[
            str | None, Field(description="Community (default LEDGER_COMMUNITY_CONTEXT)")
        ] = None,
        model: Annotated[
            str | None, Field(description="Restrict cost to one model (default: all models)")
        ] = None,
        name: Annotated[str | None, Field(description="Document name for rewrite_version")] = None,
        version: Annotated[
            int | None, Field(description="Document version for rewrite_version", ge=0)
        ] = None,
        content: Annotated[
            str | None, Field(description="Replacement content for rewrite_version")
        ] = None,
        family: Annotated[
            DocumentFamily, Field(description="context or kpi, for rewrite_version")
        ] = DocumentFamily.CONTEXT,
        dry_run: Annotated[
            bool, Field(description="For backfill_collected_at: report without writing")
        ] = False,
        confirm: Annotated[
            bool, Field(description="Required True for rewrite_version")
        ] = False,
        ctx: Context | None = None,
    ) -> str:
        """Administrative maintenance operations for the prediction ledger.

        Requires LEDGER_MANAGER=TRUE environment variable.

        Actions:
        - stats: Document version and prediction counts for the community
        - cost: Prediction count and cost per model, kind and reprediction index
        - rewrite_version: Replace the content of one stored document version in
          place, keeping its timestamp (requires name, version, content, confirm=True)
        - backfill_collected_at: Add a Data_Collected_At column to every version of
          every history CSV (dry_run=True to preview)
        """
        if ctx is None:
            raise RuntimeError("Context not injected")

        if action not in _ACTIONS:
            return f"Unknown action '{action}'. Use: {', '.join(sorted(_ACTIONS))}"

        cc = community_context or get_community_context()
        if not cc:
            return "Error: community_context is required (or set LEDGER_COMMUNITY_CONTEXT)"

        lifespan = ctx.lifespan_context
        db: Database = lifespan["db"]
        store: VersionedDocumentStore = (
            lifespan["kpi_store"] if family == DocumentFamily.KPI else lifespan["context_store"]
        )

        if action == "stats":
            return await _action_stats(db, cc)
        elif action == "cost":
            return await _action_cost(db, cc, model)
        elif action == "rewrite_version":
            return await _action_rewrite_version(store, cc, name, version, content, confirm)
        elif action == "backfill_collected_at":
            return await _action_backfill_collected_at(lifespan["context_store"], cc, dry_run)

        return "Action not implemented."


async def _action_stats(db: Database, community_context: str) -> str:
    """Counts of stored document versions and predictions."""
    stats = await get_ledger_stats(db, community_context)
    lines = [f"Ledger Statistics ({community_context})\n"]
    lines.append(f"Context document versions: {stats['context_versions']}")
    lines.append(f"KPI document versions: {stats['kpi_versions']}")
    lines.append(f"Match predictions: {stats['match_predictions']}")
    lines.append(f"Bonus predictions: {stats['bonus_predictions']}")
    return "\n".join(lines)


async def _action_cost(db: Database, community_context: str, model: str | None) -> str:
    """Spend on initial predictions vs repredictions."""
    rows = await get_cost_by_reprediction_index(db, community_context, model)
    return format_cost_summary(rows, community_context)


async def _action_rewrite_version(
    store: VersionedDocumentStore,
    community_context: str,
    name: str | None,
    version: int | None,
    content: str | None,
    confirm: bool,
) -> str:
    """Replace the content of one stored version."""
    if not name or version is None or content is None:
        return "Error: name, version and content are required for rewrite_version"
    if not confirm:
        return (
            "Error: rewrite_version changes stored history without changing timestamps. "
            "Set confirm=True to proceed."
        )
    logger.info("Rewriting %s v%d in %s", name, version, community_context)
    changed = await store.rewrite_document_version(name, version, content, community_context)
    if not changed:
        return f"Error: {name} v{version} not found"
    return f"Rewrote {name} v{version}"


async def _action_backfill_collected_at(
    store: VersionedDocumentStore, community_context: str, dry_run: bool
) -> str:
    """Add Data_Collected_At to history documents."""
    result = await backfill_data_collected_at(store, community_context, dry_run)
    return format_backfill(result)
