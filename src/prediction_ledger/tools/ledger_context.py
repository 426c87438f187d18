"""ledger_context MCP tool: store and inspect versioned context and KPI documents."""

import logging
from typing import Annotated

from fastmcp import FastMCP
from fastmcp.server.context import Context
from pydantic import Field

from prediction_ledger.config import get_community_context
from prediction_ledger.models.document import DocumentFamily
from prediction_ledger.store.document_store import VersionedDocumentStore
from prediction_ledger.tools.formatters import format_document_full, format_document_header
from prediction_ledger.workflow.maintenance import document_changes

logger = logging.getLogger(__name__)

_ACTIONS = {"save", "get", "versions", "names", "changes"}


async def save_context_document(
    store: VersionedDocumentStore,
    name: str,
    content: str | None,
    community_context: str,
    description: str = "",
    document_type: str = "",
    tags: list[str] | None = None,
) -> str:
    """Save a document and describe what happened. Empty content is a valid version."""
    if content is None:
        return "Error: content is required for save"
    version = await store.save_document(
        name,
        content,
        community_context,
        description=description,
        document_type=document_type,
        tags=tags,
    )
    if version is None:
        return f"Unchanged: {name} already has this content"
    return f"Saved {name} v{version}"


async def get_context_document(
    store: VersionedDocumentStore, name: str, community_context: str, version: int | None = None
) -> str:
    """Latest or exact version of a document."""
    if version is None:
        document = await store.get_latest_document(name, community_context)
    else:
        document = await store.get_document(name, version, community_context)
    if document is None:
        suffix = f" v{version}" if version is not None else ""
        return f"Error: document {name}{suffix} not found"
    return format_document_full(document)


async def list_context_versions(
    store: VersionedDocumentStore, name: str, community_context: str
) -> str:
    """Version headers of a document, oldest first."""
    versions = await store.get_document_versions(name, community_context)
    if not versions:
        return f"Error: document {name} not found"
    return "\n".join(format_document_header(document) for document in versions)


def register_ledger_context(mcp: FastMCP) -> None:
    """Register the ledger_context tool with the MCP server."""

    @mcp.tool()
    async def ledger_context(
        action: Annotated[
            str, Field(description="save, get, versions, names, changes")
        ],
        name: Annotated[str, Field(description="Document name, e.g. home-history-fcb.csv")] = "",
        content: Annotated[str, Field(description="Document content (for save)")] = "",
        family: Annotated[
            DocumentFamily, Field(description="context or kpi")
        ] = DocumentFamily.CONTEXT,
        community_context: Annotated[
            str | None,
            Field(description="Community the document belongs to (default LEDGER_COMMUNITY_CONTEXT)"),
        ] = None,
        version: Annotated[
            int | None, Field(description="Exact version for get", ge=0)
        ] = None,
        description: Annotated[str, Field(description="KPI document description")] = "",
        document_type: Annotated[str, Field(description="KPI document type")] = "",
        tags: Annotated[list[str] | None, Field(description="KPI document tags")] = None,
        ctx: Context | None = None,
    ) -> str:
        """Store and inspect versioned context documents.

        Saving identical content is a no-op; changed content becomes the next
        version. Stored versions never change, so predictions can be checked
        against the document versions that existed when they were made.

        Actions:
        - save: Store content as the next version (requires name, content)
        - get: Latest version, or an exact one with version (requires name)
        - versions: Version history (requires name)
        - names: All document names in the community
        - changes: Diff between the latest and previous version (requires name)
        """
        if ctx is None:
            raise RuntimeError("Context not injected")
        if action not in _ACTIONS:
            return f"Unknown action '{action}'. Use: {', '.join(sorted(_ACTIONS))}"

        cc = community_context or get_community_context()
        if not cc:
            return "Error: community_context is required (or set LEDGER_COMMUNITY_CONTEXT)"
        if action != "names" and not name:
            return f"Error: name is required for {action}"

        lifespan = ctx.lifespan_context
        store: VersionedDocumentStore = (
            lifespan["kpi_store"] if family == DocumentFamily.KPI else lifespan["context_store"]
        )

        if action == "save":
            return await save_context_document(
                store, name, content, cc, description, document_type, tags
            )
        elif action == "get":
            return await get_context_document(store, name, cc, version)
        elif action == "versions":
            return await list_context_versions(store, name, cc)
        elif action == "names":
            names = await store.list_document_names(cc)
            return "\n".join(names) if names else f"No {family.value} documents for {cc}"
        elif action == "changes":
            diff = await document_changes(store, name, cc)
            if diff is None:
                return f"Error: document {name} not found"
            return diff or f"No changes in {name}"

        return "Action not implemented."
