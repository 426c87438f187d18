"""Versioned storage for context and KPI documents."""

import logging
from collections.abc import Callable
from datetime import UTC, datetime

from prediction_ledger.db.backend import Database
from prediction_ledger.db.queries import (
    insert_document,
    select_community_documents,
    select_document,
    select_document_names,
    select_document_versions,
    select_latest_document,
    update_document_content,
)
from prediction_ledger.models.document import DocumentFamily, KpiDocument, VersionedDocument

logger = logging.getLogger(__name__)


def utcnow() -> datetime:
    """Current time in UTC; the default store clock."""
    return datetime.now(UTC)


class VersionedDocumentStore:
    """Append-only, content-deduplicated document versions for one family.

    Versions of a (name, community_context) pair are dense from 0. A write only
    creates a version when the content differs from the latest one.
    """

    def __init__(
        self,
        db: Database,
        family: DocumentFamily = DocumentFamily.CONTEXT,
        clock: Callable[[], datetime] = utcnow,
    ):
        """Initialize with a database connection, document family and clock."""
        self.db = db
        self.family = family
        self.clock = clock

    async def save_document(
        self,
        name: str,
        content: str,
        community_context: str,
        *,
        description: str = "",
        document_type: str = "",
        tags: list[str] | None = None,
    ) -> int | None:
        """Store content as the next version of a document.

        Returns the new version number, or None when the content is identical
        to the latest version and nothing was written.
        """
        latest = await select_latest_document(self.db, self.family, name, community_context)
        if latest is not None and latest.content == content:
            logger.debug("%s document %s unchanged at v%d", self.family, name, latest.version)
            return None

        version = 0 if latest is None else latest.version + 1
        fields = {
            "name": name,
            "community_context": community_context,
            "content": content,
            "version": version,
            "created_at": self.clock(),
        }
        document: VersionedDocument
        if self.family == DocumentFamily.KPI:
            document = KpiDocument(
                **fields, description=description, document_type=document_type, tags=tags or []
            )
        else:
            document = VersionedDocument(family=self.family, **fields)
        await insert_document(self.db, document)

        logger.info("Saved %s document %s v%d (%s)", self.family, name, version, community_context)
        return version

    async def get_latest_document(
        self, name: str, community_context: str
    ) -> VersionedDocument | None:
        """Get the highest version of a document."""
        return await select_latest_document(self.db, self.family, name, community_context)

    async def get_document(
        self, name: str, version: int, community_context: str
    ) -> VersionedDocument | None:
        """Get one exact version of a document."""
        return await select_document(self.db, self.family, name, community_context, version)

    async def get_document_versions(
        self, name: str, community_context: str
    ) -> list[VersionedDocument]:
        """Get every version of a document, oldest first."""
        return await select_document_versions(self.db, self.family, name, community_context)

    async def list_document_names(self, community_context: str) -> list[str]:
        """List document names stored for a community."""
        return await select_document_names(self.db, self.family, community_context)

    async def get_latest_documents(self, community_context: str) -> list[VersionedDocument]:
        """Get the latest version of every document in a community, sorted by name."""
        latest: dict[str, VersionedDocument] = {}
        for document in await select_community_documents(self.db, self.family, community_context):
            current = latest.get(document.name)
            if current is None or document.version > current.version:
                latest[document.name] = document
        return [latest[name] for name in sorted(latest)]

    async def rewrite_document_version(
        self, name: str, version: int, content: str, community_context: str
    ) -> bool:
        """Replace the content of an existing version in place.

        Maintenance only: version number and created_at are kept, so staleness
        decisions made against this version do not change.
        """
        changed = await update_document_content(
            self.db, self.family, name, community_context, version, content
        )
        if changed:
            logger.info("Rewrote %s document %s v%d", self.family, name, version)
        else:
            logger.warning("No %s document %s v%d to rewrite", self.family, name, version)
        return changed
