"""Decide whether a stored prediction predates its context documents."""

import logging
from collections.abc import Iterable

from prediction_ledger.models.prediction import PredictionMetadata
from prediction_ledger.store.document_store import VersionedDocumentStore

logger = logging.getLogger(__name__)

DEFAULT_EXCLUDED_DOCUMENTS = frozenset({"bundesliga-standings.csv"})


def strip_display_suffix(name: str) -> str:
    """Remove a trailing " (label)" display suffix from a document name.

    "home-history-fcb.csv (kpi-context)" -> "home-history-fcb.csv". A name that
    starts with " (" is left alone.
    """
    if name.endswith(")"):
        index = name.rfind(" (")
        if index > 0:
            return name[:index]
    return name


class StalenessDetector:
    """Compares a prediction's created_at against its context documents.

    A prediction is outdated when any document it used (excluding volatile
    ones) has a latest version created strictly after the prediction.
    """

    def __init__(
        self,
        document_store: VersionedDocumentStore,
        excluded_documents: Iterable[str] = DEFAULT_EXCLUDED_DOCUMENTS,
    ):
        """Initialize with the store to check and case-insensitive exclusions."""
        self.document_store = document_store
        self.excluded_documents = frozenset(name.lower() for name in excluded_documents)

    async def is_outdated(self, metadata: PredictionMetadata, community_context: str) -> bool:
        """Return True if any used document changed after the prediction was made.

        Missing documents count as unchanged. Failures are logged and treated
        as not outdated.
        """
        try:
            for display_name in metadata.context_document_names:
                name = strip_display_suffix(display_name)
                if name.lower() in self.excluded_documents:
                    continue
                document = await self.document_store.get_latest_document(name, community_context)
                if document is None:
                    continue
                if document.created_at > metadata.created_at:
                    logger.debug(
                        "%s v%d (%s) is newer than prediction (%s)",
                        name,
                        document.version,
                        document.created_at.isoformat(),
                        metadata.created_at.isoformat(),
                    )
                    return True
            return False
        except Exception:
            logger.warning("Outdated check failed for %s", community_context, exc_info=True)
            return False
