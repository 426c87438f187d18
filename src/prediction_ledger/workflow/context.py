"""Assemble the context documents handed to the oracle."""

import logging
from typing import Protocol, runtime_checkable

from prediction_ledger.matching.teams import team_abbreviation
from prediction_ledger.models.document import ContextDocument, VersionedDocument
from prediction_ledger.store.document_store import VersionedDocumentStore

logger = logging.getLogger(__name__)

KPI_TEAM_DATA = "team-data"
KPI_MANAGER_DATA = "manager-data"
DEFAULT_KPI_LABEL = "kpi-context"

_COACH_KEYWORDS = (
    "trainerwechsel",
    "trainer",
    "cheftrainer",
    "entlassung",
    "entlassen",
    "manager",
    "coach",
)
_RELEGATION_KEYWORDS = (
    "16-18",
    "abstieg",
    "relegation",
    "abstiegsplätze",
    "absteiger",
)


@runtime_checkable
class ContextProvider(Protocol):
    """On-demand source of match context when stored documents are incomplete."""

    async def get_match_context(self, home_team: str, away_team: str) -> list[ContextDocument]:
        """Fetch fresh context documents for a match."""
        ...


def required_document_names(home_team: str, away_team: str, community_context: str) -> list[str]:
    """Documents a match prediction needs; missing ones trigger the on-demand provider."""
    home = team_abbreviation(home_team)
    away = team_abbreviation(away_team)
    return [
        "bundesliga-standings.csv",
        f"community-rules-{community_context}.md",
        f"recent-history-{home}.csv",
        f"recent-history-{away}.csv",
        f"home-history-{home}.csv",
        f"away-history-{away}.csv",
        f"head-to-head-{home}-vs-{away}.csv",
    ]


def optional_document_names(home_team: str, away_team: str) -> list[str]:
    """Documents included when present; they never trigger the provider."""
    return [
        f"{team_abbreviation(home_team)}-transfers.csv",
        f"{team_abbreviation(away_team)}-transfers.csv",
    ]


async def _fetch_latest(
    store: VersionedDocumentStore, names: list[str], community_context: str
) -> dict[str, ContextDocument]:
    found: dict[str, ContextDocument] = {}
    for name in names:
        try:
            document = await store.get_latest_document(name, community_context)
        except Exception:
            logger.warning("Failed to load context document %s", name, exc_info=True)
            continue
        if document is None:
            logger.debug("Missing context document %s", name)
            continue
        found[name] = ContextDocument(name=document.name, content=document.content)
    return found


async def assemble_match_context(
    store: VersionedDocumentStore,
    home_team: str,
    away_team: str,
    community_context: str,
    provider: ContextProvider | None = None,
) -> list[ContextDocument]:
    """Stored documents first, merged with on-demand context if any required one is missing.

    On-demand documents whose name matches a stored one (case-insensitive)
    are dropped.
    """
    required = required_document_names(home_team, away_team, community_context)
    documents = await _fetch_latest(store, required, community_context)
    required_present = len(documents)
    documents.update(
        await _fetch_latest(store, optional_document_names(home_team, away_team), community_context)
    )
    context = list(documents.values())

    if required_present == len(required):
        logger.debug("Using %d stored context documents", len(context))
        return context

    logger.warning(
        "Only %d/%d required context documents stored for %s vs %s",
        required_present,
        len(required),
        home_team,
        away_team,
    )
    if provider is None:
        return context

    seen = {document.name.lower() for document in context}
    for document in await provider.get_match_context(home_team, away_team):
        if document.name.lower() not in seen:
            seen.add(document.name.lower())
            context.append(document)
    return context


def kpi_display_name(document: VersionedDocument) -> str:
    """Name recorded in prediction metadata for a KPI document."""
    label = getattr(document, "document_type", "") or DEFAULT_KPI_LABEL
    return f"{document.name} ({label})"


def kpi_documents_for_question(question_text: str) -> list[str]:
    """KPI documents relevant to a bonus question."""
    lowered = question_text.lower()
    names = [KPI_TEAM_DATA]
    if any(keyword in lowered for keyword in _COACH_KEYWORDS + _RELEGATION_KEYWORDS):
        names.append(KPI_MANAGER_DATA)
    return names


async def assemble_bonus_context(
    kpi_store: VersionedDocumentStore, question_text: str, community_context: str
) -> list[ContextDocument]:
    """Latest KPI documents for a bonus question, named with their display suffix."""
    context = []
    for name in kpi_documents_for_question(question_text):
        document = await kpi_store.get_latest_document(name, community_context)
        if document is None:
            logger.warning("KPI document not found: %s", name)
            continue
        context.append(ContextDocument(name=kpi_display_name(document), content=document.content))
    return context
