"""FastMCP server with lifespan management and tool registration."""

import logging
import sys
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import Any

from fastmcp import FastMCP

from prediction_ledger.config import (
    get_db_path,
    get_log_level,
    get_oracle_provider,
    get_outdated_excluded_documents,
    is_manager_mode,
)
from prediction_ledger.db.connection import create_connection
from prediction_ledger.models.document import DocumentFamily
from prediction_ledger.oracle import AnthropicOracle
from prediction_ledger.oracle.ollama import OllamaOracle
from prediction_ledger.oracle.provider import PredictionOracle
from prediction_ledger.staleness.detector import StalenessDetector
from prediction_ledger.store.document_store import VersionedDocumentStore
from prediction_ledger.store.prediction_ledger import PredictionLedger
from prediction_ledger.tools.ledger_bonus import register_ledger_bonus
from prediction_ledger.tools.ledger_context import register_ledger_context
from prediction_ledger.tools.ledger_maintain import register_ledger_maintain
from prediction_ledger.tools.ledger_matchday import register_ledger_matchday
from prediction_ledger.tools.ledger_prediction import register_ledger_prediction
from prediction_ledger.tools.ledger_verify import register_ledger_verify


def _create_oracle(provider: str) -> PredictionOracle | None:
    """Create a prediction oracle for the given provider name."""
    if provider == "anthropic":
        if AnthropicOracle is not None:
            return AnthropicOracle()
        return None
    if provider == "ollama":
        return OllamaOracle()
    return None


@asynccontextmanager
async def lifespan(server: FastMCP) -> AsyncIterator[dict[str, Any]]:
    """Manage database connection and oracle lifecycle."""
    # Configure logging to stderr (stdout is MCP stdio transport)
    logging.basicConfig(
        level=getattr(logging, get_log_level()),
        format="%(asctime)s %(name)s %(levelname)s %(message)s",
        stream=sys.stderr,
    )
    logger = logging.getLogger(__name__)

    db_path = get_db_path()
    logger.info("Opening ledger database at %s", db_path)
    db = await create_connection(db_path)

    context_store = VersionedDocumentStore(db, DocumentFamily.CONTEXT)
    kpi_store = VersionedDocumentStore(db, DocumentFamily.KPI)
    excluded = get_outdated_excluded_documents()

    provider = get_oracle_provider()
    oracle = _create_oracle(provider)
    if oracle is not None:
        logger.info("Prediction oracle: %s (%s)", provider, oracle.model)
    else:
        logger.warning("Prediction oracle not available (%s), runs disabled", provider)

    try:
        yield {
            "db": db,
            "context_store": context_store,
            "kpi_store": kpi_store,
            "ledger": PredictionLedger(db),
            "context_detector": StalenessDetector(context_store, excluded),
            "kpi_detector": StalenessDetector(kpi_store, excluded),
            "oracle": oracle,
        }
    finally:
        if oracle is not None:
            await oracle.close()
        await db.close()
        logger.info("Database connection closed")


_INSTRUCTIONS = """\
This server keeps a versioned ledger of football score predictions for a \
prediction community, and knows when a stored prediction is out of date.

CONTEXT: the documents predictions are made from.
- ledger_context: Save context documents (standings, team histories, \
head-to-head, community rules) and KPI documents (team-data, manager-data). \
Saving unchanged content is a no-op; changed content becomes a new version.

PREDICTING:
- ledger_matchday: Predict a matchday from schedule rows. Stored predictions \
are reused; with repredict, a prediction whose context documents changed \
since it was made is repredicted, up to max_repredictions.
- ledger_bonus: Same for season bonus questions, using KPI documents.

CHECKING:
- ledger_prediction: Look up the latest prediction, its reprediction index, \
the context it used, or whether it is outdated. For cancelled matches pass \
cancelled=True to look up by teams only.
- ledger_verify: Compare placed predictions (matchday rows, bonus answers) \
with the ledger before the deadline.

Cancelled matches ("Abgesagt") inherit the start time of the previous row, \
so their key can move between runs.
"""


def create_server() -> FastMCP:
    """Create and configure the MCP server with all tools."""
    mcp = FastMCP(
        "prediction-ledger",
        instructions=_INSTRUCTIONS,
        lifespan=lifespan,
    )

    register_ledger_context(mcp)
    register_ledger_prediction(mcp)
    register_ledger_matchday(mcp)
    register_ledger_verify(mcp)
    register_ledger_bonus(mcp)

    if is_manager_mode():
        register_ledger_maintain(mcp)

    return mcp
