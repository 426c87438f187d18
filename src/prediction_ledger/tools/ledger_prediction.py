"""ledger_prediction MCP tool: look up stored predictions."""

import logging
from datetime import datetime
from typing import Annotated

from fastmcp import FastMCP
from fastmcp.server.context import Context
from pydantic import Field

from prediction_ledger.config import get_community_context
from prediction_ledger.matching.identity import parse_match_time
from prediction_ledger.models.prediction import (
    EntityIdentity,
    EntityKind,
    MatchKey,
    PredictionMetadata,
)
from prediction_ledger.oracle.provider import PredictionOracle
from prediction_ledger.staleness.detector import StalenessDetector
from prediction_ledger.store.prediction_ledger import PredictionLedger
from prediction_ledger.tools.formatters import format_metadata, format_record

logger = logging.getLogger(__name__)

_ACTIONS = {"index", "latest", "metadata", "outdated", "list"}


def build_identity(
    home_team: str | None,
    away_team: str | None,
    starts_at: datetime | None,
    time_text: str | None,
    question_text: str | None,
) -> EntityIdentity:
    """Entity identity from tool arguments. Raises ValueError when incomplete."""
    if question_text:
        return EntityIdentity.for_question(question_text)
    if not home_team or not away_team:
        raise ValueError("home_team and away_team (or question_text) are required")
    if starts_at is None and time_text:
        starts_at = parse_match_time(time_text)
        if starts_at is None:
            raise ValueError(f"time_text {time_text!r} is not in 'dd.mm.yy HH:MM' format")
    if starts_at is None:
        raise ValueError("starts_at or time_text is required for a match")
    return EntityIdentity.for_match(
        MatchKey(home_team=home_team, away_team=away_team, starts_at=starts_at)
    )


async def lookup_prediction(
    ledger: PredictionLedger,
    detector: StalenessDetector,
    action: str,
    identity: EntityIdentity,
    model: str,
    community_context: str,
    cancelled: bool = False,
) -> str:
    """Answer an index/latest/metadata/outdated question about one entity."""
    record = await ledger.get_latest_record(identity, model, community_context)
    if record is None and cancelled and identity.home_team and identity.away_team:
        record = await ledger.get_by_teams_only(
            identity.home_team, identity.away_team, model, community_context
        )
        if record is not None:
            logger.info("Found %s by teams only", identity.key)
    if action == "index":
        index = -1 if record is None else record.reprediction_index
        key = identity.key if record is None else record.entity_key
        return f"{key}: reprediction index {index}"
    if record is None:
        return f"No prediction stored for {identity.key}"

    if action == "latest":
        return format_record(record)

    metadata = PredictionMetadata(
        created_at=record.created_at,
        context_document_names=record.context_document_names,
        reprediction_index=record.reprediction_index,
        prediction=record.prediction(),
    )
    if action == "metadata":
        return format_metadata(metadata)
    outdated = await detector.is_outdated(metadata, community_context)
    return f"{record.entity_key}: {'outdated' if outdated else 'up to date'}"


def register_ledger_prediction(mcp: FastMCP) -> None:
    """Register the ledger_prediction tool with the MCP server."""

    @mcp.tool()
    async def ledger_prediction(
        action: Annotated[str, Field(description="index, latest, metadata, outdated, list")],
        home_team: Annotated[str | None, Field(description="Home team of a match")] = None,
        away_team: Annotated[str | None, Field(description="Away team of a match")] = None,
        starts_at: Annotated[
            datetime | None, Field(description="Match start time, ISO-8601 with offset")
        ] = None,
        time_text: Annotated[
            str | None, Field(description="Match start time as 'dd.mm.yy HH:MM' (German time)")
        ] = None,
        cancelled: Annotated[
            bool,
            Field(description="Match is cancelled: fall back to a lookup by teams only"),
        ] = False,
        question_text: Annotated[
            str | None, Field(description="Bonus question text (instead of a match)")
        ] = None,
        model: Annotated[
            str | None, Field(description="Model the prediction was made with (default: oracle model)")
        ] = None,
        community_context: Annotated[
            str | None, Field(description="Community (default LEDGER_COMMUNITY_CONTEXT)")
        ] = None,
        ctx: Context | None = None,
    ) -> str:
        """Look up stored predictions for a match or bonus question.

        Actions:
        - index: Latest reprediction index (-1 when nothing is stored)
        - latest: Latest stored prediction with cost and creation time
        - metadata: Creation time and context documents of the latest prediction
        - outdated: Whether any context document changed after the prediction
        - list: Latest prediction of every match (or bonus question with
          question_text="*") for the model
        """
        if ctx is None:
            raise RuntimeError("Context not injected")
        if action not in _ACTIONS:
            return f"Unknown action '{action}'. Use: {', '.join(sorted(_ACTIONS))}"

        lifespan = ctx.lifespan_context
        ledger: PredictionLedger = lifespan["ledger"]
        oracle: PredictionOracle | None = lifespan.get("oracle")
        cc = community_context or get_community_context()
        if not cc:
            return "Error: community_context is required (or set LEDGER_COMMUNITY_CONTEXT)"
        model_name = model or (oracle.model if oracle is not None else None)
        if not model_name:
            return "Error: model is required when no oracle is configured"

        if action == "list":
            kind = EntityKind.BONUS if question_text == "*" else EntityKind.MATCH
            records = await ledger.list_latest_records(model_name, cc, kind)
            if not records:
                return f"No {kind.value} predictions stored for {model_name}"
            return "\n".join(format_record(record) for record in records)

        try:
            identity = build_identity(home_team, away_team, starts_at, time_text, question_text)
        except ValueError as e:
            return f"Error: {e}"

        detector: StalenessDetector = (
            lifespan["kpi_detector"]
            if identity.kind == EntityKind.BONUS
            else lifespan["context_detector"]
        )
        return await lookup_prediction(
            ledger, detector, action, identity, model_name, cc, cancelled
        )
