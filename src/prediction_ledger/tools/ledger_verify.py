"""ledger_verify MCP tool: check placed predictions against the ledger."""

import logging
from typing import Annotated

from fastmcp import FastMCP
from fastmcp.server.context import Context
from pydantic import Field

from prediction_ledger.config import load_run_settings
from prediction_ledger.matching.identity import RawMatchRow, resolve_match_rows
from prediction_ledger.models.prediction import BonusPrediction, BonusQuestion, Prediction
from prediction_ledger.models.settings import RunSettings
from prediction_ledger.oracle.provider import PredictionOracle
from prediction_ledger.staleness.detector import StalenessDetector
from prediction_ledger.store.prediction_ledger import PredictionLedger
from prediction_ledger.tools.formatters import format_bonus_verification, format_verification
from prediction_ledger.workflow.verify import verify_bonus_predictions, verify_predictions

logger = logging.getLogger(__name__)


class PlacedMatchRow(RawMatchRow):
    """A schedule row with the score placed in the community, if any."""

    placed_home_goals: int | None = Field(default=None, ge=0)
    placed_away_goals: int | None = Field(default=None, ge=0)

    def placed(self) -> Prediction | None:
        if self.placed_home_goals is None or self.placed_away_goals is None:
            return None
        return Prediction(home_goals=self.placed_home_goals, away_goals=self.placed_away_goals)


class PlacedBonusQuestion(BonusQuestion):
    """An open bonus question with the options placed in the community, if any."""

    placed_option_ids: list[str] | None = None

    def placed(self) -> BonusPrediction | None:
        if not self.placed_option_ids:
            return None
        return BonusPrediction(selected_option_ids=self.placed_option_ids)


async def run_verification(
    ledger: PredictionLedger,
    detector: StalenessDetector,
    rows: list[PlacedMatchRow],
    settings: RunSettings,
    check_outdated: bool = True,
    init_matchday: bool = False,
) -> str:
    """Resolve rows and verify each placed prediction."""
    if not rows:
        return "Error: no match rows given"
    matches = resolve_match_rows(rows)
    report = await verify_predictions(
        ledger,
        detector,
        [(match, row.placed()) for match, row in zip(matches, rows, strict=True)],
        settings,
        check_outdated=check_outdated,
        init_matchday=init_matchday,
    )
    return format_verification(report)


async def run_bonus_verification(
    ledger: PredictionLedger,
    kpi_detector: StalenessDetector,
    questions: list[PlacedBonusQuestion],
    settings: RunSettings,
    check_outdated: bool = True,
    init_bonus: bool = False,
) -> str:
    """Verify each placed bonus answer. Staleness is checked against KPI documents."""
    if not questions:
        return "Error: no bonus questions given"
    report = await verify_bonus_predictions(
        ledger,
        kpi_detector,
        [(question, question.placed()) for question in questions],
        settings,
        check_outdated=check_outdated,
        init_bonus=init_bonus,
    )
    return format_bonus_verification(report)


def register_ledger_verify(mcp: FastMCP) -> None:
    """Register the ledger_verify tool with the MCP server."""

    @mcp.tool()
    async def ledger_verify(
        rows: Annotated[
            list[PlacedMatchRow] | None,
            Field(
                description=(
                    "Schedule rows in table order with the placed score "
                    "(placed_home_goals/placed_away_goals, omitted when nothing is placed)"
                )
            ),
        ] = None,
        questions: Annotated[
            list[PlacedBonusQuestion] | None,
            Field(
                description=(
                    "Open bonus questions with options, max_selections and the "
                    "placed_option_ids (omitted when nothing is placed)"
                )
            ),
        ] = None,
        community_context: Annotated[
            str | None, Field(description="Community (default LEDGER_COMMUNITY_CONTEXT)")
        ] = None,
        model: Annotated[
            str | None, Field(description="Model to verify against (default: oracle model)")
        ] = None,
        check_outdated: Annotated[
            bool, Field(description="Treat predictions with changed context as invalid")
        ] = True,
        init_matchday: Annotated[
            bool,
            Field(description="Fail when no stored predictions exist yet for these entries"),
        ] = False,
        ctx: Context | None = None,
    ) -> str:
        """Verify that placed predictions equal the ledger's latest predictions.

        Pass schedule rows to verify a matchday, bonus questions to verify
        bonus answers, or both. An entry fails verification when the placed
        value differs from the stored one or, with check_outdated, when the
        stored prediction is older than one of its context documents (KPI
        documents for bonus questions). Stored bonus answers must also select
        known options within max_selections.
        """
        if ctx is None:
            raise RuntimeError("Context not injected")
        if not rows and not questions:
            return "Error: no match rows or bonus questions given"
        lifespan = ctx.lifespan_context
        oracle: PredictionOracle | None = lifespan.get("oracle")
        model_name = model or (oracle.model if oracle is not None else None)
        if not model_name:
            return "Error: model is required when no oracle is configured"
        try:
            settings = load_run_settings(model_name, community_context)
        except ValueError as e:
            return f"Error: {e}"

        sections = []
        if rows:
            sections.append(
                await run_verification(
                    lifespan["ledger"],
                    lifespan["context_detector"],
                    rows,
                    settings,
                    check_outdated,
                    init_matchday,
                )
            )
        if questions:
            sections.append(
                await run_bonus_verification(
                    lifespan["ledger"],
                    lifespan["kpi_detector"],
                    questions,
                    settings,
                    check_outdated,
                    init_matchday,
                )
            )
        return "\n\n".join(sections)
