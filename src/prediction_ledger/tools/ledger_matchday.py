"""ledger_matchday MCP tool: run the regeneration workflow over a matchday."""

import logging
from typing import Annotated

from fastmcp import FastMCP
from fastmcp.server.context import Context
from pydantic import Field

from prediction_ledger.config import load_run_settings
from prediction_ledger.matching.identity import RawMatchRow, resolve_match_rows
from prediction_ledger.models.settings import RunSettings
from prediction_ledger.oracle.provider import PredictionOracle
from prediction_ledger.tools.formatters import format_run_report
from prediction_ledger.workflow.matchday import MatchdayRunner

logger = logging.getLogger(__name__)


async def run_matchday(
    runner: MatchdayRunner,
    rows: list[RawMatchRow],
    settings: RunSettings,
    matchday: int | None = None,
) -> str:
    """Resolve rows into matches and run the workflow over them."""
    if not rows:
        return "Error: no match rows given"
    matches = resolve_match_rows(rows, matchday)
    report = await runner.run(matches, settings)
    return format_run_report(report)


def register_ledger_matchday(mcp: FastMCP) -> None:
    """Register the ledger_matchday tool with the MCP server."""

    @mcp.tool()
    async def ledger_matchday(
        rows: Annotated[
            list[RawMatchRow],
            Field(
                description=(
                    "Schedule rows in table order: time_text ('dd.mm.yy HH:MM', blank "
                    "to inherit the previous time, or 'Abgesagt'), home_team, away_team"
                )
            ),
        ],
        matchday: Annotated[int | None, Field(description="Matchday number")] = None,
        community_context: Annotated[
            str | None, Field(description="Community (default LEDGER_COMMUNITY_CONTEXT)")
        ] = None,
        repredict: Annotated[
            bool, Field(description="Repredict matches whose context changed")
        ] = False,
        max_repredictions: Annotated[
            int | None,
            Field(description="Highest reprediction index allowed (implies repredict)", ge=0),
        ] = None,
        override_database: Annotated[
            bool,
            Field(description="Regenerate and replace stored initial predictions"),
        ] = False,
        ctx: Context | None = None,
    ) -> str:
        """Predict every match of a matchday, reusing stored predictions where possible.

        Normal mode predicts only matches without a stored prediction. With
        repredict (or max_repredictions), a stored prediction is replaced by a
        new reprediction when any of its context documents changed since it
        was made, up to max_repredictions. override_database cannot be combined
        with reprediction.
        """
        if ctx is None:
            raise RuntimeError("Context not injected")
        lifespan = ctx.lifespan_context
        oracle: PredictionOracle | None = lifespan.get("oracle")
        if oracle is None:
            logger.warning("ledger_matchday called without a prediction oracle")
            return "Error: no prediction oracle configured"

        try:
            settings = load_run_settings(
                oracle.model,
                community_context,
                repredict=repredict,
                max_repredictions=max_repredictions,
                override_database=override_database,
            )
        except ValueError as e:
            return f"Error: {e}"

        runner = MatchdayRunner(
            lifespan["ledger"],
            lifespan["context_store"],
            lifespan["context_detector"],
            oracle,
        )
        return await run_matchday(runner, rows, settings, matchday)
