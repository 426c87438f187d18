"""ledger_bonus MCP tool: run the regeneration workflow over bonus questions."""

import logging
from typing import Annotated

from fastmcp import FastMCP
from fastmcp.server.context import Context
from pydantic import Field

from prediction_ledger.config import load_run_settings
from prediction_ledger.models.prediction import BonusQuestion
from prediction_ledger.oracle.provider import PredictionOracle
from prediction_ledger.tools.formatters import format_run_report
from prediction_ledger.workflow.bonus import BonusRunner

logger = logging.getLogger(__name__)


def register_ledger_bonus(mcp: FastMCP) -> None:
    """Register the ledger_bonus tool with the MCP server."""

    @mcp.tool()
    async def ledger_bonus(
        questions: Annotated[
            list[BonusQuestion],
            Field(description="Bonus questions with id, text, options and max_selections"),
        ],
        community_context: Annotated[
            str | None, Field(description="Community (default LEDGER_COMMUNITY_CONTEXT)")
        ] = None,
        repredict: Annotated[
            bool, Field(description="Repredict questions whose KPI documents changed")
        ] = False,
        max_repredictions: Annotated[
            int | None,
            Field(description="Highest reprediction index allowed (implies repredict)", ge=0),
        ] = None,
        override_database: Annotated[
            bool, Field(description="Regenerate and replace stored initial predictions")
        ] = False,
        ctx: Context | None = None,
    ) -> str:
        """Answer season bonus questions, reusing stored answers where possible.

        Questions are identified by their text. Answers use the team-data KPI
        document (plus manager-data for coach and relegation questions) and
        become outdated when those documents change.
        """
        if ctx is None:
            raise RuntimeError("Context not injected")
        if not questions:
            return "Error: no bonus questions given"
        lifespan = ctx.lifespan_context
        oracle: PredictionOracle | None = lifespan.get("oracle")
        if oracle is None:
            logger.warning("ledger_bonus called without a prediction oracle")
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

        runner = BonusRunner(
            lifespan["ledger"], lifespan["kpi_store"], lifespan["kpi_detector"], oracle
        )
        report = await runner.run(questions, settings)
        return format_run_report(report)
