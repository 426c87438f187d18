"""Regeneration workflow over the matches of a matchday."""

import asyncio
import logging

from prediction_ledger.models.prediction import EntityIdentity, Match, PredictionRecord
from prediction_ledger.models.report import EntityReport, Outcome, RunReport
from prediction_ledger.models.settings import RunSettings
from prediction_ledger.oracle.provider import PredictionOracle
from prediction_ledger.staleness.detector import StalenessDetector
from prediction_ledger.store.document_store import VersionedDocumentStore
from prediction_ledger.store.prediction_ledger import PredictionLedger
from prediction_ledger.workflow.context import ContextProvider, assemble_match_context
from prediction_ledger.workflow.regeneration import decide_regeneration
from prediction_ledger.workflow.runner import outcome_for, record_result, run_sequentially

logger = logging.getLogger(__name__)


class MatchdayRunner:
    """Predicts, repredicts or reuses each match, one at a time."""

    def __init__(
        self,
        ledger: PredictionLedger,
        context_store: VersionedDocumentStore,
        detector: StalenessDetector,
        oracle: PredictionOracle,
        context_provider: ContextProvider | None = None,
    ):
        """Initialize with the ledger, context store, staleness detector and oracle."""
        self.ledger = ledger
        self.context_store = context_store
        self.detector = detector
        self.oracle = oracle
        self.context_provider = context_provider

    async def run(
        self,
        matches: list[Match],
        settings: RunSettings,
        stop: asyncio.Event | None = None,
    ) -> RunReport:
        """Process matches in order. See run_sequentially for stop/cancel behavior."""
        logger.info(
            "Matchday run: %d matches, model=%s, community=%s",
            len(matches),
            settings.model,
            settings.community_context,
        )
        return await run_sequentially(
            matches,
            EntityIdentity.for_match,
            lambda match: self.process_match(match, settings),
            stop,
        )

    async def _cancelled_identity(
        self, match: Match, identity: EntityIdentity, settings: RunSettings
    ) -> tuple[EntityIdentity, PredictionRecord | None]:
        """Find the snapshot a cancelled match was stored under before its time moved.

        Returns the identity to apply the policy to and the record found by
        teams, if any.
        """
        model, community_context = settings.model, settings.community_context
        if await self.ledger.get_reprediction_index(identity, model, community_context) >= 0:
            return identity, None
        record = await self.ledger.get_by_teams_only(
            match.home_team, match.away_team, model, community_context
        )
        if record is None:
            return identity, None
        logger.info(
            "Cancelled match %s vs %s: using prediction stored for %s",
            match.home_team,
            match.away_team,
            record.starts_at,
        )
        return EntityIdentity.for_record(record), record

    async def process_match(self, match: Match, settings: RunSettings) -> EntityReport:
        """Run the regeneration policy for one match.

        A cancelled match whose prediction was stored under an earlier start
        time is reused in normal mode. In reprediction and override modes the
        policy is applied to that stored entry instead.
        """
        identity = EntityIdentity.for_match(match)
        model, community_context = settings.model, settings.community_context

        if match.is_cancelled:
            identity, record = await self._cancelled_identity(match, identity, settings)
            if record is not None and not (
                settings.is_repredict_mode or settings.override_database
            ):
                return EntityReport(
                    identity=identity,
                    outcome=Outcome.REUSED,
                    prediction=record.prediction(),
                    reprediction_index=record.reprediction_index,
                    context_document_names=record.context_document_names,
                    cancelled=True,
                )

        decision = await decide_regeneration(self.ledger, self.detector, identity, settings)
        if not decision.should_predict:
            record = await self.ledger.get_latest_record(identity, model, community_context)
            return EntityReport(
                identity=identity,
                outcome=outcome_for(decision.action),
                prediction=record.prediction() if record else None,
                reprediction_index=decision.current_index,
                context_document_names=record.context_document_names if record else [],
                cancelled=match.is_cancelled,
            )

        context = await assemble_match_context(
            self.context_store,
            match.home_team,
            match.away_team,
            community_context,
            self.context_provider,
        )
        result = await self.oracle.predict_match(match, context)
        if result is None:
            logger.warning("No prediction for %s vs %s", match.home_team, match.away_team)
            return EntityReport(
                identity=identity,
                outcome=Outcome.FAILED,
                cancelled=match.is_cancelled,
                error="oracle returned no prediction",
            )

        report = await record_result(
            self.ledger,
            identity,
            decision,
            result,
            [document.name for document in context],
            settings,
        )
        report.cancelled = match.is_cancelled
        return report
