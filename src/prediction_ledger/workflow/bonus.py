"""Regeneration workflow over season bonus questions."""

import asyncio
import logging

from prediction_ledger.models.prediction import BonusQuestion, EntityIdentity
from prediction_ledger.models.report import EntityReport, Outcome, RunReport
from prediction_ledger.models.settings import RunSettings
from prediction_ledger.oracle.provider import PredictionOracle
from prediction_ledger.staleness.detector import StalenessDetector
from prediction_ledger.store.document_store import VersionedDocumentStore
from prediction_ledger.store.prediction_ledger import PredictionLedger
from prediction_ledger.workflow.context import assemble_bonus_context
from prediction_ledger.workflow.regeneration import decide_regeneration
from prediction_ledger.workflow.runner import outcome_for, record_result, run_sequentially

logger = logging.getLogger(__name__)


def _identify(question: BonusQuestion) -> EntityIdentity:
    return EntityIdentity.for_question(question.text)


class BonusRunner:
    """Bonus questions are keyed by their text; context comes from the KPI store."""

    def __init__(
        self,
        ledger: PredictionLedger,
        kpi_store: VersionedDocumentStore,
        detector: StalenessDetector,
        oracle: PredictionOracle,
    ):
        """Initialize with the ledger, KPI store, KPI staleness detector and oracle."""
        self.ledger = ledger
        self.kpi_store = kpi_store
        self.detector = detector
        self.oracle = oracle

    async def run(
        self,
        questions: list[BonusQuestion],
        settings: RunSettings,
        stop: asyncio.Event | None = None,
    ) -> RunReport:
        """Process questions in order."""
        logger.info("Bonus run: %d questions, model=%s", len(questions), settings.model)
        return await run_sequentially(
            questions,
            _identify,
            lambda question: self.process_question(question, settings),
            stop,
        )

    async def process_question(self, question: BonusQuestion, settings: RunSettings) -> EntityReport:
        """Run the regeneration policy for one bonus question."""
        identity = _identify(question)
        decision = await decide_regeneration(self.ledger, self.detector, identity, settings)
        if not decision.should_predict:
            record = await self.ledger.get_latest_record(
                identity, settings.model, settings.community_context
            )
            return EntityReport(
                identity=identity,
                outcome=outcome_for(decision.action),
                prediction=record.prediction() if record else None,
                reprediction_index=decision.current_index,
                context_document_names=record.context_document_names if record else [],
            )

        context = await assemble_bonus_context(
            self.kpi_store, question.text, settings.community_context
        )
        result = await self.oracle.predict_bonus(question, context)
        if result is None:
            logger.warning("No prediction for bonus question %r", question.text)
            return EntityReport(
                identity=identity, outcome=Outcome.FAILED, error="oracle returned no prediction"
            )
        return await record_result(
            self.ledger,
            identity,
            decision,
            result,
            [document.name for document in context],
            settings,
        )
