"""Sequential per-entity processing with isolation and cooperative cancellation."""

import asyncio
import logging
from collections.abc import Awaitable, Callable, Sequence
from typing import TypeVar

from prediction_ledger.models.prediction import EntityIdentity
from prediction_ledger.models.report import EntityReport, Outcome, RunReport
from prediction_ledger.models.settings import RunSettings
from prediction_ledger.oracle.provider import OracleResult
from prediction_ledger.store.prediction_ledger import PredictionLedger
from prediction_ledger.workflow.regeneration import RegenerationAction, RegenerationDecision

logger = logging.getLogger(__name__)

T = TypeVar("T")

_OUTCOMES = {
    RegenerationAction.PREDICT: Outcome.PREDICTED,
    RegenerationAction.REPREDICT: Outcome.REPREDICTED,
    RegenerationAction.OVERRIDE: Outcome.OVERRIDDEN,
    RegenerationAction.REUSE: Outcome.REUSED,
    RegenerationAction.LIMIT_REACHED: Outcome.LIMIT_REACHED,
    RegenerationAction.OVERRIDE_REFUSED: Outcome.OVERRIDE_REFUSED,
}


def outcome_for(action: RegenerationAction) -> Outcome:
    """Report outcome for a regeneration action."""
    return _OUTCOMES[action]


async def record_result(
    ledger: PredictionLedger,
    identity: EntityIdentity,
    decision: RegenerationDecision,
    result: OracleResult,
    context_document_names: list[str],
    settings: RunSettings,
) -> EntityReport:
    """Write an oracle result to the ledger as the decision prescribes."""
    args = (
        identity,
        result.value,
        settings.model,
        settings.community_context,
        context_document_names,
        result.token_usage,
        result.cost,
    )
    if decision.action == RegenerationAction.REPREDICT:
        record = await ledger.save_reprediction(
            *args, reprediction_index=decision.current_index + 1
        )
    else:
        record = await ledger.save_initial_prediction(
            *args, override_created_at=decision.action == RegenerationAction.OVERRIDE
        )
    return EntityReport(
        identity=identity,
        outcome=outcome_for(decision.action),
        prediction=result.value,
        reprediction_index=record.reprediction_index,
        context_document_names=record.context_document_names,
        cost=result.cost,
    )


async def _process_isolated(
    item: T,
    identity: EntityIdentity,
    process: Callable[[T], Awaitable[EntityReport]],
) -> EntityReport:
    try:
        return await process(item)
    except Exception as exc:
        logger.exception("Failed to process %s", identity.key)
        return EntityReport(identity=identity, outcome=Outcome.ERROR, error=str(exc))


async def run_sequentially(
    items: Sequence[T],
    identify: Callable[[T], EntityIdentity],
    process: Callable[[T], Awaitable[EntityReport]],
    stop: asyncio.Event | None = None,
) -> RunReport:
    """Process items one at a time.

    A failure of one item is recorded and the run continues. If the stop
    event is set, remaining items are listed as abandoned. If the run is
    cancelled, the in-flight item is allowed to finish before the
    cancellation propagates, so a started read-decide-write never stops
    half way.
    """
    report = RunReport()
    for position, item in enumerate(items):
        if stop is not None and stop.is_set():
            report.abandoned = [identify(rest).key for rest in items[position:]]
            logger.info("Stop requested, abandoning %d entities", len(report.abandoned))
            break
        identity = identify(item)
        task = asyncio.ensure_future(_process_isolated(item, identity, process))
        try:
            entity_report = await asyncio.shield(task)
        except asyncio.CancelledError:
            logger.warning("Run cancelled, finishing %s first", identity.key)
            await task
            raise
        report.items.append(entity_report)
    return report
