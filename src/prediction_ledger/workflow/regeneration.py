"""Decide whether an entity needs a new prediction."""

import logging
from enum import StrEnum

from pydantic import BaseModel

from prediction_ledger.models.prediction import EntityIdentity
from prediction_ledger.models.settings import RunSettings
from prediction_ledger.staleness.detector import StalenessDetector
from prediction_ledger.store.prediction_ledger import PredictionLedger

logger = logging.getLogger(__name__)


class RegenerationAction(StrEnum):
    """What to do with an entity in this run."""

    PREDICT = "predict"
    REPREDICT = "repredict"
    OVERRIDE = "override"
    REUSE = "reuse"
    LIMIT_REACHED = "limit_reached"
    OVERRIDE_REFUSED = "override_refused"


class RegenerationDecision(BaseModel):
    """Outcome of the regeneration policy for one entity."""

    action: RegenerationAction
    current_index: int
    next_index: int | None = None

    @property
    def should_predict(self) -> bool:
        return self.action in (
            RegenerationAction.PREDICT,
            RegenerationAction.REPREDICT,
            RegenerationAction.OVERRIDE,
        )


async def decide_regeneration(
    ledger: PredictionLedger,
    detector: StalenessDetector,
    identity: EntityIdentity,
    settings: RunSettings,
) -> RegenerationDecision:
    """Apply the regeneration policy.

    * nothing stored -> predict index 0
    * override mode -> regenerate index 0 in place, refused once
      repredictions exist (index 0 would no longer be the latest)
    * normal mode -> reuse the stored prediction
    * reprediction mode, next index beyond max_repredictions -> refuse
    * reprediction mode otherwise -> repredict only if the latest is outdated
    """
    model, community_context = settings.model, settings.community_context
    current = await ledger.get_reprediction_index(identity, model, community_context)
    if current == -1:
        return RegenerationDecision(action=RegenerationAction.PREDICT, current_index=-1, next_index=0)

    if settings.override_database:
        if current > 0:
            logger.warning(
                "Cannot override %s: reprediction #%d supersedes index 0", identity.key, current
            )
            return RegenerationDecision(
                action=RegenerationAction.OVERRIDE_REFUSED, current_index=current
            )
        return RegenerationDecision(
            action=RegenerationAction.OVERRIDE, current_index=current, next_index=0
        )

    if not settings.is_repredict_mode:
        return RegenerationDecision(action=RegenerationAction.REUSE, current_index=current)

    next_index = current + 1
    if settings.max_repredictions is not None and next_index > settings.max_repredictions:
        logger.info(
            "%s at max repredictions (%d/%d)", identity.key, current, settings.max_repredictions
        )
        return RegenerationDecision(action=RegenerationAction.LIMIT_REACHED, current_index=current)

    metadata = await ledger.get_latest_prediction_metadata(identity, model, community_context)
    if metadata is not None and await detector.is_outdated(metadata, community_context):
        return RegenerationDecision(
            action=RegenerationAction.REPREDICT, current_index=current, next_index=next_index
        )
    return RegenerationDecision(action=RegenerationAction.REUSE, current_index=current)
