"""Compare predictions placed with the community against the ledger."""

import logging
from enum import StrEnum

from pydantic import BaseModel, Field

from prediction_ledger.models.prediction import (
    BonusPrediction,
    BonusQuestion,
    EntityIdentity,
    Match,
    Prediction,
    PredictionMetadata,
    PredictionRecord,
)
from prediction_ledger.models.settings import RunSettings
from prediction_ledger.staleness.detector import StalenessDetector
from prediction_ledger.store.prediction_ledger import PredictionLedger

logger = logging.getLogger(__name__)


class VerificationStatus(StrEnum):
    """Verdict for one match or bonus question."""

    VALID = "valid"
    MISMATCH = "mismatch"
    OUTDATED = "outdated"
    INVALID = "invalid"
    MISSING = "missing"
    ERROR = "error"


class VerificationItem(BaseModel):
    """Placed vs stored prediction for one match."""

    match: Match
    placed: Prediction | None = None
    stored: Prediction | None = None
    status: VerificationStatus


class VerificationReport(BaseModel):
    """Verification results for a matchday."""

    items: list[VerificationItem] = Field(default_factory=list)
    init_matchday_required: bool = False

    @property
    def placed_count(self) -> int:
        return sum(1 for item in self.items if item.placed is not None)

    @property
    def stored_count(self) -> int:
        return sum(1 for item in self.items if item.stored is not None)

    @property
    def valid_count(self) -> int:
        return sum(1 for item in self.items if item.status == VerificationStatus.VALID)

    @property
    def success(self) -> bool:
        """True when every match is valid and no initial run is pending."""
        return not self.init_matchday_required and self.valid_count == len(self.items)


def predictions_match(placed: Prediction | None, stored: Prediction | None) -> bool:
    """Scores equal, or both absent."""
    if placed is None or stored is None:
        return placed is None and stored is None
    return placed.home_goals == stored.home_goals and placed.away_goals == stored.away_goals


async def _find_record(
    ledger: PredictionLedger, match: Match, settings: RunSettings
) -> PredictionRecord | None:
    identity = EntityIdentity.for_match(match)
    record = await ledger.get_latest_record(identity, settings.model, settings.community_context)
    if record is None and match.is_cancelled:
        logger.warning(
            "%s vs %s is cancelled, looking up by teams only", match.home_team, match.away_team
        )
        record = await ledger.get_by_teams_only(
            match.home_team, match.away_team, settings.model, settings.community_context
        )
    return record


async def verify_predictions(
    ledger: PredictionLedger,
    detector: StalenessDetector,
    placed_predictions: list[tuple[Match, Prediction | None]],
    settings: RunSettings,
    *,
    check_outdated: bool = True,
    init_matchday: bool = False,
) -> VerificationReport:
    """Verify placed predictions.

    A match is valid when the placed score equals the ledger's latest and,
    with check_outdated, the ledger entry is not outdated. With init_matchday,
    a matchday without any stored prediction is reported as needing an
    initial run.
    """
    report = VerificationReport()
    for match, placed in placed_predictions:
        try:
            record = await _find_record(ledger, match, settings)
            stored = record.prediction() if record else None
            if stored is not None and not isinstance(stored, Prediction):
                stored = None
            outdated = False
            if check_outdated and record is not None:
                metadata = PredictionMetadata(
                    created_at=record.created_at,
                    context_document_names=record.context_document_names,
                    reprediction_index=record.reprediction_index,
                )
                outdated = await detector.is_outdated(metadata, settings.community_context)

            if not predictions_match(placed, stored):
                status = VerificationStatus.MISMATCH
            elif outdated:
                status = VerificationStatus.OUTDATED
            else:
                status = VerificationStatus.VALID
            report.items.append(
                VerificationItem(match=match, placed=placed, stored=stored, status=status)
            )
        except Exception:
            logger.exception("Error verifying %s vs %s", match.home_team, match.away_team)
            report.items.append(
                VerificationItem(match=match, placed=placed, status=VerificationStatus.ERROR)
            )

    if init_matchday and report.stored_count == 0:
        logger.info("No stored predictions for this matchday, initial run required")
        report.init_matchday_required = True
    return report


class BonusVerificationItem(BaseModel):
    """Placed vs stored answer for one bonus question."""

    question: BonusQuestion
    placed: BonusPrediction | None = None
    stored: BonusPrediction | None = None
    status: VerificationStatus


class BonusVerificationReport(BaseModel):
    """Verification results for the open bonus questions."""

    items: list[BonusVerificationItem] = Field(default_factory=list)
    init_bonus_required: bool = False

    @property
    def stored_count(self) -> int:
        return sum(1 for item in self.items if item.stored is not None)

    @property
    def valid_count(self) -> int:
        return sum(1 for item in self.items if item.status == VerificationStatus.VALID)

    @property
    def success(self) -> bool:
        return not self.init_bonus_required and self.valid_count == len(self.items)


def bonus_prediction_is_valid(question: BonusQuestion, prediction: BonusPrediction) -> bool:
    """Known option IDs, no duplicates, between 1 and max_selections selections."""
    selected = prediction.selected_option_ids
    known = {option.id for option in question.options}
    if any(option_id not in known for option_id in selected):
        return False
    if not 1 <= len(selected) <= question.max_selections:
        return False
    return len(set(selected)) == len(selected)


def bonus_predictions_match(
    placed: BonusPrediction | None, stored: BonusPrediction | None
) -> bool:
    """Same selected options in any order, or both absent."""
    if placed is None or stored is None:
        return placed is None and stored is None
    return sorted(placed.selected_option_ids) == sorted(stored.selected_option_ids)


async def _bonus_status(
    ledger: PredictionLedger,
    detector: StalenessDetector,
    question: BonusQuestion,
    placed: BonusPrediction | None,
    settings: RunSettings,
    check_outdated: bool,
) -> BonusVerificationItem:
    identity = EntityIdentity.for_question(question.text)
    metadata = await ledger.get_latest_prediction_metadata(
        identity, settings.model, settings.community_context
    )
    stored = metadata.prediction if metadata is not None else None
    if not isinstance(stored, BonusPrediction):
        return BonusVerificationItem(
            question=question, placed=placed, status=VerificationStatus.MISSING
        )

    if not bonus_prediction_is_valid(question, stored):
        status = VerificationStatus.INVALID
    elif not bonus_predictions_match(placed, stored):
        status = VerificationStatus.MISMATCH
    elif check_outdated and await detector.is_outdated(metadata, settings.community_context):
        status = VerificationStatus.OUTDATED
    else:
        status = VerificationStatus.VALID
    return BonusVerificationItem(question=question, placed=placed, stored=stored, status=status)


async def verify_bonus_predictions(
    ledger: PredictionLedger,
    detector: StalenessDetector,
    placed_predictions: list[tuple[BonusQuestion, BonusPrediction | None]],
    settings: RunSettings,
    *,
    check_outdated: bool = True,
    init_bonus: bool = False,
) -> BonusVerificationReport:
    """Verify placed bonus answers against the ledger, by question text.

    A question is valid when a stored answer exists, selects known options
    within max_selections, equals the placed selection and, with
    check_outdated, is not older than its KPI documents. The detector
    should be the one over the KPI store.
    """
    report = BonusVerificationReport()
    for question, placed in placed_predictions:
        try:
            item = await _bonus_status(
                ledger, detector, question, placed, settings, check_outdated
            )
        except Exception:
            logger.exception("Error verifying bonus question %r", question.text)
            item = BonusVerificationItem(
                question=question, placed=placed, status=VerificationStatus.ERROR
            )
        report.items.append(item)

    if init_bonus and report.stored_count == 0:
        logger.info("No stored bonus predictions, initial run required")
        report.init_bonus_required = True
    return report
