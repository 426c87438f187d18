"""Append-only ledger of prediction snapshots per entity, model and community."""

import logging
from collections.abc import Callable
from datetime import datetime

from prediction_ledger.db.backend import Database
from prediction_ledger.db.queries import (
    insert_prediction,
    replace_prediction,
    select_latest_by_teams,
    select_latest_prediction,
    select_prediction_at_index,
    select_predictions,
)
from prediction_ledger.models.prediction import (
    EntityIdentity,
    EntityKind,
    PredictionMetadata,
    PredictionRecord,
    PredictionValue,
)
from prediction_ledger.store.document_store import utcnow

logger = logging.getLogger(__name__)


class PredictionLedger:
    """Reprediction ledger: dense indices from 0, latest = highest index."""

    def __init__(self, db: Database, clock: Callable[[], datetime] = utcnow):
        """Initialize with a database connection and clock."""
        self.db = db
        self.clock = clock

    def _build_record(
        self,
        identity: EntityIdentity,
        value: PredictionValue,
        model: str,
        community_context: str,
        reprediction_index: int,
        context_document_names: list[str],
        token_usage: str,
        cost: float,
        created_at: datetime,
    ) -> PredictionRecord:
        return PredictionRecord(
            kind=identity.kind,
            entity_key=identity.key,
            model=model,
            community_context=community_context,
            reprediction_index=reprediction_index,
            value=value.model_dump(),
            created_at=created_at,
            # Ordered, duplicates dropped
            context_document_names=list(dict.fromkeys(context_document_names)),
            token_usage=token_usage,
            cost=cost,
            home_team=identity.home_team,
            away_team=identity.away_team,
            starts_at=identity.starts_at,
            matchday=identity.matchday,
        )

    async def get_latest_record(
        self, identity: EntityIdentity, model: str, community_context: str
    ) -> PredictionRecord | None:
        """Get the stored snapshot with the highest reprediction index."""
        return await select_latest_prediction(
            self.db, identity.kind, identity.key, model, community_context
        )

    async def get_reprediction_index(
        self, identity: EntityIdentity, model: str, community_context: str
    ) -> int:
        """Get the latest reprediction index, or -1 if nothing is stored."""
        record = await self.get_latest_record(identity, model, community_context)
        return -1 if record is None else record.reprediction_index

    async def save_initial_prediction(
        self,
        identity: EntityIdentity,
        value: PredictionValue,
        model: str,
        community_context: str,
        context_document_names: list[str],
        token_usage: str = "{}",
        cost: float = 0.0,
        override_created_at: bool = False,
    ) -> PredictionRecord:
        """Write the index-0 snapshot.

        If index 0 already exists it is replaced in place, keeping its
        created_at unless override_created_at asks for a fresh timestamp.
        Never appends a new index, so later repredictions stay the latest.
        An override is rejected once repredictions exist, since the
        rewritten value would be hidden behind them.
        """
        if override_created_at:
            current = await self.get_reprediction_index(identity, model, community_context)
            if current > 0:
                raise ValueError(
                    f"Cannot override {identity.key}: reprediction #{current} supersedes index 0"
                )
        existing = await select_prediction_at_index(
            self.db, identity.kind, identity.key, model, community_context, 0
        )
        if existing is None:
            record = self._build_record(
                identity,
                value,
                model,
                community_context,
                0,
                context_document_names,
                token_usage,
                cost,
                self.clock(),
            )
            await insert_prediction(self.db, record)
            logger.info("Saved initial prediction %s for %s", value, identity.key)
            return record

        created_at = self.clock() if override_created_at else existing.created_at
        record = self._build_record(
            identity,
            value,
            model,
            community_context,
            0,
            context_document_names,
            token_usage,
            cost,
            created_at,
        )
        await replace_prediction(self.db, record)
        logger.info("Replaced initial prediction for %s with %s", identity.key, value)
        return record

    async def save_reprediction(
        self,
        identity: EntityIdentity,
        value: PredictionValue,
        model: str,
        community_context: str,
        context_document_names: list[str],
        token_usage: str = "{}",
        cost: float = 0.0,
        *,
        reprediction_index: int,
    ) -> PredictionRecord:
        """Append a snapshot at reprediction_index, which must be latest + 1."""
        current = await self.get_reprediction_index(identity, model, community_context)
        if current < 0:
            raise ValueError(f"No initial prediction stored for {identity.key}")
        if reprediction_index != current + 1:
            raise ValueError(
                f"Reprediction index {reprediction_index} for {identity.key} "
                f"must be {current + 1}"
            )
        record = self._build_record(
            identity,
            value,
            model,
            community_context,
            reprediction_index,
            context_document_names,
            token_usage,
            cost,
            self.clock(),
        )
        await insert_prediction(self.db, record)
        logger.info(
            "Saved reprediction #%d %s for %s", reprediction_index, value, identity.key
        )
        return record

    async def get_latest_prediction(
        self, identity: EntityIdentity, model: str, community_context: str
    ) -> PredictionValue | None:
        """Get the value of the latest snapshot."""
        record = await self.get_latest_record(identity, model, community_context)
        return record.prediction() if record else None

    async def get_latest_prediction_metadata(
        self, identity: EntityIdentity, model: str, community_context: str
    ) -> PredictionMetadata | None:
        """Get created_at and context document names of the latest snapshot."""
        record = await self.get_latest_record(identity, model, community_context)
        if record is None:
            return None
        return PredictionMetadata(
            created_at=record.created_at,
            context_document_names=record.context_document_names,
            reprediction_index=record.reprediction_index,
            prediction=record.prediction(),
        )

    async def get_by_teams_only(
        self, home_team: str, away_team: str, model: str, community_context: str
    ) -> PredictionRecord | None:
        """Get the newest match snapshot for a team pair, ignoring the start time.

        Fallback for cancelled matches whose start time moved. Ties on
        created_at resolve to any one of the tied records.
        """
        return await select_latest_by_teams(
            self.db, home_team, away_team, model, community_context
        )

    async def list_latest_records(
        self, model: str, community_context: str, kind: EntityKind = EntityKind.MATCH
    ) -> list[PredictionRecord]:
        """Get the latest snapshot of every entity of one kind."""
        latest: dict[str, PredictionRecord] = {}
        for record in await select_predictions(self.db, kind, model, community_context):
            current = latest.get(record.entity_key)
            if current is None or record.reprediction_index > current.reprediction_index:
                latest[record.entity_key] = record
        return [latest[key] for key in sorted(latest)]
