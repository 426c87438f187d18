"""Shared test fixtures."""

import asyncio
from datetime import UTC, datetime, timedelta

import pytest_asyncio

from prediction_ledger.db.connection import create_connection
from prediction_ledger.models.document import ContextDocument, DocumentFamily
from prediction_ledger.models.prediction import (
    BonusPrediction,
    BonusQuestion,
    Match,
    Prediction,
)
from prediction_ledger.models.settings import RunSettings
from prediction_ledger.oracle.provider import OracleResult
from prediction_ledger.staleness.detector import StalenessDetector
from prediction_ledger.store.document_store import VersionedDocumentStore
from prediction_ledger.store.prediction_ledger import PredictionLedger

COMMUNITY = "test-community"
MODEL = "fake-model"


class FakeClock:
    """Deterministic clock: every call is one minute after the previous one."""

    def __init__(self, start: datetime = datetime(2025, 8, 1, 10, 0, tzinfo=UTC)):
        self.current = start

    def __call__(self) -> datetime:
        self.current += timedelta(minutes=1)
        return self.current


class FakeOracle:
    """Controllable fake prediction oracle.

    Returns queued results in order, then the default. An optional gate
    blocks every call until it is set.
    """

    def __init__(
        self,
        results: list[OracleResult | None] | None = None,
        default: OracleResult | None = None,
        model: str = MODEL,
    ):
        self.model = model
        self.results = list(results or [])
        self.default = default or OracleResult(
            value=Prediction(home_goals=2, away_goals=1), token_usage="{}", cost=0.01
        )
        self.bonus_default = OracleResult(value=BonusPrediction(selected_option_ids=["a"]))
        self.match_calls: list[tuple[Match, list[ContextDocument]]] = []
        self.bonus_calls: list[tuple[BonusQuestion, list[ContextDocument]]] = []
        self.started = asyncio.Event()
        self.gate: asyncio.Event | None = None
        self.closed = False

    async def is_available(self) -> bool:
        return True

    async def _next(self, default: OracleResult | None) -> OracleResult | None:
        self.started.set()
        if self.gate is not None:
            await self.gate.wait()
        if self.results:
            return self.results.pop(0)
        return default

    async def predict_match(
        self, match: Match, context_documents: list[ContextDocument]
    ) -> OracleResult | None:
        self.match_calls.append((match, context_documents))
        return await self._next(self.default)

    async def predict_bonus(
        self, question: BonusQuestion, context_documents: list[ContextDocument]
    ) -> OracleResult | None:
        self.bonus_calls.append((question, context_documents))
        return await self._next(self.bonus_default)

    async def close(self) -> None:
        self.closed = True


class FakeContextProvider:
    """On-demand context source returning fixed documents."""

    def __init__(self, documents: list[ContextDocument] | None = None):
        self.documents = documents or []
        self.calls: list[tuple[str, str]] = []

    async def get_match_context(self, home_team: str, away_team: str) -> list[ContextDocument]:
        self.calls.append((home_team, away_team))
        return list(self.documents)


@pytest_asyncio.fixture
async def db():
    """In-memory database with the ledger schema."""
    conn = await create_connection(":memory:")
    yield conn
    await conn.close()


@pytest_asyncio.fixture
async def clock():
    """Clock shared by every store, so write order is creation order."""
    return FakeClock()


@pytest_asyncio.fixture
async def context_store(db, clock):
    """Context document store backed by in-memory DB."""
    return VersionedDocumentStore(db, DocumentFamily.CONTEXT, clock)


@pytest_asyncio.fixture
async def kpi_store(db, clock):
    """KPI document store backed by in-memory DB."""
    return VersionedDocumentStore(db, DocumentFamily.KPI, clock)


@pytest_asyncio.fixture
async def ledger(db, clock):
    """Prediction ledger backed by in-memory DB."""
    return PredictionLedger(db, clock)


@pytest_asyncio.fixture
async def detector(context_store):
    """Staleness detector over the context store, default exclusions."""
    return StalenessDetector(context_store)


@pytest_asyncio.fixture
async def kpi_detector(kpi_store):
    """Staleness detector over the KPI store."""
    return StalenessDetector(kpi_store)


@pytest_asyncio.fixture
async def fake_oracle():
    """Controllable fake prediction oracle."""
    return FakeOracle()


@pytest_asyncio.fixture
async def settings():
    """Normal-mode run settings."""
    return RunSettings(model=MODEL, community_context=COMMUNITY)
