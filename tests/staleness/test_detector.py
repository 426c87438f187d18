"""Tests for StalenessDetector."""

from unittest.mock import AsyncMock

import pytest

from prediction_ledger.models.prediction import PredictionMetadata
from prediction_ledger.staleness.detector import StalenessDetector, strip_display_suffix

CC = "test-community"


async def _metadata_now(clock, names: list[str]) -> PredictionMetadata:
    return PredictionMetadata(created_at=clock(), context_document_names=names)


@pytest.mark.parametrize(
    ("name", "expected"),
    [
        ("home-history-fcb.csv (kpi-context)", "home-history-fcb.csv"),
        ("team-data (team-data)", "team-data"),
        ("standings.csv", "standings.csv"),
        (" (label)", " (label)"),
        ("a (b) (c)", "a (b)"),
        ("odd)", "odd)"),
    ],
)
def test_strip_display_suffix(name, expected):
    assert strip_display_suffix(name) == expected


@pytest.mark.asyncio
async def test_unchanged_documents_are_not_outdated(context_store, detector, clock):
    await context_store.save_document("recent-history-fca.csv", "a", CC)
    metadata = await _metadata_now(clock, ["recent-history-fca.csv"])
    assert not await detector.is_outdated(metadata, CC)


@pytest.mark.asyncio
async def test_newer_version_makes_prediction_outdated(context_store, detector, clock):
    await context_store.save_document("recent-history-fca.csv", "a", CC)
    metadata = await _metadata_now(clock, ["recent-history-fca.csv"])
    await context_store.save_document("recent-history-fca.csv", "b", CC)
    assert await detector.is_outdated(metadata, CC)


@pytest.mark.asyncio
async def test_unchanged_save_does_not_make_outdated(context_store, detector, clock):
    await context_store.save_document("recent-history-fca.csv", "a", CC)
    metadata = await _metadata_now(clock, ["recent-history-fca.csv"])
    await context_store.save_document("recent-history-fca.csv", "a", CC)
    assert not await detector.is_outdated(metadata, CC)


@pytest.mark.asyncio
async def test_equal_timestamps_are_not_outdated(context_store, detector):
    await context_store.save_document("doc", "a", CC)
    document = await context_store.get_latest_document("doc", CC)
    metadata = PredictionMetadata(created_at=document.created_at, context_document_names=["doc"])
    assert not await detector.is_outdated(metadata, CC)


@pytest.mark.asyncio
async def test_excluded_documents_are_ignored(context_store, detector, clock):
    metadata = await _metadata_now(clock, ["Bundesliga-Standings.csv"])
    await context_store.save_document("Bundesliga-Standings.csv", "new table", CC)
    assert not await detector.is_outdated(metadata, CC)


@pytest.mark.asyncio
async def test_custom_exclusions(context_store, clock):
    detector = StalenessDetector(context_store, ["Volatile.csv"])
    metadata = await _metadata_now(clock, ["volatile.csv", "bundesliga-standings.csv"])
    await context_store.save_document("volatile.csv", "x", CC)
    await context_store.save_document("bundesliga-standings.csv", "x", CC)
    # Custom list replaces the default one
    assert await detector.is_outdated(metadata, CC)
    metadata = await _metadata_now(clock, ["volatile.csv"])
    await context_store.save_document("volatile.csv", "y", CC)
    assert not await detector.is_outdated(metadata, CC)


@pytest.mark.asyncio
async def test_missing_documents_count_as_unchanged(detector, clock):
    metadata = await _metadata_now(clock, ["never-saved.csv"])
    assert not await detector.is_outdated(metadata, CC)


@pytest.mark.asyncio
async def test_display_suffix_is_stripped(kpi_store, kpi_detector, clock):
    await kpi_store.save_document("team-data", "v0", CC, document_type="team-data")
    metadata = await _metadata_now(clock, ["team-data (team-data)"])
    await kpi_store.save_document("team-data", "v1", CC, document_type="team-data")
    assert await kpi_detector.is_outdated(metadata, CC)


@pytest.mark.asyncio
async def test_any_changed_document_is_enough(context_store, detector, clock):
    await context_store.save_document("a", "1", CC)
    await context_store.save_document("b", "1", CC)
    metadata = await _metadata_now(clock, ["a", "b"])
    await context_store.save_document("b", "2", CC)
    assert await detector.is_outdated(metadata, CC)


@pytest.mark.asyncio
async def test_no_context_documents(detector, clock):
    assert not await detector.is_outdated(await _metadata_now(clock, []), CC)


@pytest.mark.asyncio
async def test_store_failure_is_not_outdated(context_store, clock):
    context_store.get_latest_document = AsyncMock(side_effect=RuntimeError("db gone"))
    detector = StalenessDetector(context_store)
    assert not await detector.is_outdated(await _metadata_now(clock, ["a"]), CC)
