"""Tests for the matchday regeneration workflow."""

import asyncio

import pytest

from prediction_ledger.matching.identity import RawMatchRow, resolve_match_rows
from prediction_ledger.models.prediction import EntityIdentity, Prediction
from prediction_ledger.models.report import Outcome
from prediction_ledger.models.settings import RunSettings
from prediction_ledger.oracle.provider import OracleResult
from prediction_ledger.workflow.context import required_document_names
from prediction_ledger.workflow.matchday import MatchdayRunner

CC = "test-community"
MODEL = "fake-model"

ROWS = [
    RawMatchRow(time_text="23.08.25 15:30", home_team="FC Augsburg", away_team="SC Freiburg"),
    RawMatchRow(time_text="", home_team="Hamburger SV", away_team="FC St. Pauli"),
]


def _result(home: int, away: int, cost: float = 0.0) -> OracleResult:
    return OracleResult(value=Prediction(home_goals=home, away_goals=away), cost=cost)


@pytest.fixture
def runner(ledger, context_store, detector, fake_oracle):
    return MatchdayRunner(ledger, context_store, detector, fake_oracle)


async def _store_context(store, home="FC Augsburg", away="SC Freiburg"):
    for name in required_document_names(home, away, CC):
        await store.save_document(name, f"{name} v0", CC)


@pytest.mark.asyncio
async def test_first_run_predicts_every_match(runner, ledger, context_store, fake_oracle, settings):
    await _store_context(context_store)
    matches = resolve_match_rows(ROWS, matchday=1)

    report = await runner.run(matches, settings)

    assert [item.outcome for item in report.items] == [Outcome.PREDICTED, Outcome.PREDICTED]
    assert len(fake_oracle.match_calls) == 2
    first_context = fake_oracle.match_calls[0][1]
    assert len(first_context) == 7
    record = await ledger.get_latest_record(EntityIdentity.for_match(matches[0]), MODEL, CC)
    assert record.reprediction_index == 0
    assert record.matchday == 1
    assert record.context_document_names == required_document_names(
        "FC Augsburg", "SC Freiburg", CC
    )


@pytest.mark.asyncio
async def test_second_run_reuses(runner, fake_oracle, settings):
    matches = resolve_match_rows(ROWS)
    await runner.run(matches, settings)

    report = await runner.run(matches, settings)

    assert [item.outcome for item in report.items] == [Outcome.REUSED, Outcome.REUSED]
    assert report.items[0].prediction == Prediction(home_goals=2, away_goals=1)
    assert len(fake_oracle.match_calls) == 2
    assert report.total_cost == 0.0


@pytest.mark.asyncio
async def test_repredicts_only_outdated_matches(runner, ledger, context_store, fake_oracle):
    await _store_context(context_store)
    await _store_context(context_store, "Hamburger SV", "FC St. Pauli")
    matches = resolve_match_rows(ROWS)
    settings = RunSettings(model=MODEL, community_context=CC, repredict=True)
    await runner.run(matches, settings)

    await context_store.save_document("recent-history-fca.csv", "new result", CC)
    fake_oracle.results = [_result(0, 0, cost=0.02)]
    report = await runner.run(matches, settings)

    assert [item.outcome for item in report.items] == [Outcome.REPREDICTED, Outcome.REUSED]
    assert report.items[0].reprediction_index == 1
    assert report.total_cost == pytest.approx(0.02)
    identity = EntityIdentity.for_match(matches[0])
    assert await ledger.get_latest_prediction(identity, MODEL, CC) == Prediction(
        home_goals=0, away_goals=0
    )

    # The new snapshot postdates the changed document
    report = await runner.run(matches, settings)
    assert [item.outcome for item in report.items] == [Outcome.REUSED, Outcome.REUSED]


@pytest.mark.asyncio
async def test_standings_change_alone_does_not_repredict(runner, context_store):
    await _store_context(context_store)
    matches = resolve_match_rows(ROWS[:1])
    settings = RunSettings(model=MODEL, community_context=CC, repredict=True)
    await runner.run(matches, settings)

    await context_store.save_document("bundesliga-standings.csv", "new table", CC)
    report = await runner.run(matches, settings)

    assert report.items[0].outcome == Outcome.REUSED


@pytest.mark.asyncio
async def test_limit_reached(runner, context_store, fake_oracle):
    await _store_context(context_store)
    matches = resolve_match_rows(ROWS[:1])
    settings = RunSettings(model=MODEL, community_context=CC, max_repredictions=1)
    await runner.run(matches, settings)
    await context_store.save_document("recent-history-fca.csv", "change 1", CC)
    await runner.run(matches, settings)
    await context_store.save_document("recent-history-fca.csv", "change 2", CC)

    report = await runner.run(matches, settings)

    assert report.items[0].outcome == Outcome.LIMIT_REACHED
    assert report.items[0].reprediction_index == 1
    assert len(fake_oracle.match_calls) == 2


@pytest.mark.asyncio
async def test_override_replaces_initial_prediction(runner, ledger, fake_oracle, settings):
    matches = resolve_match_rows(ROWS[:1])
    await runner.run(matches, settings)
    identity = EntityIdentity.for_match(matches[0])
    before = await ledger.get_latest_record(identity, MODEL, CC)

    fake_oracle.results = [_result(4, 4)]
    override = RunSettings(model=MODEL, community_context=CC, override_database=True)
    report = await runner.run(matches, override)

    assert report.items[0].outcome == Outcome.OVERRIDDEN
    after = await ledger.get_latest_record(identity, MODEL, CC)
    assert after.reprediction_index == 0
    assert after.prediction() == Prediction(home_goals=4, away_goals=4)
    assert after.created_at > before.created_at


@pytest.mark.asyncio
async def test_oracle_failure_stores_nothing(runner, ledger, fake_oracle, settings):
    fake_oracle.results = [None]
    matches = resolve_match_rows(ROWS)

    report = await runner.run(matches, settings)

    assert report.items[0].outcome == Outcome.FAILED
    assert report.items[1].outcome == Outcome.PREDICTED
    identity = EntityIdentity.for_match(matches[0])
    assert await ledger.get_reprediction_index(identity, MODEL, CC) == -1


@pytest.mark.asyncio
async def test_cancelled_match_reuses_prediction_under_old_time(runner, fake_oracle, settings):
    await runner.run(resolve_match_rows(ROWS), settings)

    # Cancelled: time cell now inherits a different slot
    moved = resolve_match_rows(
        [
            RawMatchRow(time_text="24.08.25 17:30", home_team="RB Leipzig", away_team="VfB Stuttgart"),
            RawMatchRow(time_text="Abgesagt", home_team="Hamburger SV", away_team="FC St. Pauli"),
        ]
    )
    report = await runner.run(moved, settings)

    cancelled = report.items[1]
    assert cancelled.outcome == Outcome.REUSED
    assert cancelled.cancelled
    assert cancelled.prediction == Prediction(home_goals=2, away_goals=1)
    # Only the new Leipzig match reached the oracle
    assert len(fake_oracle.match_calls) == 3


@pytest.mark.asyncio
async def test_cancelled_match_without_history_is_predicted(runner, settings):
    matches = resolve_match_rows(
        [RawMatchRow(time_text="Abgesagt", home_team="FC Augsburg", away_team="SC Freiburg")]
    )
    report = await runner.run(matches, settings)
    assert report.items[0].outcome == Outcome.PREDICTED
    assert report.items[0].cancelled


@pytest.mark.asyncio
async def test_stop_abandons_remaining_matches(runner, settings):
    stop = asyncio.Event()
    stop.set()
    report = await runner.run(resolve_match_rows(ROWS), settings, stop)
    assert report.items == []
    assert len(report.abandoned) == 2


MOVED_ROWS = [
    RawMatchRow(time_text="24.08.25 17:30", home_team="RB Leipzig", away_team="VfB Stuttgart"),
    RawMatchRow(time_text="Abgesagt", home_team="Hamburger SV", away_team="FC St. Pauli"),
]


@pytest.mark.asyncio
async def test_cancelled_match_repredicted_when_context_changed(
    runner, ledger, context_store, fake_oracle
):
    await _store_context(context_store, "Hamburger SV", "FC St. Pauli")
    settings = RunSettings(model=MODEL, community_context=CC, repredict=True)
    original = resolve_match_rows(ROWS)
    await runner.run(original, settings)
    await context_store.save_document("recent-history-hsv.csv", "new result", CC)

    fake_oracle.results = [_result(1, 1), _result(0, 3)]
    report = await runner.run(resolve_match_rows(MOVED_ROWS), settings)

    cancelled = report.items[1]
    assert cancelled.outcome == Outcome.REPREDICTED
    assert cancelled.reprediction_index == 1
    assert cancelled.cancelled
    # Appended under the key the match was first stored with
    stored_identity = EntityIdentity.for_match(original[1])
    assert cancelled.identity.key == stored_identity.key
    assert await ledger.get_latest_prediction(stored_identity, MODEL, CC) == Prediction(
        home_goals=0, away_goals=3
    )

    report = await runner.run(resolve_match_rows(MOVED_ROWS), settings)
    assert report.items[1].outcome == Outcome.REUSED
    assert report.items[1].reprediction_index == 1


@pytest.mark.asyncio
async def test_cancelled_match_up_to_date_is_reused_in_repredict_mode(
    runner, context_store, fake_oracle
):
    await _store_context(context_store, "Hamburger SV", "FC St. Pauli")
    settings = RunSettings(model=MODEL, community_context=CC, repredict=True)
    await runner.run(resolve_match_rows(ROWS), settings)

    report = await runner.run(resolve_match_rows(MOVED_ROWS), settings)

    assert report.items[1].outcome == Outcome.REUSED
    assert len(fake_oracle.match_calls) == 3


@pytest.mark.asyncio
async def test_cancelled_match_overridden_under_stored_key(runner, ledger, fake_oracle, settings):
    original = resolve_match_rows(ROWS)
    await runner.run(original, settings)

    fake_oracle.results = [_result(1, 1), _result(4, 0)]
    override = RunSettings(model=MODEL, community_context=CC, override_database=True)
    report = await runner.run(resolve_match_rows(MOVED_ROWS), override)

    cancelled = report.items[1]
    assert cancelled.outcome == Outcome.OVERRIDDEN
    assert cancelled.reprediction_index == 0
    stored = await ledger.get_latest_record(EntityIdentity.for_match(original[1]), MODEL, CC)
    assert stored.prediction() == Prediction(home_goals=4, away_goals=0)
    moved_identity = EntityIdentity.for_match(resolve_match_rows(MOVED_ROWS)[1])
    assert await ledger.get_reprediction_index(moved_identity, MODEL, CC) == -1


@pytest.mark.asyncio
async def test_override_refused_after_reprediction(runner, ledger, context_store, fake_oracle):
    await _store_context(context_store)
    matches = resolve_match_rows(ROWS[:1])
    repredict = RunSettings(model=MODEL, community_context=CC, repredict=True)
    await runner.run(matches, repredict)
    await context_store.save_document("recent-history-fca.csv", "new result", CC)
    fake_oracle.results = [_result(2, 0)]
    await runner.run(matches, repredict)

    override = RunSettings(model=MODEL, community_context=CC, override_database=True)
    report = await runner.run(matches, override)

    item = report.items[0]
    assert item.outcome == Outcome.OVERRIDE_REFUSED
    assert item.reprediction_index == 1
    assert item.prediction == Prediction(home_goals=2, away_goals=0)
    assert len(fake_oracle.match_calls) == 2
    identity = EntityIdentity.for_match(matches[0])
    assert await ledger.get_latest_prediction(identity, MODEL, CC) == Prediction(
        home_goals=2, away_goals=0
    )
