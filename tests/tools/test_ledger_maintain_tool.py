"""Tests for the ledger_maintain tool actions."""

from datetime import UTC, datetime

import pytest

from prediction_ledger.models.prediction import (
    BonusPrediction,
    EntityIdentity,
    Match,
    Prediction,
)
from prediction_ledger.tools.ledger_maintain import (
    _action_backfill_collected_at,
    _action_cost,
    _action_rewrite_version,
    _action_stats,
)

CC = "test-community"


@pytest.mark.asyncio
async def test_stats(db, context_store, kpi_store, ledger):
    await context_store.save_document("a.csv", "1", CC)
    await context_store.save_document("a.csv", "2", CC)
    await kpi_store.save_document("team-data", "{}", CC)
    await ledger.save_initial_prediction(
        EntityIdentity.for_question("Champion?"),
        BonusPrediction(selected_option_ids=["fcb"]),
        "m",
        CC,
        [],
    )

    result = await _action_stats(db, CC)

    assert result.startswith(f"Ledger Statistics ({CC})")
    assert "Context document versions: 2" in result
    assert "KPI document versions: 1" in result
    assert "Match predictions: 0" in result
    assert "Bonus predictions: 1" in result


@pytest.mark.asyncio
async def test_rewrite_requires_arguments_and_confirm(context_store):
    await context_store.save_document("doc", "old", CC)

    result = await _action_rewrite_version(context_store, CC, "doc", None, "new", True)
    assert result.startswith("Error: name, version and content are required")

    result = await _action_rewrite_version(context_store, CC, "doc", 0, "new", False)
    assert "confirm=True" in result
    assert (await context_store.get_latest_document("doc", CC)).content == "old"


@pytest.mark.asyncio
async def test_rewrite_version(context_store):
    await context_store.save_document("doc", "old", CC)

    assert await _action_rewrite_version(context_store, CC, "doc", 0, "new", True) == (
        "Rewrote doc v0"
    )
    assert (await context_store.get_latest_document("doc", CC)).content == "new"
    assert await _action_rewrite_version(context_store, CC, "doc", 4, "x", True) == (
        "Error: doc v4 not found"
    )


@pytest.mark.asyncio
async def test_backfill_action(context_store):
    await context_store.save_document(
        "recent-history-fca.csv",
        "Competition,Home_Team,Away_Team,Score\nBundesliga,FC Augsburg,SC Freiburg,2:1\n",
        CC,
    )
    result = await _action_backfill_collected_at(context_store, CC, dry_run=True)
    assert result.startswith("Dry run: 1 documents backfilled (1 versions)")


@pytest.mark.asyncio
async def test_cost(db, ledger):
    identity = EntityIdentity.for_match(
        Match(
            home_team="FC Augsburg",
            away_team="SC Freiburg",
            starts_at=datetime(2025, 8, 23, 13, 30, tzinfo=UTC),
        )
    )
    score = Prediction(home_goals=1, away_goals=0)
    await ledger.save_initial_prediction(identity, score, "m", CC, [], cost=0.01)
    await ledger.save_reprediction(identity, score, "m", CC, [], cost=0.02, reprediction_index=1)
    await ledger.save_reprediction(identity, score, "m", CC, [], cost=0.03, reprediction_index=2)
    await ledger.save_initial_prediction(
        EntityIdentity.for_question("Champion?"),
        BonusPrediction(selected_option_ids=["fcb"]),
        "m",
        CC,
        [],
        cost=0.05,
    )

    result = await _action_cost(db, CC, None)

    assert result.startswith(f"Prediction costs ({CC})")
    assert "m bonus: #0 1 ($0.0500) | #1 0 ($0.0000) | #2+ 0 ($0.0000) | total 1 ($0.0500)" in result
    assert "m match: #0 1 ($0.0100) | #1 1 ($0.0200) | #2+ 1 ($0.0300) | total 3 ($0.0600)" in result
    assert result.endswith("Total: 4 predictions, $0.1100")
    assert await _action_cost(db, CC, "other") == f"No predictions stored for {CC}"
