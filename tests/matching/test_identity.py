"""Tests for schedule row resolution and match identity."""

import logging
from datetime import UTC, datetime

import pytest

from prediction_ledger.matching.identity import (
    SENTINEL_TIME,
    RawMatchRow,
    is_cancelled_text,
    parse_match_time,
    resolve_match_rows,
)
from prediction_ledger.models.prediction import EntityIdentity, Match, MatchKey


def _row(time_text: str, home: str, away: str = "SC Freiburg") -> RawMatchRow:
    return RawMatchRow(time_text=time_text, home_team=home, away_team=away)


def test_parse_match_time_is_german_local_time():
    parsed = parse_match_time("23.08.25 15:30")
    # CEST is UTC+2 in August
    assert parsed.astimezone(UTC) == datetime(2025, 8, 23, 13, 30, tzinfo=UTC)


def test_parse_match_time_winter_offset():
    parsed = parse_match_time(" 13.12.25 15:30 ")
    assert parsed.astimezone(UTC) == datetime(2025, 12, 13, 14, 30, tzinfo=UTC)


@pytest.mark.parametrize("text", ["", "   ", "Abgesagt", "tomorrow", "2025-08-23 15:30"])
def test_parse_match_time_rejects(text):
    assert parse_match_time(text) is None


@pytest.mark.parametrize("text", ["Abgesagt", "abgesagt", " ABGESAGT "])
def test_is_cancelled_text(text):
    assert is_cancelled_text(text)


def test_is_cancelled_text_other():
    assert not is_cancelled_text("23.08.25 15:30")
    assert not is_cancelled_text("")


def test_blank_rows_inherit_previous_time():
    matches = resolve_match_rows(
        [
            _row("23.08.25 15:30", "FC Augsburg"),
            _row("", "Hamburger SV"),
            _row("23.08.25 18:30", "RB Leipzig"),
            _row("", "VfB Stuttgart"),
        ],
        matchday=1,
    )
    times = [m.starts_at.astimezone(UTC).hour for m in matches]
    assert times == [13, 13, 16, 16]
    assert all(m.matchday == 1 for m in matches)
    assert not any(m.is_cancelled for m in matches)


def test_cancelled_row_inherits_and_is_flagged():
    matches = resolve_match_rows(
        [_row("23.08.25 15:30", "FC Augsburg"), _row("Abgesagt", "Hamburger SV")]
    )
    assert matches[1].is_cancelled
    assert matches[1].starts_at == matches[0].starts_at


def test_cancelled_first_row_uses_sentinel():
    rows = [_row("Abgesagt", "FC Augsburg"), _row("", "Hamburger SV")]
    matches = resolve_match_rows(rows)
    assert matches[0].starts_at == SENTINEL_TIME
    assert matches[0].is_cancelled
    assert matches[1].starts_at == SENTINEL_TIME
    assert not matches[1].is_cancelled
    # Same rows, same keys on every run
    again = resolve_match_rows(rows)
    assert [m.key for m in again] == [m.key for m in matches]
    assert [m.is_cancelled for m in again] == [m.is_cancelled for m in matches]


def test_time_blank_cancelled_time_sequence():
    rows = [
        _row("23.08.25 15:30", "FC Augsburg"),
        _row("", "Hamburger SV"),
        _row("Abgesagt", "RB Leipzig"),
        _row("23.08.25 18:30", "VfB Stuttgart"),
    ]
    t1 = parse_match_time("23.08.25 15:30")
    t2 = parse_match_time("23.08.25 18:30")

    matches = resolve_match_rows(rows)

    assert [m.starts_at for m in matches] == [t1, t1, t1, t2]
    assert [m.is_cancelled for m in matches] == [False, False, True, False]
    assert [m.key for m in resolve_match_rows(rows)] == [m.key for m in matches]


def test_cancelled_key_depends_on_position():
    """The same cancelled match gets a different key when the row above changes."""
    first = resolve_match_rows(
        [_row("23.08.25 15:30", "RB Leipzig"), _row("Abgesagt", "FC Augsburg")]
    )
    second = resolve_match_rows(
        [_row("24.08.25 17:30", "RB Leipzig"), _row("Abgesagt", "FC Augsburg")]
    )
    assert first[1].key != second[1].key
    assert first[1].home_team == second[1].home_team


def test_unparseable_time_inherits_with_warning(caplog):
    with caplog.at_level(logging.WARNING):
        matches = resolve_match_rows(
            [_row("23.08.25 15:30", "FC Augsburg"), _row("TBD", "Hamburger SV")]
        )
    assert matches[1].starts_at == matches[0].starts_at
    assert not matches[1].is_cancelled
    assert "Unrecognised time" in caplog.text


def test_row_matchday_wins_over_argument():
    rows = [RawMatchRow(time_text="23.08.25 15:30", home_team="A", away_team="B", matchday=3)]
    assert resolve_match_rows(rows, matchday=1)[0].matchday == 3


def test_entity_key_is_stable_across_timezones():
    """The same instant in different zones yields the same key."""
    berlin = parse_match_time("23.08.25 15:30")
    utc = datetime(2025, 8, 23, 13, 30, tzinfo=UTC)
    a = MatchKey(home_team="A", away_team="B", starts_at=berlin)
    b = MatchKey(home_team="A", away_team="B", starts_at=utc)
    assert a.entity_key == b.entity_key == "A|B|2025-08-23T13:30:00.000000+00:00"


def test_cancelled_flag_is_not_part_of_identity():
    starts_at = datetime(2025, 8, 23, 13, 30, tzinfo=UTC)
    played = Match(home_team="A", away_team="B", starts_at=starts_at)
    cancelled = Match(home_team="A", away_team="B", starts_at=starts_at, is_cancelled=True)
    assert EntityIdentity.for_match(played).key == EntityIdentity.for_match(cancelled).key
