"""Tests for oracle prompt building and response parsing."""

from datetime import UTC, datetime

import pytest

from prediction_ledger.models.document import ContextDocument
from prediction_ledger.models.prediction import (
    BonusQuestion,
    BonusQuestionOption,
    Match,
    Prediction,
)
from prediction_ledger.oracle.prompts import (
    build_bonus_prompt,
    build_match_prompt,
    parse_bonus_prediction,
    parse_match_prediction,
)
from prediction_ledger.oracle.provider import compute_cost, format_token_usage


@pytest.fixture
def question():
    return BonusQuestion(
        id="q1",
        text="Which teams are relegated?",
        options=[
            BonusQuestionOption(id="hsv", text="Hamburger SV"),
            BonusQuestionOption(id="fcs", text="FC St. Pauli"),
            BonusQuestionOption(id="fch", text="1. FC Heidenheim 1846"),
        ],
        max_selections=2,
    )


def test_match_prompt_contains_teams_kickoff_and_documents():
    match = Match(
        home_team="FC Augsburg",
        away_team="SC Freiburg",
        starts_at=datetime(2025, 8, 23, 13, 30, tzinfo=UTC),
        matchday=1,
    )
    prompt = build_match_prompt(
        match, [ContextDocument(name="standings.csv", content="1,FCB,3")]
    )
    assert "FC Augsburg vs SC Freiburg" in prompt
    assert "Kick-off: 2025-08-23 15:30" in prompt
    assert "Matchday: 1" in prompt
    assert "--- standings.csv ---\n1,FCB,3" in prompt


def test_match_prompt_without_documents():
    match = Match(home_team="A", away_team="B", starts_at=datetime(2025, 1, 1, tzinfo=UTC))
    prompt = build_match_prompt(match, [])
    assert "Context documents" not in prompt
    assert "Matchday" not in prompt


def test_bonus_prompt_lists_options(question):
    prompt = build_bonus_prompt(question, [])
    assert "Which teams are relegated?" in prompt
    assert "Maximum selections: 2" in prompt
    assert "  hsv: Hamburger SV" in prompt


@pytest.mark.parametrize(
    ("raw", "expected"),
    [
        ('{"home": 2, "away": 1, "justification": "Home form"}', (2, 1)),
        ('```json\n{"home": 0, "away": 0}\n```', (0, 0)),
        ('Sure! {"home_goals": 3, "away_goals": 1}', (3, 1)),
        ("I predict 2-1 for the home side.", (2, 1)),
        ("Final score 1 : 3", (1, 3)),
    ],
)
def test_parse_match_prediction(raw, expected):
    prediction = parse_match_prediction(raw)
    assert prediction is not None
    assert (prediction.home_goals, prediction.away_goals) == expected


def test_parse_match_prediction_keeps_justification():
    prediction = parse_match_prediction('{"home": 2, "away": 1, "justification": "Home form"}')
    assert prediction == Prediction(home_goals=2, away_goals=1, justification="Home form")


@pytest.mark.parametrize(
    "raw",
    ["no idea", '{"home": 11, "away": 0}', "15-0", '{"home": "two", "away": "one"}'],
)
def test_parse_match_prediction_rejects(raw):
    assert parse_match_prediction(raw) is None


def test_parse_bonus_prediction_filters_and_truncates(question):
    raw = '{"selected_option_ids": ["hsv", "bogus", "hsv", "fcs", "fch"]}'
    prediction = parse_bonus_prediction(raw, question)
    assert prediction.selected_option_ids == ["hsv", "fcs"]


def test_parse_bonus_prediction_accepts_camel_case(question):
    prediction = parse_bonus_prediction('{"selectedOptionIds": ["fch"]}', question)
    assert prediction.selected_option_ids == ["fch"]


@pytest.mark.parametrize(
    "raw",
    ["nothing here", '{"selected_option_ids": ["bogus"]}', '{"selected_option_ids": "hsv"}'],
)
def test_parse_bonus_prediction_rejects(raw, question):
    assert parse_bonus_prediction(raw, question) is None


def test_token_usage_and_cost(monkeypatch):
    monkeypatch.setenv("LEDGER_INPUT_COST_PER_MTOK", "1.0")
    monkeypatch.setenv("LEDGER_OUTPUT_COST_PER_MTOK", "5.0")
    assert format_token_usage(100, 20) == '{"input_tokens": 100, "output_tokens": 20}'
    assert compute_cost(1_000_000, 200_000) == pytest.approx(2.0)


def test_cost_defaults_to_zero(monkeypatch):
    monkeypatch.delenv("LEDGER_INPUT_COST_PER_MTOK", raising=False)
    monkeypatch.delenv("LEDGER_OUTPUT_COST_PER_MTOK", raising=False)
    assert compute_cost(1000, 1000) == 0.0
