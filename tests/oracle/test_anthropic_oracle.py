"""Tests for the Anthropic prediction oracle."""

import json
from datetime import UTC, datetime
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from prediction_ledger.models.prediction import (
    BonusPrediction,
    BonusQuestion,
    BonusQuestionOption,
    Match,
    Prediction,
)
from prediction_ledger.oracle.anthropic import AnthropicOracle

MATCH = Match(
    home_team="FC Augsburg",
    away_team="SC Freiburg",
    starts_at=datetime(2025, 8, 23, 13, 30, tzinfo=UTC),
)


def _response(text: str, input_tokens: int = 120, output_tokens: int = 30):
    content_block = MagicMock()
    content_block.text = text
    response = MagicMock()
    response.content = [content_block]
    response.usage.input_tokens = input_tokens
    response.usage.output_tokens = output_tokens
    return response


@pytest.fixture
def mock_client():
    """Patch the lazy client and return the mock."""
    with patch("prediction_ledger.oracle.anthropic.AnthropicOracle._get_client") as mock_get:
        client = AsyncMock()
        client.messages.create = AsyncMock(
            return_value=_response('{"home": 2, "away": 0, "justification": "Form"}')
        )
        client.close = AsyncMock()
        mock_get.return_value = client
        yield client


def test_model_from_environment(monkeypatch):
    monkeypatch.setenv("LEDGER_ANTHROPIC_MODEL", "claude-test")
    assert AnthropicOracle().model == "claude-test"
    assert AnthropicOracle(model="explicit").model == "explicit"


@pytest.mark.asyncio
async def test_predict_match(mock_client, monkeypatch):
    monkeypatch.setenv("LEDGER_INPUT_COST_PER_MTOK", "1.0")
    monkeypatch.setenv("LEDGER_OUTPUT_COST_PER_MTOK", "5.0")
    oracle = AnthropicOracle(model="claude-test")

    result = await oracle.predict_match(MATCH, [])

    assert result.value == Prediction(home_goals=2, away_goals=0, justification="Form")
    assert json.loads(result.token_usage) == {"input_tokens": 120, "output_tokens": 30}
    assert result.cost == pytest.approx((120 * 1.0 + 30 * 5.0) / 1_000_000)
    kwargs = mock_client.messages.create.call_args.kwargs
    assert kwargs["model"] == "claude-test"
    assert "FC Augsburg vs SC Freiburg" in kwargs["messages"][0]["content"]
    assert "JSON" in kwargs["system"]


@pytest.mark.asyncio
async def test_predict_bonus(mock_client):
    mock_client.messages.create = AsyncMock(
        return_value=_response('{"selected_option_ids": ["b"]}')
    )
    question = BonusQuestion(
        id="q",
        text="Champion?",
        options=[BonusQuestionOption(id="a", text="A"), BonusQuestionOption(id="b", text="B")],
    )
    result = await AnthropicOracle().predict_bonus(question, [])
    assert result.value == BonusPrediction(selected_option_ids=["b"])


@pytest.mark.asyncio
async def test_unparseable_response_returns_none(mock_client):
    mock_client.messages.create = AsyncMock(return_value=_response("I cannot say."))
    assert await AnthropicOracle().predict_match(MATCH, []) is None


@pytest.mark.asyncio
async def test_api_failure_returns_none():
    with patch("prediction_ledger.oracle.anthropic.AnthropicOracle._get_client") as mock_get:
        client = AsyncMock()
        client.messages.create = AsyncMock(side_effect=Exception("API error"))
        mock_get.return_value = client

        oracle = AnthropicOracle()
        assert await oracle.predict_match(MATCH, []) is None
        assert oracle._available is None


@pytest.mark.asyncio
async def test_sdk_missing_returns_none():
    with patch(
        "prediction_ledger.oracle.anthropic.AnthropicOracle._get_client", return_value=None
    ):
        oracle = AnthropicOracle()
        assert await oracle.predict_match(MATCH, []) is None
        assert not await oracle.is_available()


@pytest.mark.asyncio
async def test_is_available_requires_api_key(mock_client, monkeypatch):
    monkeypatch.delenv("ANTHROPIC_API_KEY", raising=False)
    assert not await AnthropicOracle().is_available()
    monkeypatch.setenv("ANTHROPIC_API_KEY", "sk-test")
    assert await AnthropicOracle().is_available()


@pytest.mark.asyncio
async def test_close(mock_client):
    oracle = AnthropicOracle()
    oracle._client = mock_client
    await oracle.close()
    mock_client.close.assert_awaited_once()
    assert oracle._client is None
