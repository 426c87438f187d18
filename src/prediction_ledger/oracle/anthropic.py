"""Anthropic prediction oracle with graceful degradation."""

from __future__ import annotations

import logging
import os
from typing import Any

from prediction_ledger.config import get_anthropic_model, get_anthropic_timeout
from prediction_ledger.models.document import ContextDocument
from prediction_ledger.models.prediction import BonusQuestion, Match
from prediction_ledger.oracle.prompts import (
    BONUS_SYSTEM,
    MATCH_SYSTEM,
    build_bonus_prompt,
    build_match_prompt,
    parse_bonus_prediction,
    parse_match_prediction,
)
from prediction_ledger.oracle.provider import OracleResult, compute_cost, format_token_usage

logger = logging.getLogger(__name__)


class AnthropicOracle:
    """Predicts via the Anthropic Messages API."""

    def __init__(self, model: str | None = None) -> None:
        """Initialize with lazy client creation."""
        self.model = model or get_anthropic_model()
        self._client: Any = None
        self._available: bool | None = None

    async def is_available(self) -> bool:
        """Check availability. Only caches success, retries on failure."""
        if self._available is True:
            return True
        try:
            client = self._get_client()
            if client is None:
                return False
            if not os.environ.get("ANTHROPIC_API_KEY"):
                logger.warning("ANTHROPIC_API_KEY not set, Anthropic oracle disabled")
                return False
            # Key is set; the first successful call confirms and caches it
            return True
        except Exception:
            return False

    async def _complete(self, prompt: str, system: str) -> tuple[str, int, int] | None:
        try:
            client = self._get_client()
            if client is None:
                return None
            response = await client.messages.create(
                model=self.model,
                max_tokens=1024,
                system=system,
                messages=[{"role": "user", "content": prompt}],
                timeout=get_anthropic_timeout(),
            )
            text: str = response.content[0].text
            self._available = True
            return text, response.usage.input_tokens, response.usage.output_tokens
        except Exception:
            logger.warning("Anthropic prediction failed", exc_info=True)
            self._available = None
            return None

    async def predict_match(
        self, match: Match, context_documents: list[ContextDocument]
    ) -> OracleResult | None:
        """Predict a final score. Returns None if unavailable or unparseable."""
        completion = await self._complete(build_match_prompt(match, context_documents), MATCH_SYSTEM)
        if completion is None:
            return None
        text, input_tokens, output_tokens = completion
        prediction = parse_match_prediction(text)
        if prediction is None:
            return None
        return OracleResult(
            value=prediction,
            token_usage=format_token_usage(input_tokens, output_tokens),
            cost=compute_cost(input_tokens, output_tokens),
        )

    async def predict_bonus(
        self, question: BonusQuestion, context_documents: list[ContextDocument]
    ) -> OracleResult | None:
        """Answer a bonus question. Returns None if unavailable or unparseable."""
        completion = await self._complete(
            build_bonus_prompt(question, context_documents), BONUS_SYSTEM
        )
        if completion is None:
            return None
        text, input_tokens, output_tokens = completion
        prediction = parse_bonus_prediction(text, question)
        if prediction is None:
            return None
        return OracleResult(
            value=prediction,
            token_usage=format_token_usage(input_tokens, output_tokens),
            cost=compute_cost(input_tokens, output_tokens),
        )

    def _get_client(self) -> Any:
        """Lazily create the AsyncAnthropic client. Returns None if SDK missing."""
        if self._client is None:
            try:
                from anthropic import AsyncAnthropic

                self._client = AsyncAnthropic()
            except ImportError:
                logger.warning("anthropic package not installed, Anthropic oracle disabled")
                return None
        return self._client

    async def close(self) -> None:
        """Close the Anthropic client if open."""
        if self._client is not None:
            await self._client.close()
            self._client = None
