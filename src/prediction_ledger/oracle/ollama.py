"""Ollama prediction oracle with graceful degradation."""

import logging

import httpx

from prediction_ledger.config import get_ollama_model, get_ollama_timeout, get_ollama_url
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


class OllamaOracle:
    """Predicts via Ollama's /api/generate endpoint."""

    def __init__(self, http_client: httpx.AsyncClient | None = None, model: str | None = None):
        """Initialize with an optional HTTP client."""
        self.model = model or get_ollama_model()
        self._http = http_client
        self._available: bool | None = None

    async def is_available(self) -> bool:
        """Check if Ollama is reachable. Only caches success, retries on failure."""
        if self._available is True:
            return True
        try:
            client = self._get_client()
            resp = await client.get(f"{get_ollama_url()}/api/tags", timeout=get_ollama_timeout())
            resp.raise_for_status()
            self._available = True
        except Exception:
            logger.warning("Ollama not available, oracle disabled")
            self._available = None
        return self._available is True

    async def _generate(self, prompt: str, system: str) -> tuple[str, int, int] | None:
        if not await self.is_available():
            return None
        try:
            client = self._get_client()
            resp = await client.post(
                f"{get_ollama_url()}/api/generate",
                json={
                    "model": self.model,
                    "prompt": prompt,
                    "system": system,
                    "stream": False,
                    "format": "json",
                },
                timeout=get_ollama_timeout(),
            )
            resp.raise_for_status()
            data = resp.json()
            return (
                data["response"],
                int(data.get("prompt_eval_count", 0)),
                int(data.get("eval_count", 0)),
            )
        except Exception:
            logger.warning("Ollama prediction failed", exc_info=True)
            self._available = None
            return None

    async def predict_match(
        self, match: Match, context_documents: list[ContextDocument]
    ) -> OracleResult | None:
        """Predict a final score. Returns None if unavailable or unparseable."""
        generated = await self._generate(build_match_prompt(match, context_documents), MATCH_SYSTEM)
        if generated is None:
            return None
        text, input_tokens, output_tokens = generated
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
        generated = await self._generate(
            build_bonus_prompt(question, context_documents), BONUS_SYSTEM
        )
        if generated is None:
            return None
        text, input_tokens, output_tokens = generated
        prediction = parse_bonus_prediction(text, question)
        if prediction is None:
            return None
        return OracleResult(
            value=prediction,
            token_usage=format_token_usage(input_tokens, output_tokens),
            cost=compute_cost(input_tokens, output_tokens),
        )

    def _get_client(self) -> httpx.AsyncClient:
        if self._http is None:
            self._http = httpx.AsyncClient()
        return self._http

    async def close(self) -> None:
        """Close the HTTP client if open."""
        if self._http is not None:
            await self._http.aclose()
            self._http = None
