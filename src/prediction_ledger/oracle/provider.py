"""Prediction oracle protocol for pluggable language model backends."""

import json
from typing import Protocol, runtime_checkable

from pydantic import BaseModel

from prediction_ledger.config import get_input_cost_per_mtok, get_output_cost_per_mtok
from prediction_ledger.models.document import ContextDocument
from prediction_ledger.models.prediction import (
    BonusPrediction,
    BonusQuestion,
    Match,
    Prediction,
)


class OracleResult(BaseModel):
    """A prediction plus what it cost to produce."""

    value: Prediction | BonusPrediction
    token_usage: str = "{}"
    cost: float = 0.0


def format_token_usage(input_tokens: int, output_tokens: int) -> str:
    """Serialize token counts for storage alongside the prediction."""
    return json.dumps({"input_tokens": input_tokens, "output_tokens": output_tokens})


def compute_cost(input_tokens: int, output_tokens: int) -> float:
    """USD cost from the configured per-million-token rates."""
    return (
        input_tokens * get_input_cost_per_mtok() + output_tokens * get_output_cost_per_mtok()
    ) / 1_000_000


@runtime_checkable
class PredictionOracle(Protocol):
    """Protocol for prediction backends with graceful degradation."""

    model: str

    async def is_available(self) -> bool:
        """Check if the backend is reachable."""
        ...

    async def predict_match(
        self, match: Match, context_documents: list[ContextDocument]
    ) -> OracleResult | None:
        """Predict a final score. Returns None if unavailable or unparseable."""
        ...

    async def predict_bonus(
        self, question: BonusQuestion, context_documents: list[ContextDocument]
    ) -> OracleResult | None:
        """Answer a bonus question. Returns None if unavailable or unparseable."""
        ...

    async def close(self) -> None:
        """Release resources."""
        ...
