"""Prediction oracle module."""

from prediction_ledger.oracle.ollama import OllamaOracle
from prediction_ledger.oracle.provider import OracleResult, PredictionOracle

try:
    from prediction_ledger.oracle.anthropic import AnthropicOracle
except ImportError:
    AnthropicOracle = None  # type: ignore[assignment,misc]

__all__ = ["AnthropicOracle", "OllamaOracle", "OracleResult", "PredictionOracle"]
