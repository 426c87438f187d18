"""Environment-variable-based configuration."""

import os
from pathlib import Path

from prediction_ledger.models.settings import RunSettings

DEFAULT_EXCLUDED_DOCUMENTS = "bundesliga-standings.csv"


def get_db_path() -> Path:
    """Return the database file path from LEDGER_DB_PATH."""
    raw = os.environ.get("LEDGER_DB_PATH", "~/.local/share/prediction_ledger/ledger.db")
    return Path(raw).expanduser()


def get_database_url() -> str | None:
    """Return the database URL from LEDGER_DATABASE_URL (postgresql://... selects Postgres)."""
    return os.environ.get("LEDGER_DATABASE_URL") or None


def get_log_level() -> str:
    """Return the logging level from LEDGER_LOG_LEVEL."""
    return os.environ.get("LEDGER_LOG_LEVEL", "WARNING").upper()


def is_manager_mode() -> bool:
    """Return True if LEDGER_MANAGER is set to TRUE."""
    return os.environ.get("LEDGER_MANAGER", "").upper() == "TRUE"


def get_oracle_provider() -> str:
    """Return the prediction oracle provider from LEDGER_ORACLE_PROVIDER."""
    return os.environ.get("LEDGER_ORACLE_PROVIDER", "anthropic").lower()


def get_anthropic_model() -> str:
    """Return the Anthropic model name from LEDGER_ANTHROPIC_MODEL."""
    return os.environ.get("LEDGER_ANTHROPIC_MODEL", "claude-haiku-4-5")


def get_anthropic_timeout() -> float:
    """Return the Anthropic request timeout in seconds from LEDGER_ANTHROPIC_TIMEOUT."""
    return float(os.environ.get("LEDGER_ANTHROPIC_TIMEOUT", "60.0"))


def get_ollama_url() -> str:
    """Return the Ollama API URL from LEDGER_OLLAMA_URL."""
    return os.environ.get("LEDGER_OLLAMA_URL", "http://localhost:11434")


def get_ollama_model() -> str:
    """Return the Ollama model name from LEDGER_OLLAMA_MODEL."""
    return os.environ.get("LEDGER_OLLAMA_MODEL", "qwen3:8b")


def get_ollama_timeout() -> float:
    """Return the Ollama timeout in seconds from LEDGER_OLLAMA_TIMEOUT."""
    return float(os.environ.get("LEDGER_OLLAMA_TIMEOUT", "120.0"))


def get_input_cost_per_mtok() -> float:
    """Return the USD cost per million input tokens from LEDGER_INPUT_COST_PER_MTOK."""
    return float(os.environ.get("LEDGER_INPUT_COST_PER_MTOK", "0.0"))


def get_output_cost_per_mtok() -> float:
    """Return the USD cost per million output tokens from LEDGER_OUTPUT_COST_PER_MTOK."""
    return float(os.environ.get("LEDGER_OUTPUT_COST_PER_MTOK", "0.0"))


def get_community_context() -> str | None:
    """Return the default community context from LEDGER_COMMUNITY_CONTEXT."""
    return os.environ.get("LEDGER_COMMUNITY_CONTEXT") or None


def get_max_repredictions() -> int | None:
    """Return the default reprediction limit from LEDGER_MAX_REPREDICTIONS (unset = unlimited)."""
    raw = os.environ.get("LEDGER_MAX_REPREDICTIONS", "").strip()
    return int(raw) if raw else None


def get_outdated_excluded_documents() -> frozenset[str]:
    """Return document names skipped by the outdated check, from LEDGER_OUTDATED_EXCLUDED."""
    raw = os.environ.get("LEDGER_OUTDATED_EXCLUDED", DEFAULT_EXCLUDED_DOCUMENTS)
    return frozenset(name.strip().lower() for name in raw.split(",") if name.strip())


def load_run_settings(
    model: str,
    community_context: str | None = None,
    *,
    repredict: bool = False,
    max_repredictions: int | None = None,
    override_database: bool = False,
) -> RunSettings:
    """Build RunSettings, filling unset values from the environment.

    LEDGER_MAX_REPREDICTIONS only applies to runs that ask to repredict.
    """
    cc = community_context or get_community_context()
    if not cc:
        raise ValueError("community_context is required (or set LEDGER_COMMUNITY_CONTEXT)")
    return RunSettings(
        model=model,
        community_context=cc,
        repredict=repredict,
        max_repredictions=(
            max_repredictions
            if max_repredictions is not None or not repredict
            else get_max_repredictions()
        ),
        override_database=override_database,
    )
