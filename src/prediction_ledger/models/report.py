"""Run outcomes and cost reports."""

from enum import StrEnum

from pydantic import BaseModel, Field

from prediction_ledger.models.prediction import (
    BonusPrediction,
    EntityIdentity,
    EntityKind,
    Prediction,
)


class Outcome(StrEnum):
    """What happened to one entity during a run."""

    PREDICTED = "predicted"
    REPREDICTED = "repredicted"
    OVERRIDDEN = "overridden"
    REUSED = "reused"
    LIMIT_REACHED = "limit_reached"
    OVERRIDE_REFUSED = "override_refused"
    FAILED = "failed"
    ERROR = "error"


class EntityReport(BaseModel):
    """Result for one match or bonus question."""

    identity: EntityIdentity
    outcome: Outcome
    prediction: Prediction | BonusPrediction | None = None
    reprediction_index: int | None = None
    context_document_names: list[str] = Field(default_factory=list)
    cost: float = 0.0
    cancelled: bool = False
    error: str | None = None


class RunReport(BaseModel):
    """Results of a run, plus entity keys left unprocessed after a stop request."""

    items: list[EntityReport] = Field(default_factory=list)
    abandoned: list[str] = Field(default_factory=list)

    @property
    def total_cost(self) -> float:
        return sum(item.cost for item in self.items)

    def counts(self) -> dict[str, int]:
        """Number of entities per outcome."""
        counts: dict[str, int] = {}
        for item in self.items:
            counts[item.outcome.value] = counts.get(item.outcome.value, 0) + 1
        return counts


class CostSummary(BaseModel):
    """Predictions and their summed cost at one reprediction index."""

    model: str
    kind: EntityKind
    reprediction_index: int
    count: int
    cost: float = 0.0
