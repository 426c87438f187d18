"""Match, bonus question and prediction ledger models."""

from datetime import UTC, datetime
from enum import StrEnum

from pydantic import BaseModel, ConfigDict, Field


def to_utc_iso(value: datetime) -> str:
    """Serialize a timestamp as UTC ISO-8601 with fixed microsecond precision."""
    if value.tzinfo is None:
        value = value.replace(tzinfo=UTC)
    return value.astimezone(UTC).isoformat(timespec="microseconds")


class MatchKey(BaseModel):
    """Natural key of a match. Not unique across cancellation events."""

    model_config = ConfigDict(frozen=True)

    home_team: str
    away_team: str
    starts_at: datetime

    @property
    def entity_key(self) -> str:
        """Deterministic storage key for this match."""
        return f"{self.home_team}|{self.away_team}|{to_utc_iso(self.starts_at)}"


class Match(BaseModel):
    """A scheduled match. is_cancelled travels with the key but is not part of it."""

    home_team: str
    away_team: str
    starts_at: datetime
    matchday: int | None = None
    is_cancelled: bool = False

    @property
    def key(self) -> MatchKey:
        return MatchKey(
            home_team=self.home_team, away_team=self.away_team, starts_at=self.starts_at
        )


class BonusQuestionOption(BaseModel):
    """A selectable answer of a bonus question."""

    id: str
    text: str


class BonusQuestion(BaseModel):
    """A season bonus question answered by selecting options."""

    id: str
    text: str
    options: list[BonusQuestionOption] = Field(default_factory=list)
    max_selections: int = Field(default=1, ge=1)
    deadline: datetime | None = None


class Prediction(BaseModel):
    """A predicted final score."""

    home_goals: int = Field(ge=0)
    away_goals: int = Field(ge=0)
    justification: str | None = None

    def __str__(self) -> str:
        return f"{self.home_goals}:{self.away_goals}"


class BonusPrediction(BaseModel):
    """Selected option IDs for a bonus question."""

    selected_option_ids: list[str] = Field(default_factory=list)


class EntityKind(StrEnum):
    """What a ledger entry predicts."""

    MATCH = "match"
    BONUS = "bonus"


class EntityIdentity(BaseModel):
    """Addressing key of a prediction: a match key or a bonus question text."""

    model_config = ConfigDict(frozen=True)

    kind: EntityKind
    key: str
    home_team: str | None = None
    away_team: str | None = None
    starts_at: datetime | None = None
    matchday: int | None = None

    @classmethod
    def for_match(cls, match: Match | MatchKey) -> "EntityIdentity":
        key = match.key if isinstance(match, Match) else match
        return cls(
            kind=EntityKind.MATCH,
            key=key.entity_key,
            home_team=key.home_team,
            away_team=key.away_team,
            starts_at=key.starts_at,
            matchday=match.matchday if isinstance(match, Match) else None,
        )

    @classmethod
    def for_question(cls, question_text: str) -> "EntityIdentity":
        return cls(kind=EntityKind.BONUS, key=question_text)

    @classmethod
    def for_record(cls, record: "PredictionRecord") -> "EntityIdentity":
        """Identity a stored snapshot was written under."""
        return cls(
            kind=record.kind,
            key=record.entity_key,
            home_team=record.home_team,
            away_team=record.away_team,
            starts_at=record.starts_at,
            matchday=record.matchday,
        )


PredictionValue = Prediction | BonusPrediction


class PredictionRecord(BaseModel):
    """One stored prediction snapshot at a reprediction index."""

    kind: EntityKind
    entity_key: str
    model: str
    community_context: str
    reprediction_index: int = Field(ge=0)
    value: dict[str, object]
    created_at: datetime
    context_document_names: list[str] = Field(default_factory=list)
    token_usage: str = "{}"
    cost: float = 0.0
    home_team: str | None = None
    away_team: str | None = None
    starts_at: datetime | None = None
    matchday: int | None = None

    def prediction(self) -> PredictionValue:
        """Decode the stored value into its typed form."""
        if self.kind == EntityKind.MATCH:
            return Prediction.model_validate(self.value)
        return BonusPrediction.model_validate(self.value)


class PredictionMetadata(BaseModel):
    """What the staleness check needs to know about a stored prediction."""

    created_at: datetime
    context_document_names: list[str] = Field(default_factory=list)
    reprediction_index: int = 0
    prediction: Prediction | BonusPrediction | None = None
