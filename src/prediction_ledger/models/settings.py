"""Run configuration passed explicitly into every workflow call."""

from pydantic import BaseModel, Field, model_validator


class RunSettings(BaseModel):
    """Model, community and reprediction limits for one workflow run."""

    model: str
    community_context: str
    repredict: bool = False
    max_repredictions: int | None = Field(default=None, ge=0)
    override_database: bool = False

    @model_validator(mode="after")
    def _check_modes(self) -> "RunSettings":
        if self.override_database and self.is_repredict_mode:
            raise ValueError(
                "override_database cannot be combined with repredict or max_repredictions"
            )
        return self

    @property
    def is_repredict_mode(self) -> bool:
        """Reprediction is on when requested explicitly or a limit is given."""
        return self.repredict or self.max_repredictions is not None
