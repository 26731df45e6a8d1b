"""Base model configuration for configuration and snapshot models."""

from pydantic import BaseModel, ConfigDict


class Model(BaseModel):
    """Frozen model that ignores unknown keys."""

    model_config = ConfigDict(frozen=True, extra="ignore", populate_by_name=True)
