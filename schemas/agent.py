from typing import List, Optional
from pydantic import ConfigDict, Field, model_validator

from schemas.base import CamelModel


class Agent(CamelModel):
    """
    A reusable unit of capability invoked by workflow steps.

    Immutable once created. Cost is resolved from cost_per_token first,
    then from the pricing table for `model` (default entry for names it
    does not list), otherwise zero.
    """
    model_config = ConfigDict(frozen=True)

    id: str = Field(..., min_length=1, description="Unique agent id")
    name: str = Field(default="", description="Display name, defaults to the id")
    capabilities: List[str] = Field(default_factory=list, description="Declared capability tags")
    cost_per_token: Optional[float] = Field(default=None, ge=0.0, description="USD per token")
    model: Optional[str] = Field(default=None, description="Model name used for table pricing")
    avg_latency_ms: Optional[float] = Field(default=None, ge=0.0, description="Baseline latency per call")

    @model_validator(mode="before")
    @classmethod
    def _default_name(cls, data):
        if isinstance(data, dict) and not data.get("name"):
            data = dict(data)
            data["name"] = data.get("id", "")
        return data
