from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field


class EvaluationResult(BaseModel):
    """Score of a candidate answer against reference text from the document."""

    model_config = ConfigDict(extra="forbid", frozen=True)

    similarity_percentage: int = Field(..., ge=0, le=100)
    justification: str
    missing_elements: list[str] = Field(default_factory=list)
    reference_excerpts: list[str] = Field(default_factory=list)
