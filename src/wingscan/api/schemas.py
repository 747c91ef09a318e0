"""Pydantic request/response schemas for the WingScan API."""

from __future__ import annotations

from typing import TYPE_CHECKING, Literal

from pydantic import BaseModel, Field

if TYPE_CHECKING:
    from wingscan.history import HistoryEntry
    from wingscan.orchestrator import ClassificationOutcome


class RankedLabel(BaseModel):
    """A display-ready prediction."""

    label: str = Field(description="First synonym of the classifier label, title-cased")
    percentage: str = Field(description="Probability as a percentage with one decimal, e.g. '87.5%'")
    probability: float = Field(ge=0.0, le=1.0)


class ClassifyResponse(BaseModel):
    """Outcome of one submission."""

    status: Literal["ok", "unrecognized", "error"]
    message: str = ""
    error: str | None = Field(default=None, description="Error kind when status is 'error'")
    predictions: list[RankedLabel] = Field(default_factory=list)
    preview: str | None = Field(default=None, description="Data URI preview of the submitted image")

    @classmethod
    def from_outcome(cls, outcome: ClassificationOutcome) -> ClassifyResponse:
        return cls(
            status=outcome.status,
            message=outcome.message,
            error=outcome.error.value if outcome.error is not None else None,
            predictions=[
                RankedLabel(label=p.label, percentage=p.percentage, probability=p.probability)
                for p in outcome.predictions
            ],
            preview=outcome.preview,
        )


class HistoryItem(BaseModel):
    """One history entry."""

    label: str
    timestamp: str

    @classmethod
    def from_entry(cls, entry: HistoryEntry) -> HistoryItem:
        return cls(label=entry.label, timestamp=entry.timestamp)


class HistoryResponse(BaseModel):
    """Most-recent-first history and the completed scan counter."""

    entries: list[HistoryItem]
    completed_scans: int = Field(ge=0)


class HealthResponse(BaseModel):
    """Health check response."""

    status: str = "ok"
    gpu: bool
    busy: bool
    state: str
    model_loaded: bool
    completed_scans: int


class ModelInfo(BaseModel):
    """Information about an available classifier variant."""

    name: str
    version: int
    alpha: float
    input_size: int
    status: str = Field(description="Model status: 'active' or 'available'")
    license: str


class ModelsResponse(BaseModel):
    """Response for the models listing endpoint."""

    models: list[ModelInfo]

