"""Ingestion response schemas."""

from __future__ import annotations

from pydantic import BaseModel, Field


class IngestResponse(BaseModel):
    fetched: int
    created: int
    updated: int
    versions_created: int
    errors: list[str] = Field(default_factory=list)

    model_config = {"from_attributes": True}
