"""Pydantic models for API request/response."""

from typing import Any, Optional
from pydantic import BaseModel, Field


class WordRecordResponse(BaseModel):
    """Response model for a cached word record (all versions)."""
    key: str = Field(..., description="Word cache key")
    versions: list[dict[str, Any]] = Field(default_factory=list, description="Cached versions, each with an id")
    activeVersionId: Optional[str] = Field(None, description="Version shown by default")
    metadata: dict[str, Any] = Field(default_factory=dict, description="Entry-level metadata (flavor, reviewer, ...)")


class StoreOptionsResponse(BaseModel):
    activeVersionId: Optional[Any] = Field(None, description="Elected active version")
    metadata: dict[str, Any] = Field(default_factory=dict, description="Flattened entry metadata")


class StorePayloadResponse(BaseModel):
    """Materialized result of one streaming session, sent with the done event."""
    key: str = Field(..., description="Word cache key")
    versions: list[dict[str, Any]] = Field(..., description="Merged versions")
    options: StoreOptionsResponse
