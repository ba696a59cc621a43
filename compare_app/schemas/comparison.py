"""Comparison API Pydantic schemas."""

from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field


class Message(BaseModel):
    """One turn of the client-side conversation."""

    role: str = Field(..., min_length=1, max_length=32)
    content: str = Field("", max_length=20000)


class CompareRequest(BaseModel):
    """Schema for a comparison query."""

    model_config = ConfigDict(populate_by_name=True)

    query: str = Field(..., min_length=1, max_length=2000, description="Free-text query")
    conversation_history: List[Message] = Field(
        default_factory=list, alias="conversationHistory"
    )


class Limits(BaseModel):
    per_minute: int
    per_day: int


class CompareResponse(BaseModel):
    """Schema for a generated (or cached) comparison."""

    query: str
    product1: str
    product2: str
    key: str
    comparison: Dict[str, Any]
    cached: bool
    limits: Limits
    session_id: str


class ChatResponse(BaseModel):
    """Schema for a free-form answer when no product pair was found."""

    query: str
    response: str
    cached: bool
    limits: Limits
    session_id: str


class ErrorResponse(BaseModel):
    error: str
    limits: Optional[Limits] = None


class ComparisonSummary(BaseModel):
    """Stored comparison as listed on the site."""

    key: str
    title: str
    product1_slug: str
    product2_slug: str
    view_count: int
    created_at: datetime
    last_viewed_at: datetime

    model_config = ConfigDict(from_attributes=True)


class ComparisonDetail(ComparisonSummary):
    generated_content: Optional[Dict[str, Any]] = None


class RecentComparisonsResponse(BaseModel):
    comparisons: List[ComparisonSummary] = Field(default_factory=list)
