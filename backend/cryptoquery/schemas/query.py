from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field


class QueryRequest(BaseModel):
    """Request to the query endpoint.

    `query` is optional here so that an empty or missing query reaches the
    orchestrator (after the rate limit check) and is rejected with a 400
    rather than a schema error.
    """
    model_config = ConfigDict(populate_by_name=True)

    query: Optional[str] = None
    session_id: Optional[str] = Field(default=None, alias="sessionId")


class QueryResponse(BaseModel):
    """Response from the query endpoint."""
    model_config = ConfigDict(populate_by_name=True)

    response: str
    data: Dict[str, Any] = Field(default_factory=dict)
    session_id: str = Field(alias="sessionId")
    suggestions: List[str] = Field(default_factory=list)


class ErrorResponse(BaseModel):
    error: str


class RateLimitStatus(BaseModel):
    limit: int
    remaining: int
    reset_in_seconds: float


class TopicSummary(BaseModel):
    name: str
    confidence: float
    last_discussed: float


class SessionSummary(BaseModel):
    """Condensed view of a session's conversation memory."""
    session_id: str
    message_count: int
    current_topic: Optional[str] = None
    topics: List[TopicSummary] = Field(default_factory=list)
    favorite_tokens: List[str] = Field(default_factory=list)
    risk_tolerance: Optional[str] = None
    last_interaction: float


class CacheStats(BaseModel):
    size: int
    hits: int
    misses: int


class HealthResponse(BaseModel):
    status: str
    cache: CacheStats
    active_sessions: int
    tracked_clients: int
