"""Execution trace schemas for debugging and observability."""

from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional
from pydantic import BaseModel, ConfigDict, Field
import uuid


class TraceEventType(str, Enum):
    """Types of events recorded while a query is processed."""
    RATE_CHECKED = "rate_checked"
    SESSION_LOADED = "session_loaded"
    CLASSIFIED = "classified"
    CACHE_LOOKUP = "cache_lookup"
    FETCH_COMPLETED = "fetch_completed"
    FETCH_FAILED = "fetch_failed"
    RESPONSE_GENERATED = "response_generated"
    CONTEXT_UPDATED = "context_updated"


class TraceEvent(BaseModel):
    """A single event in the execution trace."""
    model_config = ConfigDict(use_enum_values=True)

    timestamp: datetime = Field(default_factory=datetime.now)
    event_type: TraceEventType
    fetcher: Optional[str] = None
    data: Dict[str, Any] = Field(default_factory=dict)
    duration_ms: Optional[float] = None


class ExecutionTrace(BaseModel):
    """Complete trace of one query for debugging.

    Captures events, timing and cache/fetch counts for observability.
    """
    trace_id: str = Field(default_factory=lambda: str(uuid.uuid4())[:12])
    client_id: str
    session_id: Optional[str] = None
    query: str
    events: List[TraceEvent] = Field(default_factory=list)
    total_duration_ms: float = 0
    cache_hits: int = 0
    fetches: int = 0
    fetches_failed: int = 0
    final_response: Optional[str] = None
    success: bool = False
    started_at: datetime = Field(default_factory=datetime.now)

    def add_event(
        self,
        event_type: TraceEventType,
        fetcher: Optional[str] = None,
        data: Optional[Dict[str, Any]] = None,
        duration_ms: Optional[float] = None,
    ) -> None:
        """Add an event to the trace."""
        self.events.append(TraceEvent(
            event_type=event_type,
            fetcher=fetcher,
            data=data or {},
            duration_ms=duration_ms,
        ))

        if event_type == TraceEventType.FETCH_COMPLETED:
            self.fetches += 1
        elif event_type == TraceEventType.FETCH_FAILED:
            self.fetches += 1
            self.fetches_failed += 1

    def finalize(self, response: Optional[str] = None, success: bool = False) -> None:
        """Finalize the trace with final results."""
        self.final_response = response
        self.success = success
        self.total_duration_ms = (datetime.now() - self.started_at).total_seconds() * 1000
