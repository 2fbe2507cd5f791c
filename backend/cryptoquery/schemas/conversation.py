"""Conversation memory schemas for multi-turn query sessions."""

from enum import Enum
from typing import List, Optional, Set

from pydantic import BaseModel, Field


class IntentType(str, Enum):
    """Intents the classifier can assign to a query."""
    MARKET_DATA = "MARKET_DATA"
    COMPARISON = "COMPARISON"
    TRENDING = "TRENDING"
    TECHNICAL = "TECHNICAL"
    DEFI = "DEFI"
    REGULATORY = "REGULATORY"
    NEWS_EVENTS = "NEWS_EVENTS"
    SECURITY = "SECURITY"
    CONCEPTUAL = "CONCEPTUAL"
    NEEDS_CONTEXT = "NEEDS_CONTEXT"


class RiskTolerance(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class QueryAnalysis(BaseModel):
    """Classifier output for a single query.

    `required_fields` holds field keys of the form "<domain>" or
    "<domain>:<arg>" (e.g. "price:bitcoin", "trending").
    """
    query: str
    primary_intent: str = IntentType.CONCEPTUAL.value
    confidence: float = 0.0
    needs_api_call: bool = False
    required_fields: Set[str] = Field(default_factory=set)
    detected_tokens: List[str] = Field(default_factory=list)
    risk_tolerance: Optional[RiskTolerance] = None
    investment_goals: List[str] = Field(default_factory=list)


class ConversationTopic(BaseModel):
    """A topic remembered for a session."""
    name: str
    confidence: float = 0.0
    last_discussed: float
    related_tokens: Set[str] = Field(default_factory=set)


class UserPreferences(BaseModel):
    favorite_tokens: Set[str] = Field(default_factory=set)
    risk_tolerance: Optional[RiskTolerance] = None
    investment_goals: Set[str] = Field(default_factory=set)


class ConversationMemory(BaseModel):
    topics: List[ConversationTopic] = Field(default_factory=list)
    preferences: UserPreferences = Field(default_factory=UserPreferences)
    last_interaction: float


class Message(BaseModel):
    """One conversational turn: the user's query and the reply given."""
    query: str
    response: str
    intent: Optional[str] = None
    timestamp: float


class ConversationContext(BaseModel):
    """Everything remembered about one session."""
    session_id: str
    memory: ConversationMemory
    recent_messages: List[Message] = Field(default_factory=list)  # Newest last
    current_topic: Optional[str] = None
