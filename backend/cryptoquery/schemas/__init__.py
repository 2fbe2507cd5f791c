from .conversation import (
    IntentType,
    RiskTolerance,
    QueryAnalysis,
    ConversationTopic,
    UserPreferences,
    ConversationMemory,
    Message,
    ConversationContext,
)
from .query import (
    QueryRequest,
    QueryResponse,
    ErrorResponse,
    RateLimitStatus,
    TopicSummary,
    SessionSummary,
    CacheStats,
    HealthResponse,
)
from .trace import TraceEventType, TraceEvent, ExecutionTrace
