"""Session memory for multi-turn conversations.

Each session keeps its recent turns, the topics it touched and the
preferences inferred from what the user asked about. Sessions that see no
update for `context_expiry_seconds` are dropped by the periodic sweep.
"""

import logging
import random
import threading
import time
from typing import Any, Callable, Dict, List, Optional

from ... import config
from ...schemas.conversation import (
    ConversationContext,
    ConversationMemory,
    ConversationTopic,
    Message,
    QueryAnalysis,
)

logger = logging.getLogger(__name__)


class ConversationStore:
    """Manages conversation contexts keyed by session id."""

    def __init__(
        self,
        max_topics: int = config.MAX_TOPICS,
        max_messages: int = config.MAX_MESSAGES,
        context_expiry_seconds: float = config.CONTEXT_EXPIRY_MS / 1000,
        clock: Callable[[], float] = time.time,
    ):
        self.max_topics = max_topics
        self.max_messages = max_messages
        self.context_expiry_seconds = context_expiry_seconds
        self._clock = clock
        self._contexts: Dict[str, ConversationContext] = {}
        self._lock = threading.Lock()

    def _new_context(self, session_id: str) -> ConversationContext:
        return ConversationContext(
            session_id=session_id,
            memory=ConversationMemory(last_interaction=self._clock()),
        )

    def get_context(self, session_id: str) -> ConversationContext:
        """Get the session's context, creating and storing it on first access."""
        with self._lock:
            context = self._contexts.get(session_id)
            if context is None:
                context = self._new_context(session_id)
                self._contexts[session_id] = context
                logger.debug(f"[Memory] Created context for session {session_id}")
            return context

    def get(self, session_id: str) -> Optional[ConversationContext]:
        """Get a context by id without creating one."""
        with self._lock:
            return self._contexts.get(session_id)

    def update_context(
        self,
        session_id: str,
        analysis: QueryAnalysis,
        response_text: str,
    ) -> ConversationContext:
        """Record a completed turn and fold the analysis into session memory.

        Args:
            session_id: Session the turn belongs to
            analysis: Classifier output for the user's query
            response_text: Reply that was sent back

        Returns:
            The updated context
        """
        with self._lock:
            now = self._clock()
            context = self._contexts.get(session_id)
            if context is None:
                context = self._new_context(session_id)
                self._contexts[session_id] = context

            context.recent_messages.append(Message(
                query=analysis.query,
                response=response_text,
                intent=analysis.primary_intent,
                timestamp=now,
            ))
            # Keep only the most recent turns
            if len(context.recent_messages) > self.max_messages:
                context.recent_messages = context.recent_messages[-self.max_messages:]

            self._update_topics(context, analysis, now)
            self._update_preferences(context, analysis)

            context.current_topic = analysis.primary_intent
            context.memory.last_interaction = now
            return context

    def _update_topics(self, context: ConversationContext, analysis: QueryAnalysis, now: float) -> None:
        topics = context.memory.topics
        tokens = set(analysis.detected_tokens)

        existing = next((t for t in topics if t.name == analysis.primary_intent), None)
        if existing is not None:
            existing.last_discussed = now
            existing.confidence = max(existing.confidence, analysis.confidence)
            existing.related_tokens |= tokens
        else:
            topics.append(ConversationTopic(
                name=analysis.primary_intent,
                confidence=analysis.confidence,
                last_discussed=now,
                related_tokens=tokens,
            ))

        # Evict lowest confidence first; among equals, the one discussed longest ago
        while len(topics) > self.max_topics:
            weakest = min(topics, key=lambda t: (t.confidence, t.last_discussed))
            topics.remove(weakest)

    def _update_preferences(self, context: ConversationContext, analysis: QueryAnalysis) -> None:
        prefs = context.memory.preferences
        prefs.favorite_tokens.update(analysis.detected_tokens)

        if analysis.risk_tolerance is not None:
            prefs.risk_tolerance = analysis.risk_tolerance
        if analysis.investment_goals:
            prefs.investment_goals.update(analysis.investment_goals)

    def suggest_next_topics(self, session_id: str) -> List[str]:
        """Known topics other than the current one, in random order."""
        with self._lock:
            context = self._contexts.get(session_id)
            if context is None:
                return []
            names = [
                t.name for t in context.memory.topics
                if t.name != context.current_topic
            ]

        # Shuffle a copy; the stored topic order is left alone
        return random.sample(names, len(names))

    def summary(self, session_id: str) -> Optional[Dict[str, Any]]:
        """Condensed view of a session for the API, or None if unknown."""
        with self._lock:
            context = self._contexts.get(session_id)
            if context is None:
                return None

            memory = context.memory
            topics = sorted(
                memory.topics,
                key=lambda t: (t.confidence, t.last_discussed),
                reverse=True,
            )
            return {
                "session_id": session_id,
                "message_count": len(context.recent_messages),
                "current_topic": context.current_topic,
                "topics": [
                    {"name": t.name, "confidence": t.confidence, "last_discussed": t.last_discussed}
                    for t in topics
                ],
                "favorite_tokens": sorted(memory.preferences.favorite_tokens),
                "risk_tolerance": memory.preferences.risk_tolerance.value if memory.preferences.risk_tolerance else None,
                "last_interaction": memory.last_interaction,
            }

    def cleanup_expired_contexts(self) -> int:
        """Remove sessions idle for longer than the expiry. Returns how many were removed."""
        with self._lock:
            now = self._clock()
            expired = [
                sid for sid, context in self._contexts.items()
                if now - context.memory.last_interaction > self.context_expiry_seconds
            ]
            for sid in expired:
                del self._contexts[sid]

        if expired:
            logger.info(f"[Memory] Expired {len(expired)} idle sessions")
        return len(expired)

    def __len__(self) -> int:
        with self._lock:
            return len(self._contexts)
