"""Orchestrator for the query pipeline.

The orchestrator coordinates the flow:
1. RateLimiter admits or rejects the client
2. ConversationStore loads (or creates) the session context
3. IntentClassifier decides what the query needs
4. TTLCache serves what it can; fetchers fill in the rest
5. ResponseGenerator writes the reply
6. ConversationStore remembers the turn
"""

import asyncio
import logging
import time
import uuid
from typing import Any, Dict, Optional, Set

from ... import config
from ...schemas.conversation import QueryAnalysis
from ...schemas.trace import ExecutionTrace, TraceEventType
from .base import FetcherRegistry, IntentClassifier, ResponseGenerator
from .cache import TTLCache
from .errors import QueryServiceError, QueryValidationError, RateLimitedError, UpstreamFetchError
from .memory import ConversationStore
from .rate_limit import RateLimiter

logger = logging.getLogger(__name__)


class Orchestrator:
    """Runs one query through the stores and collaborators.

    Holds no per-request state; everything that outlives a request lives in
    the three stores passed in. Steps are not transactional: if a later step
    fails, cache writes and rate counts made by earlier steps are kept.

    Concurrent requests that miss on the same field will each fetch it. The
    second write to the cache simply replaces the first with equivalent data.
    """

    def __init__(
        self,
        cache: TTLCache,
        rate_limiter: RateLimiter,
        conversations: ConversationStore,
        classifier: IntentClassifier,
        fetchers: FetcherRegistry,
        responder: ResponseGenerator,
        fetch_timeout: float = config.FETCH_TIMEOUT_SECONDS,
    ):
        self.cache = cache
        self.rate_limiter = rate_limiter
        self.conversations = conversations
        self.classifier = classifier
        self.fetchers = fetchers
        self.responder = responder
        self.fetch_timeout = fetch_timeout

    async def process_query(
        self,
        query: Optional[str],
        session_id: Optional[str] = None,
        client_id: str = "unknown",
    ) -> Dict[str, Any]:
        """Process a user query through the full pipeline.

        Args:
            query: User's natural language query
            session_id: Optional session ID for conversation continuity
            client_id: Identity used for rate limiting (usually the client IP)

        Returns:
            Dict with response text, merged data, session_id and suggestions

        Raises:
            RateLimitedError: client is over its quota
            QueryValidationError: query is empty
            UpstreamFetchError: classifier/generator failed, every fetch failed,
                or any other step raised unexpectedly
        """
        trace = ExecutionTrace(client_id=client_id, query=query or "")
        try:
            result = await self._run(trace, query, session_id, client_id)
        except QueryServiceError as e:
            trace.finalize(response=e.message, success=False)
            self._log_trace(trace)
            raise
        except Exception as e:
            logger.exception(f"[Orchestrator] Unexpected failure for client {client_id}")
            error = UpstreamFetchError(detail=f"{type(e).__name__}: {e}")
            trace.finalize(response=error.message, success=False)
            self._log_trace(trace)
            raise error from e

        trace.finalize(response=result["response"], success=True)
        self._log_trace(trace)
        return result

    async def _run(
        self,
        trace: ExecutionTrace,
        query: Optional[str],
        session_id: Optional[str],
        client_id: str,
    ) -> Dict[str, Any]:
        # Step 1: Rate limit, before any other work
        if not self.rate_limiter.check(client_id):
            raise RateLimitedError()
        trace.add_event(TraceEventType.RATE_CHECKED)

        # Step 2: Validate
        if not query or not query.strip():
            raise QueryValidationError()
        query = query.strip()

        # Step 3: Load or create the session
        if not session_id or not session_id.strip():
            session_id = str(uuid.uuid4())
        trace.session_id = session_id
        context = self.conversations.get_context(session_id)
        trace.add_event(
            TraceEventType.SESSION_LOADED,
            data={"messages": len(context.recent_messages)},
        )

        # Step 4: Classify
        try:
            analysis = await self.classifier.classify(query, context)
        except Exception as e:
            logger.exception(f"[Orchestrator] Classifier failed for: {query[:50]}")
            raise UpstreamFetchError(detail=f"classifier: {e}") from e
        trace.add_event(
            TraceEventType.CLASSIFIED,
            data={
                "intent": analysis.primary_intent,
                "needs_api_call": analysis.needs_api_call,
                "fields": sorted(analysis.required_fields),
            },
        )

        # Step 5: Gather data from cache and fetchers
        data: Dict[str, Any] = {}
        if analysis.needs_api_call and analysis.required_fields:
            data = await self._gather_data(analysis.required_fields, trace)

        # Step 6: Generate response
        try:
            response_text = await self.responder.generate(query, analysis, data)
        except Exception as e:
            logger.exception("[Orchestrator] Response generation failed")
            raise UpstreamFetchError(detail=f"responder: {e}") from e
        trace.add_event(TraceEventType.RESPONSE_GENERATED, data={"length": len(response_text)})

        # Step 7: Remember the turn. Never fails the request.
        self._remember(session_id, analysis, response_text, trace)

        try:
            suggestions = self.conversations.suggest_next_topics(session_id)
        except Exception:
            logger.exception(f"[Orchestrator] Could not build suggestions for session {session_id}")
            suggestions = []

        return {
            "response": response_text,
            "data": data,
            "session_id": session_id,
            "suggestions": suggestions,
        }

    async def _gather_data(self, required_fields: Set[str], trace: ExecutionTrace) -> Dict[str, Any]:
        """Serve required fields from the cache, fetching only what is missing.

        Fetchers run concurrently, each bounded by `fetch_timeout`. A fetcher
        that fails or times out leaves its fields missing; the request goes on
        with what it has unless nothing at all could be gathered.
        """
        fields = set(required_fields)
        data = self._unpack_cached(fields, self.cache.get_partial(fields))
        trace.cache_hits = len(data)

        missing = fields - data.keys()
        trace.add_event(
            TraceEventType.CACHE_LOOKUP,
            data={"hits": sorted(data.keys()), "missing": sorted(missing)},
        )
        if not missing:
            return data

        grouped, unserved = self.fetchers.group_fields(missing)
        if unserved:
            logger.warning(f"[Orchestrator] No fetcher for fields: {sorted(unserved)}")

        names = list(grouped.keys())
        results = await asyncio.gather(*(self._fetch(name, grouped[name], trace) for name in names))

        any_failed = False
        for name, result in zip(names, results):
            if result is None:
                any_failed = True
                continue

            requested = grouped[name]
            fetched = {field: value for field, value in result.items() if field in requested}
            self.cache.set_partial(requested, fetched)
            data.update(fetched)

        if any_failed and not data:
            raise UpstreamFetchError(detail=f"no data for fields {sorted(fields)}")

        return data

    def _unpack_cached(self, fields: Set[str], cached: Dict[str, Dict[str, Any]]) -> Dict[str, Any]:
        """Flatten cache hits into a field -> value mapping."""
        data: Dict[str, Any] = {}

        batch = cached.get(self.cache.composite_key(fields)) if len(fields) > 1 else None
        if batch:
            data.update({f: v for f, v in batch.items() if f in fields})

        for field in fields:
            entry = cached.get(field)
            if entry and field in entry:
                data[field] = entry[field]

        return data

    async def _fetch(self, name: str, fields: Set[str], trace: ExecutionTrace) -> Optional[Dict[str, Any]]:
        """Call one fetcher. Returns None on error or timeout."""
        fetcher = self.fetchers.get_fetcher(name)
        start_time = time.time()

        try:
            result = await asyncio.wait_for(fetcher.fetch(set(fields)), timeout=self.fetch_timeout)
        except asyncio.TimeoutError:
            logger.warning(f"[Orchestrator] {name}: timeout ({self.fetch_timeout}s) for {sorted(fields)}")
            trace.add_event(TraceEventType.FETCH_FAILED, fetcher=name, data={"reason": "timeout"})
            return None
        except Exception as e:
            logger.exception(f"[Orchestrator] {name}: fetch failed for {sorted(fields)}")
            trace.add_event(
                TraceEventType.FETCH_FAILED,
                fetcher=name,
                data={"reason": type(e).__name__},
                duration_ms=(time.time() - start_time) * 1000,
            )
            return None

        result = result or {}
        if not isinstance(result, dict):
            logger.warning(f"[Orchestrator] {name}: expected a mapping, got {type(result).__name__}")
            trace.add_event(TraceEventType.FETCH_FAILED, fetcher=name, data={"reason": "bad_result"})
            return None

        trace.add_event(
            TraceEventType.FETCH_COMPLETED,
            fetcher=name,
            data={"fields": sorted(result.keys())},
            duration_ms=(time.time() - start_time) * 1000,
        )
        return result

    def _remember(
        self,
        session_id: str,
        analysis: QueryAnalysis,
        response_text: str,
        trace: ExecutionTrace,
    ) -> None:
        try:
            self.conversations.update_context(session_id, analysis, response_text)
            trace.add_event(TraceEventType.CONTEXT_UPDATED)
        except Exception:
            logger.exception(f"[Orchestrator] Failed to update context for session {session_id}")

    def _log_trace(self, trace: ExecutionTrace) -> None:
        logger.debug(
            f"[Orchestrator] trace={trace.trace_id} client={trace.client_id} "
            f"session={trace.session_id} success={trace.success} "
            f"cache_hits={trace.cache_hits} fetches={trace.fetches} "
            f"failed={trace.fetches_failed} duration_ms={trace.total_duration_ms:.1f}"
        )
