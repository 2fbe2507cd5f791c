from fastapi import APIRouter, Depends

from ..dependencies import get_client_id, get_orchestrator
from ..schemas.query import (
    ErrorResponse,
    QueryRequest,
    QueryResponse,
    RateLimitStatus,
    SessionSummary,
)
from ..services.assistant import Orchestrator, SessionNotFoundError

router = APIRouter(prefix="/query", tags=["Query"])


@router.post(
    "",
    response_model=QueryResponse,
    responses={
        400: {"model": ErrorResponse},
        429: {"model": ErrorResponse},
        500: {"model": ErrorResponse},
    },
)
async def ask(
    body: QueryRequest,
    client_id: str = Depends(get_client_id),
    orchestrator: Orchestrator = Depends(get_orchestrator),
):
    """
    Ask a natural-language question about crypto markets.

    **Session Support:**
    - Include `sessionId` to continue a conversation
    - The response includes the `sessionId` to use for follow-up questions
    - Sessions expire after 30 minutes without a new question

    **Example queries:**
    - Price: "What's the price of BTC?"
    - Metrics: "What is ETH's market cap and 24h volume?"
    - Comparison: "Compare BTC vs ETH"
    - Trending: "What coins are trending?"
    - Follow-up: "How has it performed today?"

    Each client gets 20 requests per minute; the 21st within the window is
    rejected with 429.
    """
    result = await orchestrator.process_query(
        body.query,
        session_id=body.session_id,
        client_id=client_id,
    )
    return QueryResponse(**result)


@router.get("/rate-limit", response_model=RateLimitStatus)
async def get_rate_limit(
    client_id: str = Depends(get_client_id),
    orchestrator: Orchestrator = Depends(get_orchestrator),
):
    """Remaining requests in the caller's current window. Does not count as a request."""
    return orchestrator.rate_limiter.status(client_id)


@router.get(
    "/sessions/{session_id}",
    response_model=SessionSummary,
    responses={404: {"model": ErrorResponse}},
)
async def get_session(
    session_id: str,
    orchestrator: Orchestrator = Depends(get_orchestrator),
):
    """Summary of what a session remembers: topics, favorite tokens, turn count."""
    summary = orchestrator.conversations.summary(session_id)
    if summary is None:
        raise SessionNotFoundError()
    return summary
