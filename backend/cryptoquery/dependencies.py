from typing import Any, Dict, Optional

from fastapi import Request

from .services.assistant import AuthError, Orchestrator, TokenVerifier


def get_orchestrator(request: Request) -> Orchestrator:
    """The orchestrator built at startup for this app."""
    return request.app.state.orchestrator


def get_client_id(request: Request) -> str:
    """Client identity for rate limiting: first X-Forwarded-For hop, else the peer host."""
    forwarded_for = request.headers.get("x-forwarded-for")
    if forwarded_for:
        first = forwarded_for.split(",")[0].strip()
        if first:
            return first
    if request.client and request.client.host:
        return request.client.host
    return "unknown"


def require_bearer_token(request: Request) -> Dict[str, Any]:
    """Guard for endpoints that need an authenticated caller.

    Uses the TokenVerifier set on `app.state.token_verifier`. Raises
    AuthError (401) if the header is missing or the token doesn't verify.
    """
    verifier: Optional[TokenVerifier] = getattr(request.app.state, "token_verifier", None)

    header = request.headers.get("authorization", "")
    token = header[len("Bearer "):].strip() if header.startswith("Bearer ") else ""
    if not token:
        raise AuthError()

    claims = verifier.verify(token) if verifier is not None else None
    if claims is None:
        raise AuthError("Invalid or expired token")
    return claims
