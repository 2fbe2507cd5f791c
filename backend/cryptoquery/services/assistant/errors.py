"""Error taxonomy for the query pipeline.

Each error carries the HTTP status it maps to and a message that is safe to
show to the caller. Upstream details go to the log, never into `message`.
"""


class QueryServiceError(Exception):
    status_code = 500
    default_message = "Failed to process query"

    def __init__(self, message: str = "", *, detail: str = ""):
        self.message = message or self.default_message
        self.detail = detail
        super().__init__(detail or self.message)


class QueryValidationError(QueryServiceError):
    """Empty or malformed query."""
    status_code = 400
    default_message = "Query is required"


class RateLimitedError(QueryServiceError):
    status_code = 429
    default_message = "Too many requests, please try again later."


class UpstreamFetchError(QueryServiceError):
    """Classifier, fetcher or response generator failed with nothing to fall back on."""
    status_code = 500
    default_message = "Failed to process query"


class AuthError(QueryServiceError):
    status_code = 401
    default_message = "Authentication required"


class SessionNotFoundError(QueryServiceError):
    status_code = 404
    default_message = "Session not found"
