import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from . import config
from .routers import query
from .schemas.query import HealthResponse
from .services.assistant import (
    Orchestrator,
    QueryServiceError,
    TokenVerifier,
    UpstreamFetchError,
    build_orchestrator,
)
from .services.assistant.maintenance import start_maintenance, stop_maintenance

logging.basicConfig(
    level=config.LOG_LEVEL,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)


def create_app(
    orchestrator: Optional[Orchestrator] = None,
    token_verifier: Optional[TokenVerifier] = None,
    run_maintenance: bool = True,
) -> FastAPI:
    """Build the API around an orchestrator (the default wiring if none is given)."""

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logger.info("🚀 Server starting... launching maintenance sweeps.")
        tasks = start_maintenance(app.state.orchestrator) if run_maintenance else []
        yield
        await stop_maintenance(tasks)
        logger.info("🛑 Server shutting down.")

    app = FastAPI(title="Crypto Query API", lifespan=lifespan)
    app.state.orchestrator = orchestrator or build_orchestrator()
    app.state.token_verifier = token_verifier

    # CORS Configuration
    app.add_middleware(
        CORSMiddleware,
        allow_origins=config.CORS_ORIGINS,
        allow_methods=["GET", "POST", "OPTIONS"],
        allow_headers=["Content-Type", "Authorization"],
    )

    @app.exception_handler(QueryServiceError)
    async def query_error_handler(request: Request, exc: QueryServiceError):
        if exc.status_code >= 500:
            logger.error(f"[API] {request.url.path} failed: {exc.detail or exc.message}")
        return JSONResponse(status_code=exc.status_code, content={"error": exc.message})

    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(request: Request, exc: RequestValidationError):
        return JSONResponse(status_code=400, content={"error": "Invalid request body"})

    # Runs outside CORSMiddleware, so the CORS header is set here
    @app.exception_handler(Exception)
    async def unhandled_error_handler(request: Request, exc: Exception):
        logger.error(f"[API] {request.url.path} failed unexpectedly: {exc}", exc_info=exc)
        headers = {}
        origin = request.headers.get("origin")
        if "*" in config.CORS_ORIGINS:
            headers["Access-Control-Allow-Origin"] = "*"
        elif origin and origin in config.CORS_ORIGINS:
            headers["Access-Control-Allow-Origin"] = origin
            headers["Vary"] = "Origin"
        return JSONResponse(
            status_code=500,
            content={"error": UpstreamFetchError.default_message},
            headers=headers,
        )

    # Register Routers
    app.include_router(query.router)

    @app.get("/", response_model=HealthResponse)
    def read_root():
        orch: Orchestrator = app.state.orchestrator
        return {
            "status": "ok",
            "cache": orch.cache.stats(),
            "active_sessions": len(orch.conversations),
            "tracked_clients": len(orch.rate_limiter),
        }

    return app


app = create_app()
