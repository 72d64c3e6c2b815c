"""FastAPI entrypoint."""

import logging
from collections.abc import AsyncIterator, Awaitable, Callable
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, Response
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from slowapi import Limiter
from slowapi.errors import RateLimitExceeded
from slowapi.util import get_remote_address

from agentx.config import get_settings, validate_settings_for_env
from agentx.errors import describe_exception
from agentx.ids import short_id
from agentx.logging import bind_context, clear_context, configure_logging
from agentx.routes.api import router as api_router
from agentx.routes.health import router as health_router

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(_: FastAPI) -> AsyncIterator[None]:
    settings = get_settings()
    validate_settings_for_env(settings)
    configure_logging(
        settings.log_level,
        json_output=None if settings.log_json is None else bool(settings.log_json),
        app_env=settings.app_env,
    )
    logger.info(
        "AgentX backend ready on http://%s:%d (default model %s)",
        settings.bind_host,
        settings.bind_port,
        settings.default_model,
    )
    yield
    logger.info("AgentX backend shutting down")


limiter = Limiter(key_func=get_remote_address)

app = FastAPI(title="AgentX Backend", version="0.1.0", lifespan=lifespan)
app.state.limiter = limiter


@app.exception_handler(RateLimitExceeded)
async def _rate_limit_handler(request: Request, exc: RateLimitExceeded) -> JSONResponse:
    return JSONResponse(
        status_code=429,
        content={"error": "rate limit exceeded", "detail": str(exc.detail)},
    )


@app.exception_handler(Exception)
async def _unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.error("Unhandled error on %s: %s", request.url.path, describe_exception(exc))
    return JSONResponse(status_code=500, content={"error": "Internal server error"})


@app.middleware("http")
async def _request_context(
    request: Request, call_next: Callable[[Request], Awaitable[Response]]
) -> Response:
    clear_context()
    bind_context(request_id=request.headers.get("x-request-id") or short_id("req"))
    declared = request.headers.get("content-length")
    if declared and declared.isdigit() and int(declared) > get_settings().max_request_bytes:
        return JSONResponse(status_code=413, content={"error": "request body too large"})
    return await call_next(request)


settings = get_settings()
cors_origins = [item.strip() for item in settings.web_cors_origins.split(",") if item.strip()]
app.add_middleware(
    CORSMiddleware,
    allow_origins=cors_origins,
    allow_origin_regex=settings.web_cors_origin_regex or None,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
    expose_headers=["x-vercel-ai-ui-message-stream"],
)
app.include_router(health_router)
app.include_router(api_router)
