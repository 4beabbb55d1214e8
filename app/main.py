"""
app/main.py — FastAPI application entry point
Includes: lifespan management, CORS, rate limiting, security headers,
          error rendering, ping keep-alive endpoint.
"""

from contextlib import asynccontextmanager
from typing import AsyncIterator

from fastapi import FastAPI, Request, Response
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from loguru import logger
from slowapi.errors import RateLimitExceeded
from slowapi.middleware import SlowAPIMiddleware

from app.config import get_settings
from app.core import logging as app_logging
from app.core.errors import GatewayError, QuotaExceeded, ValidationError
from app.core.logging import setup_logging
from app.core.rate_limiter import RATE_LIMITS, limiter, rate_limit_headers
from app.routers import api

settings = get_settings()

VERSION = "1.0.0"


# ──────────────────────────────────────────────────────────────────────────────
# Application Lifespan
# ──────────────────────────────────────────────────────────────────────────────

@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """
    FastAPI lifespan: startup → yield → shutdown.
    Startup: initialize logging, report missing Gemini credentials.
    """
    setup_logging(settings.log_level)
    logger.info("CagE AI gateway starting up...")

    if not settings.gemini_configured:
        logger.critical("Missing env var: GEMINI_API_KEY")
        logger.warning("App will start but chat and question generation return 503 until it is set.")

    logger.info("Startup complete.")
    yield
    logger.info("Shutting down CagE AI gateway.")


# ──────────────────────────────────────────────────────────────────────────────
# FastAPI App
# ──────────────────────────────────────────────────────────────────────────────

app = FastAPI(
    title="CagE AI Gateway",
    description=(
        "AI tutor chat and question generation for the CagE cybersecurity "
        "literacy game, fronting the Gemini API."
    ),
    version=VERSION,
    docs_url="/docs" if not settings.is_production else None,
    redoc_url=None,
    lifespan=lifespan,
)


# ── Error rendering — every failure becomes {"error": ...} ────────────────────
@app.exception_handler(GatewayError)
async def gateway_error_handler(request: Request, exc: GatewayError) -> JSONResponse:
    content: dict = {"error": exc.message}
    headers = None
    if isinstance(exc, ValidationError):
        content["details"] = exc.errors
    elif isinstance(exc, QuotaExceeded):
        content["retryAfter"] = exc.retry_after
        headers = rate_limit_headers(exc.result, exc.limit)
    elif exc.status_code >= 500:
        app_logging.log_error("api", request.url.path, exc)
    return JSONResponse(status_code=exc.status_code, content=content, headers=headers)


# ── Rate limiting — slowapi ───────────────────────────────────────────────────
app.state.limiter = limiter
app.add_exception_handler(
    RateLimitExceeded,
    lambda req, exc: JSONResponse(
        status_code=429,
        content={"error": "Rate limit exceeded. Slow down."},
    ),
)
app.add_middleware(SlowAPIMiddleware)

# ── CORS ──────────────────────────────────────────────────────────────────────
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"] if settings.is_development else [],
    allow_credentials=False,
    allow_methods=["GET", "POST"],
    allow_headers=["*"],
)


# ── Security headers middleware ───────────────────────────────────────────────
@app.middleware("http")
async def add_security_headers(request: Request, call_next) -> Response:
    response = await call_next(request)
    response.headers["X-Content-Type-Options"] = "nosniff"
    response.headers["X-Frame-Options"] = "DENY"
    response.headers["Referrer-Policy"] = "strict-origin-when-cross-origin"
    if settings.is_production:
        response.headers["Strict-Transport-Security"] = (
            "max-age=31536000; includeSubDomains"
        )
    return response


# ── Routers ───────────────────────────────────────────────────────────────────
app.include_router(api.router, prefix="/api", tags=["api"])


@app.get("/api/ping", tags=["health"])
@limiter.limit(RATE_LIMITS["ping"])
async def ping(request: Request):
    """Keep-alive. Does NOT call any external services."""
    return {"status": "ok", "version": VERSION}
