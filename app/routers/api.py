"""
app/routers/api.py — Public API endpoints
Endpoints: /api/chat (POST, GET), /api/levels, /api/questions/{level_id},
/api/rate-limit. Errors are raised as GatewayError subclasses and rendered
by the handler registered in main.py.
"""
from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Depends, Request

from app.config import get_settings
from app.core.errors import ValidationError
from app.core.rate_limiter import (
    RATE_LIMITS,
    SlidingWindowRateLimiter,
    get_chat_rate_limiter,
    get_client_identifier,
    limiter,
)
from app.models import (
    ChatResponse,
    ChatStatusResponse,
    LevelDefinition,
    QuestionSet,
    RateLimitStatusResponse,
)
from app.services import chat as chat_service
from app.services import questions as question_service

router = APIRouter()


# ──────────────────────────────────────────────────────────────────────────────
# /api/chat — AI tutor
# ──────────────────────────────────────────────────────────────────────────────

@router.post("/chat", response_model=ChatResponse)
async def chat(
    request: Request,
    rate_limiter: SlidingWindowRateLimiter = Depends(get_chat_rate_limiter),
) -> ChatResponse:
    """
    Send a message to the tutor.
    400 on invalid payload (all violations listed), 429 over quota,
    503 when Gemini is not configured, 504 on upstream timeout.
    """
    try:
        body: Any = await request.json()
    except ValueError:
        raise ValidationError(["Request body must be valid JSON"])

    client_id = get_client_identifier(request)
    reply = await chat_service.handle_chat(body, client_id, rate_limiter)
    return ChatResponse(message=reply)


@router.get("/chat", response_model=ChatStatusResponse)
@limiter.limit(RATE_LIMITS["status"])
async def chat_status(request: Request) -> ChatStatusResponse:
    """Whether Gemini credentials are present, and which chat model is in use."""
    settings = get_settings()
    return ChatStatusResponse(
        status="ok",
        configured=settings.gemini_configured,
        model=settings.gemini_model,
    )


@router.get("/rate-limit", response_model=RateLimitStatusResponse, response_model_by_alias=True)
async def rate_limit_status(
    request: Request,
    rate_limiter: SlidingWindowRateLimiter = Depends(get_chat_rate_limiter),
) -> RateLimitStatusResponse:
    """Caller's current chat quota. Does not count as a request."""
    current = rate_limiter.status(get_client_identifier(request))
    return RateLimitStatusResponse(
        limit=rate_limiter.default_config.max_requests,
        requests=current.requests,
        remaining=current.remaining,
        reset_time=current.reset_time,
        retry_after=current.retry_after,
    )


# ──────────────────────────────────────────────────────────────────────────────
# /api/levels, /api/questions — level catalogue and question generation
# ──────────────────────────────────────────────────────────────────────────────

@router.get("/levels", response_model=list[LevelDefinition])
@limiter.limit(RATE_LIMITS["levels"])
async def list_levels(request: Request) -> list[LevelDefinition]:
    return question_service.get_level_definitions()


@router.post("/questions/{level_id}", response_model=QuestionSet)
@limiter.limit(RATE_LIMITS["questions"])
async def generate_questions(request: Request, level_id: int) -> QuestionSet:
    """
    Generate a fresh question set for one level.
    Simultaneous requests for the same level share a single Gemini call.
    """
    return await question_service.generate_questions_for_level(level_id)
