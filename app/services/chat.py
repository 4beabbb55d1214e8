"""
app/services/chat.py — AI tutor chat flow
Validating → AdmissionCheck → {Rejected 429 | Proceeding} → UpstreamCall
→ {Success 200 | Timeout 504 | UpstreamError 500/503}.
One upstream attempt per caller request; nothing is retried here.
"""
from __future__ import annotations

import time
from typing import Any

from app.clients import gemini_client
from app.config import get_settings
from app.core import logging as app_logging
from app.core.errors import (
    ConfigurationError,
    GatewayError,
    QuotaExceeded,
    ValidationError,
)
from app.core.rate_limiter import SlidingWindowRateLimiter
from app.models import ChatAction, ChatRequest
from app.services.prompts import build_chat_prompt
from app.utils.validators import (
    normalize_history,
    parse_game_context,
    parse_model_safe,
    validate_chat_payload,
)

settings = get_settings()


def parse_chat_request(body: Any) -> ChatRequest:
    """Validate a raw payload and build the ChatRequest. Raises ValidationError."""
    errors = validate_chat_payload(body)
    if errors:
        raise ValidationError(errors)

    payload = dict(body)
    payload["conversationHistory"] = normalize_history(body.get("conversationHistory"))
    payload["gameContext"] = parse_game_context(body.get("gameContext"))
    if payload.get("action") is None:
        payload.pop("action", None)

    chat = parse_model_safe(ChatRequest, payload, context="chat_request")
    if chat is None:
        raise ValidationError(["Request payload is malformed"])
    return chat


async def generate_reply(chat: ChatRequest) -> str:
    """Build the tutor prompt and make a single bounded Gemini call."""
    if not settings.gemini_configured:
        raise ConfigurationError()

    prompt = build_chat_prompt(chat)
    return await gemini_client.generate_text(
        prompt=prompt,
        model=settings.gemini_model,
        max_output_tokens=settings.gemini_max_tokens,
        temperature=settings.gemini_temperature,
        top_p=settings.gemini_top_p,
        top_k=settings.gemini_top_k,
        timeout_ms=settings.upstream_timeout_ms,
        operation=f"chat_{chat.action.value}",
    )


async def handle_chat(
    body: Any,
    client_id: str,
    rate_limiter: SlidingWindowRateLimiter,
) -> str:
    """
    Run one chat request end to end and return the reply text.
    Raises a GatewayError subclass for every non-200 outcome.
    """
    start = time.monotonic()
    action = body.get("action") if isinstance(body, dict) else None
    action = action if isinstance(action, str) else ChatAction.CHAT.value

    try:
        chat = parse_chat_request(body)

        result = rate_limiter.check(client_id)
        if not result.allowed:
            limit = rate_limiter.default_config.max_requests
            app_logging.log_rate_limited(client_id, limit, result.retry_after)
            raise QuotaExceeded(result, limit, settings.rate_limit_message)

        reply = await generate_reply(chat)

    except GatewayError as exc:
        app_logging.log_chat_request(
            client_id=client_id,
            action=action,
            outcome=type(exc).__name__,
            status_code=exc.status_code,
            latency_ms=(time.monotonic() - start) * 1000,
        )
        raise

    app_logging.log_chat_request(
        client_id=client_id,
        action=action,
        outcome="success",
        status_code=200,
        latency_ms=(time.monotonic() - start) * 1000,
        response_chars=len(reply),
    )
    return reply
