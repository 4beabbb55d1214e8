"""
app/clients/gemini_client.py — Google Gemini API client
Single-attempt async calls bounded by a timeout. A call that loses the
race against the timeout is cancelled, not left running.
Failure classes are translated into app.core.errors types; the raw
upstream message is logged but never returned to callers.
"""
from __future__ import annotations

import asyncio
import json
import time
from typing import Any, Optional

import google.generativeai as genai
from google.api_core.exceptions import PermissionDenied, Unauthenticated
from loguru import logger

from app.config import get_settings
from app.core import logging as app_logging
from app.core.errors import ConfigurationError, UpstreamError, UpstreamTimeoutError

settings = get_settings()

_configured_key: Optional[str] = None


def _configure_genai() -> None:
    """Configure the Gemini SDK with the current API key (once per key)."""
    global _configured_key
    key = settings.gemini_api_key
    if not key:
        raise ConfigurationError()
    if key != _configured_key:
        genai.configure(api_key=key)
        _configured_key = key


def _is_credential_failure(exc: Exception) -> bool:
    if isinstance(exc, (PermissionDenied, Unauthenticated)):
        return True
    return "api key" in str(exc).lower()


# ──────────────────────────────────────────────────────────────────────────────
# Core Gemini call
# ──────────────────────────────────────────────────────────────────────────────

async def generate_text(
    prompt: str,
    model: str,
    max_output_tokens: int,
    temperature: float = 0.7,
    top_p: Optional[float] = None,
    top_k: Optional[int] = None,
    timeout_ms: int = 10_000,
    operation: str = "unknown",
) -> str:
    """
    Call Gemini once and return the stripped response text.
    Raises ConfigurationError when the key is missing or rejected,
    UpstreamTimeoutError when `timeout_ms` elapses (the call is cancelled),
    UpstreamError on any other failure.
    """
    _configure_genai()

    generation_config = genai.types.GenerationConfig(
        temperature=temperature,
        top_p=top_p,
        top_k=top_k,
        max_output_tokens=max_output_tokens,
        candidate_count=1,
    )
    gen_model = genai.GenerativeModel(model, generation_config=generation_config)

    start_time = time.monotonic()
    try:
        response = await asyncio.wait_for(
            gen_model.generate_content_async(prompt),
            timeout=timeout_ms / 1000,
        )
    except asyncio.TimeoutError as exc:
        logger.warning(
            f"Gemini {operation} call exceeded {timeout_ms}ms on model '{model}'; cancelled."
        )
        raise UpstreamTimeoutError() from exc
    except Exception as exc:
        if _is_credential_failure(exc):
            logger.error(f"Gemini rejected credentials for {operation}: {exc}")
            raise ConfigurationError() from exc
        logger.error(f"Gemini {operation} call failed on model '{model}': {exc}")
        raise UpstreamError() from exc

    latency_ms = (time.monotonic() - start_time) * 1000

    try:
        text = response.text.strip() if response.text else ""
    except ValueError as exc:
        # Raised by the SDK when the candidate was blocked / has no parts
        logger.error(f"Gemini {operation} returned no usable text: {exc}")
        raise UpstreamError() from exc

    usage = getattr(response, "usage_metadata", None)
    app_logging.log_gemini_call(
        model=model,
        operation=operation,
        input_tokens=usage.prompt_token_count if usage else 0,
        output_tokens=usage.candidates_token_count if usage else 0,
        latency_ms=latency_ms,
        response_chars=len(text),
    )
    return text


# ──────────────────────────────────────────────────────────────────────────────
# JSON extraction helper
# ──────────────────────────────────────────────────────────────────────────────

def strip_code_fences(text: str) -> str:
    """Remove a surrounding markdown code fence (```json ... ```) if present."""
    text = text.strip()
    if text.startswith("```"):
        lines = text.split("\n")
        text = "\n".join(lines[1:-1] if lines[-1].strip() == "```" else lines[1:])
    return text.strip()


def extract_json_from_response(text: str) -> Any:
    """
    Safely extract JSON (object or array) from a Gemini response text.
    Handles markdown code fences or raw JSON. Returns None on parse failure.
    """
    text = strip_code_fences(text)
    try:
        return json.loads(text)
    except json.JSONDecodeError:
        # Try from the first bracket that opens a JSON value
        starts = [i for i in (text.find("["), text.find("{")) if i != -1]
        if starts:
            start = min(starts)
            closing = "]" if text[start] == "[" else "}"
            end = text.rfind(closing)
            if end > start:
                try:
                    return json.loads(text[start:end + 1])
                except json.JSONDecodeError:
                    pass
    return None
