"""
app/core/logging.py — loguru structured JSON logging setup
One JSON record per upstream call, admitted/rejected chat request,
question generation and error.
"""
from __future__ import annotations

import json
import sys
import traceback
from datetime import datetime, timezone
from typing import Any, Optional

from loguru import logger


def setup_logging(log_level: str = "INFO") -> None:
    """
    Configure loguru for structured JSON output to stdout.
    """
    # Remove default loguru handler
    logger.remove()

    logger.add(
        sys.stdout,
        level=log_level.upper(),
        format="{message}",
        serialize=True,       # loguru built-in JSON serialization
        backtrace=True,
        diagnose=False,       # Disable in production for safety
        colorize=False,
    )


def _build_log_record(
    component: str,
    operation: str,
    extra: Optional[dict[str, Any]] = None,
) -> dict[str, Any]:
    """Build a base structured log record."""
    record: dict[str, Any] = {
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "component": component,
        "operation": operation,
    }
    if extra:
        record.update(extra)
    return record


# ──────────────────────────────────────────────────────────────────────────────
# Event helpers
# ──────────────────────────────────────────────────────────────────────────────

def log_gemini_call(
    model: str,
    operation: str,
    input_tokens: int,
    output_tokens: int,
    latency_ms: float,
    response_chars: int,
) -> None:
    """Every Gemini API call is logged."""
    record = _build_log_record("gemini_client", "api_call", {
        "model": model,
        "operation": operation,
        "input_tokens": input_tokens,
        "output_tokens": output_tokens,
        "latency_ms": round(latency_ms, 2),
        "response_chars": response_chars,
    })
    logger.info(json.dumps(record))


def log_chat_request(
    client_id: str,
    action: str,
    outcome: str,
    status_code: int,
    latency_ms: float,
    response_chars: int = 0,
) -> None:
    record = _build_log_record("chat", "chat_request", {
        "client_id": client_id,
        "action": action,
        "outcome": outcome,
        "status_code": status_code,
        "latency_ms": round(latency_ms, 2),
        "response_chars": response_chars,
    })
    logger.info(json.dumps(record))


def log_rate_limited(
    client_id: str,
    limit: int,
    retry_after: int,
) -> None:
    record = _build_log_record("rate_limiter", "rejected", {
        "client_id": client_id,
        "limit": limit,
        "retry_after": retry_after,
    })
    logger.warning(json.dumps(record))


def log_question_generation(
    level_id: int,
    questions_count: int,
    unique: bool,
    level_specific: bool,
    low_generic: bool,
    latency_ms: float,
    joined_in_flight: bool,
) -> None:
    """Every question set handed to a caller is logged with its quality report."""
    record = _build_log_record("questions", "generate", {
        "level_id": level_id,
        "questions_count": questions_count,
        "unique": unique,
        "level_specific": level_specific,
        "low_generic": low_generic,
        "latency_ms": round(latency_ms, 2),
        "joined_in_flight": joined_in_flight,
    })
    logger.info(json.dumps(record))


def log_error(
    component: str,
    operation: str,
    error: Exception,
    context: Optional[dict[str, Any]] = None,
) -> None:
    """Every error is logged with full context."""
    tb = traceback.format_exc()
    record = _build_log_record(component, operation, {
        "error_type": type(error).__name__,
        "error_message": str(error),
        "stack_trace": tb[:2000] if tb else "",
        "context": context or {},
    })
    logger.error(json.dumps(record))
