"""
app/core/errors.py — Request-boundary error taxonomy
Each class carries the HTTP status and the caller-facing message.
Upstream internals never reach the caller; they only go to the logs.
"""
from __future__ import annotations

from typing import TYPE_CHECKING, Optional

if TYPE_CHECKING:
    from app.core.rate_limiter import RateLimitResult


class GatewayError(Exception):
    """Base class for errors rendered as {"error": ...} responses."""

    status_code: int = 500
    public_message: str = "Sorry, I couldn't process that. Please try rephrasing."

    def __init__(self, message: Optional[str] = None) -> None:
        super().__init__(message or self.public_message)
        self.message = message or self.public_message


class ValidationError(GatewayError):
    """Malformed caller input. Lists every violated constraint."""

    status_code = 400

    def __init__(self, errors: list[str]) -> None:
        self.errors = list(errors)
        super().__init__(", ".join(self.errors))


class QuotaExceeded(GatewayError):
    status_code = 429

    def __init__(self, result: "RateLimitResult", limit: int, message: str) -> None:
        super().__init__(message)
        self.result = result
        self.limit = limit

    @property
    def retry_after(self) -> int:
        return self.result.retry_after


class ConfigurationError(GatewayError):
    """Upstream credentials missing or rejected."""

    status_code = 503
    public_message = "Chatbot is currently unavailable. Please contact support."


class UpstreamTimeoutError(GatewayError):
    status_code = 504
    public_message = "Response is taking longer than expected. Please try again."


class UpstreamError(GatewayError):
    status_code = 500
    public_message = "Sorry, I couldn't process that. Please try rephrasing."


class LevelNotFoundError(GatewayError):
    status_code = 404

    def __init__(self, level_id: int) -> None:
        super().__init__(f"Level with ID {level_id} not found")
        self.level_id = level_id
