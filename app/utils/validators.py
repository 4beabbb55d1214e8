"""
app/utils/validators.py — Chat payload validation and safe model parsing
validate_chat_payload collects every violation instead of stopping at the
first, so the caller can fix the whole request in one round trip.
"""
from __future__ import annotations

import copy
from typing import Any, Optional, Type, TypeVar

from loguru import logger
from pydantic import BaseModel, ValidationError

from app.config import get_settings
from app.models import ChatAction, GameContext

T = TypeVar("T", bound=BaseModel)

settings = get_settings()

ALLOWED_ACTIONS = [a.value for a in ChatAction]


def validate_chat_payload(body: Any) -> list[str]:
    """
    Return the list of violated constraints for a raw chat payload.
    Empty list means the payload is valid.
    """
    if not isinstance(body, dict):
        return ["Request body must be a JSON object"]

    errors: list[str] = []
    max_len = settings.chat_message_max_length

    message = body.get("message")
    if not isinstance(message, str):
        errors.append("Message is required and must be a string")
    elif len(message) > max_len:
        errors.append(f"Message must be {max_len} characters or less")
    elif not message.strip():
        errors.append("Message cannot be empty")

    history = body.get("conversationHistory")
    if history is not None and not isinstance(history, list):
        errors.append("Conversation history must be an array")

    context = body.get("gameContext")
    if context is not None and not isinstance(context, dict):
        errors.append("Game context must be an object")

    action = body.get("action")
    if action is not None and action not in ALLOWED_ACTIONS:
        errors.append(f"Action must be one of: {', '.join(ALLOWED_ACTIONS)}")

    return errors


def normalize_history(history: Optional[list[Any]]) -> list[dict[str, str]]:
    """Keep only well-formed {role, content} entries from a raw history list."""
    cleaned: list[dict[str, str]] = []
    for entry in history or []:
        if not isinstance(entry, dict):
            continue
        content = entry.get("content")
        if not isinstance(content, str) or not content.strip():
            continue
        role = "assistant" if entry.get("role") in ("assistant", "model") else "user"
        cleaned.append({"role": role, "content": content})
    return cleaned


def _drop_at(data: dict[str, Any], loc: tuple[Any, ...]) -> None:
    """Remove the innermost dict key on `loc` that holds the invalid value."""
    node = data
    for i, part in enumerate(loc):
        if not isinstance(node, dict) or part not in node:
            return
        value = node[part]
        if i == len(loc) - 1 or not isinstance(value, dict):
            node.pop(part)
            return
        node = value


def parse_game_context(raw: Optional[dict[str, Any]]) -> Optional[GameContext]:
    """
    Parse the caller's game context leniently.
    Fields that fail validation are dropped and the rest is kept; a context
    that still cannot be parsed is treated as absent. Never raises.
    """
    if raw is None:
        return None
    data = copy.deepcopy(raw)
    try:
        return GameContext.model_validate(data)
    except ValidationError as exc:
        bad_fields = [tuple(err["loc"]) for err in exc.errors()]

    for loc in bad_fields:
        _drop_at(data, loc)
    logger.warning(
        f"Ignoring malformed game context fields: "
        f"{['.'.join(str(p) for p in loc) for loc in bad_fields]}"
    )
    try:
        return GameContext.model_validate(data)
    except ValidationError as exc:
        logger.warning(f"Game context unusable, continuing without it: {exc}")
        return None


def parse_model_safe(
    model_class: Type[T],
    data: Any,
    context: str = "",
) -> Optional[T]:
    """
    Parse and validate a dict into a Pydantic model. Returns None on validation failure.
    Logs the validation errors for debugging.
    """
    try:
        return model_class.model_validate(data)
    except ValidationError as exc:
        logger.error(
            f"Schema validation failed for {model_class.__name__} "
            f"(context: {context}): {exc}"
        )
        return None
