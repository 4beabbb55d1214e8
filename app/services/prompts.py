"""
app/services/prompts.py — Tutor prompt construction
System prompt = base tutor persona + page context + action instructions,
followed by the recent conversation and the new user message.
"""
from __future__ import annotations

import re
from typing import Optional

from app.config import get_settings
from app.models import ChatAction, ChatRequest, GameContext, PageKind, UserProgress

settings = get_settings()

BASE_SYSTEM_PROMPT = """You are a friendly AI tutor helping students learn cybersecurity through the CagE game.
Your role is to guide learning without giving away answers directly.

Guidelines:
- Be encouraging and supportive
- Use simple language appropriate for students
- Provide hints that lead to understanding, not just answers
- Use emojis occasionally to be friendly (🔒, 🛡️, 💡, etc.)
- IMPORTANT: Keep responses SHORT - maximum 600 characters (about 3-4 sentences)
- Focus on cybersecurity education
- Never reveal the correct answer directly when asked for hints"""

_ACTION_PROMPTS = {
    ChatAction.HINT: (
        "\n\nThe user is asking for a hint. Provide a helpful clue that guides them "
        "toward the answer without revealing it directly. Focus on the underlying "
        "concept or reasoning process."
    ),
    ChatAction.EXPLAIN: (
        "\n\nThe user wants an explanation of the concept. Provide a clear, educational "
        "explanation of the cybersecurity topic at hand. Use examples and analogies "
        "to make it easier to understand."
    ),
}

_SCRIPT_TAG_RE = re.compile(r"<script\b[^<]*(?:(?!</script>)<[^<]*)*</script>", re.IGNORECASE)
_SQL_KEYWORD_RE = re.compile(
    r"\b(SELECT|INSERT|UPDATE|DELETE|DROP|CREATE|ALTER|EXEC|EXECUTE)\b", re.IGNORECASE
)


def sanitize_input(text: str) -> str:
    """Strip script tags and SQL statement keywords from user text."""
    if not isinstance(text, str):
        return ""
    text = _SCRIPT_TAG_RE.sub("", text)
    text = _SQL_KEYWORD_RE.sub("", text)
    return text.strip()


# ──────────────────────────────────────────────────────────────────────────────
# Context prompts — one per page kind
# ──────────────────────────────────────────────────────────────────────────────

def _question_context(ctx: GameContext) -> str:
    if not ctx.question_text:
        return ""
    return (
        "\n\nCurrent Context:\n"
        f"- Level: {ctx.level_title or 'Unknown'}\n"
        f"- Question {ctx.question_number or '?'} of {ctx.total_questions or '?'}: "
        f"{ctx.question_text}\n\n"
        "When providing hints:\n"
        "- Give conceptual guidance about the topic\n"
        "- Ask leading questions\n"
        "- Explain why certain approaches are better\n"
        "- DO NOT reveal which option is correct"
    )


def _progress_lines(progress: UserProgress) -> str:
    return (
        "\n\nCurrent Context:\n"
        f"- User has completed {len(progress.completed_levels)} levels\n"
        f"- Current score: {progress.current_score:g}\n"
    )


def _levels_context(progress: Optional[UserProgress]) -> str:
    if progress is None:
        return (
            "\n\nThe user is browsing available levels. Help them understand what "
            "each level teaches and choose appropriate difficulty."
        )
    return _progress_lines(progress) + (
        "\nHelp the user:\n"
        "- Understand what each level teaches\n"
        "- Choose appropriate difficulty\n"
        "- Stay motivated"
    )


def _level_context(ctx: GameContext) -> str:
    if not ctx.level_title:
        return ""
    description = f"- Description: {ctx.level_description}\n" if ctx.level_description else ""
    return (
        "\n\nCurrent Context:\n"
        f"- Level: {ctx.level_title}\n"
        f"{description}\n"
        "Help the user understand the concepts in this level."
    )


def _profile_context(progress: Optional[UserProgress]) -> str:
    if progress is None:
        return (
            "\n\nThe user is viewing their profile. Help them understand their "
            "progress and achievements."
        )
    return _progress_lines(progress) + (
        "\nHelp the user:\n"
        "- Understand their progress\n"
        "- Set learning goals\n"
        "- Stay motivated"
    )


def build_context_prompt(ctx: Optional[GameContext]) -> str:
    if ctx is None:
        return ""
    page = ctx.current_page
    if page == PageKind.QUESTION.value:
        return _question_context(ctx)
    if page == PageKind.LEVELS.value:
        return _levels_context(ctx.user_progress)
    if page == PageKind.LEVEL.value:
        return _level_context(ctx)
    if page == PageKind.PROFILE.value:
        return _profile_context(ctx.user_progress)
    return ""


def build_action_prompt(action: ChatAction) -> str:
    return _ACTION_PROMPTS.get(action, "")


def build_system_prompt(ctx: Optional[GameContext], action: ChatAction = ChatAction.CHAT) -> str:
    return BASE_SYSTEM_PROMPT + build_context_prompt(ctx) + build_action_prompt(action)


def build_chat_prompt(chat: ChatRequest) -> str:
    """
    Flatten system prompt, the last N history messages and the new message
    into the single text prompt sent to Gemini.
    """
    prompt = build_system_prompt(chat.game_context, chat.action) + "\n\n"

    history = chat.conversation_history[-settings.chat_history_max_messages:]
    if history:
        prompt += "Previous conversation:\n"
        for msg in history:
            role = "Assistant" if msg.role == "assistant" else "User"
            prompt += f"{role}: {sanitize_input(msg.content)}\n"
        prompt += "\n"

    prompt += f"User: {sanitize_input(chat.message)}\n\nAssistant:"
    return prompt
