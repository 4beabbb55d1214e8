"""
app/models.py — Pydantic schemas
Chat payloads, game context, level catalogue and generated question sets.
"""
from __future__ import annotations

from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field


# ──────────────────────────────────────────────────────────────────────────────
# Enumerations
# ──────────────────────────────────────────────────────────────────────────────

class ChatAction(str, Enum):
    CHAT = "chat"
    HINT = "hint"
    EXPLAIN = "explain"


class Difficulty(str, Enum):
    EASY = "Easy"
    MEDIUM = "Medium"
    HARD = "Hard"


class PageKind(str, Enum):
    HOME = "home"
    LEVELS = "levels"
    LEVEL = "level"
    QUESTION = "question"
    PROFILE = "profile"
    LEADERBOARD = "leaderboard"


# ──────────────────────────────────────────────────────────────────────────────
# Chat
# ──────────────────────────────────────────────────────────────────────────────

class UserProgress(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="allow")

    completed_levels: list[Any] = Field(default_factory=list, alias="completedLevels")
    current_score: float = Field(default=0, alias="currentScore")
    username: Optional[str] = None


class GameContext(BaseModel):
    """What the player is looking at when they open the tutor."""

    model_config = ConfigDict(populate_by_name=True, extra="allow")

    current_page: Optional[str] = Field(default=PageKind.HOME.value, alias="currentPage")
    level_id: Optional[int] = Field(default=None, alias="levelId")
    level_title: Optional[str] = Field(default=None, alias="levelTitle")
    level_description: Optional[str] = Field(default=None, alias="levelDescription")
    question_text: Optional[str] = Field(default=None, alias="questionText")
    question_number: Optional[int] = Field(default=None, alias="questionNumber")
    total_questions: Optional[int] = Field(default=None, alias="totalQuestions")
    user_progress: Optional[UserProgress] = Field(default=None, alias="userProgress")


class ChatMessage(BaseModel):
    role: str = "user"
    content: str = ""


class ChatRequest(BaseModel):
    """Validated chat payload. Built only after validate_chat_payload passes."""

    model_config = ConfigDict(populate_by_name=True)

    message: str
    conversation_history: list[ChatMessage] = Field(
        default_factory=list, alias="conversationHistory"
    )
    game_context: Optional[GameContext] = Field(default=None, alias="gameContext")
    action: ChatAction = ChatAction.CHAT


class ChatResponse(BaseModel):
    message: str


class ChatStatusResponse(BaseModel):
    status: str = "ok"
    configured: bool
    model: str


class RateLimitStatusResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    limit: int
    requests: int
    remaining: int
    reset_time: int = Field(alias="resetTime")
    retry_after: int = Field(alias="retryAfter")


# ──────────────────────────────────────────────────────────────────────────────
# Levels & questions
# ──────────────────────────────────────────────────────────────────────────────

class LevelDefinition(BaseModel):
    id: int
    title: str
    description: str
    difficulty: Difficulty
    topics: list[str]
    questions_count: int = Field(ge=1)
    focus_areas: list[str] = []
    keywords: list[str] = []


class Question(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    question: str
    options: list[str] = Field(min_length=2)
    correct_index: int = Field(alias="correctIndex", ge=0)
    explanation: str = ""
    level_id: Optional[int] = Field(default=None, alias="levelId")


class QuestionQuality(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    unique: bool
    level_specific: bool = Field(alias="levelSpecific")
    low_generic: bool = Field(alias="lowGeneric")
    unique_questions: int = Field(alias="uniqueQuestions")
    total_questions: int = Field(alias="totalQuestions")
    level_specific_count: int = Field(alias="levelSpecificCount")
    generic_count: int = Field(alias="genericCount")
    duplicate_pairs: list[tuple[int, int]] = Field(default_factory=list, alias="duplicatePairs")


class QuestionSet(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    level_id: int = Field(alias="levelId")
    questions: list[Question]
    quality: QuestionQuality
