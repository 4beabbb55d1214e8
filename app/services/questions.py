"""
app/services/questions.py — AI-generated quiz questions per game level
Every question set comes from Gemini; there is no static fallback bank.
Concurrent requests for the same level share one upstream call
(key "level_<id>"). Once it settles the next request generates afresh.
"""
from __future__ import annotations

import asyncio
import random
import time
from typing import Optional

from loguru import logger

from app.clients import gemini_client
from app.clients.gemini_client import extract_json_from_response
from app.config import get_settings
from app.core import logging as app_logging
from app.core.errors import ConfigurationError, LevelNotFoundError, UpstreamError
from app.core.request_dedup import InflightDeduplicator
from app.models import Difficulty, LevelDefinition, Question, QuestionSet
from app.utils.dedup import assess_question_quality
from app.utils.validators import parse_model_safe

settings = get_settings()

question_dedup = InflightDeduplicator(name="questions")


# ──────────────────────────────────────────────────────────────────────────────
# Level catalogue
# ──────────────────────────────────────────────────────────────────────────────

LEVEL_DEFINITIONS: list[LevelDefinition] = [
    LevelDefinition(
        id=1,
        title="Cyber Security Basics",
        description="Learn the fundamentals of staying safe online",
        difficulty=Difficulty.EASY,
        topics=["basic internet safety", "digital citizenship", "online privacy fundamentals"],
        questions_count=5,
        focus_areas=["what is cyber security", "basic online threats", "digital footprints"],
        keywords=["basic", "fundamental", "digital citizenship", "privacy", "footprint"],
    ),
    LevelDefinition(
        id=2,
        title="Password Protection",
        description="Create strong passwords and keep them safe",
        difficulty=Difficulty.EASY,
        topics=["password strength", "password managers", "credential security",
                "two-factor authentication"],
        questions_count=6,
        focus_areas=["creating strong passwords", "password storage", "authentication methods"],
        keywords=["password", "credential", "authentication", "two-factor", "manager"],
    ),
    LevelDefinition(
        id=3,
        title="Phishing Attacks",
        description="Identify and avoid dangerous emails and messages",
        difficulty=Difficulty.MEDIUM,
        topics=["phishing emails", "suspicious links", "social engineering tactics", "email scams"],
        questions_count=7,
        focus_areas=["recognizing phishing emails", "suspicious website indicators",
                     "social engineering red flags"],
        keywords=["phishing", "email", "suspicious", "link", "social engineering", "scam"],
    ),
    LevelDefinition(
        id=4,
        title="Safe Web Browsing",
        description="Navigate the internet safely and avoid threats",
        difficulty=Difficulty.MEDIUM,
        topics=["browser security", "safe websites", "download safety", "HTTPS protocols",
                "URL verification"],
        questions_count=8,
        focus_areas=["identifying secure websites", "browser privacy settings",
                     "safe downloading practices", "certificate verification",
                     "avoiding malicious websites"],
        keywords=["browser", "website", "download", "https", "certificate", "url"],
    ),
    LevelDefinition(
        id=5,
        title="Social Media Safety",
        description="Protect your personal information on social platforms",
        difficulty=Difficulty.HARD,
        topics=["privacy settings", "information sharing", "social media scams",
                "digital reputation", "account security"],
        questions_count=9,
        focus_areas=["configuring privacy settings", "safe information sharing",
                     "recognizing social media scams", "protecting personal data",
                     "managing digital footprint"],
        keywords=["social media", "privacy setting", "sharing", "profile", "facebook", "twitter"],
    ),
    LevelDefinition(
        id=6,
        title="Malware Defense",
        description="Understand and protect against computer viruses",
        difficulty=Difficulty.HARD,
        topics=["malware types", "virus protection", "infection prevention",
                "antivirus software", "system security"],
        questions_count=10,
        focus_areas=["identifying malware types", "antivirus best practices",
                     "system vulnerability protection", "malware removal techniques",
                     "preventive security measures"],
        keywords=["malware", "virus", "antivirus", "trojan", "worm", "infection", "software"],
    ),
]


def get_level_definitions() -> list[LevelDefinition]:
    return list(LEVEL_DEFINITIONS)


def get_level(level_id: int) -> LevelDefinition:
    level = next((lvl for lvl in LEVEL_DEFINITIONS if lvl.id == level_id), None)
    if level is None:
        raise LevelNotFoundError(level_id)
    return level


def cache_key_for_level(level_id: int) -> str:
    return f"level_{level_id}"


# ──────────────────────────────────────────────────────────────────────────────
# Prompt
# ──────────────────────────────────────────────────────────────────────────────

_LEVEL_FOCUS = "\n".join(
    f"  - Level {lvl.id} ({lvl.title}): Focus ONLY on {', '.join(lvl.topics[:3])}"
    for lvl in LEVEL_DEFINITIONS
)

_QUESTION_PROMPT = """
You are creating questions for LEVEL {level_id} ONLY: "{title}".

CRITICAL: These questions must be COMPLETELY DIFFERENT from questions in other levels.

Generate {count} unique multiple-choice questions EXCLUSIVELY about {topics}.
SPECIFIC FOCUS AREAS: {focus_areas}

LEVEL-SPECIFIC REQUIREMENTS:
{level_focus}

For Level {level_id} ("{title}"), create questions that are:
1. EXCLUSIVELY about {topics}
2. At {difficulty} difficulty level
3. NEVER overlap with content from other levels
4. Completely unique and specific to this level's theme
5. Include real-world scenarios related to {topics}
6. Must cover these specific areas: {focus_areas}

STRICT REQUIREMENTS:
- Make each question scenario-based and practical
- Ensure correct answers are randomly distributed across A, B, C, D options
- Include detailed explanations
- NO generic cyber security questions - be specific to {topics}

Respond ONLY with a JSON array:
[
  {{
    "question": "Specific scenario about {topics}",
    "options": ["Option A", "Option B", "Option C", "Option D"],
    "correctIndex": 0,
    "explanation": "Detailed explanation specific to {topics}"
  }}
]

REMEMBER: This is Level {level_id} about {topics} ONLY. Do not include content from other levels.
"""


def build_question_prompt(level: LevelDefinition) -> str:
    return _QUESTION_PROMPT.format(
        level_id=level.id,
        title=level.title,
        count=level.questions_count,
        topics=", ".join(level.topics),
        focus_areas=", ".join(level.focus_areas),
        difficulty=level.difficulty.value.lower(),
        level_focus=_LEVEL_FOCUS,
    )


# ──────────────────────────────────────────────────────────────────────────────
# Response handling
# ──────────────────────────────────────────────────────────────────────────────

def shuffle_options(question: Question, rng: Optional[random.Random] = None) -> Question:
    """Shuffle options, moving correct_index along with the correct option."""
    rng = rng or random
    order = list(range(len(question.options)))
    rng.shuffle(order)
    options = [question.options[i] for i in order]
    return question.model_copy(update={
        "options": options,
        "correct_index": order.index(question.correct_index),
    })


def parse_questions(text: str, level: LevelDefinition) -> list[Question]:
    """
    Parse the Gemini response into questions for `level`.
    Raises UpstreamError when the response is not a usable question array.
    """
    data = extract_json_from_response(text)
    if not isinstance(data, list) or not data:
        logger.error(f"Level {level.id}: response is not a JSON array. Raw: {text[:300]!r}")
        raise UpstreamError()

    questions: list[Question] = []
    for i, item in enumerate(data):
        q = parse_model_safe(Question, item, context=f"level {level.id} question {i + 1}")
        if q is None or q.correct_index >= len(q.options):
            logger.warning(f"Level {level.id}: dropping malformed question {i + 1}.")
            continue
        questions.append(q)

    if len(questions) < level.questions_count:
        logger.error(
            f"Insufficient questions generated for level {level.id}. "
            f"Expected {level.questions_count}, got {len(questions)}."
        )
        raise UpstreamError()

    return [
        shuffle_options(q).model_copy(update={"level_id": level.id})
        for q in questions
    ]


# ──────────────────────────────────────────────────────────────────────────────
# Generation
# ──────────────────────────────────────────────────────────────────────────────

async def _generate(level: LevelDefinition) -> QuestionSet:
    text = await gemini_client.generate_text(
        prompt=build_question_prompt(level),
        model=settings.gemini_question_model,
        max_output_tokens=settings.question_max_tokens,
        temperature=settings.question_temperature,
        top_p=settings.question_top_p,
        top_k=settings.question_top_k,
        timeout_ms=settings.question_timeout_ms,
        operation="question_generation",
    )
    questions = parse_questions(text, level)
    quality = assess_question_quality(questions, level)

    if not quality.unique:
        logger.warning(f"Level {level.id}: near-duplicate questions {quality.duplicate_pairs}.")
    if not quality.level_specific:
        logger.warning(f"Level {level.id}: questions may not be level-specific enough.")
    if not quality.low_generic:
        logger.warning(f"Level {level.id}: too many generic questions detected.")

    return QuestionSet(level_id=level.id, questions=questions, quality=quality)


async def generate_questions_for_level(level_id: int) -> QuestionSet:
    """
    Generate a question set for `level_id`.
    Unknown levels and a missing API key fail before any upstream call.
    Callers arriving while a generation for the same level is in flight
    receive that generation's result or error.
    """
    level = get_level(level_id)
    if not settings.gemini_configured:
        raise ConfigurationError()

    key = cache_key_for_level(level.id)
    joined = question_dedup.in_flight(key)
    start = time.monotonic()

    question_set = await question_dedup.get_or_create(key, lambda: _generate(level))

    app_logging.log_question_generation(
        level_id=level.id,
        questions_count=len(question_set.questions),
        unique=question_set.quality.unique,
        level_specific=question_set.quality.level_specific,
        low_generic=question_set.quality.low_generic,
        latency_ms=(time.monotonic() - start) * 1000,
        joined_in_flight=joined,
    )
    return question_set


async def generate_all_level_questions() -> dict[int, QuestionSet]:
    """Generate every level sequentially, pausing between levels. First failure propagates."""
    results: dict[int, QuestionSet] = {}
    for i, level in enumerate(LEVEL_DEFINITIONS):
        if i and settings.question_batch_delay_seconds > 0:
            await asyncio.sleep(settings.question_batch_delay_seconds)
        results[level.id] = await generate_questions_for_level(level.id)
        logger.info(f"Generated {len(results[level.id].questions)} questions for level {level.id}.")
    return results
