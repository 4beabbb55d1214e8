"""
app/utils/dedup.py — Question-text deduplication and quality checks
Fuzzy matching catches near-identical questions that differ only in
wording order or punctuation.
"""
from __future__ import annotations

import re
from typing import Optional

from fuzzywuzzy import fuzz

from app.config import get_settings
from app.models import LevelDefinition, Question, QuestionQuality

settings = get_settings()

# Phrases that mark a question as not specific to any one level
GENERIC_TERMS = ["cyber security", "online safety", "internet safety", "security threat"]


def _normalize_text(text: str) -> str:
    """Normalize for comparison: lowercase, strip punctuation."""
    text = text.lower().strip()
    text = re.sub(r"[^\w\s]", " ", text)
    text = re.sub(r"\s{2,}", " ", text)
    return text


def get_fuzzy_similarity(text_a: str, text_b: str) -> int:
    """
    Fuzzy similarity score between two question texts, 0-100.
    token_set_ratio is robust to word reordering.
    """
    return fuzz.token_set_ratio(_normalize_text(text_a), _normalize_text(text_b))


def find_duplicate_pairs(
    texts: list[str],
    threshold: Optional[int] = None,
) -> list[tuple[int, int]]:
    """Index pairs (i, j), i < j, whose texts score at or above `threshold`."""
    threshold = settings.question_duplicate_threshold if threshold is None else threshold
    pairs: list[tuple[int, int]] = []
    for i in range(len(texts)):
        for j in range(i + 1, len(texts)):
            if get_fuzzy_similarity(texts[i], texts[j]) >= threshold:
                pairs.append((i, j))
    return pairs


def assess_question_quality(
    questions: list[Question],
    level: LevelDefinition,
) -> QuestionQuality:
    """Uniqueness, level specificity and generic-phrase ratio for a question set."""
    texts = [q.question for q in questions]
    pairs = find_duplicate_pairs(texts)
    duplicates = {j for _, j in pairs}
    total = len(questions)

    keywords = [k.lower() for k in level.keywords]
    specific = 0
    generic = 0
    for text in texts:
        lowered = text.lower()
        if any(k in lowered for k in keywords):
            specific += 1
        if any(term in lowered for term in GENERIC_TERMS):
            generic += 1

    return QuestionQuality(
        unique=not pairs,
        level_specific=specific >= total * settings.question_min_level_specific_ratio,
        low_generic=generic <= total * settings.question_max_generic_ratio,
        unique_questions=total - len(duplicates),
        total_questions=total,
        level_specific_count=specific,
        generic_count=generic,
        duplicate_pairs=pairs,
    )
