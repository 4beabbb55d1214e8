"""
tests/conftest.py — Shared pytest fixtures
"""
from __future__ import annotations

import json

import pytest
from fastapi.testclient import TestClient

from app.config import get_settings
from app.core.rate_limiter import (
    RateLimitConfig,
    SlidingWindowRateLimiter,
    get_chat_rate_limiter,
    limiter,
)
from app.services import questions as question_service


class FakeClock:
    """Millisecond clock the tests move by hand."""

    def __init__(self, start: float = 0.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, ms: float) -> None:
        self.now += ms


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock(start=1_000_000.0)


@pytest.fixture
def small_limiter(clock) -> SlidingWindowRateLimiter:
    return SlidingWindowRateLimiter(
        default_config=RateLimitConfig(max_requests=2, window_ms=1000),
        clock=clock,
    )


@pytest.fixture
def settings():
    return get_settings()


@pytest.fixture
def configured(monkeypatch, settings):
    """Gemini key present."""
    monkeypatch.setattr(settings, "gemini_api_key", "test-key")
    return settings


@pytest.fixture
def unconfigured(monkeypatch, settings):
    monkeypatch.setattr(settings, "gemini_api_key", None)
    return settings


@pytest.fixture
def chat_limiter() -> SlidingWindowRateLimiter:
    return SlidingWindowRateLimiter(
        default_config=RateLimitConfig(max_requests=3, window_ms=60_000),
    )


@pytest.fixture
def client(chat_limiter):
    from app.main import app

    limiter.reset()
    app.dependency_overrides[get_chat_rate_limiter] = lambda: chat_limiter
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()
    limiter.reset()


@pytest.fixture
def phishing_questions() -> list[dict]:
    """Seven well-formed level 3 questions as Gemini would return them."""
    texts = [
        "An email from your bank asks you to verify your account through a link. What should you do first?",
        "You hover over a link and the URL shows a misspelled company domain. What does this indicate?",
        "A caller claiming to be IT support asks for your login code. Which social engineering tactic is this?",
        "Which detail in an unexpected invoice attachment is the strongest phishing red flag?",
        "A message says your parcel is held and demands a small fee via a short link. How do you respond?",
        "Why do scam emails often create a sense of urgency with deadlines?",
        "A friend's hacked account sends you a suspicious gift card offer. What is the safest action?",
    ]
    return [
        {
            "question": text,
            "options": ["Option A", "Option B", "Option C", "Option D"],
            "correctIndex": i % 4,
            "explanation": f"Explanation {i}",
        }
        for i, text in enumerate(texts)
    ]


@pytest.fixture
def phishing_response(phishing_questions) -> str:
    return "```json\n" + json.dumps(phishing_questions) + "\n```"


@pytest.fixture(autouse=True)
def _clear_question_dedup():
    question_service.question_dedup._pending.clear()
    yield
    question_service.question_dedup._pending.clear()
