"""
tests/test_api.py — Endpoint tests for the chat, status, levels and question routes
"""
from __future__ import annotations

import json
from unittest.mock import AsyncMock, patch

import pytest

from app.core.errors import UpstreamError, UpstreamTimeoutError


@pytest.fixture
def gemini_reply():
    mock_call = AsyncMock(return_value="Look closely at the sender's domain 🛡️")
    with patch("app.clients.gemini_client.generate_text", new=mock_call):
        yield mock_call


# ──────────────────────────────────────────────────────────────────────────────
# POST /api/chat
# ──────────────────────────────────────────────────────────────────────────────

def test_chat_success(client, configured, gemini_reply):
    resp = client.post("/api/chat", json={"message": "How do I spot phishing?", "action": "hint"})
    assert resp.status_code == 200
    assert resp.json() == {"message": "Look closely at the sender's domain 🛡️"}

    kwargs = gemini_reply.await_args.kwargs
    assert kwargs["model"] == configured.gemini_model
    assert kwargs["timeout_ms"] == 10_000
    assert "asking for a hint" in kwargs["prompt"]


def test_chat_validation_lists_every_violation(client, configured, gemini_reply):
    resp = client.post("/api/chat", json={"message": "x" * 501, "conversationHistory": {}})
    assert resp.status_code == 400
    body = resp.json()
    assert body["details"] == [
        "Message must be 500 characters or less",
        "Conversation history must be an array",
    ]
    assert "500 characters" in body["error"]
    gemini_reply.assert_not_called()


def test_chat_empty_message_has_distinct_error(client, configured, gemini_reply):
    resp = client.post("/api/chat", json={"message": "    "})
    assert resp.status_code == 400
    assert resp.json()["details"] == ["Message cannot be empty"]


@pytest.mark.parametrize(
    "ctx",
    [
        {"currentPage": None},
        {"levelId": "level-3"},
        {"userProgress": {"completedLevels": 3}},
    ],
)
def test_chat_accepts_loosely_typed_game_context(client, configured, gemini_reply, ctx):
    resp = client.post("/api/chat", json={"message": "hi", "gameContext": ctx})
    assert resp.status_code == 200
    gemini_reply.assert_awaited_once()


def test_chat_context_that_is_not_an_object_is_rejected(client, configured, gemini_reply):
    resp = client.post("/api/chat", json={"message": "hi", "gameContext": "level 3"})
    assert resp.status_code == 400
    assert resp.json()["details"] == ["Game context must be an object"]


def test_chat_invalid_json_body(client, configured, gemini_reply):
    resp = client.post(
        "/api/chat",
        content=b"{not json",
        headers={"Content-Type": "application/json"},
    )
    assert resp.status_code == 400
    gemini_reply.assert_not_called()


def test_invalid_action_rejected_before_quota(client, chat_limiter, configured, gemini_reply):
    headers = {"X-Forwarded-For": "198.51.100.20"}
    for _ in range(5):
        resp = client.post("/api/chat", json={"message": "hi", "action": "exploit"}, headers=headers)
        assert resp.status_code == 400
        assert resp.json()["details"] == ["Action must be one of: chat, hint, explain"]

    assert chat_limiter.status("198.51.100.20").requests == 0
    gemini_reply.assert_not_called()


def test_chat_quota_exceeded(client, configured, gemini_reply):
    headers = {"X-Forwarded-For": "203.0.113.9, 10.0.0.2"}
    for _ in range(3):
        assert client.post("/api/chat", json={"message": "hi"}, headers=headers).status_code == 200

    resp = client.post("/api/chat", json={"message": "hi"}, headers=headers)
    assert resp.status_code == 429
    body = resp.json()
    assert body["retryAfter"] > 0
    assert body["error"].startswith("Too many requests")
    assert resp.headers["X-RateLimit-Limit"] == "3"
    assert resp.headers["X-RateLimit-Remaining"] == "0"
    assert resp.headers["Retry-After"] == str(body["retryAfter"])
    assert int(resp.headers["X-RateLimit-Reset"]) > 0
    assert gemini_reply.await_count == 3


def test_quota_is_per_forwarded_address(client, configured, gemini_reply):
    for _ in range(3):
        client.post("/api/chat", json={"message": "hi"}, headers={"X-Forwarded-For": "192.0.2.1"})
    blocked = client.post("/api/chat", json={"message": "hi"}, headers={"X-Forwarded-For": "192.0.2.1"})
    other = client.post("/api/chat", json={"message": "hi"}, headers={"X-Forwarded-For": "192.0.2.2"})
    assert blocked.status_code == 429
    assert other.status_code == 200


def test_chat_without_key_is_unavailable(client, unconfigured, gemini_reply):
    resp = client.post("/api/chat", json={"message": "hello"})
    assert resp.status_code == 503
    assert resp.json() == {"error": "Chatbot is currently unavailable. Please contact support."}
    gemini_reply.assert_not_called()


def test_chat_timeout(client, configured):
    with patch("app.clients.gemini_client.generate_text", new=AsyncMock(side_effect=UpstreamTimeoutError())):
        resp = client.post("/api/chat", json={"message": "hello"})
    assert resp.status_code == 504
    assert "longer than expected" in resp.json()["error"]


def test_chat_upstream_error_is_generic(client, configured):
    with patch("app.clients.gemini_client.generate_text", new=AsyncMock(side_effect=UpstreamError())):
        resp = client.post("/api/chat", json={"message": "hello"})
    assert resp.status_code == 500
    assert resp.json() == {"error": "Sorry, I couldn't process that. Please try rephrasing."}


# ──────────────────────────────────────────────────────────────────────────────
# GET endpoints
# ──────────────────────────────────────────────────────────────────────────────

def test_chat_status_configured(client, configured):
    resp = client.get("/api/chat")
    assert resp.status_code == 200
    assert resp.json() == {"status": "ok", "configured": True, "model": "gemini-2.5-flash"}


def test_chat_status_unconfigured(client, unconfigured):
    assert client.get("/api/chat").json()["configured"] is False


def test_rate_limit_status_endpoint(client, configured, gemini_reply):
    headers = {"X-Forwarded-For": "192.0.2.50"}
    client.post("/api/chat", json={"message": "hi"}, headers=headers)
    body = client.get("/api/rate-limit", headers=headers).json()
    assert body["limit"] == 3
    assert body["requests"] == 1
    assert body["remaining"] == 2
    assert body["retryAfter"] == 0


def test_list_levels(client):
    resp = client.get("/api/levels")
    assert resp.status_code == 200
    levels = resp.json()
    assert len(levels) == 6
    assert levels[2]["title"] == "Phishing Attacks"


def test_ping(client):
    assert client.get("/api/ping").json()["status"] == "ok"


def test_security_headers(client):
    resp = client.get("/api/ping")
    assert resp.headers["X-Content-Type-Options"] == "nosniff"
    assert resp.headers["X-Frame-Options"] == "DENY"


def test_production_adds_hsts(client, monkeypatch, settings):
    monkeypatch.setattr(settings, "environment", "production")
    resp = client.get("/api/ping")
    assert resp.headers["Strict-Transport-Security"].startswith("max-age=")


def test_development_omits_hsts(client, monkeypatch, settings):
    monkeypatch.setattr(settings, "environment", "development")
    assert settings.is_development
    assert "Strict-Transport-Security" not in client.get("/api/ping").headers


# ──────────────────────────────────────────────────────────────────────────────
# POST /api/questions/{level_id}
# ──────────────────────────────────────────────────────────────────────────────

def test_generate_questions_endpoint(client, configured, phishing_response):
    with patch("app.clients.gemini_client.generate_text", new=AsyncMock(return_value=phishing_response)):
        resp = client.post("/api/questions/3")
    assert resp.status_code == 200
    body = resp.json()
    assert body["levelId"] == 3
    assert len(body["questions"]) == 7
    assert body["quality"]["totalQuestions"] == 7
    assert "levelSpecific" in body["quality"]
    assert {"levelId", "correctIndex"} <= set(body["questions"][0])


def test_generate_questions_unknown_level(client, configured):
    mock_call = AsyncMock()
    with patch("app.clients.gemini_client.generate_text", new=mock_call):
        resp = client.post("/api/questions/99")
    assert resp.status_code == 404
    assert resp.json() == {"error": "Level with ID 99 not found"}
    mock_call.assert_not_called()


def test_generate_questions_bad_upstream_payload(client, configured):
    with patch("app.clients.gemini_client.generate_text", new=AsyncMock(return_value=json.dumps([]))):
        resp = client.post("/api/questions/2")
    assert resp.status_code == 500
