"""
Pytest configuration and shared fixtures for Thoughtflow tests.
"""

import threading
import time
from datetime import datetime, timezone
from typing import Any, Callable

import pytest

from thoughtflow.config import get_default_config
from thoughtflow.db import Database


class FakeClient:
    """ClassifierClient double that records calls and replays a canned answer."""

    def __init__(
        self,
        response: dict[str, Any] | Callable[[str, str], dict[str, Any]] | None = None,
        error: Exception | None = None,
        delay: float = 0.0,
    ):
        self.response = response if response is not None else {}
        self.error = error
        self.delay = delay
        self.calls: list[dict[str, Any]] = []
        self._lock = threading.Lock()

    def complete_json(
        self,
        developer_prompt: str,
        user_prompt: str,
        temperature: float = 0.3,
        max_tokens: int = 1500,
    ) -> dict[str, Any]:
        with self._lock:
            self.calls.append({
                "developer_prompt": developer_prompt,
                "user_prompt": user_prompt,
                "temperature": temperature,
                "max_tokens": max_tokens,
            })
        if self.delay:
            time.sleep(self.delay)
        if self.error is not None:
            raise self.error
        if callable(self.response):
            return self.response(developer_prompt, user_prompt)
        return self.response


@pytest.fixture(autouse=True)
def isolated_env(tmp_path, monkeypatch):
    """Keep every test away from the real config, data home and API keys."""
    monkeypatch.setenv("XDG_CONFIG_HOME", str(tmp_path / "config"))
    monkeypatch.setenv("THOUGHTFLOW_HOME", str(tmp_path / "home"))
    monkeypatch.delenv("OPENAI_API_KEY", raising=False)
    monkeypatch.delenv("ANTHROPIC_API_KEY", raising=False)


@pytest.fixture
def db(tmp_path):
    """Database backed by a temporary file."""
    return Database(tmp_path / "test_thoughtflow.db")


@pytest.fixture
def fake_client():
    """Factory for FakeClient instances."""
    return FakeClient


@pytest.fixture
def config():
    """Default config tuned so tests never sleep."""
    cfg = get_default_config()
    cfg["learning"]["retry_delay_seconds"] = 0.0
    cfg["batch"]["delay_seconds"] = 0.0
    cfg["classifier"]["fallback_sla_seconds"] = 5.0
    return cfg


@pytest.fixture
def now():
    """A fixed Saturday morning."""
    return datetime(2026, 10, 17, 10, 0, tzinfo=timezone.utc)


@pytest.fixture
def sarah_response():
    """What a healthy classifier says about the canonical example."""
    return {
        "category": "task",
        "folder": "Work",
        "project": "Q4 Planning",
        "subfolder": "Budget",
        "title": "Call Sarah - Q4 Budget Discussion",
        "cleanedText": "Call Sarah tomorrow at 3pm to discuss Q4 budget.",
        "summary": "Schedule call with Sarah to discuss the Q4 budget",
        "tags": ["sarah", "q4-budget", "call"],
        "priority": "high",
        "actionItems": ["Call Sarah at 3pm tomorrow"],
        "dueDate": "2026-10-18",
        "reminders": [{"text": "Call Sarah about Q4 budget", "date": "2026-10-18", "type": "once"}],
        "entities": {
            "people": ["Sarah"],
            "places": [],
            "dates": ["tomorrow", "3pm"],
            "amounts": [],
            "topics": ["Q4 budget"],
            "tools": [],
        },
        "linkedThoughts": ["Q4 Planning"],
        "suggestedActions": ["Send calendar invite to Sarah"],
        "confidence": 0.95,
        "reasoning": "Clear action item with a person, a time and a topic",
    }
