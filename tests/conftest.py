"""Pytest configuration and shared fixtures."""

from __future__ import annotations

import json
import os

import pytest


class _DummyFunction:
    def __init__(self, arguments: str):
        self.arguments = arguments


class _DummyToolCall:
    def __init__(self, arguments: str):
        self.function = _DummyFunction(arguments)


class _DummyMessage:
    def __init__(self, content: str | None, tool_calls: list[object] | None = None):
        self.content = content
        self.tool_calls = tool_calls


class _DummyChoice:
    def __init__(self, message: _DummyMessage):
        self.message = message


class _DummyUsage:
    def __init__(self, total_tokens: int):
        self.total_tokens = total_tokens


class _DummyResponse:
    def __init__(self, message: _DummyMessage, total_tokens: int = 0):
        self.choices = [_DummyChoice(message)]
        self.usage = _DummyUsage(total_tokens)


@pytest.fixture(autouse=True)
def _isolated_env(monkeypatch):
    """Keep MATCHING_* variables and cached singletons out of tests."""
    from jobmatch.config.settings import reset_settings
    from jobmatch.matching.config import reset_matching_config
    from jobmatch.utils.logging import reset_logging

    for key in list(os.environ):
        if key.startswith("MATCHING_") or key in {"CACHE_BACKEND", "CACHE_DB_PATH", "LOG_LEVEL"}:
            monkeypatch.delenv(key, raising=False)
    reset_settings()
    reset_matching_config()
    yield
    reset_settings()
    reset_matching_config()
    reset_logging()


@pytest.fixture
def matching_config():
    """A MatchingConfig that ignores .env files."""
    from jobmatch.matching.config import MatchingConfig

    def _make(**overrides):
        return MatchingConfig(_env_file=None, **overrides)  # type: ignore[call-arg]

    return _make


@pytest.fixture
def make_candidate():
    """Factory for JobCandidate instances with sensible defaults."""
    from jobmatch.matching.models import JobCandidate

    def _make(
        id: str,
        title: str = "Analyst",
        city: str = "London",
        source: str = "indeed",
        **kwargs,
    ) -> JobCandidate:
        kwargs.setdefault("company", "Acme")
        return JobCandidate(id=id, title=title, city=city, source=source, **kwargs)

    return _make


@pytest.fixture
def llm_response():
    """Build a LiteLLM-shaped response object from content or JSON data."""

    def _make(
        content: object = None,
        *,
        tool_arguments: str | None = None,
        total_tokens: int = 0,
    ) -> _DummyResponse:
        if content is not None and not isinstance(content, str):
            content = json.dumps(content)
        tool_calls = [_DummyToolCall(tool_arguments)] if tool_arguments else None
        return _DummyResponse(_DummyMessage(content, tool_calls), total_tokens)

    return _make


@pytest.fixture
def london_berlin_pool(make_candidate):
    """20 London finance postings and 20 unrelated Berlin postings."""
    london = [
        make_candidate(
            f"ldn-{i:02d}",
            title=f"Graduate Finance Analyst {i}",
            city="London",
            source="indeed" if i % 2 else "reed",
            description="Support the finance team with reporting and forecasting.",
        )
        for i in range(20)
    ]
    berlin = [
        make_candidate(
            f"ber-{i:02d}",
            title=f"Warehouse Associate {i}",
            city="Berlin",
            source="stepstone" if i % 2 else "linkedin",
            description="Pick and pack orders in our fulfilment centre.",
        )
        for i in range(20)
    ]
    return london + berlin
