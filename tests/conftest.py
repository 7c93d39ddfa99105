"""Shared pytest fixtures for the siteembed test suite."""

from __future__ import annotations

import json
from collections.abc import Callable
from pathlib import Path
from types import SimpleNamespace
from typing import Any, Iterable, Sequence

import httpx
import pytest

from siteembed.modules.embeddings.database import ensure_schema


class RecordingLogger:
    """Structlog-compatible stub capturing events for assertions."""

    def __init__(self, context: dict[str, Any] | None = None) -> None:
        self.context = dict(context or {})
        self.events: list[tuple[str, str, dict[str, Any]]] = []

    def _record(self, level: str, event: str, **kwargs: Any) -> None:
        self.events.append((level, event, {**self.context, **kwargs}))

    def debug(self, event: str, **kwargs: Any) -> None:
        self._record("debug", event, **kwargs)

    def info(self, event: str, **kwargs: Any) -> None:
        self._record("info", event, **kwargs)

    def warning(self, event: str, **kwargs: Any) -> None:
        self._record("warning", event, **kwargs)

    def error(self, event: str, **kwargs: Any) -> None:
        self._record("error", event, **kwargs)

    def exception(self, event: str, **kwargs: Any) -> None:
        self._record("exception", event, **kwargs)

    def bind(self, **kwargs: Any) -> "RecordingLogger":
        # Share the event list so bound children report to the same sink.
        child = RecordingLogger({**self.context, **kwargs})
        child.events = self.events
        return child

    def names(self, level: str | None = None) -> list[str]:
        return [
            event
            for event_level, event, _ in self.events
            if level is None or event_level == level
        ]


class FakeEmbeddingsAPI:
    """Stub embeddings API returning scripted vectors or raising errors."""

    def __init__(self, script: Iterable[Sequence[float] | Exception]) -> None:
        self._script = list(script)
        self.calls: list[tuple[str, str]] = []

    def create(self, *, model: str, input: str) -> SimpleNamespace:
        self.calls.append((model, input))
        if not self._script:
            raise AssertionError("unexpected OpenAI call")
        item = self._script.pop(0)
        if isinstance(item, Exception):
            raise item
        return SimpleNamespace(
            data=[SimpleNamespace(embedding=list(item))],
            model=model,
            usage=SimpleNamespace(prompt_tokens=7, total_tokens=7),
        )


class FakeOpenAIClient:
    """Container exposing an ``embeddings`` attribute like the SDK client."""

    def __init__(self, script: Iterable[Sequence[float] | Exception]) -> None:
        self.embeddings = FakeEmbeddingsAPI(script)


class RecordingTransport:
    """Route requests to a handler while keeping every request."""

    def __init__(self, handler: Callable[[httpx.Request], httpx.Response]):
        self.requests: list[httpx.Request] = []
        self._handler = handler
        self.transport = httpx.MockTransport(self._dispatch)

    def _dispatch(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        return self._handler(request)

    def bodies(self) -> list[Any]:
        return [
            json.loads(request.content) if request.content else None
            for request in self.requests
        ]

    def paths(self) -> list[str]:
        return [request.url.path for request in self.requests]


@pytest.fixture
def logger() -> RecordingLogger:
    return RecordingLogger()


@pytest.fixture
def fake_openai() -> Callable[..., FakeOpenAIClient]:
    def _build(*script: Sequence[float] | Exception) -> FakeOpenAIClient:
        return FakeOpenAIClient(script)

    return _build


@pytest.fixture
def recording_transport() -> Callable[..., RecordingTransport]:
    def _build(
        handler: Callable[[httpx.Request], httpx.Response],
    ) -> RecordingTransport:
        return RecordingTransport(handler)

    return _build


@pytest.fixture
def database_path(tmp_path: Path) -> Path:
    path = tmp_path / "siteembed.sqlite3"
    ensure_schema(path)
    return path
