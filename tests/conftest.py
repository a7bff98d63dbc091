"""Shared fixtures: isolated config dirs and a scripted fake notes service."""

from __future__ import annotations

import json
from typing import Any, Callable, Dict, List, Optional, Tuple

import httpx
import pytest

from codestash.client import NotesClient

BASE = "http://notes.test"


@pytest.fixture(autouse=True)
def isolated_env(tmp_path, monkeypatch):
    monkeypatch.setenv("XDG_CONFIG_HOME", str(tmp_path / "xdg"))
    for name in (
        "CODESTASH_API_BASE_URL",
        "CODESTASH_CLIENT_ID",
        "CODESTASH_CLIENT_SECRET",
        "CODESTASH_TOKEN_PATH",
        "CODESTASH_TIMEOUT",
        "CODESTASH_HTTP_LOG",
        "CODESTASH_DEBUG",
    ):
        monkeypatch.delenv(name, raising=False)


class FakeService:
    """Routes requests to scripted responses and records what was sent."""

    def __init__(self) -> None:
        self.routes: Dict[Tuple[str, str], List[Callable[[httpx.Request], httpx.Response]]] = {}
        self.requests: List[httpx.Request] = []

    def add(self, method: str, path: str, status: int = 200, body: Any = None, raw: Optional[bytes] = None) -> None:
        def respond(request: httpx.Request) -> httpx.Response:
            if raw is not None:
                return httpx.Response(status, content=raw)
            if body is None:
                return httpx.Response(status)
            return httpx.Response(status, json=body)

        self.routes.setdefault((method, path), []).append(respond)

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        queue = self.routes.get((request.method, request.url.path))
        if not queue:
            raise AssertionError(f"unexpected request {request.method} {request.url.path}")
        # the last scripted response repeats
        respond = queue.pop(0) if len(queue) > 1 else queue[0]
        return respond(request)

    def client(self) -> NotesClient:
        return NotesClient(BASE, "cli-id", "cli-secret", transport=httpx.MockTransport(self.handler))

    def json_bodies(self, path: str) -> List[Any]:
        return [json.loads(r.content) for r in self.requests if r.url.path == path]


@pytest.fixture
def service() -> FakeService:
    return FakeService()
