"""
Pytest configuration and fixtures for Workbench tests.

HTTP is served by FakeBackend through httpx.MockTransport, so no test
touches the network.
"""

from __future__ import annotations

from collections.abc import Callable
from datetime import datetime, timedelta, timezone
from uuid import uuid4

import httpx
import pytest
import pytest_asyncio

from workbench.config import Config
from workbench.services.api_client import ApiClient
from workbench.services.chat_store import ChatStore

API_URL = "http://test/api/v1"
API_PREFIX = "/api/v1"

Handler = Callable[[httpx.Request], httpx.Response]

_BASE_TIME = datetime(2025, 1, 1, tzinfo=timezone.utc)


# ============ Test data ============


def make_message(
    message_id: str | None = None,
    conversation_id: str = "conv-1",
    role: str = "user",
    content: str = "hello",
    input_tokens: int = 0,
    output_tokens: int = 0,
    seconds: int = 0,
) -> dict:
    """Message as the backend serializes it."""
    return {
        "id": message_id or str(uuid4()),
        "conversation_id": conversation_id,
        "role": role,
        "content": content,
        "input_tokens": input_tokens,
        "output_tokens": output_tokens,
        "created_at": (_BASE_TIME + timedelta(seconds=seconds)).isoformat(),
    }


def make_conversation(conversation_id: str = "conv-1", title: str = "Test chat") -> dict:
    return {
        "id": conversation_id,
        "user_id": "user-1",
        "title": title,
        "created_at": _BASE_TIME.isoformat(),
        "updated_at": _BASE_TIME.isoformat(),
    }


def make_detail(conversation_id: str = "conv-1", messages: list[dict] | None = None) -> dict:
    messages = messages or []
    input_tokens = sum(m["input_tokens"] for m in messages)
    output_tokens = sum(m["output_tokens"] for m in messages)
    return {
        **make_conversation(conversation_id),
        "messages": messages,
        "token_stats": {
            "input_tokens": input_tokens,
            "output_tokens": output_tokens,
            "total_tokens": input_tokens + output_tokens,
            "message_count": len(messages),
        },
    }


def make_user(email: str = "ada@example.com") -> dict:
    return {
        "id": "user-1",
        "email": email,
        "name": "Ada",
        "is_active": True,
        "is_verified": True,
        "created_at": _BASE_TIME.isoformat(),
        "updated_at": _BASE_TIME.isoformat(),
    }


def sse_body(*chunks: str | bytes):
    """Async byte stream that yields each chunk as a separate network read."""

    async def gen():
        for chunk in chunks:
            yield chunk.encode() if isinstance(chunk, str) else chunk

    return gen()


# ============ Fake backend ============


class FakeBackend:
    """Routes requests by (method, path) and records every request it sees."""

    def __init__(self):
        self.routes: dict[tuple[str, str], Handler] = {}
        self.requests: list[httpx.Request] = []

    def route(self, method: str, path: str, handler: Handler):
        self.routes[(method, path)] = handler

    def json(self, method: str, path: str, body, status: int = 200):
        """Register a route that always answers with `body` as JSON."""
        self.route(method, path, lambda request: httpx.Response(status, json=body))

    def handle(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        path = request.url.path
        if path.startswith(API_PREFIX):
            path = path[len(API_PREFIX):]
        handler = self.routes.get((request.method, path))
        if handler is None:
            return httpx.Response(404, json={"detail": "Not Found"})
        return handler(request)

    def calls(self) -> list[tuple[str, str]]:
        return [
            (r.method, r.url.path[len(API_PREFIX):] if r.url.path.startswith(API_PREFIX) else r.url.path)
            for r in self.requests
        ]


# ============ Fixtures ============


@pytest.fixture
def config(tmp_path, monkeypatch) -> Config:
    """Config in a temp dir, logged in to the fake backend."""
    monkeypatch.delenv("WORKBENCH_API_URL", raising=False)
    cfg = Config(api_url_override=API_URL, config_dir=tmp_path)
    cfg.set_tokens("test-access-token", "test-refresh-token")
    return cfg


@pytest.fixture
def backend() -> FakeBackend:
    return FakeBackend()


@pytest_asyncio.fixture
async def api(config, backend):
    client = ApiClient(config, transport=httpx.MockTransport(backend.handle))
    yield client
    await client.close()


@pytest.fixture
def chat(api) -> ChatStore:
    """Chat store without persistence."""
    return ChatStore(api)
