"""Pytest configuration - loads .env for acceptance tests, fake transport for unit tests."""

import io
import json
import urllib.error
from pathlib import Path
from typing import Any

import pytest
from dotenv import load_dotenv

from circleci_provider.core.client import ApiClient

# Load .env from project root
env_path = Path(__file__).parent.parent / ".env"
load_dotenv(env_path)


class FakeResponse:
    """Stand-in for http.client.HTTPResponse."""

    def __init__(self, status: int = 200, body: Any = None, headers: dict[str, str] | None = None):
        self.status = status
        if body is None:
            self._body = b""
        elif isinstance(body, bytes):
            self._body = body
        elif isinstance(body, str):
            self._body = body.encode("utf-8")
        else:
            self._body = json.dumps(body).encode("utf-8")
        self.headers = headers or {"Content-Type": "application/json"}
        self.closed = False

    def read(self) -> bytes:
        return self._body

    def close(self) -> None:
        self.closed = True


def http_error(status: int, body: bytes = b"") -> urllib.error.HTTPError:
    """Build the HTTPError urllib raises for error statuses."""
    return urllib.error.HTTPError("https://circleci.test/", status, "error", {}, io.BytesIO(body))


class FakeOpener:
    """Records requests and replays queued responses (or raises queued exceptions)."""

    def __init__(self):
        self.requests: list[Any] = []
        self.kwargs: list[dict[str, Any]] = []
        self._queue: list[Any] = []

    def queue(self, *items: Any) -> "FakeOpener":
        self._queue.extend(items)
        return self

    def open(self, req, **kwargs):
        self.requests.append(req)
        self.kwargs.append(kwargs)
        if not self._queue:
            raise AssertionError(f"unexpected request: {req.get_method()} {req.full_url}")
        item = self._queue.pop(0)
        if isinstance(item, BaseException):
            raise item
        return item

    @property
    def last(self):
        return self.requests[-1]

    def bodies(self) -> list[Any]:
        return [json.loads(r.data) if r.data else None for r in self.requests]


@pytest.fixture
def opener() -> FakeOpener:
    return FakeOpener()


@pytest.fixture
def client(opener: FakeOpener) -> ApiClient:
    return ApiClient(token="test-token", base_url="https://circleci.test/api/v1.1/", opener=opener)
