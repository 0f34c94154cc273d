"""
Shared fakes: resolver, HTTP session, sink and a sleep that only records.
"""

from __future__ import annotations

import pytest

from liverelay.errors import ResolverError
from liverelay.resolver import Resolution, Resolver


class FakeResolver(Resolver):
    """Returns scripted results in order; the last one repeats."""

    def __init__(self, *results):
        self.results = list(results)
        self.calls = 0

    def resolve(self, identifier: str) -> Resolution | None:
        self.calls += 1
        result = self.results[min(self.calls, len(self.results)) - 1]
        if isinstance(result, Exception):
            raise result
        return result


class FakeResponse:
    def __init__(self, status_code=200, body=b"", headers=None, error=None):
        self.status_code = status_code
        self.body = body
        self.headers = headers or {}
        self.error = error
        self.closed = False

    def iter_content(self, chunk_size=1):
        for i in range(0, len(self.body), chunk_size):
            yield self.body[i : i + chunk_size]
        if self.error:
            raise self.error

    def close(self):
        self.closed = True

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        self.close()


class FakeSession:
    """Maps a URL to a list of responses (or exceptions); the last one repeats."""

    def __init__(self, routes=None):
        self.routes = {url: list(r) for url, r in (routes or {}).items()}
        self.requests: list[str] = []

    def get(self, url, **kwargs):
        self.requests.append(url)
        queue = self.routes.get(url)
        if not queue:
            return FakeResponse(404)
        item = queue.pop(0) if len(queue) > 1 else queue[0]
        if isinstance(item, Exception):
            raise item
        return item


class MemorySink:
    def __init__(self):
        self.data = bytearray()
        self.closed = False

    def write(self, data: bytes) -> int:
        self.data += data
        return len(data)

    def close(self) -> None:
        self.closed = True


class RecordingSleep:
    def __init__(self):
        self.calls: list[float] = []

    def __call__(self, seconds: float) -> None:
        self.calls.append(seconds)


@pytest.fixture
def sleep():
    return RecordingSleep()


@pytest.fixture
def sink():
    return MemorySink()


def transient(message: str = "boom") -> ResolverError:
    return ResolverError(message)
