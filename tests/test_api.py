"""
Tests for the status API.
"""

import pytest
from fastapi.testclient import TestClient

from conftest import FakeResolver, FakeResponse, FakeSession
from liverelay.fetcher import SegmentFetcher
from liverelay.reader import LiveReader
from liverelay.refresher import Refresher
from liverelay.resolver import Resolution
from liverelay.state import StreamState
from liverelay.status import create_app


@pytest.fixture
def reader(sleep):
    state = StreamState()
    resolver = FakeResolver(Resolution("http://o/live", 5), None)
    session = FakeSession({"http://o/live/sq/3": [FakeResponse(200, b"seg3")]})
    return LiveReader(
        state,
        Refresher("video", resolver, state, sleep=sleep),
        SegmentFetcher(session, sleep=sleep),
    )


@pytest.fixture
def client(reader):
    """Create a test client."""
    with TestClient(create_app(reader)) as client:
        yield client


def test_healthz(client):
    response = client.get("/healthz")
    assert response.status_code == 200
    assert response.json() == {"status": "ok"}


def test_status_before_start(client):
    response = client.get("/api/status")
    assert response.status_code == 200
    data = response.json()
    assert data["state"] == "initializing"
    assert data["terminal"] is False
    assert data["base_url"] == ""
    assert data["segments_forwarded"] == 0


def test_status_after_stream_ended(client, reader, sink):
    reader.run(sink)

    data = client.get("/api/status").json()
    assert data["state"] == "ended"
    assert data["terminal"] is True
    assert data["base_url"] == "http://o/live"
    assert data["next_segment_index"] == 4
    assert data["segments_forwarded"] == 1
    assert data["bytes_forwarded"] == 4
    assert data["refreshes"] == 1
