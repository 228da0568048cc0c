import time
from types import SimpleNamespace

import pytest

from notion_fakes import FakeNotion


@pytest.fixture
def fake():
    """A fresh fake Notion server."""
    return FakeNotion()


@pytest.fixture(autouse=True)
def sleeps(monkeypatch):
    """Record 429 back-off sleeps instead of waiting them out.

    Only the transport module's view of ``time`` is replaced; the request
    limiter keeps real time.
    """
    recorded = []
    monkeypatch.setattr(
        "notion_graph.transport.time",
        SimpleNamespace(sleep=recorded.append, monotonic=time.monotonic),
    )
    return recorded
