"""Pytest configuration helpers.

Puts the project root on sys.path so tests can import the package without
an install, and provides storage fixtures over an in-memory client.
"""
import sys
from pathlib import Path
from types import SimpleNamespace

import pytest


def pytest_configure(config):
    repo_root = Path(__file__).resolve().parents[1]
    sys.path.insert(0, str(repo_root))


@pytest.fixture
def sleeps(monkeypatch):
    """Replace the retry backoff sleep and record requested delays."""
    from katelyatv import retry

    recorded = []

    async def fake_sleep(delay):
        recorded.append(delay)

    # swap the module reference so only the retry loop sees the fake
    monkeypatch.setattr(retry, "asyncio", SimpleNamespace(sleep=fake_sleep))
    return recorded


@pytest.fixture
def owner(monkeypatch):
    monkeypatch.setenv("USERNAME", "admin")
    return "admin"


@pytest.fixture(params=["kvrocks", "redis"])
def storage(request, owner):
    from katelyatv.storage import build_storage
    from tests.helpers import InMemoryRedis

    return build_storage(request.param, client=InMemoryRedis())
