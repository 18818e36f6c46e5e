from __future__ import annotations

import os
from typing import Any, Callable, Iterator

import pytest

from p4kit.core.p4 import Session
from tests.fixtures.p4 import FakeConnection


@pytest.fixture
def fake_connection() -> FakeConnection:
    return FakeConnection()


@pytest.fixture
def make_session(fake_connection: FakeConnection) -> Callable[..., Session]:
    """Build a Session on top of ``fake_connection`` (no path translation by default)."""

    def _make(**options: Any) -> Session:
        options.setdefault("user", "iggy")
        options.setdefault("client", "iggy_ws")
        options.setdefault("platform", "linux")
        return Session(connection_factory=lambda: fake_connection, **options)

    return _make


@pytest.fixture
def restore_cwd() -> Iterator[str]:
    previous = os.getcwd()
    yield previous
    os.chdir(previous)
