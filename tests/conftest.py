"""Pytest configuration and fixtures."""

import sys
from pathlib import Path
from typing import List

import pytest

# Add the project root to the Python path
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

from catalog_mirror.lib.state import MemoryStateStore  # noqa: E402
from catalog_mirror.lib.store import MemoryDocumentStore  # noqa: E402
from tests.fakes import FakeCatalog, RecordingNotifier, make_subjects  # noqa: E402


@pytest.fixture
def store():
    return MemoryDocumentStore()


@pytest.fixture
def state_store():
    return MemoryStateStore()


@pytest.fixture
def notifier():
    return RecordingNotifier()


@pytest.fixture
def fake_catalog():
    return FakeCatalog(make_subjects(10))


@pytest.fixture
def no_sleep():
    """Sleep replacement that records requested delays."""
    delays: List[float] = []

    def sleep(seconds: float) -> None:
        delays.append(seconds)

    sleep.delays = delays  # type: ignore[attr-defined]
    return sleep
