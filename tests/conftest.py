from __future__ import annotations

from collections.abc import Iterator

import pytest
from click.testing import CliRunner

from src.vsframes.session import Session
from src.vsframes.worker import FrameWorkerPool
from tests.helpers.fake_engine import FakeEngine, make_info


@pytest.fixture
def fake_engine() -> FakeEngine:
    """Engine producing a 4x4 YUV420P8 clip with ten frames and padded strides."""

    return FakeEngine(make_info(), padding=3)


@pytest.fixture
def session(fake_engine: FakeEngine) -> Iterator[Session]:
    """Open a session against ``fake_engine`` and close it after the test."""

    opened = Session.open(b"clip.set_output()", "/scripts/clip.vpy", engine=fake_engine)
    yield opened
    opened.close()


@pytest.fixture
def pool() -> Iterator[FrameWorkerPool]:
    """Provide a small worker pool that is shut down after the test."""

    workers = FrameWorkerPool(max_workers=2, thread_name_prefix="vsframes-test")
    yield workers
    workers.shutdown()


@pytest.fixture
def runner() -> CliRunner:
    """Provide a Click runner configured for CLI smoke tests."""

    return CliRunner()
