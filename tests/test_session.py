from __future__ import annotations

import pytest

from src.vsframes.engine.types import EngineError
from src.vsframes.errors import (
    NoOutputError,
    ScriptEvaluationError,
    SessionError,
    UnsupportedClipError,
)
from src.vsframes.session import Session
from tests.helpers.fake_engine import FakeEngine, make_info


def test_open_binds_validated_clip(fake_engine: FakeEngine) -> None:
    session = Session.open("clip.set_output()", "/scripts/clip.vpy", engine=fake_engine)

    assert fake_engine.initialize_calls == 1
    assert fake_engine.evaluations == [(b"clip.set_output()", "/scripts/clip.vpy")]
    assert session.info.num_frames == 10
    assert session.info.width == 4
    assert session.frame_size == 24
    assert session.path == "/scripts/clip.vpy"
    assert session.closed is False
    assert session.clip is fake_engine.clip


def test_evaluation_failure_reports_path_and_diagnostic() -> None:
    engine = FakeEngine(error="NameError: name 'core' is not defined")

    with pytest.raises(ScriptEvaluationError) as excinfo:
        Session.open(b"bad", "/scripts/bad.vpy", engine=engine)

    assert str(excinfo.value) == "Failed to evaluate /scripts/bad.vpy: NameError: name 'core' is not defined"
    assert excinfo.value.path == "/scripts/bad.vpy"
    assert engine.contexts[0].released is True


def test_evaluation_failure_without_diagnostic() -> None:
    engine = FakeEngine(error="")

    with pytest.raises(ScriptEvaluationError, match=r"^Failed to evaluate /s\.vpy$"):
        Session.open(b"bad", "/s.vpy", engine=engine)


def test_missing_output_releases_context() -> None:
    engine = FakeEngine(no_output=True)

    with pytest.raises(NoOutputError):
        Session.open(b"pass", "/scripts/empty.vpy", engine=engine)

    assert engine.release_log == ["context"]


@pytest.mark.parametrize(
    "info",
    [
        make_info(fmt=None),
        make_info(width=0, height=0),
        make_info(num_frames=0),
    ],
    ids=["variable-format", "variable-dimensions", "zero-frames"],
)
def test_unsupported_clip_releases_clip_then_context(info) -> None:
    engine = FakeEngine(info)

    with pytest.raises(UnsupportedClipError) as excinfo:
        Session.open(b"clip", "/scripts/odd.vpy", engine=engine)

    assert excinfo.value.info == info
    assert isinstance(excinfo.value, SessionError)
    assert engine.release_log == ["clip", "context"]


def test_metadata_failure_releases_clip_then_context() -> None:
    engine = FakeEngine(make_info(), info_error=EngineError("metadata unavailable"))

    with pytest.raises(EngineError, match="metadata unavailable"):
        Session.open(b"clip", "/scripts/broken.vpy", engine=engine)

    assert engine.release_log == ["clip", "context"]


def test_output_lookup_failure_releases_context() -> None:
    engine = FakeEngine(make_info(), output_error=EngineError("output table corrupted"))

    with pytest.raises(EngineError, match="output table corrupted"):
        Session.open(b"clip", "/scripts/broken.vpy", engine=engine)

    assert engine.release_log == ["context"]
    assert engine.clip.released is False


def test_repeated_failures_leave_nothing_allocated() -> None:
    engine = FakeEngine(make_info(num_frames=0))

    for _ in range(25):
        with pytest.raises(UnsupportedClipError):
            Session.open(b"clip", "/scripts/odd.vpy", engine=engine)

    assert all(context.released for context in engine.contexts)
    assert all(clip.released for clip in engine.clips)
    assert len(engine.contexts) == 25


def test_close_releases_in_order_and_is_idempotent(fake_engine: FakeEngine) -> None:
    session = Session.open(b"clip", "/scripts/clip.vpy", engine=fake_engine)

    session.close()
    session.close()

    assert fake_engine.release_log == ["clip", "context"]
    assert session.closed is True
    with pytest.raises(RuntimeError, match="closed"):
        _ = session.clip


def test_context_manager_closes_session(fake_engine: FakeEngine) -> None:
    with Session.open(b"clip", "/scripts/clip.vpy", engine=fake_engine) as session:
        assert not session.closed

    assert session.closed
    assert fake_engine.contexts[0].released
