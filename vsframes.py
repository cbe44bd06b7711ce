"""Public shim exposing the vsframes CLI and library surface."""

from __future__ import annotations

from typing import Callable, cast

import src.vsframes.cli_entry as _cli_entry
from src.vsframes import (
    EngineInitError,
    FrameDecodeError,
    FrameJob,
    FrameServer,
    FrameWorkerPool,
    NoOutputError,
    RequestState,
    ScriptEvaluationError,
    Session,
    SessionError,
    UnsupportedClipError,
    VSFramesError,
    fetch_frame,
    frame_byte_size,
    pack_planes,
    plane_layout,
)

__all__ = (
    "main",
    "FrameServer",
    "Session",
    "FrameJob",
    "FrameWorkerPool",
    "RequestState",
    "fetch_frame",
    "pack_planes",
    "frame_byte_size",
    "plane_layout",
    "VSFramesError",
    "EngineInitError",
    "SessionError",
    "ScriptEvaluationError",
    "NoOutputError",
    "UnsupportedClipError",
    "FrameDecodeError",
)


main = _cli_entry.main
cli = getattr(_cli_entry, "cli", main)


if __name__ == "__main__":
    _entry_point = cast(Callable[[], None], main)
    _entry_point()
