"""Serve decoded VapourSynth frames as packed byte buffers."""
from __future__ import annotations

from .api import FrameServer
from .engine.types import VideoFormat, VideoInfo
from .errors import (
    EngineInitError,
    FrameDecodeError,
    NoOutputError,
    ScriptEvaluationError,
    SessionError,
    UnsupportedClipError,
    VSFramesError,
)
from .layout import PlaneLayout, frame_byte_size, legacy_frame_byte_size, plane_layout
from .session import Session
from .worker import FrameJob, FrameWorkerPool, RequestState, fetch_frame, pack_planes

__all__ = [
    "FrameServer",
    "Session",
    "FrameJob",
    "FrameWorkerPool",
    "RequestState",
    "fetch_frame",
    "pack_planes",
    "PlaneLayout",
    "plane_layout",
    "frame_byte_size",
    "legacy_frame_byte_size",
    "VideoFormat",
    "VideoInfo",
    "VSFramesError",
    "EngineInitError",
    "SessionError",
    "ScriptEvaluationError",
    "NoOutputError",
    "UnsupportedClipError",
    "FrameDecodeError",
]
