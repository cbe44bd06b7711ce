"""Script engine protocol and the default VapourSynth binding."""
from __future__ import annotations

from .env import configure, ensure_initialized, set_ram_limit
from .types import (
    ClipHandle,
    DecodedFrame,
    EngineError,
    ScriptContext,
    ScriptEngine,
    VideoFormat,
    VideoInfo,
)
from .vapoursynth import VapourSynthEngine

__all__ = [
    "ClipHandle",
    "DecodedFrame",
    "EngineError",
    "ScriptContext",
    "ScriptEngine",
    "VideoFormat",
    "VideoInfo",
    "VapourSynthEngine",
    "configure",
    "ensure_initialized",
    "set_ram_limit",
]
