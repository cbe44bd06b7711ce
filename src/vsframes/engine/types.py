"""Protocol describing the script engine consumed by sessions and workers."""
from __future__ import annotations

from dataclasses import dataclass
from typing import Optional, Protocol, runtime_checkable


class EngineError(RuntimeError):
    """Raised by engine implementations when a clip operation fails."""


@dataclass(frozen=True)
class VideoFormat:
    """Colour format description copied out of the engine."""

    name: str
    bytes_per_sample: int
    subsampling_w: int
    subsampling_h: int
    num_planes: int


@dataclass(frozen=True)
class VideoInfo:
    """Immutable snapshot of a clip's geometry, timing and format."""

    width: int
    height: int
    num_frames: int
    fps_num: int
    fps_den: int
    format: Optional[VideoFormat]

    @property
    def is_constant_format(self) -> bool:
        return self.format is not None and self.width > 0 and self.height > 0


@runtime_checkable
class DecodedFrame(Protocol):
    def get_stride(self, plane: int) -> int: ...

    def get_read_buffer(self, plane: int) -> memoryview: ...

    def get_plane_width(self, plane: int) -> int: ...

    def get_plane_height(self, plane: int) -> int: ...

    def release(self) -> None: ...


@runtime_checkable
class ClipHandle(Protocol):
    def video_info(self) -> VideoInfo: ...

    def get_frame(self, frame: int) -> DecodedFrame: ...

    def release(self) -> None: ...


@runtime_checkable
class ScriptContext(Protocol):
    @property
    def error(self) -> Optional[str]: ...

    def get_output(self, index: int = 0) -> Optional[ClipHandle]: ...

    def release(self) -> None: ...


@runtime_checkable
class ScriptEngine(Protocol):
    def initialize(self) -> None: ...

    def evaluate(self, script: bytes, path: str) -> ScriptContext: ...


__all__ = [
    "EngineError",
    "VideoFormat",
    "VideoInfo",
    "DecodedFrame",
    "ClipHandle",
    "ScriptContext",
    "ScriptEngine",
]
