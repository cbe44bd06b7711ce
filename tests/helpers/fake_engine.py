"""In-memory script engine used to exercise sessions and workers without VapourSynth."""

from __future__ import annotations

import threading
from dataclasses import dataclass
from typing import Callable, Dict, List, Optional, Sequence

from src.vsframes.engine.types import EngineError, VideoFormat, VideoInfo

YUV420P8 = VideoFormat(name="YUV420P8", bytes_per_sample=1, subsampling_w=1, subsampling_h=1, num_planes=3)
YUV420P16 = VideoFormat(name="YUV420P16", bytes_per_sample=2, subsampling_w=1, subsampling_h=1, num_planes=3)
YUV422P10 = VideoFormat(name="YUV422P10", bytes_per_sample=2, subsampling_w=1, subsampling_h=0, num_planes=3)
YUV444P8 = VideoFormat(name="YUV444P8", bytes_per_sample=1, subsampling_w=0, subsampling_h=0, num_planes=3)
GRAY8 = VideoFormat(name="Gray8", bytes_per_sample=1, subsampling_w=0, subsampling_h=0, num_planes=1)

_PADDING_BYTE = 0xEE


def make_info(
    *,
    width: int = 4,
    height: int = 4,
    num_frames: int = 10,
    fmt: Optional[VideoFormat] = YUV420P8,
    fps: tuple[int, int] = (24000, 1001),
) -> VideoInfo:
    return VideoInfo(
        width=width,
        height=height,
        num_frames=num_frames,
        fps_num=fps[0],
        fps_den=fps[1],
        format=fmt,
    )


def _plane_dims(info: VideoInfo, plane: int) -> tuple[int, int]:
    fmt = info.format
    assert fmt is not None
    if plane == 0:
        return info.width, info.height
    return info.width >> fmt.subsampling_w, info.height >> fmt.subsampling_h


def _row_bytes(frame: int, plane: int, row: int, row_size: int) -> bytes:
    return bytes((frame * 37 + plane * 11 + row * 5 + column) % 0xE0 for column in range(row_size))


def expected_packed(info: VideoInfo, frame: int) -> bytes:
    """Return the tightly packed bytes a fake frame should produce."""

    fmt = info.format
    assert fmt is not None
    packed = bytearray()
    for plane in range(fmt.num_planes):
        width, height = _plane_dims(info, plane)
        row_size = width * fmt.bytes_per_sample
        for row in range(height):
            packed += _row_bytes(frame, plane, row, row_size)
    return bytes(packed)


@dataclass
class FakePlane:
    width: int
    height: int
    stride: int
    data: bytes


class FakeFrame:
    def __init__(self, planes: Sequence[FakePlane]) -> None:
        self.planes = list(planes)
        self.released = False

    def get_stride(self, plane: int) -> int:
        return self.planes[plane].stride

    def get_read_buffer(self, plane: int) -> memoryview:
        return memoryview(self.planes[plane].data)

    def get_plane_width(self, plane: int) -> int:
        return self.planes[plane].width

    def get_plane_height(self, plane: int) -> int:
        return self.planes[plane].height

    def release(self) -> None:
        self.released = True


def build_frame(info: VideoInfo, frame: int, *, padding: int = 0) -> FakeFrame:
    """Build a frame whose rows carry *padding* trailing bytes beyond the logical row."""

    fmt = info.format
    assert fmt is not None
    planes: List[FakePlane] = []
    for plane in range(fmt.num_planes):
        width, height = _plane_dims(info, plane)
        row_size = width * fmt.bytes_per_sample
        data = bytearray()
        for row in range(height):
            data += _row_bytes(frame, plane, row, row_size)
            data += bytes([_PADDING_BYTE]) * padding
        planes.append(FakePlane(width=width, height=height, stride=row_size + padding, data=bytes(data)))
    return FakeFrame(planes)


class FakeClip:
    def __init__(
        self,
        info: VideoInfo,
        *,
        padding: int = 0,
        failing: Sequence[int] = (),
        error_message: str = "decoder exploded",
        release_log: Optional[List[str]] = None,
        before_decode: Optional[Callable[[int], None]] = None,
        info_error: Optional[BaseException] = None,
    ) -> None:
        self.info = info
        self.padding = padding
        self.failing = set(failing)
        self.error_message = error_message
        self.release_log = release_log if release_log is not None else []
        self.before_decode = before_decode
        self.info_error = info_error
        self.released = False
        self.frames: List[FakeFrame] = []
        self.requested: List[int] = []
        self._lock = threading.Lock()

    def video_info(self) -> VideoInfo:
        if self.info_error is not None:
            raise self.info_error
        return self.info

    def get_frame(self, frame: int) -> FakeFrame:
        with self._lock:
            self.requested.append(frame)
        if self.before_decode is not None:
            self.before_decode(frame)
        if frame in self.failing or not 0 <= frame < self.info.num_frames:
            raise EngineError(self.error_message)
        decoded = build_frame(self.info, frame, padding=self.padding)
        with self._lock:
            self.frames.append(decoded)
        return decoded

    def release(self) -> None:
        self.released = True
        self.release_log.append("clip")


class FakeContext:
    def __init__(
        self,
        clip: Optional[FakeClip],
        error: Optional[str],
        release_log: List[str],
        output_error: Optional[BaseException] = None,
    ) -> None:
        self._clip = clip
        self.output_error = output_error
        self._error = error
        self.release_log = release_log
        self.released = False

    @property
    def error(self) -> Optional[str]:
        return self._error

    def get_output(self, index: int = 0) -> Optional[FakeClip]:
        if self.output_error is not None:
            raise self.output_error
        return self._clip if index == 0 else None

    def release(self) -> None:
        self.released = True
        self.release_log.append("context")


class FakeEngine:
    """Engine returning a preconfigured clip (or error) from every evaluation."""

    def __init__(
        self,
        info: Optional[VideoInfo] = None,
        *,
        error: Optional[str] = None,
        no_output: bool = False,
        output_error: Optional[BaseException] = None,
        **clip_options: object,
    ) -> None:
        self.info = info if info is not None else make_info()
        self.error = error
        self.no_output = no_output
        self.output_error = output_error
        self.clip_options: Dict[str, object] = dict(clip_options)
        self.initialize_calls = 0
        self.evaluations: List[tuple[bytes, str]] = []
        self.contexts: List[FakeContext] = []
        self.clips: List[FakeClip] = []
        self.release_log: List[str] = []

    def initialize(self) -> None:
        self.initialize_calls += 1

    def evaluate(self, script: bytes, path: str) -> FakeContext:
        self.evaluations.append((script, path))
        clip: Optional[FakeClip] = None
        if self.error is None and not self.no_output:
            clip = FakeClip(self.info, release_log=self.release_log, **self.clip_options)  # type: ignore[arg-type]
            self.clips.append(clip)
        context = FakeContext(clip, self.error, self.release_log, self.output_error)
        self.contexts.append(context)
        return context

    @property
    def clip(self) -> FakeClip:
        return self.clips[-1]


__all__ = [
    "YUV420P8",
    "YUV420P16",
    "YUV422P10",
    "YUV444P8",
    "GRAY8",
    "make_info",
    "expected_packed",
    "build_frame",
    "FakePlane",
    "FakeFrame",
    "FakeClip",
    "FakeContext",
    "FakeEngine",
]
