"""VapourSynth-backed implementation of the script engine protocol."""
from __future__ import annotations

import logging
import os
import threading
import traceback
from pathlib import Path
from typing import Any, Dict, Optional, Tuple

from .env import ensure_initialized
from .types import EngineError, VideoFormat, VideoInfo

logger = logging.getLogger(__name__)

# Evaluation mutates the process working directory and the global output table.
_EVAL_LOCK = threading.Lock()


_SCRIPT_MODULE_NAME = "__vapoursynth__"


def _working_directory(path: str) -> Path:
    candidate = Path(path)
    if candidate.is_dir():
        return candidate
    parent = candidate.parent
    return parent if str(parent) else Path(".")


def _format_exception(exc: BaseException) -> str:
    lines = traceback.format_exception_only(type(exc), exc)
    return "".join(lines).strip()


class VapourSynthFrame:
    """Read-only view over one decoded ``VideoFrame``."""

    def __init__(self, frame: Any) -> None:
        self._frame = frame
        fmt = frame.format
        self._subsampling_w = int(fmt.subsampling_w)
        self._subsampling_h = int(fmt.subsampling_h)
        self._bytes_per_sample = int(fmt.bytes_per_sample)
        self._planes: Dict[int, Tuple[memoryview, int]] = {}

    def _plane(self, plane: int) -> Tuple[memoryview, int]:
        cached = self._planes.get(plane)
        if cached is None:
            cached = self._planes[plane] = self._read_plane(plane)
        return cached

    def _read_plane(self, plane: int) -> Tuple[memoryview, int]:
        view = memoryview(self._frame[plane])
        if not view.c_contiguous:
            # Padded planes export a strided view; tobytes() keeps only the visible samples.
            row_size = self.get_plane_width(plane) * self._bytes_per_sample
            return memoryview(view.tobytes()), row_size
        stride = view.strides[0] if view.ndim > 1 else int(self._frame.get_stride(plane))
        return view.cast("B"), stride

    def get_stride(self, plane: int) -> int:
        return self._plane(plane)[1]

    def get_plane_width(self, plane: int) -> int:
        width = int(self._frame.width)
        return width >> self._subsampling_w if plane else width

    def get_plane_height(self, plane: int) -> int:
        height = int(self._frame.height)
        return height >> self._subsampling_h if plane else height

    def get_read_buffer(self, plane: int) -> memoryview:
        return self._plane(plane)[0]

    def release(self) -> None:
        self._planes.clear()
        frame, self._frame = self._frame, None
        close = getattr(frame, "close", None)
        if callable(close):
            close()


class VapourSynthClip:
    """Clip handle wrapping a ``VideoNode`` resolved from a script output."""

    def __init__(self, vs_module: Any, node: Any) -> None:
        self._vs = vs_module
        self._node = node

    def video_info(self) -> VideoInfo:
        node = self._node
        fmt = getattr(node, "format", None)
        video_format: Optional[VideoFormat] = None
        if fmt is not None:
            video_format = VideoFormat(
                name=str(getattr(fmt, "name", "")),
                bytes_per_sample=int(fmt.bytes_per_sample),
                subsampling_w=int(fmt.subsampling_w),
                subsampling_h=int(fmt.subsampling_h),
                num_planes=int(fmt.num_planes),
            )
        return VideoInfo(
            width=int(getattr(node, "width", 0) or 0),
            height=int(getattr(node, "height", 0) or 0),
            num_frames=int(getattr(node, "num_frames", 0) or 0),
            fps_num=int(getattr(node, "fps_num", 0) or 0),
            fps_den=int(getattr(node, "fps_den", 0) or 0),
            format=video_format,
        )

    def get_frame(self, frame: int) -> VapourSynthFrame:
        if self._node is None:
            raise EngineError("Clip has been released")
        vs_error = getattr(self._vs, "Error", RuntimeError)
        try:
            decoded = self._node.get_frame(frame)
        except (vs_error, ValueError, IndexError) as exc:
            raise EngineError(str(exc)) from exc
        return VapourSynthFrame(decoded)

    def release(self) -> None:
        self._node = None


class VapourSynthScript:
    """Evaluation context holding the script namespace and captured outputs."""

    def __init__(
        self,
        vs_module: Any,
        namespace: Dict[str, Any],
        outputs: Dict[int, Any],
        error: Optional[str],
    ) -> None:
        self._vs = vs_module
        self._namespace = namespace
        self._outputs = outputs
        self._error = error

    @property
    def error(self) -> Optional[str]:
        return self._error

    def get_output(self, index: int = 0) -> Optional[VapourSynthClip]:
        output = self._outputs.get(index)
        if output is None:
            return None
        node = getattr(output, "clip", output)
        video_node_type = getattr(self._vs, "VideoNode", None)
        if video_node_type is not None and not isinstance(node, video_node_type):
            logger.debug("Output %d is not a video node (%s)", index, type(node).__name__)
            return None
        return VapourSynthClip(self._vs, node)

    def release(self) -> None:
        self._outputs.clear()
        self._namespace.clear()


class VapourSynthEngine:
    """Evaluate VapourSynth scripts in-process."""

    def __init__(self, *, vs_module: Any | None = None) -> None:
        self._vs = vs_module

    def initialize(self) -> None:
        if self._vs is None:
            self._vs = ensure_initialized()

    def _module(self) -> Any:
        self.initialize()
        return self._vs

    def evaluate(self, script: bytes, path: str) -> VapourSynthScript:
        vs = self._module()
        namespace: Dict[str, Any] = {"__name__": _SCRIPT_MODULE_NAME, "__file__": path}
        outputs: Dict[int, Any] = {}
        error: Optional[str] = None
        with _EVAL_LOCK:
            previous_cwd = os.getcwd()
            vs.clear_outputs()
            try:
                os.chdir(_working_directory(path))
                code = compile(script, path, "exec")
                exec(code, namespace)  # noqa: S102
                outputs = dict(vs.get_outputs())
            except Exception as exc:  # noqa: BLE001 - reported as the evaluation diagnostic
                error = _format_exception(exc)
                logger.debug("Script %s raised during evaluation", path, exc_info=True)
            finally:
                vs.clear_outputs()
                os.chdir(previous_cwd)
        return VapourSynthScript(vs, namespace, outputs, error)


__all__ = [
    "VapourSynthEngine",
    "VapourSynthScript",
    "VapourSynthClip",
    "VapourSynthFrame",
]
