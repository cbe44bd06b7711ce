"""Sessions bind one evaluated script to its validated output clip."""
from __future__ import annotations

import logging
import os
from typing import Optional, Union

from .engine.types import ClipHandle, ScriptContext, ScriptEngine, VideoInfo
from .errors import NoOutputError, ScriptEvaluationError, UnsupportedClipError
from .layout import frame_byte_size

logger = logging.getLogger(__name__)

_OUTPUT_INDEX = 0


def _default_engine() -> ScriptEngine:
    from .engine.vapoursynth import VapourSynthEngine

    return VapourSynthEngine()


def _coerce_script(script: Union[bytes, bytearray, str]) -> bytes:
    if isinstance(script, str):
        return script.encode("utf-8")
    return bytes(script)


class Session:
    """
    Own an evaluated script context and the clip produced at output slot 0.

    Sessions are created with :meth:`open`, which either returns a fully
    validated session or raises after releasing everything it acquired. The
    clip metadata is copied out once and never re-read from the engine.
    """

    def __init__(
        self,
        engine: ScriptEngine,
        context: ScriptContext,
        clip: ClipHandle,
        info: VideoInfo,
        path: str,
    ) -> None:
        self._engine = engine
        self._context: Optional[ScriptContext] = context
        self._clip: Optional[ClipHandle] = clip
        self._info = info
        self._path = path
        self._frame_size = frame_byte_size(info)

    @classmethod
    def open(
        cls,
        script: Union[bytes, bytearray, str],
        path: Union[str, "os.PathLike[str]"],
        *,
        engine: Optional[ScriptEngine] = None,
    ) -> "Session":
        """
        Evaluate *script* and bind a session to its single output clip.

        Parameters:
            script (bytes | str): Script text understood by the engine.
            path (str | PathLike): Script location; selects the evaluation working directory.
            engine (Optional[ScriptEngine]): Engine to evaluate with; defaults to VapourSynth.

        Returns:
            Session: A session holding live context and clip handles.

        Raises:
            EngineInitError: If the engine cannot be initialised.
            ScriptEvaluationError: If evaluation fails.
            NoOutputError: If the script produced no clip at output 0.
            UnsupportedClipError: If the clip has a varying format or no frames.
        """
        resolved_engine = engine if engine is not None else _default_engine()
        path_text = os.fspath(path)
        resolved_engine.initialize()

        logger.debug("Evaluating script %s", path_text)
        context = resolved_engine.evaluate(_coerce_script(script), path_text)
        diagnostic = context.error
        if diagnostic is not None:
            context.release()
            logger.warning("Script evaluation failed for %s", path_text)
            raise ScriptEvaluationError(path_text, diagnostic or None)

        clip: Optional[ClipHandle] = None
        try:
            clip = context.get_output(_OUTPUT_INDEX)
            if clip is None:
                logger.warning("Script %s produced no output at index %d", path_text, _OUTPUT_INDEX)
                raise NoOutputError()

            info = clip.video_info()
            if not info.is_constant_format or info.num_frames <= 0:
                logger.warning(
                    "Rejecting clip from %s (constant_format=%s, num_frames=%d)",
                    path_text,
                    info.is_constant_format,
                    info.num_frames,
                )
                raise UnsupportedClipError(info)

            session = cls(resolved_engine, context, clip, info, path_text)
        except BaseException:
            if clip is not None:
                clip.release()
            context.release()
            raise
        logger.debug(
            "Session ready for %s: %dx%d, %d frames, %d/%d fps, %d bytes per frame",
            path_text,
            info.width,
            info.height,
            info.num_frames,
            info.fps_num,
            info.fps_den,
            session.frame_size,
        )
        return session

    @property
    def info(self) -> VideoInfo:
        return self._info

    @property
    def frame_size(self) -> int:
        return self._frame_size

    @property
    def path(self) -> str:
        return self._path

    @property
    def closed(self) -> bool:
        return self._context is None

    @property
    def clip(self) -> ClipHandle:
        if self._clip is None:
            raise RuntimeError("Session is closed")
        return self._clip

    def close(self) -> None:
        """Release the clip and then the evaluation context; later calls do nothing."""

        clip, self._clip = self._clip, None
        context, self._context = self._context, None
        if clip is not None:
            clip.release()
        if context is not None:
            context.release()
            logger.debug("Session for %s closed", self._path)

    def __enter__(self) -> "Session":
        return self

    def __exit__(self, *_exc: object) -> None:
        self.close()

    def __repr__(self) -> str:
        state = "closed" if self.closed else "open"
        return f"<Session {self._path!r} {state}>"


__all__ = ["Session"]
