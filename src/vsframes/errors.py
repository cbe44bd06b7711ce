"""Error taxonomy shared by the session, worker and engine layers."""
from __future__ import annotations

from typing import TYPE_CHECKING, Optional

if TYPE_CHECKING:
    from .engine.types import VideoInfo


class VSFramesError(RuntimeError):
    """Base class for every error raised by vsframes."""


class EngineInitError(VSFramesError):
    """Raised when the script engine cannot be initialised for this process."""


class SessionError(VSFramesError):
    """Base class for failures while constructing a session."""


class ScriptEvaluationError(SessionError):
    """Raised when the engine fails to evaluate the supplied script."""

    def __init__(self, path: str, diagnostic: Optional[str] = None) -> None:
        message = f"Failed to evaluate {path}"
        if diagnostic:
            message += f": {diagnostic}"
        super().__init__(message)
        self.path = path
        self.diagnostic = diagnostic


class NoOutputError(SessionError):
    """Raised when the script evaluated but left nothing in output slot 0."""

    def __init__(self, message: str = "Failed to retrieve output node") -> None:
        super().__init__(message)


class UnsupportedClipError(SessionError):
    """Raised for clips with a varying format or an unknown length."""

    def __init__(
        self,
        info: "VideoInfo | None" = None,
        message: str = "Cannot output clips with varying dimensions or unknown length",
    ) -> None:
        super().__init__(message)
        self.info = info


class FrameDecodeError(VSFramesError):
    """Raised when a single frame fails to decode; the session stays usable."""

    def __init__(self, frame: int, engine_message: str) -> None:
        super().__init__(f"Encountered error getting frame {frame}: {engine_message}")
        self.frame = frame
        self.engine_message = engine_message


__all__ = [
    "VSFramesError",
    "EngineInitError",
    "SessionError",
    "ScriptEvaluationError",
    "NoOutputError",
    "UnsupportedClipError",
    "FrameDecodeError",
]
