"""Caller-facing frame server built on a session and a worker pool."""
from __future__ import annotations

import os
from concurrent.futures import Future
from typing import Any, Dict, Optional, Union

from .engine.types import ScriptEngine
from .session import Session
from .worker import CompletionCallback, FrameJob, FrameWorkerPool, fetch_frame


class FrameServer:
    """
    Serve packed frames of one script to a host process.

    ``get_info`` reports the clip geometry and the buffer size a frame needs;
    ``get_frame`` schedules a fetch and returns immediately, calling
    ``on_complete(error, frame, buffer)`` exactly once when it finishes.
    """

    def __init__(
        self,
        script: Union[bytes, bytearray, str],
        path: Union[str, "os.PathLike[str]"],
        *,
        engine: Optional[ScriptEngine] = None,
        pool: Optional[FrameWorkerPool] = None,
    ) -> None:
        self.session = Session.open(script, path, engine=engine)
        self._owns_pool = pool is None
        self.pool = pool if pool is not None else FrameWorkerPool()

    def get_info(self) -> Dict[str, Any]:
        info = self.session.info
        return {
            "width": info.width,
            "height": info.height,
            "numFrames": info.num_frames,
            "fps": {"numerator": info.fps_num, "denominator": info.fps_den},
            "frameSize": self.session.frame_size,
        }

    def get_frame(self, frame: int, buffer: Any, on_complete: CompletionCallback) -> "Future[int]":
        job = FrameJob(self.session, frame, buffer, on_complete)
        return self.pool.submit(job)

    async def fetch_frame(self, frame: int, buffer: Any) -> Any:
        return await fetch_frame(self.session, frame, buffer, executor=self.pool.executor)

    def process_completions(self, timeout: Optional[float] = None) -> int:
        return self.pool.process_completions(timeout)

    def close(self) -> None:
        """
        Wait for outstanding fetches, run their callbacks, then tear the session down.

        Callbacks not yet delivered through ``process_completions`` run here on
        the closing thread. A shared pool is only drained of this server's requests.
        """
        if self._owns_pool:
            self.pool.shutdown(wait=True)
        self.pool.drain(self.session)
        self.session.close()

    def __enter__(self) -> "FrameServer":
        return self

    def __exit__(self, *_exc: object) -> None:
        self.close()


__all__ = ["FrameServer"]
