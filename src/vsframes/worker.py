"""Background frame fetching, plane packing and completion delivery."""
from __future__ import annotations

import asyncio
import logging
import queue
import threading
from concurrent.futures import CancelledError, Executor, Future, ThreadPoolExecutor, wait
from enum import Enum
from typing import Any, Callable, Dict, List, Optional, Tuple

from .engine.types import DecodedFrame, EngineError
from .errors import FrameDecodeError, UnsupportedClipError
from .session import Session

logger = logging.getLogger(__name__)

# Engine diagnostics are bounded; longer messages are cut to this many bytes.
ERROR_MESSAGE_CAPACITY = 1024


CompletionCallback = Callable[[Optional[BaseException], int, Any], None]


class RequestState(str, Enum):
    """Lifecycle of a single frame request."""

    QUEUED = "queued"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"


def _bounded_message(message: str) -> str:
    encoded = message.encode("utf-8", "replace")
    if len(encoded) < ERROR_MESSAGE_CAPACITY:
        return message
    return encoded[: ERROR_MESSAGE_CAPACITY - 1].decode("utf-8", "ignore")


def _writable_view(buffer: Any) -> memoryview:
    view = memoryview(buffer)
    if view.readonly:
        raise TypeError("Destination buffer must be writable (e.g. a bytearray)")
    return view.cast("B") if view.format != "B" or view.ndim != 1 else view


def pack_planes(
    frame: DecodedFrame,
    bytes_per_sample: int,
    num_planes: int,
    destination: Any,
) -> int:
    """
    Copy the planes of *frame* into *destination* without row padding.

    Planes are written in ascending index order. For each row only the
    logical ``width * bytes_per_sample`` bytes are copied; the source cursor
    then advances by the plane stride, skipping alignment padding.

    Parameters:
        frame (DecodedFrame): Decoded frame to read from.
        bytes_per_sample (int): Sample width of the clip format.
        num_planes (int): Number of planes in the clip format.
        destination (Any): Writable buffer at least one packed frame long.

    Returns:
        int: Number of bytes written.
    """
    out = _writable_view(destination)
    offset = 0
    for plane in range(num_planes):
        stride = frame.get_stride(plane)
        source = memoryview(frame.get_read_buffer(plane)).cast("B")
        row_size = frame.get_plane_width(plane) * bytes_per_sample
        height = frame.get_plane_height(plane)

        if stride == row_size:
            size = row_size * height
            out[offset : offset + size] = source[:size]
            offset += size
            continue

        read = 0
        for _ in range(height):
            out[offset : offset + row_size] = source[read : read + row_size]
            offset += row_size
            read += stride
    return offset


class FrameJob:
    """One frame request: fetch frame ``frame`` of ``session`` into ``buffer``."""

    def __init__(
        self,
        session: Session,
        frame: int,
        buffer: Any,
        callback: Optional[CompletionCallback] = None,
    ) -> None:
        _writable_view(buffer)
        self.session = session
        self.frame = int(frame)
        self.buffer = buffer
        self.callback = callback
        self.state = RequestState.QUEUED
        self.bytes_written = 0
        self._delivered = False
        self._delivery_lock = threading.Lock()

    def run(self) -> int:
        """Fetch and pack the frame on the calling thread; return bytes written."""

        self.state = RequestState.RUNNING
        try:
            self.bytes_written = self._fetch_and_pack()
        except BaseException:
            self.state = RequestState.FAILED
            raise
        self.state = RequestState.COMPLETED
        return self.bytes_written

    def _fetch_and_pack(self) -> int:
        info = self.session.info
        fmt = info.format
        if fmt is None:
            raise UnsupportedClipError(info)
        try:
            decoded = self.session.clip.get_frame(self.frame)
        except EngineError as exc:
            message = _bounded_message(str(exc))
            logger.debug("Frame %d failed to decode: %s", self.frame, message)
            raise FrameDecodeError(self.frame, message) from exc
        try:
            return pack_planes(decoded, fmt.bytes_per_sample, fmt.num_planes, self.buffer)
        finally:
            decoded.release()

    @property
    def delivered(self) -> bool:
        return self._delivered

    def claim_delivery(self) -> bool:
        """Return ``True`` for the first caller only."""

        with self._delivery_lock:
            if self._delivered:
                return False
            self._delivered = True
            return True

    def notify(self, error: Optional[BaseException]) -> None:
        if self.callback is not None:
            self.callback(error, self.frame, self.buffer)

    def __repr__(self) -> str:
        return f"<FrameJob frame={self.frame} state={self.state.value}>"


class FrameWorkerPool:
    """
    Run frame jobs on a thread pool and hand completions back to the requester.

    When a job is submitted from inside a running asyncio loop its callback is
    scheduled on that loop. Otherwise the completion is queued and executed by
    the requester's next call to :meth:`process_completions`.
    """

    def __init__(
        self,
        *,
        max_workers: Optional[int] = None,
        thread_name_prefix: str = "vsframes",
    ) -> None:
        self._executor = ThreadPoolExecutor(
            max_workers=max_workers or None,
            thread_name_prefix=thread_name_prefix,
        )
        self._completions: "queue.SimpleQueue[tuple[FrameJob, Optional[BaseException]]]" = (
            queue.SimpleQueue()
        )
        self._outstanding = 0
        self._pending: Dict[FrameJob, "Future[int]"] = {}
        self._lock = threading.Lock()

    @property
    def executor(self) -> Executor:
        return self._executor

    @property
    def outstanding(self) -> int:
        """Jobs submitted whose completion callback has not yet run."""

        with self._lock:
            return self._outstanding

    def submit(self, job: FrameJob) -> "Future[int]":
        try:
            loop: Optional[asyncio.AbstractEventLoop] = asyncio.get_running_loop()
        except RuntimeError:
            loop = None

        with self._lock:
            self._outstanding += 1
        future = self._executor.submit(job.run)
        with self._lock:
            if not job.delivered:
                self._pending[job] = future
        future.add_done_callback(lambda done: self._on_done(job, done, loop))
        logger.debug("Queued frame %d", job.frame)
        return future

    @staticmethod
    def _outcome(future: "Future[int]") -> Optional[BaseException]:
        if future.cancelled():
            return CancelledError()
        return future.exception()

    def _on_done(
        self,
        job: FrameJob,
        future: "Future[int]",
        loop: Optional[asyncio.AbstractEventLoop],
    ) -> None:
        error = self._outcome(future)
        if error is not None and not isinstance(error, FrameDecodeError):
            logger.error("Frame %d failed: %s", job.frame, error, exc_info=error)
        if loop is not None:
            try:
                loop.call_soon_threadsafe(self._complete, job, error)
                return
            except RuntimeError:
                logger.debug("Loop closed before frame %d completed; queueing", job.frame)
        self._completions.put((job, error))

    def _complete(self, job: FrameJob, error: Optional[BaseException]) -> bool:
        if not job.claim_delivery():
            return False
        with self._lock:
            self._outstanding -= 1
            self._pending.pop(job, None)
        job.notify(error)
        return True

    def process_completions(self, timeout: Optional[float] = None) -> int:
        """
        Run queued completion callbacks on the calling thread.

        Parameters:
            timeout (Optional[float]): ``None`` drains what is ready without
                waiting; otherwise waits up to *timeout* seconds for the first
                completion before draining.

        Returns:
            int: Number of callbacks executed.
        """
        handled = 0
        block = timeout is not None
        while True:
            try:
                job, error = self._completions.get(block=block, timeout=timeout)
            except queue.Empty:
                return handled
            if self._complete(job, error):
                handled += 1
            block = block and handled == 0

    def drain(self, session: Optional[Session] = None) -> int:
        """
        Wait for outstanding jobs and run their callbacks on the calling thread.

        Only jobs of *session* are drained when it is given, so a pool shared
        between servers keeps serving the others. Completions for drained jobs
        that are still queued or scheduled on a loop become no-ops.

        Returns:
            int: Number of callbacks executed.
        """
        with self._lock:
            pending: List[Tuple[FrameJob, "Future[int]"]] = [
                (job, future)
                for job, future in self._pending.items()
                if session is None or job.session is session
            ]
        if not pending:
            return 0
        wait([future for _, future in pending])
        handled = 0
        for job, future in pending:
            if self._complete(job, self._outcome(future)):
                handled += 1
        return handled

    def shutdown(self, wait: bool = True) -> None:
        self._executor.shutdown(wait=wait)

    def __enter__(self) -> "FrameWorkerPool":
        return self

    def __exit__(self, *_exc: object) -> None:
        self.shutdown()


async def fetch_frame(
    session: Session,
    frame: int,
    buffer: Any,
    *,
    executor: Optional[Executor] = None,
) -> Any:
    """Fetch *frame* into *buffer* without blocking the running loop; return *buffer*."""

    job = FrameJob(session, frame, buffer)
    loop = asyncio.get_running_loop()
    await loop.run_in_executor(executor, job.run)
    return buffer


__all__ = [
    "ERROR_MESSAGE_CAPACITY",
    "CompletionCallback",
    "RequestState",
    "pack_planes",
    "FrameJob",
    "FrameWorkerPool",
    "fetch_frame",
]
