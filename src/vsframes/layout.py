"""Packed frame size and per-plane layout helpers."""
from __future__ import annotations

from dataclasses import dataclass
from typing import Optional, Tuple

from .engine.types import VideoInfo


@dataclass(frozen=True)
class PlaneLayout:
    """Tightly packed geometry of one plane: ``rows`` rows of ``row_size`` bytes."""

    index: int
    row_size: int
    rows: int

    @property
    def size(self) -> int:
        return self.row_size * self.rows


def plane_layout(info: Optional[VideoInfo]) -> Tuple[PlaneLayout, ...]:
    """
    Describe how each plane of *info* is laid out in a packed frame buffer.

    Plane 0 is stored at full resolution. Every later plane is reduced by the
    format's subsampling factors, applied to the byte width, so three-plane
    formats agree with :func:`legacy_frame_byte_size`.

    Parameters:
        info (Optional[VideoInfo]): Validated clip metadata, or ``None``.

    Returns:
        Tuple[PlaneLayout, ...]: Planes in packing order; empty when *info* or its format is missing.
    """
    if info is None or info.format is None:
        return ()
    fmt = info.format
    full_row = info.width * fmt.bytes_per_sample
    planes = [PlaneLayout(index=0, row_size=full_row, rows=info.height)]
    sub_row = full_row >> fmt.subsampling_w
    sub_rows = info.height >> fmt.subsampling_h
    for index in range(1, fmt.num_planes):
        planes.append(PlaneLayout(index=index, row_size=sub_row, rows=sub_rows))
    return tuple(planes)


def frame_byte_size(info: Optional[VideoInfo]) -> int:
    """Return the number of bytes one packed frame of *info* occupies."""

    return sum(plane.size for plane in plane_layout(info))


def legacy_frame_byte_size(info: Optional[VideoInfo]) -> int:
    """Frame size assuming exactly two chroma planes, whatever the format says."""

    if info is None or info.format is None:
        return 0
    fmt = info.format
    frame_size = (info.width * fmt.bytes_per_sample) >> fmt.subsampling_w
    if frame_size:
        frame_size *= info.height
        frame_size >>= fmt.subsampling_h
        frame_size *= 2
    frame_size += info.width * fmt.bytes_per_sample * info.height
    return frame_size


__all__ = ["PlaneLayout", "plane_layout", "frame_byte_size", "legacy_frame_byte_size"]
