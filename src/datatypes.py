"""Configuration dataclasses for the frame server."""
from dataclasses import dataclass, field
from typing import List


@dataclass
class RuntimeConfig:
    """VapourSynth discovery and engine-wide limits."""

    vapoursynth_python_paths: List[str] = field(default_factory=list)
    ram_limit_mb: int = 0


@dataclass
class WorkerConfig:
    """Thread pool used for background frame fetches."""

    max_workers: int = 0
    thread_name_prefix: str = "vsframes"


@dataclass
class PipeConfig:
    """Options for streaming packed frames with ``vsframes pipe``."""

    requests: int = 4


@dataclass
class AppConfig:
    """Top-level configuration aggregating every section."""

    runtime: RuntimeConfig = field(default_factory=RuntimeConfig)
    workers: WorkerConfig = field(default_factory=WorkerConfig)
    pipe: PipeConfig = field(default_factory=PipeConfig)
