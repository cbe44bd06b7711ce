"""Environment discovery and one-time initialisation for VapourSynth."""
from __future__ import annotations

import importlib
import logging
import os
import sys
import threading
from pathlib import Path
from typing import Any, Iterable, List, Optional, Sequence

from ..errors import EngineInitError

logger = logging.getLogger(__name__)

_VS_MODULE_NAME = "vapoursynth"


_ENV_VAR = "VAPOURSYNTH_PYTHONPATH"


_EXTRA_SEARCH_PATHS: list[str] = []


_vs_module: Any | None = None


_init_lock = threading.Lock()


_initialized = False


def _normalise_search_path(path: str) -> str:
    """
    Normalize a filesystem search path by expanding a user home and resolving to an absolute path when possible.

    Parameters:
        path (str): The input filesystem path, may contain a leading `~` for the user home.

    Returns:
        normalized_path (str): The expanded and resolved absolute path when resolution succeeds; otherwise the expanded path.
    """
    expanded = Path(path).expanduser()
    try:
        return str(expanded.resolve())
    except (OSError, RuntimeError):
        return str(expanded)


def _add_search_paths(paths: Iterable[str]) -> None:
    for raw in paths:
        if not raw:
            continue
        resolved = _normalise_search_path(raw)
        if resolved in _EXTRA_SEARCH_PATHS:
            continue
        _EXTRA_SEARCH_PATHS.append(resolved)
        if resolved not in sys.path:
            sys.path.insert(0, resolved)


def _load_env_paths_from_env() -> None:
    raw = os.environ.get(_ENV_VAR)
    if not raw:
        return
    entries = [entry.strip() for entry in raw.split(os.pathsep)]
    _add_search_paths(entry for entry in entries if entry)


def configure(*, search_paths: Sequence[str] | None = None) -> None:
    """Register extra directories searched when importing VapourSynth."""

    if search_paths:
        _add_search_paths(search_paths)


def _build_missing_vs_message() -> str:
    details: List[str] = []
    if _EXTRA_SEARCH_PATHS:
        details.append("Tried extra search paths: " + ", ".join(_EXTRA_SEARCH_PATHS))
    details.append(
        "Install VapourSynth for this interpreter or expose it via "
        "runtime.vapoursynth_python_paths in the config file."
    )
    return " ".join(["VapourSynth is not available in this environment."] + details)


def _get_vapoursynth_module() -> Any:
    global _vs_module
    if _vs_module is not None:
        return _vs_module
    try:
        module = importlib.import_module(_VS_MODULE_NAME)
    except Exception as exc:  # pragma: no cover - import failure depends on env
        raise EngineInitError(_build_missing_vs_message()) from exc
    _vs_module = module
    return module


def _resolve_core(core: Optional[Any] = None) -> Any:
    if core is not None:
        return core
    vs_module = _get_vapoursynth_module()
    module_core = getattr(vs_module, "core", None)
    if module_core is not None and not callable(module_core):
        return module_core
    get_core = getattr(vs_module, "get_core", None)
    if callable(get_core):
        resolved = get_core()
        if resolved is not None:
            return resolved
    raise EngineInitError("VapourSynth core is not available on this interpreter")


def ensure_initialized() -> Any:
    """
    Import VapourSynth and resolve its core exactly once per process.

    Safe to call from several threads. A failed attempt is not remembered, so a
    later call may succeed once the environment has been fixed.

    Returns:
        Any: The imported ``vapoursynth`` module.

    Raises:
        EngineInitError: If the module cannot be imported or exposes no core.
    """
    global _initialized
    if _initialized:
        return _get_vapoursynth_module()
    with _init_lock:
        if _initialized:
            return _get_vapoursynth_module()
        module = _get_vapoursynth_module()
        core = _resolve_core()
        version = getattr(core, "version_number", None)
        logger.debug(
            "VapourSynth initialised (core version=%s)",
            version() if callable(version) else "unknown",
        )
        _initialized = True  # pyright: ignore[reportConstantRedefinition]
        return module


def set_ram_limit(limit_mb: int, *, core: Optional[Any] = None) -> None:
    """Apply a global VapourSynth cache limit based on *limit_mb*."""

    if limit_mb <= 0:
        raise EngineInitError("ram_limit_mb must be positive")

    resolved_core = _resolve_core(core)
    try:
        resolved_core.max_cache_size = int(limit_mb)
    except (AttributeError, TypeError, ValueError) as exc:
        raise EngineInitError("Failed to apply VapourSynth RAM limit") from exc
    logger.debug("VapourSynth cache limit set to %d MB", limit_mb)


_load_env_paths_from_env()

__all__ = [
    "_VS_MODULE_NAME",
    "_ENV_VAR",
    "_EXTRA_SEARCH_PATHS",
    "_normalise_search_path",
    "_add_search_paths",
    "_load_env_paths_from_env",
    "configure",
    "_build_missing_vs_message",
    "_get_vapoursynth_module",
    "_resolve_core",
    "ensure_initialized",
    "set_ram_limit",
]
