"""Configuration loader that parses and validates user-provided TOML."""

from __future__ import annotations

import tomllib
from dataclasses import fields, is_dataclass
from typing import Any, Dict

from .datatypes import AppConfig, PipeConfig, RuntimeConfig, WorkerConfig


class ConfigError(ValueError):
    """Raised when the configuration file is malformed or fails validation."""


def _coerce_bool(value: Any, dotted_key: str) -> bool:
    """Return a bool, coercing simple 0/1 representations when necessary."""

    if isinstance(value, bool):
        return value
    if isinstance(value, int) and value in (0, 1):
        return bool(value)
    if isinstance(value, str):
        normalized = value.strip().lower()
        if normalized in {"0", "1"}:
            return normalized == "1"
        if normalized in {"true", "false"}:
            return normalized == "true"
    raise ConfigError(f"{dotted_key} must be a boolean (use true/false).")


def _coerce_int(value: Any, dotted_key: str) -> int:
    """Return an int, accepting integral floats and numeric strings."""

    if isinstance(value, bool):
        raise ConfigError(f"{dotted_key} must be an integer")
    if isinstance(value, int):
        return value
    if isinstance(value, float) and value.is_integer():
        return int(value)
    if isinstance(value, str):
        try:
            return int(value.strip())
        except ValueError as exc:
            raise ConfigError(f"{dotted_key} must be an integer") from exc
    raise ConfigError(f"{dotted_key} must be an integer")


def _sanitize_section(raw: dict[str, Any], name: str, cls):
    """
    Coerce a raw TOML table into an instance of ``cls`` with cleaned scalars.

    Parameters:
        raw (dict[str, Any]): Raw TOML section data.
        name (str): Section name used when reporting validation errors.
        cls: Dataclass type used to construct the section object.

    Returns:
        Any: Instantiated dataclass populated with values from ``raw``.

    Raises:
        ConfigError: If the section is not a table or contains invalid keys or values.
    """
    if not isinstance(raw, dict):
        raise ConfigError(f"[{name}] must be a table")
    cleaned: Dict[str, Any] = {}
    cls_fields = {field.name: field for field in fields(cls)}
    bool_fields = {name for name, field in cls_fields.items() if field.type in (bool, "bool")}
    int_fields = {name for name, field in cls_fields.items() if field.type in (int, "int")}
    nested_fields = {
        name: field.type
        for name, field in cls_fields.items()
        if is_dataclass(field.type)
    }
    for key, value in raw.items():
        if key in bool_fields:
            cleaned[key] = _coerce_bool(value, f"{name}.{key}")
        elif key in int_fields:
            cleaned[key] = _coerce_int(value, f"{name}.{key}")
        elif key in nested_fields:
            if not isinstance(value, dict):
                raise ConfigError(f"[{name}.{key}] must be a table")
            cleaned[key] = _sanitize_section(value, f"{name}.{key}", nested_fields[key])
        else:
            cleaned[key] = value
    try:
        return cls(**cleaned)
    except TypeError as exc:
        raise ConfigError(f"Invalid keys in [{name}]: {exc}") from exc


def _validate(app: AppConfig) -> AppConfig:
    runtime = app.runtime
    paths = runtime.vapoursynth_python_paths
    if isinstance(paths, str):
        paths = [paths]
    if not isinstance(paths, list) or not all(isinstance(entry, str) for entry in paths):
        raise ConfigError("runtime.vapoursynth_python_paths must be a list of strings")
    runtime.vapoursynth_python_paths = [entry.strip() for entry in paths if entry.strip()]
    if runtime.ram_limit_mb < 0:
        raise ConfigError("runtime.ram_limit_mb must be >= 0")

    workers = app.workers
    if workers.max_workers < 0:
        raise ConfigError("workers.max_workers must be >= 0")
    prefix = str(workers.thread_name_prefix).strip()
    if not prefix:
        raise ConfigError("workers.thread_name_prefix must be set")
    workers.thread_name_prefix = prefix

    if app.pipe.requests < 1:
        raise ConfigError("pipe.requests must be >= 1")
    return app


def load_config_from_mapping(raw: Dict[str, Any]) -> AppConfig:
    """Build and validate an :class:`AppConfig` from already-parsed TOML data."""

    known = {"runtime", "workers", "pipe"}
    unknown = sorted(set(raw) - known)
    if unknown:
        raise ConfigError(f"Unknown configuration sections: {', '.join(unknown)}")
    app = AppConfig(
        runtime=_sanitize_section(raw.get("runtime", {}), "runtime", RuntimeConfig),
        workers=_sanitize_section(raw.get("workers", {}), "workers", WorkerConfig),
        pipe=_sanitize_section(raw.get("pipe", {}), "pipe", PipeConfig),
    )
    return _validate(app)


def load_config(path: str) -> AppConfig:
    """
    Load and validate an application configuration from a TOML file.

    Reads the file at `path`, parses it as UTF-8 TOML (BOM is accepted), coerces and validates every section, and returns a fully populated AppConfig.

    Returns:
        AppConfig: The validated configuration.

    Raises:
        ConfigError: If the file is not UTF-8, TOML parsing fails, or any validation rule is violated.
    """

    with open(path, "rb") as handle:
        raw_bytes = handle.read()
    if raw_bytes.startswith(b"\xef\xbb\xbf"):
        raw_bytes = raw_bytes[3:]
    try:
        raw = tomllib.loads(raw_bytes.decode("utf-8"))
    except UnicodeDecodeError as exc:
        raise ConfigError("Configuration file must be UTF-8 encoded") from exc
    except tomllib.TOMLDecodeError as exc:
        raise ConfigError(f"Failed to parse TOML: {exc}") from exc
    return load_config_from_mapping(raw)


__all__ = ["ConfigError", "load_config", "load_config_from_mapping"]
