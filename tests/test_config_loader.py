from __future__ import annotations

from pathlib import Path

import pytest

from src.config_loader import ConfigError, load_config, load_config_from_mapping
from src.datatypes import AppConfig


def _write(tmp_path: Path, text: str, *, bom: bool = False) -> str:
    path = tmp_path / "vsframes.toml"
    data = text.encode("utf-8")
    path.write_bytes((b"\xef\xbb\xbf" if bom else b"") + data)
    return str(path)


def test_empty_file_uses_defaults(tmp_path: Path) -> None:
    config = load_config(_write(tmp_path, ""))

    assert config == AppConfig()
    assert config.pipe.requests == 4
    assert config.workers.thread_name_prefix == "vsframes"


def test_sections_are_parsed_and_normalised(tmp_path: Path) -> None:
    text = """
[runtime]
vapoursynth_python_paths = ["  /opt/vs/site-packages  ", ""]
ram_limit_mb = "2048"

[workers]
max_workers = 6
thread_name_prefix = " frames "

[pipe]
requests = 8.0
"""
    config = load_config(_write(tmp_path, text, bom=True))

    assert config.runtime.vapoursynth_python_paths == ["/opt/vs/site-packages"]
    assert config.runtime.ram_limit_mb == 2048
    assert config.workers.max_workers == 6
    assert config.workers.thread_name_prefix == "frames"
    assert config.pipe.requests == 8


@pytest.mark.parametrize(
    ("raw", "message"),
    [
        ({"pipe": {"requests": 0}}, "pipe.requests must be >= 1"),
        ({"workers": {"max_workers": -1}}, "workers.max_workers must be >= 0"),
        ({"workers": {"thread_name_prefix": "  "}}, "thread_name_prefix must be set"),
        ({"runtime": {"ram_limit_mb": -5}}, "ram_limit_mb must be >= 0"),
        ({"runtime": {"vapoursynth_python_paths": [1, 2]}}, "must be a list of strings"),
        ({"pipe": {"requests": "many"}}, "pipe.requests must be an integer"),
        ({"pipe": {"requests": True}}, "pipe.requests must be an integer"),
        ({"pipe": {"unknown": 1}}, r"Invalid keys in \[pipe\]"),
        ({"pipe": []}, r"\[pipe\] must be a table"),
        ({"screenshots": {}}, "Unknown configuration sections: screenshots"),
    ],
)
def test_invalid_values_raise_config_error(raw: dict, message: str) -> None:
    with pytest.raises(ConfigError, match=message):
        load_config_from_mapping(raw)


def test_malformed_toml_raises(tmp_path: Path) -> None:
    with pytest.raises(ConfigError, match="Failed to parse TOML"):
        load_config(_write(tmp_path, "[pipe\nrequests = 2"))


def test_non_utf8_file_raises(tmp_path: Path) -> None:
    path = tmp_path / "latin1.toml"
    path.write_bytes("[pipe]\n# caf\xe9\n".encode("latin-1"))

    with pytest.raises(ConfigError, match="UTF-8"):
        load_config(str(path))
