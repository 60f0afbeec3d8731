"""Settings file loading and validation."""

from __future__ import annotations

from pathlib import Path

import pytest

from cafe_harvester.config import CafeConfig, load_config, parse_config
from cafe_harvester.errors import ConfigError

SAMPLE = """
cookies_file = "cookies.txt"
max_connections = 4
stop_policy = "bounded"

[cafe.mycafe]
download_path = "out"
boards = ["AbCd", "EfGh"]

[cafe.other]
boards = ["Zz"]
"""


def test_load_config(tmp_path):
    path = tmp_path / "config.toml"
    path.write_text(SAMPLE, encoding="utf-8")

    cfg = load_config(path)

    assert cfg.cookies_file == tmp_path / "cookies.txt"
    assert cfg.cookie_cache_file == tmp_path / "cookies.txt.current"
    assert cfg.max_connections == 4
    assert cfg.stop_policy == "bounded"
    assert cfg.missing_limit == 5
    assert cfg.cafes["mycafe"] == CafeConfig(download_path=str(tmp_path / "out"), boards=("AbCd", "EfGh"))
    assert cfg.cafes["other"].board_dir("other", "Zz") == Path("cafe") / "other" / "Zz"


def test_defaults():
    cfg = parse_config({"cookies_file": "c.txt"})
    assert cfg.max_connections == 20
    assert cfg.stop_policy == "streak"
    assert cfg.cafes == {}


def test_missing_file(tmp_path):
    with pytest.raises(ConfigError, match="Error reading"):
        load_config(tmp_path / "config.toml")


def test_syntax_error(tmp_path):
    path = tmp_path / "config.toml"
    path.write_text("cookies_file = ", encoding="utf-8")
    with pytest.raises(ConfigError, match="Error parsing"):
        load_config(path)


@pytest.mark.parametrize(
    "data",
    [
        {},
        {"cookies_file": "c.txt", "stop_policy": "forever"},
        {"cookies_file": "c.txt", "max_connections": 0},
        {"cookies_file": "c.txt", "missing_limit": "5"},
        {"cookies_file": "c.txt", "cafe": {"x": {"boards": "AbCd"}}},
        {"cookies_file": "c.txt", "api": {"no_such_endpoint": "x"}},
    ],
)
def test_invalid_settings(data):
    with pytest.raises(ConfigError):
        parse_config(data)


def test_api_overrides():
    cfg = parse_config({"cookies_file": "c.txt", "api": {"sso_host": "cafe.example"}})
    assert cfg.api.sso_host == "cafe.example"


def test_with_overrides_ignores_none():
    cfg = parse_config({"cookies_file": "c.txt"})
    assert cfg.with_overrides(stop_policy=None, use_cookie_cache=False).use_cookie_cache is False
    assert cfg.with_overrides(stop_policy="bounded").stop_policy == "bounded"
    with pytest.raises(ConfigError):
        cfg.with_overrides(stop_policy="nope")


def test_relative_paths_follow_the_settings_file(tmp_path):
    path = tmp_path / "conf" / "config.toml"
    path.parent.mkdir()
    path.write_text(
        f'cookies_file = "cookies.txt"\n[cafe.a]\ndownload_path = "archive"\nboards = ["X"]\n'
        f'[cafe.b]\ndownload_path = "{tmp_path / "abs"}"\nboards = ["Y"]\n',
        encoding="utf-8",
    )

    cfg = load_config(path)

    assert cfg.cookies_file.parent == cfg.cafes["a"].board_dir("a", "X").parents[2]
    assert cfg.cafes["a"].board_dir("a", "X") == tmp_path / "conf" / "archive" / "a" / "X"
    assert cfg.cafes["b"].download_path == str(tmp_path / "abs")
