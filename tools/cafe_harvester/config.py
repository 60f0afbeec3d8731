"""Configuration and settings-file loading for the harvester."""

from __future__ import annotations

import tomllib
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Any

from .errors import ConfigError

STOP_POLICIES = ("streak", "bounded")


@dataclass(frozen=True)
class DaumConfig:
    """Daum / Kakao endpoints.  The identity hosts need a legacy cipher suite."""
    identity_domain: str = ".daum.net"
    token_url: str = "https://logins.daum.net/accounts/endpoint/token.js"
    token_referer: str = "https://m.cafe.daum.net/"
    account_info_url: str = "https://logins.daum.net/accounts/endpoint/info.do"
    sso_url: str = "https://m.cafe.daum.net/_sso/login"
    sso_host: str = "m.cafe.daum.net"
    post_url: str = (
        "http://api.m.cafe.daum.net/mcafe/api/v1/hybrid/{cafe}/{board}/{id}"
        "?ref=&isSimple=false&installedVersion=3.15.1"
    )
    latest_url: str = "https://api.m.cafe.daum.net/mcafe/api/v2/articles/{cafe}/{board}"
    legacy_ciphers: str = "DEFAULT:AES128-SHA:AES256-SHA:@SECLEVEL=1"
    timeout: float | None = None  # None → httpx default


@dataclass(frozen=True)
class CafeConfig:
    download_path: str | None = None
    boards: tuple[str, ...] = ()

    def board_dir(self, cafe: str, board: str) -> Path:
        return Path(self.download_path or "cafe") / cafe / board


@dataclass(frozen=True)
class HarvesterConfig:
    cookies_file: Path
    max_connections: int = 20
    stop_policy: str = "streak"
    missing_limit: int = 5
    use_cookie_cache: bool = True
    cafes: dict[str, CafeConfig] = field(default_factory=dict)
    api: DaumConfig = field(default_factory=DaumConfig)

    @property
    def cookie_cache_file(self) -> Path:
        return self.cookies_file.with_name(self.cookies_file.name + ".current")

    def with_overrides(self, **changes: Any) -> HarvesterConfig:
        changes = {k: v for k, v in changes.items() if v is not None}
        if "stop_policy" in changes:
            _check_policy(changes["stop_policy"])
        return replace(self, **changes)


def _check_policy(policy: str) -> None:
    if policy not in STOP_POLICIES:
        raise ConfigError(
            f"Unknown stop_policy {policy!r} (expected one of {', '.join(STOP_POLICIES)})"
        )


def _positive_int(data: dict, key: str, default: int) -> int:
    value = data.get(key, default)
    if not isinstance(value, int) or isinstance(value, bool) or value < 1:
        raise ConfigError(f"{key} must be a positive integer, got {value!r}")
    return value


def _resolve(path: str | None, base_dir: Path | None) -> str | None:
    if path is None or base_dir is None or Path(path).is_absolute():
        return path
    return str(base_dir / path)


def parse_config(data: dict[str, Any], base_dir: Path | None = None) -> HarvesterConfig:
    """Build a :class:`HarvesterConfig` from an already-decoded TOML table.

    Relative ``cookies_file`` and ``download_path`` values are resolved
    against *base_dir* when given.
    """
    cookies_file = data.get("cookies_file")
    if not cookies_file or not isinstance(cookies_file, str):
        raise ConfigError("cookies_file is required")
    cookies_path = Path(cookies_file)
    if base_dir is not None and not cookies_path.is_absolute():
        cookies_path = base_dir / cookies_path

    policy = data.get("stop_policy", "streak")
    _check_policy(policy)

    cafes: dict[str, CafeConfig] = {}
    for name, section in (data.get("cafe") or {}).items():
        if not isinstance(section, dict):
            raise ConfigError(f"[cafe.{name}] must be a table")
        boards = section.get("boards", [])
        if not isinstance(boards, list) or not all(isinstance(b, str) for b in boards):
            raise ConfigError(f"[cafe.{name}] boards must be a list of strings")
        cafes[name] = CafeConfig(
            download_path=_resolve(section.get("download_path"), base_dir),
            boards=tuple(boards),
        )

    api_section = data.get("api") or {}
    try:
        api = DaumConfig(**api_section)
    except TypeError as exc:
        raise ConfigError(f"Invalid [api] section: {exc}") from exc

    return HarvesterConfig(
        cookies_file=cookies_path,
        max_connections=_positive_int(data, "max_connections", 20),
        stop_policy=policy,
        missing_limit=_positive_int(data, "missing_limit", 5),
        cafes=cafes,
        api=api,
    )


def load_config(path: str | Path = "config.toml") -> HarvesterConfig:
    path = Path(path)
    try:
        with path.open("rb") as fh:
            data = tomllib.load(fh)
    except OSError as exc:
        raise ConfigError(f"Error reading {path}") from exc
    except tomllib.TOMLDecodeError as exc:
        raise ConfigError(f"Error parsing {path}") from exc
    return parse_config(data, base_dir=path.parent)
