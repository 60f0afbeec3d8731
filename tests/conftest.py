"""Shared fixtures: cookie jars, settings and mocked HTTP clients."""

from __future__ import annotations

import json
from collections.abc import Callable
from pathlib import Path

import httpx
import pytest

from cafe_harvester.config import CafeConfig, HarvesterConfig

IDENTITY_JAR = "\n".join(
    [
        "# Netscape HTTP Cookie File",
        "# https://curl.se/docs/http-cookies.html",
        "",
        ".daum.net\tTRUE\t/\tFALSE\t1999999999\tHM_CU\tcu-value",
        ".kakao.com\tTRUE\t/\tTRUE\t1999999999\t_kawlt\tkakao-value",
        "#HttpOnly_.daum.net\tTRUE\t/\tTRUE\t1999999999\tHTS\thts-value",
        ".daum.net\tTRUE\t/\tFALSE\t1999999999\tPROF\tprof-value",
        "m.cafe.daum.net\tFALSE\t/\tFALSE\t0\tTIARA\ttiara-value",
        "",
    ]
)


@pytest.fixture
def cookie_file(tmp_path: Path) -> Path:
    path = tmp_path / "cookies.txt"
    path.write_text(IDENTITY_JAR, encoding="utf-8")
    return path


@pytest.fixture
def make_cfg(tmp_path: Path, cookie_file: Path) -> Callable[..., HarvesterConfig]:
    def factory(**kwargs: object) -> HarvesterConfig:
        kwargs.setdefault(
            "cafes",
            {"mycafe": CafeConfig(download_path=str(tmp_path / "archive"), boards=("AbCd",))},
        )
        return HarvesterConfig(cookies_file=cookie_file, **kwargs)  # type: ignore[arg-type]

    return factory


def mock_client(handler: Callable) -> httpx.AsyncClient:
    return httpx.AsyncClient(transport=httpx.MockTransport(handler))


def json_response(payload: object, status: int = 200) -> httpx.Response:
    return httpx.Response(status, content=json.dumps(payload).encode(), headers={"Content-Type": "application/json"})


def post_payload(title: str = "Hello", **extra: object) -> dict:
    payload: dict = {
        "regDttm": "20230415093000",
        "plainTextOfName": title,
        "subcontent": f"body of {title}",
        "imageList": [],
        "addfiles": None,
    }
    payload.update(extra)
    return payload
