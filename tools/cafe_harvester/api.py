"""Daum Cafe mobile API client – per-post fetch and response classification."""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from typing import Any

import httpx

from .auth import make_client
from .config import DaumConfig
from .cookies import Credential
from .errors import APIError, MissingFieldError, NotAuthorizedError, TransientFetchMiss

logger = logging.getLogger("cafe_harvester.api")

NOT_AUTHENTICATED = "MCAFE_NOT_AUTHENTICATED"
ALREADY_DELETED = "MCAFE_BBS_BULLETIN_READ_DELALREADY"


@dataclass(frozen=True)
class FileRef:
    url: str
    extension: str


@dataclass(frozen=True)
class Post:
    id: int
    board: str
    published: str
    title: str
    body: str | None = None
    images: tuple[str, ...] = ()
    files: tuple[FileRef, ...] = ()

    @property
    def date8(self) -> str:
        return self.published[:8]


@dataclass(frozen=True)
class SoftMiss:
    """The post existed but was deleted."""
    id: int
    code: str


def _map_post(board: str, post_id: int, data: dict[str, Any]) -> Post:
    """Convert an API ``hybrid`` response into a :class:`Post`."""
    date = data.get("regDttm")
    if not date:
        raise MissingFieldError("regDttm")
    title = data.get("plainTextOfName")
    if title is None:
        raise MissingFieldError("plainTextOfName")

    addfiles = data.get("addfiles") or {}
    files = tuple(
        FileRef(url=f["downurl"], extension=f.get("filetype", ""))
        for f in addfiles.get("addfile") or []
        if f.get("downurl")
    )
    return Post(
        id=post_id,
        board=board,
        published=str(date),
        title=str(title),
        body=data.get("subcontent"),
        images=tuple(data.get("imageList") or ()),
        files=files,
    )


class CafeAPI:
    """Authenticated wrapper around the cafe mobile API."""

    def __init__(
        self,
        session: Credential,
        cfg: DaumConfig | None = None,
        *,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self.cfg = cfg or DaumConfig()
        self._client = client or make_client(self.cfg)
        self._headers = {"Cookie": session.serialize()}

    async def _get_json(self, url: str, *, check_status: bool = True) -> Any:
        resp = await self._client.get(url, headers=self._headers)
        if check_status:
            resp.raise_for_status()
        elif resp.is_error:
            logger.debug("HTTP %d: %s", resp.status_code, url)
        return resp.json()

    async def fetch_post(self, cafe: str, board: str, post_id: int) -> Post | SoftMiss:
        url = self.cfg.post_url.format(cafe=cafe, board=board, id=post_id)
        try:
            data = await self._get_json(url, check_status=False)
        except (json.JSONDecodeError, UnicodeDecodeError) as exc:
            raise TransientFetchMiss(f"Undecodable response for {cafe}/{board}/{post_id}") from exc
        if not isinstance(data, dict):
            raise TransientFetchMiss(f"Unexpected response for {cafe}/{board}/{post_id}")

        code = data.get("exceptionCode")
        if code:
            if code == NOT_AUTHENTICATED:
                raise NotAuthorizedError()
            if code == ALREADY_DELETED:
                logger.debug("Post %s/%s/%d was deleted", cafe, board, post_id)
                return SoftMiss(post_id, code)
            raise APIError(code)
        return _map_post(board, post_id, data)

    async def get_latest_id(self, cafe: str, board: str) -> int:
        """Newest PostID of *board* according to the article listing."""
        url = self.cfg.latest_url.format(cafe=cafe, board=board)
        try:
            data = await self._get_json(url)
        except (json.JSONDecodeError, UnicodeDecodeError) as exc:
            raise APIError("undecodable latest article listing") from exc
        articles = data.get("article") if isinstance(data, dict) else None
        ids = [
            int(a["dataid"])
            for a in articles or []
            if a.get("fldid") == board and a.get("dataid") is not None
        ]
        if not ids:
            raise APIError("latest article listing empty")
        return max(ids)

    async def aclose(self) -> None:
        await self._client.aclose()

    async def __aenter__(self) -> CafeAPI:
        return self

    async def __aexit__(self, *args: object) -> None:
        await self.aclose()
