"""Concurrent image / attachment downloads for a single post."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from dataclasses import dataclass
from pathlib import Path

import httpx

from .api import Post

logger = logging.getLogger("cafe_harvester.downloader")

DEFAULT_CONCURRENCY = 20


@dataclass(frozen=True)
class AssetTask:
    filename: str
    url: str
    is_image: bool


def url_basename(url: str) -> str:
    return url.rsplit("/", 1)[-1]


def plan_assets(post: Post, prefix: str) -> list[AssetTask]:
    """Assign every file of *post* its archive name before anything is fetched.

    Files whose basename appears in ``post.images`` become ``_img{rank}``
    (rank = 1-based position in ``images``); the rest are numbered
    ``_attach001``, ``_attach002``… in file order.
    """
    image_names = [url_basename(u) for u in post.images]
    tasks: list[AssetTask] = []
    attach_idx = 0
    for ref in post.files:
        name = url_basename(ref.url)
        if name in image_names:
            rank = image_names.index(name) + 1
            filename = f"{prefix}_img{rank:03d}.{ref.extension}"
            tasks.append(AssetTask(filename, ref.url, True))
        else:
            attach_idx += 1
            filename = f"{prefix}_attach{attach_idx:03d}.{ref.extension}"
            tasks.append(AssetTask(filename, ref.url, False))
    return tasks


class AssetDownloader:
    """Downloads planned assets with at most ``limit`` requests in flight."""

    def __init__(self, client: httpx.AsyncClient, limit: int = DEFAULT_CONCURRENCY) -> None:
        if limit < 1:
            raise ValueError("limit must be >= 1")
        self._client = client
        self.limit = limit

    async def download(self, task: AssetTask, dest: Path) -> Path:
        path = dest / task.filename
        async with self._client.stream("GET", task.url) as resp:
            resp.raise_for_status()
            with path.open("wb") as fh:
                async for chunk in resp.aiter_bytes():
                    fh.write(chunk)
        logger.debug("Downloaded %s", task.filename)
        return path

    async def download_all(
        self,
        tasks: list[AssetTask],
        dest: Path,
        *,
        on_done: Callable[[AssetTask], None] | None = None,
    ) -> set[Path]:
        """Run *tasks* through a fixed pool of workers.

        The first failure stops workers from taking new tasks and is
        re-raised once in-flight downloads have settled.
        """
        queue: asyncio.Queue[AssetTask] = asyncio.Queue()
        for task in tasks:
            queue.put_nowait(task)

        done: set[Path] = set()
        errors: list[BaseException] = []

        async def worker() -> None:
            while not errors:
                try:
                    task = queue.get_nowait()
                except asyncio.QueueEmpty:
                    return
                try:
                    done.add(await self.download(task, dest))
                except (httpx.HTTPError, OSError) as exc:
                    logger.error("Failed to download %s: %s", task.url, exc)
                    errors.append(exc)
                    return
                if on_done is not None:
                    on_done(task)

        workers = min(self.limit, len(tasks))
        await asyncio.gather(*(worker() for _ in range(workers)))
        if errors:
            raise errors[0]
        return done
