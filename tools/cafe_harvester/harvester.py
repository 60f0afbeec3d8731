"""Core harvesting logic – orchestrates login → API → downloader → publisher."""

from __future__ import annotations

import logging
from pathlib import Path

import httpx
from rich.progress import BarColumn, MofNCompleteColumn, Progress, SpinnerColumn, TextColumn

from .api import CafeAPI, Post, SoftMiss
from .auth import SessionAuthenticator, make_client
from .config import CafeConfig, HarvesterConfig
from .cookies import Credential
from .cursor import Bounded, CrawlCursor, StopPolicy, Streak, first_id
from .downloader import AssetDownloader, plan_assets
from .errors import APIError, ConfigError, TransientFetchMiss
from .publisher import archive_prefix, publish, staging_dir, write_body

logger = logging.getLogger("cafe_harvester.core")


class Harvester:
    """Archives every configured cafe board, one post at a time."""

    def __init__(
        self,
        cfg: HarvesterConfig,
        *,
        authenticator: SessionAuthenticator | None = None,
        api_client: httpx.AsyncClient | None = None,
        asset_client: httpx.AsyncClient | None = None,
        show_progress: bool = True,
    ) -> None:
        self.cfg = cfg
        self.authenticator = authenticator or SessionAuthenticator(cfg)
        self._api_client = api_client
        self._asset_client = asset_client or make_client(cfg.api)
        self.downloader = AssetDownloader(self._asset_client, cfg.max_connections)
        self.api: CafeAPI | None = None
        self.show_progress = show_progress
        # Stats
        self.stats = {"posts": 0, "images": 0, "attachments": 0, "skipped": 0, "missed": 0}

    # ── session ──────────────────────────────────────────────────

    async def login(self) -> Credential:
        session = await self.authenticator.authenticate()
        self.api = CafeAPI(session, self.cfg.api, client=self._api_client)
        return session

    def _require_api(self) -> CafeAPI:
        if self.api is None:
            raise RuntimeError("login() must be called before harvesting")
        return self.api

    # ── post archiving ───────────────────────────────────────────

    async def archive_post(self, cafe: str, post: Post, board_dir: Path) -> Path:
        """Download *post* into a scratch directory and publish it under *board_dir*."""
        prefix = archive_prefix(post, cafe)
        tasks = plan_assets(post, prefix)
        logger.info("Downloading %s", prefix)

        with staging_dir() as scratch:
            write_body(post, prefix, scratch)
            with Progress(
                SpinnerColumn(),
                TextColumn("[progress.description]{task.description}"),
                BarColumn(),
                MofNCompleteColumn(),
                transient=True,
                disable=not self.show_progress,
            ) as progress:
                bar = progress.add_task(f"{post.board}/{post.id}", total=len(tasks))
                await self.downloader.download_all(
                    tasks, scratch, on_done=lambda _task: progress.advance(bar)
                )
            entry = publish(scratch, board_dir / prefix)

        images = sum(1 for t in tasks if t.is_image)
        self.stats["images"] += images
        self.stats["attachments"] += len(tasks) - images
        self.stats["posts"] += 1
        return entry

    # ── board harvesting ─────────────────────────────────────────

    async def stop_policy(self, cafe: str, board: str) -> StopPolicy:
        if self.cfg.stop_policy == "bounded":
            ceiling = await self._require_api().get_latest_id(cafe, board)
            logger.debug("Latest ID for %s/%s is %d", cafe, board, ceiling)
            return Bounded(ceiling)
        return Streak(self.cfg.missing_limit)

    async def harvest_board(self, cafe: str, board: str, cafe_cfg: CafeConfig) -> int:
        """Archive every post of *board* newer than what is already on disk.

        Returns the number of posts published.
        """
        api = self._require_api()
        logger.info("Checking cafe: %s board: %s", cafe, board)

        board_dir = cafe_cfg.board_dir(cafe, board)
        board_dir.mkdir(parents=True, exist_ok=True)

        policy = await self.stop_policy(cafe, board)
        cursor = CrawlCursor(first_id(board_dir), policy)
        logger.debug("Starting %s/%s at ID %d (%r)", cafe, board, cursor.start, policy)

        harvested = 0
        for post_id in cursor:
            try:
                result = await api.fetch_post(cafe, board, post_id)
            except TransientFetchMiss as exc:
                logger.warning("Skipping %s/%s/%d: %s", cafe, board, post_id, exc)
                self.stats["missed"] += 1
                cursor.miss()
                continue
            except APIError as exc:
                if not policy.errors_are_misses:
                    raise
                logger.debug("Miss at %s/%s/%d: %s", cafe, board, post_id, exc)
                self.stats["missed"] += 1
                cursor.miss()
                continue

            if isinstance(result, SoftMiss):
                self.stats["skipped"] += 1
                cursor.skip()
                continue

            await self.archive_post(cafe, result, board_dir)
            cursor.hit()
            harvested += 1

        logger.info("Board %s/%s complete: %d new posts", cafe, board, harvested)
        return harvested

    async def harvest_cafe(self, cafe: str) -> dict[str, int]:
        cafe_cfg = self.cfg.cafes.get(cafe)
        if cafe_cfg is None:
            raise ConfigError(f"Cafe {cafe!r} is not configured")
        return {board: await self.harvest_board(cafe, board, cafe_cfg) for board in cafe_cfg.boards}

    async def harvest_all(self) -> dict[str, int]:
        """Harvest every configured cafe and board sequentially."""
        results = {}
        for cafe in self.cfg.cafes:
            for board, count in (await self.harvest_cafe(cafe)).items():
                results[f"{cafe}/{board}"] = count
        return results

    # ── lifecycle ────────────────────────────────────────────────

    async def aclose(self) -> None:
        await self.authenticator.aclose()
        if self.api is not None:
            await self.api.aclose()
        elif self._api_client is not None:
            await self._api_client.aclose()
        await self._asset_client.aclose()

    async def __aenter__(self) -> Harvester:
        return self

    async def __aexit__(self, *args: object) -> None:
        await self.aclose()
