"""Resume point and stop conditions for a board crawl."""

from __future__ import annotations

import itertools
import logging
from collections.abc import Iterator
from dataclasses import dataclass
from pathlib import Path

logger = logging.getLogger("cafe_harvester.cursor")

ID_FIELD = 3  # {date8}_{cafe}_{board}_{id}_{title}
DEFAULT_MISSING_LIMIT = 5


def entry_id(name: str) -> int | None:
    """PostID embedded in an archive entry name, if any."""
    parts = name.split("_")
    if len(parts) <= ID_FIELD:
        return None
    field = parts[ID_FIELD]
    return int(field) if field.isascii() and field.isdigit() else None


def first_id(board_dir: str | Path) -> int:
    """Next PostID to fetch: highest archived ID + 1, or 1 for a fresh board."""
    board_dir = Path(board_dir)
    if not board_dir.is_dir():
        return 1
    ids = [i for i in (entry_id(p.name) for p in board_dir.iterdir()) if i is not None]
    return max(ids, default=0) + 1


# ── stop policies ────────────────────────────────────────────────


@dataclass(frozen=True)
class Bounded:
    """Stop after *ceiling*, the newest ID in the board listing.  API errors are fatal."""
    ceiling: int

    errors_are_misses = False


@dataclass(frozen=True)
class Streak:
    """Scan forward until *limit* consecutive misses.  API errors count as misses."""
    limit: int = DEFAULT_MISSING_LIMIT

    errors_are_misses = True


StopPolicy = Bounded | Streak


class CrawlCursor:
    """Walks the PostID space of one board under a :data:`StopPolicy`.

    Iterating yields IDs in order.  The caller reports each outcome with
    :meth:`hit`, :meth:`miss` or :meth:`skip` before asking for the next ID.
    """

    def __init__(self, start: int, policy: StopPolicy) -> None:
        self.start = start
        self.policy = policy
        self.current = start
        self.streak = 0

    @property
    def stopped(self) -> bool:
        if isinstance(self.policy, Bounded):
            return self.current > self.policy.ceiling
        if isinstance(self.policy, Streak):
            return self.streak >= self.policy.limit
        raise TypeError(f"Unknown stop policy: {self.policy!r}")

    def __iter__(self) -> Iterator[int]:
        for post_id in itertools.count(self.start):
            self.current = post_id
            if self.stopped:
                return
            yield post_id

    def hit(self) -> None:
        self.streak = 0

    def miss(self) -> None:
        self.streak += 1
        if isinstance(self.policy, Streak) and self.streak >= self.policy.limit:
            logger.info(
                "%d consecutive misses at ID %d, stopping", self.streak, self.current
            )

    def skip(self) -> None:
        """Deleted post: neither a hit nor a miss."""
