"""Archive entry naming, staging and publish."""

from __future__ import annotations

import logging
import os
import re
import shutil
import tempfile
from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path

import regex

from .api import Post
from .errors import PublishError

logger = logging.getLogger("cafe_harvester.publisher")

TITLE_MAX_BYTES = 100
NAME_MAX_BYTES = 255

_ILLEGAL_RE = re.compile(r'[/?<>\\:*|"\x00-\x1f\x80-\x9f]')
_RESERVED_RE = re.compile(r"^\.+$")
_WINDOWS_RESERVED_RE = re.compile(r"^(con|prn|aux|nul|com\d|lpt\d)(\..*)?$", re.IGNORECASE)
_GRAPHEME_RE = regex.compile(r"\X")


def truncate_graphemes(text: str, max_bytes: int = TITLE_MAX_BYTES) -> str:
    """Longest prefix of whole grapheme clusters that fits in *max_bytes* of UTF-8."""
    out: list[str] = []
    size = 0
    for g in _GRAPHEME_RE.findall(text):
        n = len(g.encode("utf-8"))
        if size + n > max_bytes:
            break
        out.append(g)
        size += n
    return "".join(out)


def sanitize_filename(name: str) -> str:
    """Strip characters that are unsafe in file names on common filesystems."""
    safe = _ILLEGAL_RE.sub("", name)
    if _RESERVED_RE.match(safe) or _WINDOWS_RESERVED_RE.match(safe):
        safe = ""
    safe = safe.rstrip(". ")
    return truncate_graphemes(safe, NAME_MAX_BYTES)


def archive_prefix(post: Post, cafe: str) -> str:
    title = truncate_graphemes(post.title, TITLE_MAX_BYTES)
    return sanitize_filename(f"{post.date8}_{cafe}_{post.board}_{post.id:04d}_{title}")


# ── staging ──────────────────────────────────────────────────────


@contextmanager
def staging_dir() -> Iterator[Path]:
    """Scratch directory for one post, removed on exit whatever happens."""
    with tempfile.TemporaryDirectory(prefix="cafe-harvester-") as tmp:
        yield Path(tmp)


def write_body(post: Post, prefix: str, scratch: Path) -> Path:
    path = scratch / f"{prefix}.txt"
    path.write_text(post.body or "", encoding="utf-8")
    return path


def publish(scratch: Path, final: Path) -> Path:
    """Move a fully staged *scratch* directory to *final*.

    The scratch copy lands next to *final* under its temporary name, so the
    rename that gives it the final name never crosses filesystems.
    """
    if final.exists():
        raise PublishError(f"Archive entry already exists: {final}")
    parent = final.parent
    parent.mkdir(parents=True, exist_ok=True)
    landing = parent / scratch.name
    try:
        shutil.copytree(scratch, landing)
    except OSError as exc:
        shutil.rmtree(landing, ignore_errors=True)
        raise PublishError(f"Could not copy {scratch} to {parent}") from exc
    try:
        os.rename(landing, final)
    except OSError as exc:
        shutil.rmtree(landing, ignore_errors=True)
        raise PublishError(f"Could not rename {landing} to {final}") from exc
    logger.debug("Published %s", final)
    return final
