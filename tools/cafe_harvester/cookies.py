"""Cookie jars and credentials.

A :class:`Credential` is what ends up in a ``Cookie`` request header: an
ordered set of unique ``name=value`` pairs for one domain.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Iterator, Mapping
from pathlib import Path

from .errors import ConfigError, MalformedField

logger = logging.getLogger("cafe_harvester.cookies")

_HTTPONLY_PREFIX = "#HttpOnly_"


class Credential(Mapping[str, str]):
    """Immutable, insertion-ordered cookie set."""

    def __init__(self, pairs: Iterable[tuple[str, str]] = ()) -> None:
        self._pairs: dict[str, str] = {}
        for name, value in pairs:
            # later duplicates win, but keep the first position
            self._pairs[name] = value

    def __getitem__(self, name: str) -> str:
        return self._pairs[name]

    def __iter__(self) -> Iterator[str]:
        return iter(self._pairs)

    def __len__(self) -> int:
        return len(self._pairs)

    def __eq__(self, other: object) -> bool:
        if isinstance(other, Credential):
            return list(self._pairs.items()) == list(other._pairs.items())
        return NotImplemented

    def __hash__(self) -> int:
        return hash(tuple(self._pairs.items()))

    def __repr__(self) -> str:
        return f"Credential({list(self._pairs)!r})"

    # ── serialization ────────────────────────────────────────────

    def serialize(self) -> str:
        return "; ".join(f"{name}={value}" for name, value in self._pairs.items())

    @classmethod
    def deserialize(cls, header: str) -> Credential:
        pairs = []
        for chunk in header.split(";"):
            # only the separator space; values may carry their own whitespace
            if chunk.startswith(" "):
                chunk = chunk[1:]
            if not chunk:
                continue
            name, sep, value = chunk.partition("=")
            if not sep or not name:
                raise MalformedField(f"Not a name=value pair: {chunk!r}")
            pairs.append((name, value))
        return cls(pairs)

    # ── refresh ──────────────────────────────────────────────────

    def merge(self, updates: Mapping[str, str]) -> Credential:
        """Apply refreshed cookie values.

        Known names take the new value, or are dropped when the new value is
        empty.  Names this credential does not already carry are ignored.
        """
        merged = []
        for name, value in self._pairs.items():
            if name in updates:
                if not updates[name]:
                    continue
                value = updates[name]
            merged.append((name, value))
        return Credential(merged)


def parse_cookie_jar(text: str, domain_suffix: str) -> Credential:
    """Pick the cookies of *domain_suffix* out of a Netscape ``cookies.txt``."""
    pairs = []
    for line in text.splitlines():
        if line.startswith(_HTTPONLY_PREFIX):
            line = line[len(_HTTPONLY_PREFIX):]
        elif not line.strip() or line.startswith("#"):
            continue
        fields = line.rstrip("\r\n").split("\t")
        if len(fields) < 7:
            continue
        domain, name, value = fields[0], fields[5], fields[6]
        if domain.endswith(domain_suffix) and name:
            pairs.append((name, value))
    return Credential(pairs)


def read_cookie_jar(path: str | Path, domain_suffix: str) -> Credential:
    path = Path(path)
    try:
        text = path.read_text(encoding="utf-8")
    except OSError as exc:
        raise ConfigError(f"Error reading cookies file {path}") from exc
    cred = parse_cookie_jar(text, domain_suffix)
    if not cred:
        logger.warning("No cookies for %s in %s", domain_suffix, path)
    else:
        logger.debug("Loaded %d cookies for %s from %s", len(cred), domain_suffix, path)
    return cred
