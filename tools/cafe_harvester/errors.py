"""Exception hierarchy for the harvester."""

from __future__ import annotations


class HarvesterError(Exception):
    """Base class for every error the harvester raises on purpose."""


class ConfigError(HarvesterError):
    """Bad or missing settings, or an unreadable cookie file."""


class AuthenticationError(HarvesterError):
    """Session derivation failed, even after a cookie refresh."""


class NotAuthorizedError(HarvesterError):
    """The cafe API rejected the session in the middle of a crawl."""

    def __str__(self) -> str:
        return "Not authorized, try updating cookies file"


class APIError(HarvesterError):
    """Unexpected ``exceptionCode`` or a malformed API payload."""

    def __init__(self, code: str) -> None:
        super().__init__(code)
        self.code = code

    def __str__(self) -> str:
        return f"Daum API error: {self.code}"


class MissingFieldError(APIError):
    def __init__(self, field: str) -> None:
        super().__init__(f"missing field {field!r}")
        self.field = field


class TransientFetchMiss(HarvesterError):
    """A post could not be decoded; the cursor moves on."""


class PublishError(HarvesterError):
    """An archive entry could not be moved into place."""


# ── parse failures ───────────────────────────────────────────────


class ParseError(HarvesterError):
    pass


class NoMatch(ParseError):
    """The expected pattern does not occur in the input."""


class MalformedField(ParseError):
    """The pattern occurs but its value is unusable."""
