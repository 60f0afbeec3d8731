"""Cookie-derived login: identity token → cafe session.

The browser cookie jar only carries identity-provider cookies.  Those are
traded for a short-lived token, which the cafe's SSO endpoint exchanges for
the session cookies the mobile API expects.  If the token request fails the
identity cookies are refreshed once through the account-info endpoint.
"""

from __future__ import annotations

import logging
import re
import ssl
from collections.abc import Iterable
from dataclasses import dataclass

import httpx

from .config import DaumConfig, HarvesterConfig
from .cookies import Credential, read_cookie_jar
from .errors import AuthenticationError, MalformedField, NoMatch, ParseError

logger = logging.getLogger("cafe_harvester.auth")

TOKEN_RE = re.compile(r'"token"\s*:\s*"([^"]*)"')
HEX_RE = re.compile(r"[0-9A-Fa-f]+")
USER_AGENT = "Mozilla/5.0 (Linux; Android 12) AppleWebKit/537.36 (KHTML, like Gecko) Mobile Safari/537.36"


# ── parsers ──────────────────────────────────────────────────────


def parse_token(body: str) -> str:
    """Extract the hex token from the token endpoint's script-like body."""
    m = TOKEN_RE.search(body)
    if m is None:
        raise NoMatch('no "token" field in token response')
    token = m.group(1)
    if not HEX_RE.fullmatch(token):
        raise MalformedField(f"token is not a hex string: {token!r}")
    return token


def parse_set_cookies(headers: Iterable[str]) -> Credential:
    """Turn raw ``Set-Cookie`` header values into a :class:`Credential`.

    Only the leading ``name=value`` pair of each header is kept; attributes
    such as ``Path`` or ``Expires`` are irrelevant for replaying the cookie.
    """
    pairs = []
    for header in headers:
        first = header.split(";", 1)[0].strip()
        name, sep, value = first.partition("=")
        if not sep or not name.strip():
            raise MalformedField(f"Malformed Set-Cookie header: {header!r}")
        pairs.append((name.strip(), value.strip()))
    return Credential(pairs)


@dataclass(frozen=True)
class NeedsRefresh:
    """Outcome of a token request that the identity cookies could not satisfy."""
    reason: Exception


# ── transports ───────────────────────────────────────────────────


def legacy_ssl_context(ciphers: str) -> ssl.SSLContext:
    """TLS context for the identity hosts, which only offer older suites."""
    ctx = ssl.create_default_context()
    ctx.set_ciphers(ciphers)
    return ctx


def make_identity_client(cfg: DaumConfig) -> httpx.AsyncClient:
    kwargs = {} if cfg.timeout is None else {"timeout": cfg.timeout}
    return httpx.AsyncClient(
        verify=legacy_ssl_context(cfg.legacy_ciphers),
        headers={"User-Agent": USER_AGENT},
        **kwargs,
    )


def make_client(cfg: DaumConfig) -> httpx.AsyncClient:
    kwargs = {} if cfg.timeout is None else {"timeout": cfg.timeout}
    return httpx.AsyncClient(headers={"User-Agent": USER_AGENT}, follow_redirects=True, **kwargs)


# ── authenticator ────────────────────────────────────────────────


class SessionAuthenticator:
    """Derives the cafe session from the configured cookie jar."""

    def __init__(
        self,
        cfg: HarvesterConfig,
        *,
        identity_client: httpx.AsyncClient | None = None,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self.cfg = cfg
        self.api = cfg.api
        self._identity_client = identity_client or make_identity_client(cfg.api)
        self._client = client or make_client(cfg.api)

    def load_identity(self) -> Credential:
        """Identity cookies: the refreshed cache if present, else the raw jar."""
        cache = self.cfg.cookie_cache_file
        if self.cfg.use_cookie_cache and cache.is_file():
            logger.info("Using refreshed cookies from %s", cache)
            try:
                return Credential.deserialize(cache.read_text(encoding="utf-8").rstrip("\r\n"))
            except (OSError, ParseError) as exc:
                logger.warning("Ignoring unreadable cookie cache %s: %s", cache, exc)
        return read_cookie_jar(self.cfg.cookies_file, self.api.identity_domain)

    async def derive_token(self, identity: Credential) -> str | NeedsRefresh:
        resp = await self._identity_client.get(
            self.api.token_url,
            headers={"Cookie": identity.serialize(), "Referer": self.api.token_referer},
        )
        try:
            resp.raise_for_status()
            return parse_token(resp.text)
        except (httpx.HTTPStatusError, ParseError) as exc:
            logger.debug("Token request failed: %s", exc)
            return NeedsRefresh(exc)

    async def refresh(self, identity: Credential) -> Credential:
        """Refresh identity cookies via the account-info endpoint and cache them."""
        resp = await self._identity_client.get(
            self.api.account_info_url,
            headers={"Cookie": identity.serialize()},
        )
        updates = parse_set_cookies(resp.headers.get_list("set-cookie"))
        refreshed = identity.merge(updates)
        logger.info("Refreshed %d of %d cookies", len(set(updates) & set(identity)), len(identity))

        cache = self.cfg.cookie_cache_file
        try:
            cache.write_text(refreshed.serialize(), encoding="utf-8")
        except OSError as exc:
            logger.warning("Could not write cookie cache %s: %s", cache, exc)
        return refreshed

    async def exchange(self, token: str) -> Credential:
        """Trade the identity token for the cafe session cookies."""
        resp = await self._client.get(
            self.api.sso_url,
            params={"token": token},
            headers={"Host": self.api.sso_host},
            follow_redirects=False,
        )
        session = parse_set_cookies(resp.headers.get_list("set-cookie"))
        if not session:
            raise AuthenticationError(f"SSO login returned no cookies (HTTP {resp.status_code})")
        return session

    async def authenticate(self) -> Credential:
        identity = self.load_identity()
        try:
            outcome = await self.derive_token(identity)
            if isinstance(outcome, NeedsRefresh):
                logger.info("Token request failed, refreshing cookies")
                identity = await self.refresh(identity)
                outcome = await self.derive_token(identity)
                if isinstance(outcome, NeedsRefresh):
                    raise AuthenticationError("Authentication error") from outcome.reason
            session = await self.exchange(outcome)
        except (httpx.HTTPError, ParseError) as exc:
            raise AuthenticationError("Authentication error") from exc
        logger.info("Authenticated (%d session cookies)", len(session))
        return session

    async def aclose(self) -> None:
        await self._identity_client.aclose()
        await self._client.aclose()

    async def __aenter__(self) -> SessionAuthenticator:
        return self

    async def __aexit__(self, *args: object) -> None:
        await self.aclose()
