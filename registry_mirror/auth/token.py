"""Bearer token provider for upstream registries.

Answers a registry's ``WWW-Authenticate: Bearer`` challenge by fetching a
token from the challenge realm, and memoizes tokens in a ``TokenCache`` keyed
by a SHA-256 digest of the credentials and challenge so that passwords are
never held in the clear as cache keys.
"""

import asyncio
import hashlib
import json
import logging
from typing import Optional

import aiohttp
from yarl import URL

from registry_mirror.auth.cache import Token, TokenCache
from registry_mirror.auth.challenge import AuthChallenge, parse_challenge
from registry_mirror.auth.credentials import ANONYMOUS, Credentials
from registry_mirror.exceptions import TokenFetchError, UpstreamTransportError
from registry_mirror.metrics import TOKEN_CACHE_HITS, TOKEN_FETCHES

logger = logging.getLogger(__name__)

DEFAULT_FETCH_TIMEOUT = 30


def cache_key(credentials: Credentials, challenge: AuthChallenge) -> str:
    """Deterministic cache key for a credentials + challenge pair."""
    material = json.dumps(
        [
            credentials.username,
            credentials.password,
            challenge.realm,
            challenge.service,
            challenge.scope,
        ]
    )
    return "token/" + hashlib.sha256(material.encode("utf-8")).hexdigest()


class TokenProvider:
    """Fetches and caches bearer tokens for one set of credentials."""

    def __init__(
        self,
        session: aiohttp.ClientSession,
        cache: TokenCache,
        credentials: Credentials = ANONYMOUS,
        timeout: float = DEFAULT_FETCH_TIMEOUT,
        basic_auth: bool = False,
    ):
        """Initialize the provider.

        Args:
            session: Shared aiohttp session used for realm requests
            cache: Token cache, normally shared process-wide
            credentials: Client credentials scoping the cache entries
            timeout: Total timeout for one realm request, in seconds
            basic_auth: Send credentials to the realm as HTTP Basic auth.
                Off by default, in which case credentials only scope the
                cache and realm requests are anonymous.
        """
        self.session = session
        self.cache = cache
        self.credentials = credentials
        self.timeout = aiohttp.ClientTimeout(total=timeout)
        self.basic_auth = basic_auth

    async def get_token(self, authenticate: str) -> Token:
        """Return a token answering a raw ``WWW-Authenticate`` value.

        Raises:
            MalformedChallenge: the header is not a Bearer challenge
            TokenFetchError: the realm refused or answered garbage
            UpstreamTransportError: the realm could not be reached
        """
        return await self.token_for_challenge(parse_challenge(authenticate))

    async def token_for_challenge(self, challenge: AuthChallenge) -> Token:
        """Return a token for an already parsed challenge."""
        key = cache_key(self.credentials, challenge)

        cached = self.cache.get(key)
        if cached is not None:
            TOKEN_CACHE_HITS.inc()
            logger.debug(f"Using cached token {key[:18]}")
            return cached

        token = await self._fetch_token(challenge)

        if self.cache.set(key, token):
            logger.info(f"Cached new token {key[:18]} (expires_in={token.expires_in})")
        else:
            logger.info(
                f"Not caching token {key[:18]} with expires_in={token.expires_in}"
            )

        return token

    def _token_url(self, challenge: AuthChallenge) -> URL:
        try:
            url = URL(challenge.realm)
        except (TypeError, ValueError) as e:
            raise TokenFetchError(f"invalid token realm {challenge.realm!r}") from e

        if url.scheme not in ("http", "https") or not url.host:
            raise TokenFetchError(f"invalid token realm {challenge.realm!r}")

        query = {}
        if challenge.service:
            query["service"] = challenge.service
        if challenge.scope:
            query["scope"] = challenge.scope
        return url.update_query(query) if query else url

    def _auth(self) -> Optional[aiohttp.BasicAuth]:
        if self.basic_auth and self.credentials.present:
            return aiohttp.BasicAuth(self.credentials.username, self.credentials.password)
        return None

    async def _fetch_token(self, challenge: AuthChallenge) -> Token:
        url = self._token_url(challenge)

        try:
            async with self.session.get(
                url, auth=self._auth(), timeout=self.timeout
            ) as resp:
                if resp.status != 200:
                    TOKEN_FETCHES.labels(outcome="rejected").inc()
                    logger.warning(
                        f"Token request to {url.with_query(None)} "
                        f"failed with status {resp.status}"
                    )
                    raise TokenFetchError(f"token request failed with status {resp.status}")

                try:
                    data = await resp.json(content_type=None)
                except (aiohttp.ContentTypeError, ValueError) as e:
                    TOKEN_FETCHES.labels(outcome="invalid").inc()
                    raise TokenFetchError("failed to decode token response") from e
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            TOKEN_FETCHES.labels(outcome="error").inc()
            logger.warning(f"Failed to fetch token from {url.with_query(None)}: {e!r}")
            raise UpstreamTransportError(f"failed to fetch token from {url}") from e

        token = _decode_token(data)
        TOKEN_FETCHES.labels(outcome="ok").inc()
        return token


def _decode_token(data) -> Token:
    if not isinstance(data, dict):
        TOKEN_FETCHES.labels(outcome="invalid").inc()
        raise TokenFetchError("token response is not a JSON object")

    # Docker's token spec allows access_token as an alias for token
    value = data.get("token") or data.get("access_token")
    expires_in = data.get("expires_in", 0)

    if not isinstance(value, str) or not value:
        TOKEN_FETCHES.labels(outcome="invalid").inc()
        raise TokenFetchError("token response has no token")
    if isinstance(expires_in, bool) or not isinstance(expires_in, int):
        TOKEN_FETCHES.labels(outcome="invalid").inc()
        raise TokenFetchError(f"token response has invalid expires_in {expires_in!r}")

    return Token(token=value, expires_in=expires_in)
