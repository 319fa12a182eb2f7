"""Authenticating backend proxy for one upstream registry.

Sends a request upstream and, when the upstream answers 401 with a Bearer
challenge, fetches a token and retries exactly once:

    SEND_PLAIN -> done                                   (status != 401, no challenge)
    SEND_PLAIN -> AUTHENTICATE -> SEND_AUTHENTICATED -> done

The returned ``aiohttp.ClientResponse`` is still open so its body can be
streamed; callers must release it.
"""

import asyncio
import logging
from typing import Mapping, Optional

import aiohttp
from multidict import CIMultiDict
from yarl import URL

from registry_mirror.auth.challenge import parse_challenge
from registry_mirror.auth.token import TokenProvider
from registry_mirror.exceptions import (
    ConfigurationError,
    MalformedChallenge,
    UpstreamTransportError,
)

logger = logging.getLogger(__name__)

PROXY_HEADER_ALLOW_LIST = ("Accept", "User-Agent", "Accept-Encoding")
CREDENTIAL_HEADER = "Authorization"

# Headers aiohttp would otherwise add on its own
AUTO_HEADERS = ("Accept", "User-Agent", "Accept-Encoding")


def copy_proxy_headers(
    headers: Mapping[str, str], forward_credentials: bool = True
) -> CIMultiDict:
    """Keep only the inbound headers that may be sent upstream."""
    allowed = {name.lower() for name in PROXY_HEADER_ALLOW_LIST}
    if forward_credentials:
        allowed.add(CREDENTIAL_HEADER.lower())

    outbound = CIMultiDict()
    for name, value in headers.items():
        if name.lower() in allowed:
            outbound.add(name, value)
    return outbound


class Backend:
    """Proxy to a single upstream registry host."""

    def __init__(
        self,
        host: str,
        session: aiohttp.ClientSession,
        token_provider: Optional[TokenProvider] = None,
        timeout: Optional[aiohttp.ClientTimeout] = None,
    ):
        self.host = host
        self.session = session
        self.token_provider = token_provider
        self.timeout = timeout

    def target_url(self, path: str, query: str = "") -> URL:
        """Build the upstream URL for a rewritten path.

        Raises:
            ConfigurationError: if the configured host is not an absolute URL
        """
        try:
            base = URL(self.host)
        except (TypeError, ValueError) as e:
            raise ConfigurationError(f"failed to parse host URL {self.host!r}") from e
        if not base.is_absolute() or base.scheme not in ("http", "https"):
            raise ConfigurationError(f"failed to parse host URL {self.host!r}")

        # Paths arrive percent-encoded as the client sent them
        url = base.with_path(path, encoded=True)
        if query:
            # Forwarded verbatim, already percent-encoded by the client
            url = URL(f"{url}?{query}", encoded=True)
        return url

    async def proxy(
        self,
        method: str,
        path: str,
        headers: Mapping[str, str],
        query: str = "",
    ) -> aiohttp.ClientResponse:
        """Send ``method path`` upstream, authenticating at most once.

        Raises:
            ConfigurationError: the host URL is malformed
            UpstreamTransportError: the upstream or token realm is unreachable
            TokenFetchError: the token realm refused the challenge
        """
        url = self.target_url(path, query)
        headers = CIMultiDict(headers)

        resp = await self._send(method, url, headers)

        if resp.status != 401 or self.token_provider is None:
            return resp

        authenticate = resp.headers.get("WWW-Authenticate")
        if not authenticate:
            return resp

        # Parse before releasing so a non-Bearer 401 reaches the client intact
        try:
            challenge = parse_challenge(authenticate)
        except MalformedChallenge:
            logger.warning(f"Passing through 401 with unusable challenge: {authenticate}")
            return resp

        resp.release()

        logger.info(f"Handling authentication for {url.with_query(None)}: {authenticate}")
        token = await self.token_provider.token_for_challenge(challenge)

        auth_headers = CIMultiDict(headers)
        auth_headers[CREDENTIAL_HEADER] = f"Bearer {token.token}"
        return await self._send(method, url, auth_headers)

    async def _send(
        self, method: str, url: URL, headers: CIMultiDict
    ) -> aiohttp.ClientResponse:
        kwargs = {}
        if self.timeout is not None:
            kwargs["timeout"] = self.timeout

        try:
            return await self.session.request(
                method,
                url,
                headers=headers,
                skip_auto_headers=AUTO_HEADERS,
                **kwargs,
            )
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            raise UpstreamTransportError(
                f"failed to execute {method} {url.with_query(None)}: {e!r}"
            ) from e
