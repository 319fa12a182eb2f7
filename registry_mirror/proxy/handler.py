"""Registry mirror request handler.

Ties path resolution, credential extraction and the authenticating backend
together, and owns the process-wide resources shared by all requests: the
upstream HTTP session and, in ``shared`` cache mode, the token cache.
"""

import logging
from typing import Mapping, Optional, Tuple

import aiohttp

from registry_mirror.auth.cache import TokenCache
from registry_mirror.auth.credentials import ANONYMOUS, credentials_from_header
from registry_mirror.auth.token import TokenProvider
from registry_mirror.config import Config
from registry_mirror.metrics import PROXY_REQUESTS
from registry_mirror.proxy.backend import Backend, copy_proxy_headers
from registry_mirror.registry.paths import ResolvedPath, resolve

logger = logging.getLogger(__name__)


class RegistryProxy:
    """Handles mirrored registry requests."""

    def __init__(self, config: Config, session: Optional[aiohttp.ClientSession] = None):
        self.config = config
        self.registry = config.org_registry()
        self.session = session
        self._owns_session = session is None
        self.token_cache: Optional[TokenCache] = None
        if config.token.cache_mode == "shared":
            self.token_cache = TokenCache()

    @property
    def ready(self) -> bool:
        return self.session is not None and not self.session.closed

    async def start(self) -> None:
        """Open the upstream session and start the token cache sweeper."""
        if self.session is None:
            self.session = aiohttp.ClientSession(
                timeout=aiohttp.ClientTimeout(
                    total=None,
                    sock_connect=self.config.proxy.connect_timeout,
                    sock_read=self.config.proxy.read_timeout,
                ),
                # Bodies are relayed byte-for-byte with their Content-Encoding
                auto_decompress=False,
            )
            self._owns_session = True

        if self.token_cache is not None:
            self.token_cache.start(self.config.token.sweep_interval)

        logger.info(
            f"Registry proxy started (token cache: {self.config.token.cache_mode}, "
            f"forward credentials: {self.config.proxy.forward_credentials})"
        )

    async def close(self) -> None:
        """Stop the sweeper and close the session if this handler opened it."""
        if self.token_cache is not None:
            await self.token_cache.stop()
        if self.session is not None and self._owns_session:
            await self.session.close()
            self.session = None

    def _cache_for_request(self) -> TokenCache:
        if self.token_cache is not None:
            return self.token_cache
        # per_request mode: nothing is reused between requests
        return TokenCache()

    async def forward(
        self,
        method: str,
        path: str,
        headers: Mapping[str, str],
        query: str = "",
    ) -> Tuple[ResolvedPath, aiohttp.ClientResponse]:
        """Proxy one inbound request to its upstream.

        Returns the resolution and the still-open upstream response.
        """
        if self.session is None:
            raise RuntimeError("Registry proxy not started. Call start() first.")

        resolved = resolve(path, self.registry)

        forward_credentials = self.config.proxy.forward_credentials
        if forward_credentials:
            credentials = credentials_from_header(headers.get("Authorization", ""))
        else:
            credentials = ANONYMOUS

        provider = TokenProvider(
            self.session,
            self._cache_for_request(),
            credentials=credentials,
            timeout=self.config.token.fetch_timeout,
            basic_auth=self.config.token.basic_auth,
        )
        backend = Backend(resolved.host, self.session, provider)

        logger.info(
            f"Proxying {method} {path} -> {resolved.host}{resolved.path} "
            f"(org={resolved.org or '-'}, username={credentials.username or '-'}, "
            f"has_credentials={credentials.present})"
        )

        if not self.config.proxy.forward_query_string:
            query = ""

        resp = await backend.proxy(
            method,
            resolved.path,
            copy_proxy_headers(headers, forward_credentials),
            query=query,
        )

        PROXY_REQUESTS.labels(method=method, status=str(resp.status)).inc()
        logger.info(f"Upstream answered {method} {resolved.path} with {resp.status}")

        return resolved, resp
