"""Pytest configuration and fixtures for registry mirror tests."""

import asyncio

import aiohttp
import pytest
from aiohttp import web
from aiohttp.test_utils import TestServer

from registry_mirror import create_app
from registry_mirror.config import Config, ProxyConfig, RegistryConfig, TokenConfig

MANIFEST = b'{"schemaVersion": 2}'
MANIFEST_DIGEST = "sha256:0f3e4c5d"
BLOB_CHUNK_SIZE = 1024


class FakeRegistry:
    """Loopback registry with an optional bearer token realm at /token."""

    def __init__(self):
        self.base_url = ""
        self.requests: list[dict] = []
        self.token_requests: list[dict] = []

        # Token the registry demands, None for an open registry
        self.require_token: str | None = None
        # WWW-Authenticate value sent with 401s; None omits the header
        self.challenge: str | None = None

        self.token_status = 200
        self.token_body: object = {"token": "abc", "expires_in": 300}

        # Blob requests stream this many 1 KiB chunks, pausing between them
        self.blob_chunks = 0
        self.blob_chunk_delay = 0.0

        self.app = web.Application()
        self.app.router.add_route("*", "/token", self.token)
        self.app.router.add_route("*", "/{tail:.*}", self.registry)

    def bearer_challenge(self, scope: str = "repository:foo/bar:pull") -> str:
        return (
            f'Bearer realm="{self.base_url}/token",'
            f'service="registry.example.com",scope="{scope}"'
        )

    def use_token_auth(self, token: str = "abc") -> None:
        self.require_token = token
        self.challenge = self.bearer_challenge()

    async def registry(self, request: web.Request) -> web.StreamResponse:
        self.requests.append({
            "method": request.method,
            "path": request.path,
            "raw_path": request.rel_url.raw_path,
            "query": request.query_string,
            "headers": dict(request.headers),
        })

        authorization = request.headers.get("Authorization")
        if self.require_token and authorization != f"Bearer {self.require_token}":
            headers = {}
            if self.challenge is not None:
                headers["WWW-Authenticate"] = self.challenge
            return web.json_response(
                {"errors": [{"code": "UNAUTHORIZED", "message": "authentication required"}]},
                status=401,
                headers=headers,
            )

        if self.blob_chunks and "/blobs/" in request.path:
            return await self._stream_blob(request)

        if request.path.endswith("/missing"):
            return web.json_response({"errors": [{"code": "MANIFEST_UNKNOWN"}]}, status=404)

        return web.Response(
            body=MANIFEST,
            content_type="application/vnd.oci.image.manifest.v1+json",
            headers={"Docker-Content-Digest": MANIFEST_DIGEST},
        )

    async def _stream_blob(self, request: web.Request) -> web.StreamResponse:
        resp = web.StreamResponse(headers={"Content-Type": "application/octet-stream"})
        resp.content_length = self.blob_chunks * BLOB_CHUNK_SIZE
        await resp.prepare(request)
        for _ in range(self.blob_chunks):
            await resp.write(b"x" * BLOB_CHUNK_SIZE)
            await asyncio.sleep(self.blob_chunk_delay)
        await resp.write_eof()
        return resp

    async def token(self, request: web.Request) -> web.Response:
        self.token_requests.append({
            "query": dict(request.query),
            "headers": dict(request.headers),
        })
        if isinstance(self.token_body, (dict, list)):
            return web.json_response(self.token_body, status=self.token_status)
        return web.Response(text=str(self.token_body), status=self.token_status)


class FakeClock:
    """Manually advanced clock for cache expiry tests."""

    def __init__(self, now: float = 1000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


async def _serve(registry: FakeRegistry):
    server = TestServer(registry.app)
    await server.start_server()
    registry.base_url = str(server.make_url("/")).rstrip("/")
    return server


@pytest.fixture
async def fake_registry():
    """Default upstream (stands in for Docker Hub)."""
    registry = FakeRegistry()
    server = await _serve(registry)
    yield registry
    await server.close()


@pytest.fixture
async def quay_registry():
    """Upstream behind the ``quay`` alias."""
    registry = FakeRegistry()
    server = await _serve(registry)
    yield registry
    await server.close()


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
async def session():
    async with aiohttp.ClientSession(auto_decompress=False) as client_session:
        yield client_session


@pytest.fixture
def test_config(fake_registry, quay_registry) -> Config:
    """Create test configuration pointing at the fake upstreams."""
    return Config(
        port=8080,
        debug=True,
        root_redirect_url="https://example.com/docker-mirror",
        proxy=ProxyConfig(
            forward_credentials=True,
            forward_query_string=True,
            connect_timeout=5,
            read_timeout=30,
        ),
        token=TokenConfig(
            cache_mode="shared",
            fetch_timeout=5,
            sweep_interval=60,
        ),
        registry=RegistryConfig(
            orgs={
                "gcr": "https://gcr.io",
                "k8sgcr": "https://k8s.gcr.io",
                "quay": quay_registry.base_url,
                "ghcr": "https://ghcr.io",
            },
            default_host=fake_registry.base_url,
        ),
    )


@pytest.fixture
def app(test_config):
    """Create test application."""
    return create_app(test_config)


@pytest.fixture
async def client(app):
    """Create test client with the serving lifecycle running."""
    async with app.test_app() as test_app:
        yield test_app.test_client()
