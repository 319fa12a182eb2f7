"""Configuration management for the registry mirror service."""

import os
from dataclasses import dataclass, field
from typing import Dict, Optional
from urllib.parse import urlsplit

import yaml

from registry_mirror.exceptions import ConfigurationError
from registry_mirror.registry.orgs import DEFAULT_HOST, DEFAULT_ORGS, OrgRegistry

CACHE_MODES = ("shared", "per_request")


def _env_bool(name: str, default: bool) -> bool:
    return os.getenv(name, str(default)).lower() == "true"


@dataclass
class ProxyConfig:
    """Upstream proxy behavior."""
    forward_credentials: bool = True
    forward_query_string: bool = True
    connect_timeout: float = 30
    read_timeout: float = 300  # per socket read, no total cap for large blobs
    chunk_size: int = 65536
    # Total time to stream one response to the client, None for no limit
    response_timeout: Optional[float] = None


@dataclass
class TokenConfig:
    """Bearer token provider and cache settings."""
    cache_mode: str = "shared"  # shared, per_request
    fetch_timeout: float = 30
    sweep_interval: float = 600
    basic_auth: bool = False


@dataclass
class RegistryConfig:
    """Org alias table and default upstream."""
    orgs: Dict[str, str] = field(default_factory=lambda: dict(DEFAULT_ORGS))
    default_host: str = DEFAULT_HOST


@dataclass
class Config:
    """Main application configuration."""
    # Server
    host: str = "0.0.0.0"
    port: int = 8080
    debug: bool = False
    workers: int = 1
    root_redirect_url: str = "https://onepage.czl.net/tools/docker_mirror.html"

    proxy: ProxyConfig = field(default_factory=ProxyConfig)
    token: TokenConfig = field(default_factory=TokenConfig)
    registry: RegistryConfig = field(default_factory=RegistryConfig)

    @classmethod
    def from_env(cls) -> "Config":
        """Load configuration from environment variables."""
        config = cls()

        # Server config
        config.host = os.getenv("HOST", config.host)
        config.port = int(os.getenv("PORT", config.port))
        config.debug = _env_bool("DEBUG", False)
        config.workers = int(os.getenv("WORKERS", config.workers))
        config.root_redirect_url = os.getenv("ROOT_REDIRECT_URL", config.root_redirect_url)

        # Proxy config
        config.proxy.forward_credentials = _env_bool(
            "FORWARD_CREDENTIALS", config.proxy.forward_credentials
        )
        config.proxy.forward_query_string = _env_bool(
            "FORWARD_QUERY_STRING", config.proxy.forward_query_string
        )
        config.proxy.connect_timeout = float(
            os.getenv("UPSTREAM_CONNECT_TIMEOUT", config.proxy.connect_timeout)
        )
        config.proxy.read_timeout = float(
            os.getenv("UPSTREAM_READ_TIMEOUT", config.proxy.read_timeout)
        )
        response_timeout = os.getenv("RESPONSE_TIMEOUT")
        if response_timeout:
            config.proxy.response_timeout = float(response_timeout) or None

        # Token config
        config.token.cache_mode = os.getenv("TOKEN_CACHE_MODE", config.token.cache_mode)
        config.token.fetch_timeout = float(
            os.getenv("TOKEN_FETCH_TIMEOUT", config.token.fetch_timeout)
        )
        config.token.sweep_interval = float(
            os.getenv("TOKEN_SWEEP_INTERVAL", config.token.sweep_interval)
        )
        config.token.basic_auth = _env_bool("TOKEN_BASIC_AUTH", config.token.basic_auth)

        # Registry config
        config.registry.default_host = os.getenv(
            "DEFAULT_REGISTRY", config.registry.default_host
        )

        config.validate()
        return config

    @classmethod
    def from_yaml(cls, path: str) -> "Config":
        """Load configuration from YAML file."""
        with open(path) as f:
            data = yaml.safe_load(f) or {}

        config = cls()

        if "server" in data:
            server = data["server"]
            config.host = server.get("host", config.host)
            config.port = server.get("port", config.port)
            config.debug = server.get("debug", config.debug)
            config.workers = server.get("workers", config.workers)
            config.root_redirect_url = server.get(
                "root_redirect_url", config.root_redirect_url
            )

        if "proxy" in data:
            proxy_data = data["proxy"]
            config.proxy = ProxyConfig(
                forward_credentials=proxy_data.get(
                    "forward_credentials", config.proxy.forward_credentials
                ),
                forward_query_string=proxy_data.get(
                    "forward_query_string", config.proxy.forward_query_string
                ),
                connect_timeout=proxy_data.get("connect_timeout", config.proxy.connect_timeout),
                read_timeout=proxy_data.get("read_timeout", config.proxy.read_timeout),
                chunk_size=proxy_data.get("chunk_size", config.proxy.chunk_size),
                response_timeout=proxy_data.get(
                    "response_timeout", config.proxy.response_timeout
                ),
            )

        if "token" in data:
            token_data = data["token"]
            config.token = TokenConfig(
                cache_mode=token_data.get("cache_mode", config.token.cache_mode),
                fetch_timeout=token_data.get("fetch_timeout", config.token.fetch_timeout),
                sweep_interval=token_data.get("sweep_interval", config.token.sweep_interval),
                basic_auth=token_data.get("basic_auth", config.token.basic_auth),
            )

        if "registry" in data:
            registry_data = data["registry"]
            orgs = dict(DEFAULT_ORGS)
            orgs.update(registry_data.get("orgs") or {})
            config.registry = RegistryConfig(
                orgs=orgs,
                default_host=registry_data.get("default_host", config.registry.default_host),
            )

        config.validate()
        return config

    def validate(self) -> None:
        """Reject settings the proxy cannot run with."""
        if self.token.cache_mode not in CACHE_MODES:
            raise ConfigurationError(
                f"Unknown token cache mode {self.token.cache_mode!r}, "
                f"expected one of {', '.join(CACHE_MODES)}"
            )

        for name, value in (
            ("proxy.connect_timeout", self.proxy.connect_timeout),
            ("proxy.read_timeout", self.proxy.read_timeout),
            ("token.fetch_timeout", self.token.fetch_timeout),
            ("token.sweep_interval", self.token.sweep_interval),
        ):
            if value <= 0:
                raise ConfigurationError(f"{name} must be positive, got {value}")

        if self.proxy.response_timeout is not None and self.proxy.response_timeout <= 0:
            raise ConfigurationError(
                f"proxy.response_timeout must be positive, got {self.proxy.response_timeout}"
            )

        if self.token.fetch_timeout > self.proxy.read_timeout:
            raise ConfigurationError(
                "token.fetch_timeout must not exceed proxy.read_timeout"
            )

        for alias, url in self.registry.orgs.items():
            _check_base_url(url, f"registry.orgs.{alias}")
        _check_base_url(self.registry.default_host, "registry.default_host")

    def org_registry(self) -> OrgRegistry:
        """Build the immutable org alias table."""
        return OrgRegistry.build(self.registry.orgs, default_host=self.registry.default_host)


def _check_base_url(url: str, name: str) -> None:
    parts = urlsplit(url)
    if parts.scheme not in ("http", "https") or not parts.netloc:
        raise ConfigurationError(f"{name} is not an http(s) URL: {url!r}")


def load_config(path: Optional[str] = None) -> Config:
    """Load configuration from a YAML file if one is given, else from the environment."""
    path = path or os.getenv("CONFIG_PATH")
    if path and os.path.exists(path):
        return Config.from_yaml(path)
    return Config.from_env()
