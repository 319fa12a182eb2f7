"""
Registry Mirror: reverse proxy for container registry v2 APIs

A Python async service providing:
- Org-prefixed routing to Docker Hub, GCR, k8s.gcr.io, Quay and GHCR
- Docker Hub library/ namespace rewriting for official images
- Transparent Bearer token challenge handling with a shared token cache
- Live streaming of manifests and blobs (nothing is stored)
"""

import logging

from prometheus_client import CONTENT_TYPE_LATEST, generate_latest
from quart import Quart, Response, redirect

from registry_mirror.config import Config
from registry_mirror.proxy.handler import RegistryProxy


def create_app(config: Config | None = None) -> Quart:
    """Create and configure the Quart application."""
    app = Quart(__name__)

    if config is None:
        config = Config.from_env()

    app.config["CONFIG"] = config

    # Configure logging
    logging.basicConfig(
        level=logging.DEBUG if config.debug else logging.INFO,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )

    registry_proxy = RegistryProxy(config)
    app.config["REGISTRY_PROXY"] = registry_proxy

    @app.before_serving
    async def startup():
        await registry_proxy.start()

    @app.after_serving
    async def shutdown():
        await registry_proxy.close()

    # Register blueprints
    from registry_mirror.registry.routes import registry_bp

    app.register_blueprint(registry_bp)

    if config.root_redirect_url:
        @app.route("/")
        async def index():
            """Redirect the bare host to the usage page."""
            return redirect(config.root_redirect_url, code=301)

    # Register health endpoints
    @app.route("/healthz")
    async def healthz():
        """Health check endpoint."""
        return {"status": "healthy"}, 200

    @app.route("/readyz")
    async def readyz():
        """Readiness check endpoint."""
        if registry_proxy.ready:
            return {"status": "ready"}, 200
        return {"status": "not ready"}, 503

    @app.route("/metrics")
    async def metrics():
        """Prometheus metrics endpoint."""
        return Response(generate_latest(), status=200, content_type=CONTENT_TYPE_LATEST)

    return app
