"""Prometheus metrics for the registry mirror."""

from prometheus_client import Counter

PROXY_REQUESTS = Counter(
    "registry_mirror_proxy_requests_total",
    "Registry requests proxied upstream",
    ["method", "status"],
)

TOKEN_FETCHES = Counter(
    "registry_mirror_token_fetches_total",
    "Bearer token fetches against token realms",
    ["outcome"],
)

TOKEN_CACHE_HITS = Counter(
    "registry_mirror_token_cache_hits_total",
    "Bearer tokens served from the token cache",
)
