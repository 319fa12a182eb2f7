"""Org alias table mapping short path prefixes to upstream registries."""

from dataclasses import dataclass
from types import MappingProxyType
from typing import Mapping

DEFAULT_HOST = "https://registry-1.docker.io"

DEFAULT_ORGS: Mapping[str, str] = MappingProxyType({
    "gcr": "https://gcr.io",
    "k8sgcr": "https://k8s.gcr.io",
    "quay": "https://quay.io",
    "ghcr": "https://ghcr.io",
})

ACTION_NAMES = frozenset({"manifests", "blobs", "tags", "referrers"})

# Docker Hub namespace holding official single-name images.
LIBRARY_NAMESPACE = "library"


@dataclass(frozen=True)
class OrgRegistry:
    """Immutable alias -> upstream base URL table.

    Built once at startup and shared by every request.
    """
    backends: Mapping[str, str]
    default_host: str = DEFAULT_HOST

    @classmethod
    def build(
        cls,
        backends: Mapping[str, str],
        default_host: str = DEFAULT_HOST,
    ) -> "OrgRegistry":
        table = {alias.lower(): url.rstrip("/") for alias, url in backends.items()}
        return cls(
            backends=MappingProxyType(table),
            default_host=default_host.rstrip("/"),
        )

    def is_known(self, org: str) -> bool:
        return org in self.backends

    def host_by_org_name(self, org: str) -> str:
        """Return the upstream for an alias, or the default host for anything else."""
        return self.backends.get(org, self.default_host)


DEFAULT_REGISTRY = OrgRegistry.build(DEFAULT_ORGS)
