"""Registry API path resolution.

Decides which upstream a ``/v2/...`` request targets and rewrites the path
into the form that upstream expects:

- ``/v2/quay/foo/bar/manifests/v1`` -> quay.io, ``/v2/foo/bar/manifests/v1``
- ``/v2/nginx/manifests/latest`` -> Docker Hub, ``/v2/library/nginx/manifests/latest``
- ``/v2/`` and anything not shaped like ``/v2/<org>/...`` -> default host, unchanged

Action names at offset 3 are matched exactly; an unknown action is forwarded
as-is and left for the upstream to reject.
"""

from dataclasses import dataclass

from registry_mirror.registry.orgs import (
    ACTION_NAMES,
    DEFAULT_REGISTRY,
    LIBRARY_NAMESPACE,
    OrgRegistry,
)


@dataclass(frozen=True)
class ResolvedPath:
    """Outcome of resolving one inbound path."""
    org: str
    path: str
    host: str


def org_name_from_path(path: str) -> str:
    """Return the lower-cased alias at segment 2 of a ``/v2/`` path, or ''."""
    segments = path.split("/")
    if len(segments) >= 3 and segments[1] == "v2" and segments[2]:
        return segments[2].lower()
    return ""


def rewrite_path(org: str, path: str, registry: OrgRegistry = DEFAULT_REGISTRY) -> str:
    """Rewrite ``path`` for the upstream that serves ``org``."""
    segments = path.split("/")

    # Official single-name images live under library/ on Docker Hub
    if (
        org
        and not registry.is_known(org)
        and len(segments) == 5
        and segments[3] in ACTION_NAMES
    ):
        return "/".join(segments[:2] + [LIBRARY_NAMESPACE] + segments[2:])

    if not org:
        return path

    # Aliased upstreams expect the path without the alias prefix
    if registry.is_known(org):
        return "/".join(segments[:2] + segments[3:])

    return path


def resolve(path: str, registry: OrgRegistry = DEFAULT_REGISTRY) -> ResolvedPath:
    """Resolve org, rewritten path and upstream host for an inbound path."""
    org = org_name_from_path(path)
    return ResolvedPath(
        org=org,
        path=rewrite_path(org, path, registry),
        host=registry.host_by_org_name(org),
    )
