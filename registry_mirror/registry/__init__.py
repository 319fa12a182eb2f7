"""Org alias table and registry path resolution."""

from registry_mirror.registry.orgs import ACTION_NAMES, DEFAULT_REGISTRY, OrgRegistry
from registry_mirror.registry.paths import (
    ResolvedPath,
    org_name_from_path,
    resolve,
    rewrite_path,
)

__all__ = [
    "ACTION_NAMES",
    "DEFAULT_REGISTRY",
    "OrgRegistry",
    "ResolvedPath",
    "org_name_from_path",
    "resolve",
    "rewrite_path",
]
