"""Upstream proxy implementation."""

from registry_mirror.proxy.backend import Backend
from registry_mirror.proxy.handler import RegistryProxy

__all__ = ["Backend", "RegistryProxy"]
