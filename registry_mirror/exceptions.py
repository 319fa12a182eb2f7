"""Exceptions raised by the registry mirror."""


class MirrorError(Exception):
    """Base class for all mirror errors."""


class ConfigurationError(MirrorError):
    """Invalid configuration or malformed upstream URL."""


class UpstreamTransportError(MirrorError):
    """Network failure talking to an upstream registry or token realm."""


class MalformedChallenge(MirrorError):
    """WWW-Authenticate value is not a usable Bearer challenge."""


class TokenFetchError(MirrorError):
    """Token realm answered with a non-200 status or an undecodable body."""
