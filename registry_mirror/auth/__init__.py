"""Bearer challenge handling for upstream registries."""

from registry_mirror.auth.cache import Token, TokenCache
from registry_mirror.auth.challenge import AuthChallenge, parse_challenge
from registry_mirror.auth.credentials import Credentials, credentials_from_header
from registry_mirror.auth.token import TokenProvider

__all__ = [
    "AuthChallenge",
    "Credentials",
    "Token",
    "TokenCache",
    "TokenProvider",
    "credentials_from_header",
    "parse_challenge",
]
