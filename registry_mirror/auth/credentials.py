"""Client credentials carried on inbound requests."""

import base64
import binascii
import logging
from dataclasses import dataclass

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Credentials:
    """Username/password pair, both possibly empty."""
    username: str = ""
    password: str = ""

    @property
    def present(self) -> bool:
        return bool(self.username and self.password)

    def __repr__(self) -> str:
        return f"Credentials(username={self.username!r}, password=***)"


ANONYMOUS = Credentials()


def credentials_from_header(auth_header: str) -> Credentials:
    """Extract Basic credentials from an Authorization header value.

    Anything that is not a well-formed ``Basic`` value yields anonymous
    credentials.
    """
    if not auth_header:
        return ANONYMOUS

    parts = auth_header.split()
    if len(parts) != 2 or parts[0].lower() != "basic":
        return ANONYMOUS

    try:
        decoded = base64.b64decode(parts[1], validate=True).decode("utf-8")
    except (binascii.Error, ValueError, UnicodeDecodeError):
        logger.debug("Ignoring undecodable Basic Authorization header")
        return ANONYMOUS

    username, sep, password = decoded.partition(":")
    if not sep:
        return ANONYMOUS

    return Credentials(username=username, password=password)
