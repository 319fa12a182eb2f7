"""WWW-Authenticate Bearer challenge parsing.

Format: ``Bearer realm="...",service="...",scope="..."``. Parameters may appear
in any order and any of them may be missing; quoted values may contain commas
(``scope="repository:foo/bar:pull,push"``) and backslash escapes.
"""

from dataclasses import dataclass
from typing import Dict

from registry_mirror.exceptions import MalformedChallenge

BEARER_SCHEME = "bearer"


@dataclass(frozen=True)
class AuthChallenge:
    """Parsed Bearer challenge."""
    realm: str = ""
    service: str = ""
    scope: str = ""


def parse_challenge(value: str) -> AuthChallenge:
    """Parse a ``WWW-Authenticate`` header value.

    Raises:
        MalformedChallenge: if the value does not start with ``Bearer ``.
    """
    scheme, sep, rest = value.partition(" ")
    if not sep or scheme.lower() != BEARER_SCHEME:
        raise MalformedChallenge(f"invalid WWW-Authenticate header: {value!r}")

    params = _parse_params(rest)
    return AuthChallenge(
        realm=params.get("realm", ""),
        service=params.get("service", ""),
        scope=params.get("scope", ""),
    )


def _parse_params(text: str) -> Dict[str, str]:
    """Tokenize comma-separated ``name=value`` pairs; names are case-folded."""
    params: Dict[str, str] = {}
    pos, end = 0, len(text)

    while pos < end:
        # Skip separators
        while pos < end and text[pos] in " \t,":
            pos += 1
        if pos >= end:
            break

        eq = text.find("=", pos)
        if eq == -1:
            break

        # A bare token with no value ends at its comma
        comma = text.find(",", pos)
        if comma != -1 and comma < eq:
            pos = comma + 1
            continue

        name = text[pos:eq].strip().lower()
        pos = eq + 1

        while pos < end and text[pos] in " \t":
            pos += 1

        if pos < end and text[pos] == '"':
            pos += 1
            chars = []
            while pos < end and text[pos] != '"':
                if text[pos] == "\\" and pos + 1 < end:
                    pos += 1
                chars.append(text[pos])
                pos += 1
            pos += 1  # closing quote
            value = "".join(chars)
        else:
            comma = text.find(",", pos)
            if comma == -1:
                comma = end
            value = text[pos:comma].strip()
            pos = comma

        if name and name not in params:
            params[name] = value

    return params
