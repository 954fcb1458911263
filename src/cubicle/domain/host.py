"""Host extraction and normalization.

Every host that reaches the matcher or the public suffix resolver goes
through :func:`normalize_host` first, so rule patterns and navigated
hosts are always compared in the same canonical (lowercase, IDNA
encoded, port-less, trailing-dot-less) form.
"""

from __future__ import annotations

import ipaddress
import re
from typing import Final
from urllib.parse import urlsplit

from cubicle.core.errors import InvalidHost

_MAX_LABEL_LENGTH: Final[int] = 63
_MAX_DOMAIN_LENGTH: Final[int] = 253
_LABEL_PATTERN: Final[re.Pattern[str]] = re.compile(r"^[a-z0-9_](?:[a-z0-9_-]*[a-z0-9_])?$")
_CONTAINABLE_SCHEMES: Final[frozenset[str]] = frozenset({"http", "https", "ws", "wss", "ftp"})


def is_ip_literal(host: str) -> bool:
    """True if *host* is an IPv4 or IPv6 address (brackets allowed)."""
    try:
        ipaddress.ip_address(host.strip("[]"))
    except ValueError:
        return False
    return True


def strip_host(raw: str) -> str:
    """Lowercase *raw*, drop a port and a single trailing dot.

    IPv6 literals may be bracketed (``[::1]:8080``); the brackets are
    removed along with the port.
    """
    host = raw.strip().lower()
    if host.startswith("["):
        end = host.find("]")
        return host[1:end] if end != -1 else host[1:]
    if host.count(":") == 1:
        host = host.split(":", 1)[0]
    if host.endswith("."):
        host = host[:-1]
    return host


def encode_label(label: str) -> str:
    """IDNA-encode a single label, raising :class:`InvalidHost` if impossible."""
    if not label:
        raise InvalidHost("empty label")
    if not label.isascii():
        try:
            label = label.encode("idna").decode("ascii")
        except UnicodeError as exc:
            raise InvalidHost(f"cannot encode label {label!r}") from exc
    if len(label) > _MAX_LABEL_LENGTH or not _LABEL_PATTERN.match(label):
        raise InvalidHost(f"invalid label {label!r}")
    return label


def encode_domain(name: str) -> str:
    """Encode an already stripped domain name to its ASCII form.

    Raises:
        InvalidHost: If the name is empty, has empty labels, or a label
            cannot be encoded.
    """
    if not name:
        raise InvalidHost("empty host")
    encoded = ".".join(encode_label(label) for label in name.split("."))
    if len(encoded) > _MAX_DOMAIN_LENGTH:
        raise InvalidHost(f"host too long ({len(encoded)} characters)")
    return encoded


def normalize_host(raw: str) -> str:
    """Canonical form of *raw* used for all comparisons.

    IP literals are returned in their compressed textual form and are
    not IDNA processed.

    Raises:
        InvalidHost: If *raw* is empty or not a syntactically valid host.
    """
    host = strip_host(raw)
    if is_ip_literal(host):
        return str(ipaddress.ip_address(host))
    return encode_domain(host)


def host_from_url(url: str | None) -> str | None:
    """Extract the raw host of a containable URL.

    Returns ``None`` for URLs without a host or with a scheme that never
    belongs to a container (``about:``, ``moz-extension:``, ``file:``...).
    """
    if not url:
        return None
    try:
        parts = urlsplit(url)
    except ValueError:
        return None
    if parts.scheme.lower() not in _CONTAINABLE_SCHEMES:
        return None
    return parts.hostname or None
