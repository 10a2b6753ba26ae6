"""Well-known string formats: email, hostname, IP addresses, URIs, UUIDs.

Pure predicates over ``str`` (and ``bytes`` for IP addresses).
"""

import ipaddress
import re
import uuid
from typing import Optional, Union
from urllib.parse import urlsplit

# Local part per the WHATWG HTML "valid e-mail address" definition
_EMAIL_LOCAL = re.compile(r"^[A-Za-z0-9.!#$%&'*+/=?^_`{|}~-]+$")

_HOSTNAME_LABEL = re.compile(r"^[A-Za-z0-9](?:[A-Za-z0-9-]{0,61}[A-Za-z0-9])?$")

_URI_SCHEME = re.compile(r"^[A-Za-z][A-Za-z0-9+.-]*$")

_UUID = re.compile(r"^[0-9a-fA-F]{8}-[0-9a-fA-F]{4}-[0-9a-fA-F]{4}-[0-9a-fA-F]{4}-[0-9a-fA-F]{12}$")

# Characters never valid unescaped in a URI
_URI_FORBIDDEN = set(' "<>\\^`{|}')


def is_hostname(value: str) -> bool:
    """RFC 1123 hostname: dot-separated labels, last label not all digits."""
    if not value or len(value) > 253:
        return False
    if value.endswith("."):
        value = value[:-1]
    labels = value.split(".")
    if not all(_HOSTNAME_LABEL.fullmatch(label) for label in labels):
        return False
    return not labels[-1].isdigit()


def is_email(value: str) -> bool:
    """Address without display name: ``local@hostname``."""
    if not value or len(value) > 254 or value.count("@") != 1:
        return False
    local, domain = value.split("@")
    if not local or len(local) > 64 or not _EMAIL_LOCAL.fullmatch(local):
        return False
    return is_hostname(domain)


def is_ip(value: Union[str, bytes], version: Optional[int] = None) -> bool:
    """IPv4 or IPv6 address. ``bytes`` values are raw 4- or 16-byte addresses."""
    if isinstance(value, (bytes, bytearray)):
        size = len(value)
        if version == 4:
            return size == 4
        if version == 6:
            return size == 16
        return size in (4, 16)
    if version not in (None, 0, 4, 6):
        return False
    try:
        address = ipaddress.ip_address(value)
    except ValueError:
        return False
    if version in (None, 0):
        return True
    return address.version == version


def is_ipv4(value: Union[str, bytes]) -> bool:
    return is_ip(value, 4)


def is_ipv6(value: Union[str, bytes]) -> bool:
    return is_ip(value, 6)


def _valid_uri_text(value: str) -> bool:
    if any(ch in _URI_FORBIDDEN or ord(ch) < 0x20 for ch in value):
        return False
    # Percent signs must start a two-digit hex escape
    for match in re.finditer("%", value):
        escape = value[match.start() + 1:match.start() + 3]
        if len(escape) != 2 or any(c not in "0123456789abcdefABCDEF" for c in escape):
            return False
    return True


def is_uri_ref(value: str) -> bool:
    """Absolute URI or relative reference (RFC 3986)."""
    if not _valid_uri_text(value):
        return False
    try:
        parts = urlsplit(value)
        parts.port  # raises ValueError on a malformed port
    except ValueError:
        return False
    if parts.scheme and not _URI_SCHEME.fullmatch(parts.scheme):
        return False
    return True


def is_uri(value: str) -> bool:
    """Absolute URI: a scheme is required."""
    if not value or ":" not in value:
        return False
    scheme = value.split(":", 1)[0]
    if not _URI_SCHEME.fullmatch(scheme):
        return False
    return is_uri_ref(value)


def is_uuid(value: str) -> bool:
    """Canonical 8-4-4-4-12 hex form."""
    if not _UUID.fullmatch(value):
        return False
    try:
        uuid.UUID(value)
    except ValueError:
        return False
    return True
