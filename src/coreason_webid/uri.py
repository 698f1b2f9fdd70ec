# Copyright (c) 2025 CoReason, Inc.
#
# This software is proprietary and dual-licensed.
# Licensed under the Prosperity Public License 3.0 (the "License").
# A copy of the license is available at https://prosperitylicense.com/versions/3.0.0
# For details, see the LICENSE file.
# Commercial use beyond a 30-day trial requires a separate license.
#
# Source Code: https://github.com/CoReason-AI/coreason_webid

"""
URI helpers shared by discovery and the request handlers.
"""

import re
from urllib.parse import urlsplit

DEFAULT_PORTS = {"http": 80, "https": 443}

WELL_KNOWN_CONFIGURATION = "/.well-known/openid-configuration"

_FORBIDDEN_CHARS = re.compile(r"[\s<>\"{}|\\^`\x00-\x1f\x7f]")


def normalize_uri(uri: str | None) -> str | None:
    """
    Returns a scheme-qualified URI by prepending ``https://`` when no http(s) scheme is present.

    Empty values are returned unchanged so callers can report them as missing.

    Args:
        uri: A user-supplied WebID or provider URI (e.g. ``localhost:8443``).

    Returns:
        The normalized URI, or the input if it was empty.
    """
    if not uri:
        return uri

    uri = uri.strip()
    if not uri.startswith("http"):
        uri = f"https://{uri}"
    return uri


def is_valid_uri(uri: str | None) -> bool:
    """
    Checks that ``uri`` is an absolute http(s) URI with a host.
    """
    if not uri or not isinstance(uri, str):
        return False
    if _FORBIDDEN_CHARS.search(uri):
        return False

    try:
        parsed = urlsplit(uri)
        # Accessing .port validates it
        parsed.port  # noqa: B018
    except ValueError:
        return False

    return parsed.scheme.lower() in DEFAULT_PORTS and bool(parsed.hostname)


def origin_of(uri: str) -> str:
    """
    Reduces a URI to its origin (scheme, host and non-default port).

    Args:
        uri: An absolute http(s) URI.

    Returns:
        str: The origin, e.g. ``https://provider.example`` for ``https://provider.example/path?q``.

    Raises:
        ValueError: If the URI has no scheme or host.
    """
    parsed = urlsplit(uri.strip())
    scheme = parsed.scheme.lower()
    host = parsed.hostname
    if not scheme or not host:
        raise ValueError(f"Cannot derive an origin from '{uri}'")

    if ":" in host:
        host = f"[{host}]"

    port = parsed.port
    if port is None or port == DEFAULT_PORTS.get(scheme):
        return f"{scheme}://{host}"
    return f"{scheme}://{host}:{port}"
