# Copyright (c) 2025 CoReason, Inc.
#
# This software is proprietary and dual-licensed.
# Licensed under the Prosperity Public License 3.0 (the "License").
# A copy of the license is available at https://prosperitylicense.com/versions/3.0.0
# For details, see the LICENSE file.
# Commercial use beyond a 30-day trial requires a separate license.
#
# Source Code: https://github.com/CoReason-AI/coreason_webid

import pytest

from coreason_webid.uri import is_valid_uri, normalize_uri, origin_of


def test_normalize_prepends_https() -> None:
    assert normalize_uri("localhost:8443") == "https://localhost:8443"
    assert normalize_uri("alice.example/profile#me") == "https://alice.example/profile#me"


def test_normalize_keeps_scheme() -> None:
    assert normalize_uri("https://a.example") == "https://a.example"
    assert normalize_uri("http://a.example") == "http://a.example"


def test_normalize_empty_values() -> None:
    assert normalize_uri(None) is None
    assert normalize_uri("") == ""


def test_normalize_strips_whitespace() -> None:
    assert normalize_uri("  a.example ") == "https://a.example"


@pytest.mark.parametrize(
    "uri,expected",
    [
        ("https://provider.example/", "https://provider.example"),
        ("https://provider.example/path?q=1#frag", "https://provider.example"),
        ("HTTPS://Provider.Example:443/x", "https://provider.example"),
        ("http://provider.example:80", "http://provider.example"),
        ("https://localhost:8443/", "https://localhost:8443"),
        ("https://[::1]:8443/", "https://[::1]:8443"),
    ],
)
def test_origin_of(uri: str, expected: str) -> None:
    assert origin_of(uri) == expected


def test_origin_of_rejects_relative() -> None:
    with pytest.raises(ValueError, match="Cannot derive an origin"):
        origin_of("/just/a/path")


@pytest.mark.parametrize(
    "uri",
    ["https://alice.example/#me", "http://localhost:8443", "https://provider.example/"],
)
def test_valid_uris(uri: str) -> None:
    assert is_valid_uri(uri)


@pytest.mark.parametrize(
    "uri",
    [None, "", "provider.example", "ftp://provider.example", "https://", "https://bad host", "https://a.example:99999"],
)
def test_invalid_uris(uri: str | None) -> None:
    assert not is_valid_uri(uri)
