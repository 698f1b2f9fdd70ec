# Copyright (c) 2025 CoReason, Inc.
#
# This software is proprietary and dual-licensed.
# Licensed under the Prosperity Public License 3.0 (the "License").
# A copy of the license is available at https://prosperitylicense.com/versions/3.0.0
# For details, see the LICENSE file.
# Commercial use beyond a 30-day trial requires a separate license.
#
# Source Code: https://github.com/CoReason-AI/coreason_webid

import time
from collections.abc import Callable
from unittest.mock import patch

import httpx
import pytest
from conftest import ISSUER, FakeProvider

from coreason_webid.exceptions import CoreasonWebIDError, SecurityError
from coreason_webid.oidc_provider import OIDCProvider


@pytest.fixture
def counting() -> dict[str, int]:
    return {"calls": 0}


@pytest.fixture
def provider(
    fake_provider: FakeProvider, counting: dict[str, int], make_client: Callable[..., httpx.AsyncClient]
) -> OIDCProvider:
    def handler(request: httpx.Request) -> httpx.Response:
        counting["calls"] += 1
        return fake_provider.handler(request)

    return OIDCProvider(ISSUER + "/", make_client(handler))


@pytest.mark.asyncio
async def test_get_metadata(provider: OIDCProvider) -> None:
    metadata = await provider.get_metadata()

    assert provider.issuer == ISSUER
    assert provider.discovery_url == f"{ISSUER}/.well-known/openid-configuration"
    assert metadata.token_endpoint == f"{ISSUER}/token"
    assert metadata.jwks_uri == f"{ISSUER}/jwks"


@pytest.mark.asyncio
async def test_get_jwks(provider: OIDCProvider, counting: dict[str, int]) -> None:
    jwks = await provider.get_jwks()

    assert jwks["keys"][0]["kid"] == "test-key"
    assert counting["calls"] == 2


@pytest.mark.asyncio
async def test_cache_hit(provider: OIDCProvider, counting: dict[str, int]) -> None:
    await provider.get_metadata()
    await provider.get_jwks()
    await provider.get_metadata()

    assert counting["calls"] == 2


@pytest.mark.asyncio
async def test_expired_cache_refetches(provider: OIDCProvider, counting: dict[str, int]) -> None:
    await provider.get_jwks()
    provider._last_update = time.time() - 3601

    await provider.get_jwks()

    assert counting["calls"] == 4


@pytest.mark.asyncio
async def test_force_refresh_respects_cooldown(provider: OIDCProvider, counting: dict[str, int]) -> None:
    await provider.get_jwks()
    await provider.get_jwks(force_refresh=True)

    assert counting["calls"] == 2


@pytest.mark.asyncio
async def test_force_refresh_after_cooldown(provider: OIDCProvider, counting: dict[str, int]) -> None:
    await provider.get_jwks()
    provider._last_update = time.time() - 60

    await provider.get_jwks(force_refresh=True)

    assert counting["calls"] == 4


@pytest.mark.asyncio
async def test_retries_transient_failures(
    make_client: Callable[..., httpx.AsyncClient], fake_provider: FakeProvider
) -> None:
    failures = {"left": 2}

    def handler(request: httpx.Request) -> httpx.Response:
        if failures["left"]:
            failures["left"] -= 1
            raise httpx.ConnectError("flaky", request=request)
        return fake_provider.handler(request)

    provider = OIDCProvider(ISSUER, make_client(handler))
    with patch("coreason_webid.oidc_provider.anyio.sleep") as sleep:
        metadata = await provider.get_metadata()

    assert metadata.issuer == ISSUER
    assert sleep.await_count == 2


@pytest.mark.asyncio
async def test_gives_up_after_retries(make_client: Callable[..., httpx.AsyncClient]) -> None:
    provider = OIDCProvider(ISSUER, make_client(lambda request: httpx.Response(503)))

    with patch("coreason_webid.oidc_provider.anyio.sleep"):
        with pytest.raises(CoreasonWebIDError, match="Failed to fetch provider metadata"):
            await provider.get_metadata()


@pytest.mark.asyncio
async def test_security_error_not_retried(make_client: Callable[..., httpx.AsyncClient]) -> None:
    calls = {"n": 0}

    def handler(request: httpx.Request) -> httpx.Response:
        calls["n"] += 1
        raise SecurityError("blocked")

    provider = OIDCProvider(ISSUER, make_client(handler))

    with pytest.raises(SecurityError):
        await provider.get_metadata()
    assert calls["n"] == 1


@pytest.mark.asyncio
async def test_invalid_metadata(make_client: Callable[..., httpx.AsyncClient]) -> None:
    provider = OIDCProvider(ISSUER, make_client(lambda request: httpx.Response(200, json={"issuer": ISSUER})))

    with pytest.raises(CoreasonWebIDError, match="Invalid provider metadata"):
        await provider.get_metadata()


@pytest.mark.asyncio
async def test_invalid_jwks(make_client: Callable[..., httpx.AsyncClient], fake_provider: FakeProvider) -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        if request.url.path == "/jwks":
            return httpx.Response(200, json={"no": "keys"})
        return fake_provider.handler(request)

    provider = OIDCProvider(ISSUER, make_client(handler))

    with pytest.raises(CoreasonWebIDError, match="Invalid JWKS"):
        await provider.get_jwks()
