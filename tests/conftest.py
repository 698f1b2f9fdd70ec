# Copyright (c) 2025 CoReason, Inc.
#
# This software is proprietary and dual-licensed.
# Licensed under the Prosperity Public License 3.0 (the "License").
# A copy of the license is available at https://prosperitylicense.com/versions/3.0.0
# For details, see the LICENSE file.
# Commercial use beyond a 30-day trial requires a separate license.
#
# Source Code: https://github.com/CoReason-AI/coreason_webid

import socket
import time
from collections.abc import Callable
from typing import Any, Generator
from unittest.mock import MagicMock, patch
from urllib.parse import parse_qsl, urlsplit

import httpx
import pytest
from authlib.jose import JsonWebKey, jwt

from coreason_webid.config import CoreasonWebIDConfig, RelyingPartyRegistration
from coreason_webid.models import Session

Handler = Callable[[httpx.Request], httpx.Response]


@pytest.fixture(autouse=True)
def mock_dns_resolution() -> Generator[MagicMock, None, None]:
    """
    Globally patches socket.getaddrinfo to return a safe public IP by default.

    Tests that need to verify SSRF logic should configure this mock's return value.
    """
    safe_response = [(socket.AF_INET, socket.SOCK_STREAM, 6, "", ("93.184.216.34", 443))]

    with patch("socket.getaddrinfo", return_value=safe_response) as mock:
        yield mock


@pytest.fixture
def config() -> CoreasonWebIDConfig:
    return CoreasonWebIDConfig(
        server_uri="https://pod.example",
        local_client_id="pod-local-rp",
        pii_salt="test-suite-mandatory-salt-123",
        http_timeout=5.0,
    )


@pytest.fixture
def session() -> Session:
    return Session()


@pytest.fixture
def make_client() -> Callable[[Handler], httpx.AsyncClient]:
    """Returns a factory building async clients that answer every request through a handler."""

    def _make(handler: Handler) -> httpx.AsyncClient:
        return httpx.AsyncClient(transport=httpx.MockTransport(handler))

    return _make


ISSUER = "https://idp.example"
CLIENT_ID = "pod-client"
REDIRECT_URI = "https://pod.example/api/oidc/rp/https%3A%2F%2Fidp.example"
WEB_ID = "https://alice.example/profile#me"


class FakeProvider:
    """
    In-memory OpenID Connect Provider answering metadata, JWKS and token requests.

    Set ``nonce`` to the value sent in the authorization request before the code exchange.
    """

    def __init__(self, key: Any, issuer: str = ISSUER, client_id: str = CLIENT_ID) -> None:
        self.key = key
        self.issuer = issuer
        self.client_id = client_id
        self.nonce: str | None = None
        self.claim_overrides: dict[str, Any] = {}
        self.token_status = 200
        self.token_requests: list[httpx.Request] = []
        self.jwks_requests = 0

    def metadata(self) -> dict[str, Any]:
        return {
            "issuer": self.issuer,
            "authorization_endpoint": f"{self.issuer}/authorize",
            "token_endpoint": f"{self.issuer}/token",
            "jwks_uri": f"{self.issuer}/jwks",
            "userinfo_endpoint": f"{self.issuer}/userinfo",
        }

    def id_token(self) -> str:
        now = int(time.time())
        claims: dict[str, Any] = {
            "iss": self.issuer,
            "aud": self.client_id,
            "sub": WEB_ID,
            "webid": WEB_ID,
            "iat": now,
            "exp": now + 300,
            "nonce": self.nonce,
        }
        claims.update(self.claim_overrides)
        token = jwt.encode({"alg": "RS256", "kid": "test-key"}, claims, self.key)
        return token.decode("ascii")

    def handler(self, request: httpx.Request) -> httpx.Response:
        path = request.url.path
        if path == "/.well-known/openid-configuration":
            return httpx.Response(200, json=self.metadata())
        if path == "/jwks":
            self.jwks_requests += 1
            return httpx.Response(200, json={"keys": [self.key.as_dict(is_private=False)]})
        if path == "/token":
            self.token_requests.append(request)
            if self.token_status != 200:
                return httpx.Response(self.token_status, json={"error": "invalid_grant"})
            return httpx.Response(
                200,
                json={
                    "access_token": "access-123",
                    "refresh_token": "refresh-456",
                    "token_type": "Bearer",
                    "expires_in": 3600,
                    "id_token": self.id_token(),
                },
            )
        return httpx.Response(404)


@pytest.fixture(scope="session")
def rsa_key() -> Any:
    return JsonWebKey.generate_key("RSA", 2048, options={"kid": "test-key"}, is_private=True)


@pytest.fixture
def fake_provider(rsa_key: Any) -> FakeProvider:
    return FakeProvider(rsa_key)


@pytest.fixture
def oauth_transport(fake_provider: FakeProvider) -> Generator[MagicMock, None, None]:
    """Routes the code exchange of relying-party clients to the fake provider."""
    with patch(
        "coreason_webid.rp_client.SafeHTTPTransport",
        side_effect=lambda **kwargs: httpx.MockTransport(fake_provider.handler),
    ) as mock:
        yield mock


@pytest.fixture
def registration() -> RelyingPartyRegistration:
    return RelyingPartyRegistration(
        issuer=ISSUER,
        client_id=CLIENT_ID,
        client_secret="s3cret",
        redirect_uri=REDIRECT_URI,
    )


def query_of(url: str) -> dict[str, str]:
    return dict(parse_qsl(urlsplit(url).query))
