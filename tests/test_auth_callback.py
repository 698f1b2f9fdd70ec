# Copyright (c) 2025 CoReason, Inc.
#
# This software is proprietary and dual-licensed.
# Licensed under the Prosperity Public License 3.0 (the "License").
# A copy of the license is available at https://prosperitylicense.com/versions/3.0.0
# For details, see the LICENSE file.
# Commercial use beyond a 30-day trial requires a separate license.
#
# Source Code: https://github.com/CoReason-AI/coreason_webid

from typing import Any

import pytest
from pydantic import SecretStr

from coreason_webid.exceptions import CallbackValidationError, IdentityResolutionError, UnknownIssuerError
from coreason_webid.handlers.auth_callback import AuthCallbackRequest
from coreason_webid.identity_mapper import WebIDClaimsMapper
from coreason_webid.models import CallbackResult, Session

WEB_ID = "https://alice.example/profile#me"
CALLBACK = "https://pod.example/api/oidc/rp/https%3A%2F%2Fidp.example?code=abc&state=s1"


class StubTokenClient:
    def __init__(self, result: CallbackResult | None = None, error: Exception | None = None) -> None:
        self.result = result
        self.error = error
        self.seen: list[str] = []

    async def authorization_url(self, session: Session) -> str:
        raise NotImplementedError

    async def validate_callback(self, request_uri: str, session: Session) -> CallbackResult:
        self.seen.append(request_uri)
        if self.error:
            raise self.error
        return self.result  # type: ignore[return-value]


class StubClients:
    def __init__(self, token_client: StubTokenClient) -> None:
        self.token_client = token_client
        self.requested: list[str] = []

    async def client_for_issuer(self, issuer: str) -> Any:
        self.requested.append(issuer)
        if issuer != "https://idp.example":
            raise UnknownIssuerError(f"No client registered for issuer {issuer}")
        return self.token_client


class ExplodingResolver:
    def identity_from(self, claims: dict[str, Any]) -> str:
        raise KeyError("webid")


def success(**claims: Any) -> StubTokenClient:
    return StubTokenClient(
        CallbackResult(
            claims=claims or {"sub": WEB_ID, "iss": "https://idp.example"},
            access_token="access-123",
            refresh_token="refresh-456",
        )
    )


def make_request(
    issuer_id: str | None,
    session: Session,
    token_client: StubTokenClient,
    resolver: Any = None,
) -> AuthCallbackRequest:
    return AuthCallbackRequest.from_params(
        issuer_id,
        CALLBACK,
        session,
        StubClients(token_client),
        resolver or WebIDClaimsMapper(),
        login_path="/login",
        pii_salt=SecretStr("salt"),
    )


def test_extract_issuer_decodes() -> None:
    assert AuthCallbackRequest.extract_issuer("https%3A%2F%2Fidp.example") == "https://idp.example"
    assert AuthCallbackRequest.extract_issuer(None) is None
    assert AuthCallbackRequest.extract_issuer("") is None


def test_return_to_url_default(session: Session) -> None:
    request = make_request("x", session, success())
    assert request.return_to_url() == "/"

    session.return_to_url = "%2Fauthorize%3Fclient_id%3Dapp"
    assert request.return_to_url() == "/authorize?client_id=app"


@pytest.mark.asyncio
async def test_successful_callback(session: Session) -> None:
    token_client = success()
    session.return_to_url = "/authorize?client_id=app"

    response = await make_request("https%3A%2F%2Fidp.example", session, token_client).handle()

    assert response.location == "/authorize?client_id=app"
    assert session.identified is True
    assert session.user_id == WEB_ID
    assert session.access_token is not None
    assert session.access_token.get_secret_value() == "access-123"
    assert session.refresh_token is not None
    assert session.return_to_url is None
    assert token_client.seen == [CALLBACK]


@pytest.mark.asyncio
async def test_successful_callback_defaults_to_root(session: Session) -> None:
    response = await make_request("https%3A%2F%2Fidp.example", session, success()).handle()
    assert response.location == "/"


@pytest.mark.asyncio
async def test_webid_claim_preferred(session: Session) -> None:
    token_client = success(sub="opaque-123", webid=WEB_ID)

    await make_request("https%3A%2F%2Fidp.example", session, token_client).handle()

    assert session.user_id == WEB_ID


@pytest.mark.asyncio
async def test_missing_issuer_redirects_to_login(session: Session) -> None:
    response = await make_request(None, session, success()).handle()

    assert response.location == "/login"
    assert session.identified is False


@pytest.mark.asyncio
async def test_unknown_issuer_redirects_to_login(session: Session) -> None:
    response = await make_request("https%3A%2F%2Fother.example", session, success()).handle()

    assert response.location == "/login"
    assert session.identified is False


@pytest.mark.asyncio
async def test_rejected_callback_redirects_to_login(session: Session) -> None:
    token_client = StubTokenClient(error=CallbackValidationError("Unknown or already used authorization state"))
    session.return_to_url = "/authorize?client_id=app"

    response = await make_request("https%3A%2F%2Fidp.example", session, token_client).handle()

    assert response.location == "/login"
    assert session.user_id is None
    assert session.return_to_url == "/authorize?client_id=app"


@pytest.mark.asyncio
async def test_no_webid_in_claims(session: Session) -> None:
    token_client = success(sub="opaque-123")

    response = await make_request("https%3A%2F%2Fidp.example", session, token_client).handle()

    assert response.location == "/login"
    assert session.identified is False


@pytest.mark.asyncio
async def test_resolver_errors_wrapped(session: Session) -> None:
    request = make_request("https%3A%2F%2Fidp.example", session, success(), ExplodingResolver())

    with pytest.raises(IdentityResolutionError) as exc_info:
        await request.handle_callback()

    assert isinstance(exc_info.value.cause, KeyError)


@pytest.mark.asyncio
async def test_unexpected_error_redirects_to_login(session: Session) -> None:
    token_client = StubTokenClient(error=RuntimeError("boom"))

    response = await make_request("https%3A%2F%2Fidp.example", session, token_client).handle()

    assert response.location == "/login"
