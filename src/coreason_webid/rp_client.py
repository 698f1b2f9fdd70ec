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
Relying-party token client: builds authorization URLs for a provider and validates its
authorization responses (code exchange plus ID token verification).

The request handlers only depend on the `TokenClient` / `TokenClientStore` protocols;
`RelyingPartyClientStore` is the default implementation for statically registered clients.
"""

from typing import Any, Protocol, cast
from urllib.parse import parse_qsl, urlsplit

import httpx
from authlib.common.security import generate_token
from authlib.integrations.base_client import OAuthError
from authlib.integrations.httpx_client import AsyncOAuth2Client
from authlib.jose import JsonWebToken
from authlib.jose.errors import BadSignatureError, JoseError

from coreason_webid.config import RelyingPartyRegistration
from coreason_webid.exceptions import CallbackValidationError, UnknownIssuerError
from coreason_webid.models import CallbackResult, PendingAuthorization, Session
from coreason_webid.oidc_provider import OIDCProvider
from coreason_webid.transport import SafeHTTPTransport
from coreason_webid.uri import is_valid_uri, origin_of
from coreason_webid.utils.logger import logger


class TokenClient(Protocol):
    """Per-issuer token client capability."""

    async def authorization_url(self, session: Session) -> str:
        """Returns the provider authorization URL; records state/nonce in ``session``."""
        ...

    async def validate_callback(self, request_uri: str, session: Session) -> CallbackResult:
        """
        Validates the authorization response carried by ``request_uri``.

        Raises:
            CallbackValidationError: If the response is invalid or was already consumed.
        """
        ...


class TokenClientStore(Protocol):
    """Token clients keyed and cached by issuer origin."""

    async def client_for_issuer(self, issuer: str) -> TokenClient: ...


class RelyingPartyClient:
    """
    Token client for one statically registered provider.

    Attributes:
        registration (RelyingPartyRegistration): The client registration at the provider.
        provider (OIDCProvider): Metadata and JWKS cache for the provider.
    """

    def __init__(
        self,
        registration: RelyingPartyRegistration,
        provider: OIDCProvider,
        allowed_algorithms: list[str],
        leeway: int = 0,
        http_timeout: float = 10.0,
        allow_private: bool = False,
    ) -> None:
        self.registration = registration
        self.provider = provider
        self.leeway = leeway
        self.http_timeout = http_timeout
        self.allow_private = allow_private
        self.jwt = JsonWebToken(allowed_algorithms)

    def _oauth_client(self) -> AsyncOAuth2Client:
        secret = self.registration.client_secret
        return AsyncOAuth2Client(
            client_id=self.registration.client_id,
            client_secret=secret.get_secret_value() if secret else None,
            token_endpoint_auth_method="client_secret_basic" if secret else "none",
            scope=self.registration.scope,
            redirect_uri=self.registration.redirect_uri,
            transport=SafeHTTPTransport(allow_private=self.allow_private),
            timeout=self.http_timeout,
        )

    async def authorization_url(self, session: Session) -> str:
        """
        Builds the authorization URL and records a fresh state/nonce pair in the session.

        Returns:
            str: The URL the browser should be redirected to.
        """
        metadata = await self.provider.get_metadata()
        state = generate_token(32)
        nonce = generate_token(32)

        async with self._oauth_client() as oauth:
            url, _ = oauth.create_authorization_url(metadata.authorization_endpoint, state=state, nonce=nonce)

        session.pending_authorizations[state] = PendingAuthorization(issuer=self.registration.issuer, nonce=nonce)
        return cast("str", url)

    async def validate_callback(self, request_uri: str, session: Session) -> CallbackResult:
        """
        Validates the provider's redirect back to this node.

        The ``state`` is consumed on first use, so replaying a callback fails.

        Args:
            request_uri: The full callback request URI including its query.
            session: The current session.

        Returns:
            CallbackResult: Validated ID token claims and the issued tokens.

        Raises:
            CallbackValidationError: For provider errors, unknown state, failed code
                exchange or an invalid ID token.
        """
        params = dict(parse_qsl(urlsplit(request_uri).query))
        issuer = self.registration.issuer

        if "error" in params:
            description = params.get("error_description", "")
            raise CallbackValidationError(f"Provider {issuer} returned error '{params['error']}' {description}".strip())

        state = params.get("state")
        pending = session.pending_authorizations.pop(state, None) if state else None
        if pending is None:
            raise CallbackValidationError("Unknown or already used authorization state")
        if pending.issuer != issuer:
            raise CallbackValidationError(f"Authorization state was issued for {pending.issuer}, not {issuer}")

        code = params.get("code")
        if not code:
            raise CallbackValidationError("Authorization code is missing from the callback")

        metadata = await self.provider.get_metadata()
        if not is_valid_uri(metadata.issuer) or origin_of(metadata.issuer) != issuer:
            raise CallbackValidationError(f"Provider metadata issuer {metadata.issuer} does not match {issuer}")

        try:
            async with self._oauth_client() as oauth:
                token = await oauth.fetch_token(metadata.token_endpoint, code=code, grant_type="authorization_code")
        except (OAuthError, httpx.HTTPError, ValueError) as e:
            logger.warning(f"Code exchange with {issuer} failed: {e}")
            raise CallbackValidationError(f"Code exchange with {issuer} failed: {e}") from e

        id_token = token.get("id_token")
        if not id_token:
            raise CallbackValidationError(f"Token response from {issuer} carries no ID token")

        claims = await self._decode_id_token(id_token, metadata.issuer, pending.nonce)

        return CallbackResult(
            claims=claims,
            access_token=token.get("access_token"),
            refresh_token=token.get("refresh_token"),
            id_token=id_token,
        )

    async def _decode_id_token(self, id_token: str, issuer: str, nonce: str) -> dict[str, Any]:
        """
        Verifies the ID token signature and standard claims, retrying once with refreshed
        keys to cover provider key rotation.
        """
        claims_options = {
            "iss": {"essential": True, "value": issuer},
            "aud": {"essential": True, "value": self.registration.client_id},
            "exp": {"essential": True},
            "sub": {"essential": True},
        }

        def _decode(jwks: dict[str, Any]) -> Any:
            claims = cast("Any", self.jwt).decode(id_token, jwks, claims_options=claims_options)
            claims.validate(leeway=self.leeway)
            return claims

        try:
            try:
                claims = _decode(await self.provider.get_jwks())
            except (ValueError, BadSignatureError):
                logger.info("ID token validation failed with cached keys, refreshing JWKS and retrying...")
                claims = _decode(await self.provider.get_jwks(force_refresh=True))
        except (JoseError, ValueError) as e:
            logger.warning(f"Invalid ID token from {issuer}: {e}")
            raise CallbackValidationError(f"Invalid ID token from {issuer}: {e}") from e

        payload = dict(claims)
        if payload.get("nonce") != nonce:
            raise CallbackValidationError("ID token nonce does not match the authorization request")
        return payload


class RelyingPartyClientStore:
    """
    `TokenClientStore` over static registrations, caching one client per issuer.
    """

    def __init__(
        self,
        registrations: list[RelyingPartyRegistration],
        client: httpx.AsyncClient,
        allowed_algorithms: list[str],
        leeway: int = 0,
        http_timeout: float = 10.0,
        max_response_bytes: int = 1_000_000,
        allow_private: bool = False,
    ) -> None:
        self._registrations = {r.issuer: r for r in registrations}
        self._clients: dict[str, RelyingPartyClient] = {}
        self.client = client
        self.allowed_algorithms = allowed_algorithms
        self.leeway = leeway
        self.http_timeout = http_timeout
        self.max_response_bytes = max_response_bytes
        self.allow_private = allow_private

    async def client_for_issuer(self, issuer: str) -> RelyingPartyClient:
        """
        Raises:
            UnknownIssuerError: If this node holds no registration for ``issuer``.
        """
        key = origin_of(issuer) if is_valid_uri(issuer) else issuer
        if key in self._clients:
            return self._clients[key]

        registration = self._registrations.get(key)
        if registration is None:
            raise UnknownIssuerError(f"No client registered for issuer {key}", identity_uri=None)

        rp_client = RelyingPartyClient(
            registration,
            OIDCProvider(key, self.client, max_response_bytes=self.max_response_bytes),
            allowed_algorithms=self.allowed_algorithms,
            leeway=self.leeway,
            http_timeout=self.http_timeout,
            allow_private=self.allow_private,
        )
        self._clients[key] = rp_client
        return rp_client
