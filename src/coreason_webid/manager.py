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
WebIDAuthManager component wiring discovery, the request handlers and the host bridge.
"""

from collections.abc import Mapping
from typing import Any

import httpx
from opentelemetry.instrumentation.httpx import HTTPXClientInstrumentor

from coreason_webid.config import CoreasonWebIDConfig
from coreason_webid.discovery import ProviderLinkDiscovery
from coreason_webid.handlers.auth_callback import AuthCallbackRequest
from coreason_webid.handlers.select_provider import SelectProviderRequest
from coreason_webid.host_api import HostAuthBridge
from coreason_webid.identity_mapper import IdentityResolver, WebIDClaimsMapper
from coreason_webid.models import FlowResponse, Session
from coreason_webid.resolver import ProviderResolver
from coreason_webid.rp_client import RelyingPartyClientStore, TokenClientStore
from coreason_webid.stores import ConsentStore, LogoutHandler, MemoryConsentStore, SessionLogout
from coreason_webid.transport import SafeHTTPTransport


class WebIDAuthManager:
    """
    Entry point for the host web layer: one coroutine per authentication endpoint.
    Handles resources via async context manager.
    """

    def __init__(
        self,
        config: CoreasonWebIDConfig,
        clients: TokenClientStore | None = None,
        consent_store: ConsentStore | None = None,
        identity_resolver: IdentityResolver | None = None,
        logout_handler: LogoutHandler | None = None,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        """
        Initialize the WebIDAuthManager.

        Args:
            config: The configuration object.
            clients: Token clients keyed by issuer. Defaults to a `RelyingPartyClientStore`
                over ``config.registrations``.
            consent_store: Durable consent records. Defaults to `MemoryConsentStore`.
            identity_resolver: Claims-to-WebID resolver. Defaults to `WebIDClaimsMapper`.
            logout_handler: Session termination. Defaults to `SessionLogout`.
            client: External async client (optional). If not provided, a `SafeHTTPTransport` client is created.
        """
        self.config = config
        self._internal_client = client is None

        if client:
            self._client = client
        else:
            transport = SafeHTTPTransport(allow_private=config.unsafe_local_dev)
            self._client = httpx.AsyncClient(transport=transport, timeout=config.http_timeout)

        HTTPXClientInstrumentor().instrument_client(self._client)

        self.resolver = ProviderResolver(
            self._client,
            ProviderLinkDiscovery(
                self._client, max_response_bytes=config.max_response_bytes, pii_salt=config.pii_salt
            ),
            pii_salt=config.pii_salt,
        )
        self.clients: TokenClientStore = clients or RelyingPartyClientStore(
            config.registrations,
            self._client,
            allowed_algorithms=config.allowed_algorithms,
            leeway=config.clock_skew_leeway,
            http_timeout=config.http_timeout,
            max_response_bytes=config.max_response_bytes,
            allow_private=config.unsafe_local_dev,
        )
        self.identity_resolver: IdentityResolver = identity_resolver or WebIDClaimsMapper()
        self.host = HostAuthBridge(
            config,
            consent_store or MemoryConsentStore(),
            logout_handler or SessionLogout(),
        )

    async def __aenter__(self) -> "WebIDAuthManager":
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        if self._internal_client:
            await self._client.aclose()

    def select_provider_form(self, session: Session) -> FlowResponse:
        """Handles ``GET`` on the provider-selection endpoint."""
        request = SelectProviderRequest(
            None,
            session,
            self.resolver,
            self.clients,
            server_uri=self.config.server_uri,
            view=self.config.select_provider_view,
        )
        return request.render_view()

    async def select_provider(self, form: Mapping[str, str] | None, session: Session) -> FlowResponse:
        """
        Handles ``POST`` on the provider-selection endpoint.

        Args:
            form: The submitted form fields (``webid``).
            session: The current session.

        Returns:
            FlowResponse: A redirect to the provider, or the form with an error.
        """
        request = SelectProviderRequest.from_params(
            form,
            session,
            self.resolver,
            self.clients,
            server_uri=self.config.server_uri,
            view=self.config.select_provider_view,
        )
        return await request.handle_post()

    async def auth_callback(self, issuer_id: str | None, request_uri: str, session: Session) -> FlowResponse:
        """
        Handles ``GET`` on the callback endpoint.

        Args:
            issuer_id: The URI-encoded issuer path segment.
            request_uri: The full callback request URI.
            session: The current session.

        Returns:
            FlowResponse: A redirect to the stored return URL, or to the login page on failure.
        """
        request = AuthCallbackRequest.from_params(
            issuer_id,
            request_uri,
            session,
            self.clients,
            self.identity_resolver,
            login_path=self.config.login_path,
            pii_salt=self.config.pii_salt,
        )
        return await request.handle()
