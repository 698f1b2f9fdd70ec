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
Provider selection: the user submits a WebID (or provider URI) and is redirected to the
authorization endpoint of the provider discovered for it.
"""

from collections.abc import Mapping

from coreason_webid.exceptions import ConfigurationError, CoreasonWebIDError, UserInputError
from coreason_webid.models import FlowResponse, Session
from coreason_webid.resolver import ProviderResolver
from coreason_webid.rp_client import TokenClientStore
from coreason_webid.uri import is_valid_uri, normalize_uri
from coreason_webid.utils.logger import logger

DEFAULT_VIEW = "auth/select-provider"


class SelectProviderRequest:
    """
    A single provider-selection request.

    Attributes:
        web_id (str | None): The normalized identity submitted in the ``webid`` form field.
        session (Session): The current browser session.
        resolver (ProviderResolver | None): Provider resolution capability.
        clients (TokenClientStore | None): Token clients keyed by issuer.
        server_uri (str | None): This node's origin, shown on the form.
    """

    def __init__(
        self,
        web_id: str | None,
        session: Session,
        resolver: ProviderResolver | None,
        clients: TokenClientStore | None,
        server_uri: str | None = None,
        view: str = DEFAULT_VIEW,
    ) -> None:
        self.web_id = web_id
        self.session = session
        self.resolver = resolver
        self.clients = clients
        self.server_uri = server_uri
        self.view = view

    @classmethod
    def from_params(
        cls,
        form: Mapping[str, str] | None,
        session: Session,
        resolver: ProviderResolver | None,
        clients: TokenClientStore | None,
        server_uri: str | None = None,
        view: str = DEFAULT_VIEW,
    ) -> "SelectProviderRequest":
        """
        Builds a request from a submitted form, normalizing the ``webid`` field.
        """
        web_id = normalize_uri((form or {}).get("webid"))
        return cls(web_id, session, resolver, clients, server_uri=server_uri, view=view)

    def validate(self) -> None:
        """
        Raises:
            UserInputError: If the WebID is missing or malformed.
            ConfigurationError: If provider resolution or token clients are not configured.
        """
        if not self.web_id:
            raise UserInputError("No webid is given for Provider Discovery")

        if not is_valid_uri(self.web_id):
            raise UserInputError("Invalid webid given for Provider Discovery")

        if self.resolver is None or self.clients is None:
            raise ConfigurationError("OIDC multi-rp client not initialized")

    async def select_provider(self) -> FlowResponse:
        """
        Resolves the preferred provider and redirects to its authorization URL.

        Raises:
            DiscoveryError: If no provider can be determined.
        """
        if self.resolver is None or self.clients is None or not self.web_id:
            raise ConfigurationError("Provider selection invoked before validation")

        provider = await self.resolver.preferred_provider_for(self.web_id)
        token_client = await self.clients.client_for_issuer(provider)
        auth_url = await token_client.authorization_url(self.session)

        logger.info(f"Redirecting to provider {provider} for authorization")
        return FlowResponse.redirect(auth_url)

    async def handle_post(self) -> FlowResponse:
        """
        Runs validation and provider selection, rendering the form again on any failure.
        """
        try:
            self.validate()
            return await self.select_provider()
        except CoreasonWebIDError as e:
            logger.warning(f"Provider selection failed ({e.status_code}): {type(e).__name__}")
            return self.error(e)
        except Exception as e:
            logger.exception("Unexpected error during provider selection")
            return self.error(e)

    def error(self, error: Exception) -> FlowResponse:
        status_code = error.status_code if isinstance(error, CoreasonWebIDError) else 400
        return FlowResponse.render(self.view, status_code=status_code, error=str(error))

    def render_view(self) -> FlowResponse:
        return FlowResponse.render(self.view, server_uri=self.server_uri)
