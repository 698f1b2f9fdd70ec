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
Host behavior injected into the Identity-Provider component, called from its
`/authorize` endpoint.
"""

from urllib.parse import quote

from coreason_webid.config import CoreasonWebIDConfig
from coreason_webid.handlers.login_consent import LoginConsentRequest
from coreason_webid.models import AuthorizationRequest, AuthorizeOutcome, FlowResponse
from coreason_webid.stores import ConsentStore, LogoutHandler
from coreason_webid.utils.logger import logger


class HostAuthBridge:
    """
    Adapter exposing ``authenticate``, ``obtain_consent`` and ``logout`` to the provider.

    Attributes:
        config (CoreasonWebIDConfig): Login/consent paths, local client id, skip-consent flag.
        consent_store (ConsentStore): Durable consent records.
        logout_handler (LogoutHandler): Session termination collaborator.
    """

    def __init__(
        self,
        config: CoreasonWebIDConfig,
        consent_store: ConsentStore,
        logout_handler: LogoutHandler,
    ) -> None:
        self.config = config
        self.consent_store = consent_store
        self.logout_handler = logout_handler

    def authenticate(self, auth_request: AuthorizationRequest) -> AuthorizeOutcome:
        """
        Puts the session's WebID into the request subject, or sends the user to log in.

        Returns:
            AuthorizeOutcome: ``GRANTED`` if the session is authenticated, otherwise
            ``RESPONSE_SENT`` with a login redirect stored on ``auth_request.response``.
        """
        session = auth_request.session

        if session.identified and session.user_id:
            logger.debug("User WebID found in session")
            auth_request.subject = session.user_id
            return AuthorizeOutcome.GRANTED

        logger.debug(f"User not authenticated, sending to {self.config.login_path}")
        query = auth_request.query_string
        login_url = f"{self.config.login_path}?{query}" if query else self.config.login_path

        # Stored encoded; the callback decodes it exactly once
        if auth_request.request_uri:
            session.return_to_url = quote(auth_request.request_uri, safe="")
        auth_request.subject = None
        auth_request.response = FlowResponse.redirect(login_url)
        return AuthorizeOutcome.RESPONSE_SENT

    async def obtain_consent(self, auth_request: AuthorizationRequest) -> AuthorizeOutcome:
        """
        Delegates to `LoginConsentRequest`. Errors are reported and leave consent pending.
        """
        try:
            return await LoginConsentRequest.handle(
                auth_request,
                self.consent_store,
                self.config.local_client_id,
                consent_path=self.config.consent_path,
                skip_consent=self.config.skip_consent,
            )
        except Exception:
            logger.exception("Error in auth consent step")
            return AuthorizeOutcome.PENDING

    async def logout(self, auth_request: AuthorizationRequest) -> None:
        """
        Terminates the session. Collaborator errors are logged, never raised.
        """
        try:
            await self.logout_handler.logout(auth_request.session)
        except Exception:
            logger.exception("Error during logout")
