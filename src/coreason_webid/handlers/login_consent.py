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
Login consent: decides whether a client requesting a token through this node's
`/authorize` endpoint may receive one without asking the user.
"""

from coreason_webid.models import AuthorizationRequest, AuthorizeOutcome, FlowResponse
from coreason_webid.stores import ConsentStore
from coreason_webid.uri import is_valid_uri, origin_of
from coreason_webid.utils.logger import logger

CONSENT_FLAG_VALUES = frozenset({"true", "1", "on", "yes"})


class LoginConsentRequest:
    """
    Consent decision for one authorization request.

    Decision order, first match wins:

    1. the local (first-party) client is trusted implicitly;
    2. an origin the user consented to in this session, or a consent flag submitted
       from the consent page, is persisted and granted;
    3. a durable prior consent for the client id is granted;
    4. otherwise the user is redirected to the interactive consent page.
    """

    def __init__(
        self,
        auth_request: AuthorizationRequest,
        consent_store: ConsentStore,
        local_client_id: str | None,
        consent_path: str = "/sharing",
    ) -> None:
        self.auth_request = auth_request
        self.consent_store = consent_store
        self.local_client_id = local_client_id
        self.consent_path = consent_path

    @classmethod
    async def handle(
        cls,
        auth_request: AuthorizationRequest,
        consent_store: ConsentStore,
        local_client_id: str | None,
        consent_path: str = "/sharing",
        skip_consent: bool = False,
    ) -> AuthorizeOutcome:
        """
        Entry point called while the Identity-Provider component processes `/authorize`.

        Args:
            auth_request: The authorization request context, mutated in place.
            consent_store: Durable consent records.
            local_client_id: Client id of this node's own relying party.
            consent_path: Interactive consent page.
            skip_consent: Grant any client once the user is authenticated.

        Returns:
            AuthorizeOutcome: ``PENDING`` when the user is not authenticated yet,
            ``GRANTED`` when consent was established, ``RESPONSE_SENT`` after a redirect
            to the consent page.
        """
        if not auth_request.subject:
            return AuthorizeOutcome.PENDING

        request = cls(auth_request, consent_store, local_client_id, consent_path=consent_path)

        if skip_consent:
            request.mark_consent_success()
            return AuthorizeOutcome.GRANTED

        return await request.obtain_consent()

    @property
    def client_id(self) -> str | None:
        return self.auth_request.client_id

    @property
    def app_origin(self) -> str | None:
        redirect_uri = self.auth_request.redirect_uri
        return origin_of(redirect_uri) if is_valid_uri(redirect_uri) else None  # type: ignore[arg-type]

    def is_local_rp_client(self) -> bool:
        return self.local_client_id is not None and self.client_id == self.local_client_id

    def has_already_consented(self, app_origin: str | None) -> bool:
        if app_origin is not None and self.auth_request.session.has_consented(app_origin):
            return True
        return self.auth_request.params.get("consent", "").strip().lower() in CONSENT_FLAG_VALUES

    async def obtain_consent(self) -> AuthorizeOutcome:
        if self.is_local_rp_client():
            self.mark_consent_success()
            return AuthorizeOutcome.GRANTED

        app_origin = self.app_origin

        if self.has_already_consented(app_origin):
            await self.save_consent_for_client(app_origin)
            self.mark_consent_success()
            return AuthorizeOutcome.GRANTED

        if self.client_id and await self.consent_store.has_consent(self.client_id):
            self.mark_consent_success()
            return AuthorizeOutcome.GRANTED

        return self.redirect_to_consent()

    async def save_consent_for_client(self, app_origin: str | None) -> None:
        if app_origin is not None:
            self.auth_request.session.add_consented_origin(app_origin)
        if self.client_id:
            await self.consent_store.save_consent(self.client_id)

    def mark_consent_success(self) -> None:
        self.auth_request.consent = True
        self.auth_request.scope = self.auth_request.requested_scope

    def redirect_to_consent(self) -> AuthorizeOutcome:
        query = self.auth_request.query_string
        consent_url = f"{self.consent_path}?{query}" if query else self.consent_path

        logger.info(f"Redirecting user to {self.consent_path} for client {self.client_id}")
        self.auth_request.subject = None
        self.auth_request.response = FlowResponse.redirect(consent_url)
        return AuthorizeOutcome.RESPONSE_SENT
