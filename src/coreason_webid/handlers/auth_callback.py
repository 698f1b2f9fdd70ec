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
Authorization callback: the provider redirects the browser back to this node, the
response is validated, the session is marked as authenticated and the user resumes
where they started.
"""

from urllib.parse import unquote

from opentelemetry import trace
from opentelemetry.trace import Status, StatusCode
from pydantic import SecretStr

from coreason_webid.exceptions import CoreasonWebIDError, IdentityResolutionError, UserInputError
from coreason_webid.identity_mapper import IdentityResolver
from coreason_webid.models import CallbackResult, FlowResponse, Session
from coreason_webid.rp_client import TokenClientStore
from coreason_webid.utils.logger import anonymize, logger

tracer = trace.get_tracer(__name__)

DEFAULT_RETURN_TO = "/"


class AuthCallbackRequest:
    """
    A single callback request (``GET <callback>/<issuer_id>``).

    Attributes:
        issuer (str | None): The URI-decoded issuer id from the callback path.
        request_uri (str): The full callback request URI.
        session (Session): The current browser session.
        clients (TokenClientStore): Token clients keyed by issuer.
        identity_resolver (IdentityResolver): Derives the WebID from the claims.
        login_path (str): Where failed callbacks are sent.
    """

    def __init__(
        self,
        issuer: str | None,
        request_uri: str,
        session: Session,
        clients: TokenClientStore,
        identity_resolver: IdentityResolver,
        login_path: str = "/login",
        pii_salt: SecretStr | None = None,
    ) -> None:
        self.issuer = issuer
        self.request_uri = request_uri
        self.session = session
        self.clients = clients
        self.identity_resolver = identity_resolver
        self.login_path = login_path
        self.pii_salt = pii_salt or SecretStr("")

    @classmethod
    def from_params(
        cls,
        issuer_id: str | None,
        request_uri: str,
        session: Session,
        clients: TokenClientStore,
        identity_resolver: IdentityResolver,
        login_path: str = "/login",
        pii_salt: SecretStr | None = None,
    ) -> "AuthCallbackRequest":
        return cls(
            cls.extract_issuer(issuer_id),
            request_uri,
            session,
            clients,
            identity_resolver,
            login_path=login_path,
            pii_salt=pii_salt,
        )

    @staticmethod
    def extract_issuer(issuer_id: str | None) -> str | None:
        return unquote(issuer_id) if issuer_id else None

    def validate(self) -> None:
        if not self.issuer:
            raise UserInputError("Issuer id is missing from request params")

    def return_to_url(self) -> str:
        return unquote(self.session.return_to_url) if self.session.return_to_url else DEFAULT_RETURN_TO

    async def handle_callback(self) -> str:
        """
        Exchanges the provider's response and initializes the session.

        Returns:
            str: The authenticated WebID.

        Raises:
            CallbackValidationError: If the token client rejects the response.
            IdentityResolutionError: If the claims yield no WebID.
        """
        token_client = await self.clients.client_for_issuer(self.issuer)  # type: ignore[arg-type]
        result = await token_client.validate_callback(self.request_uri, self.session)
        web_id = self.resolve_identity(result)
        self.init_session_user_auth(result, web_id)
        return web_id

    def resolve_identity(self, result: CallbackResult) -> str:
        try:
            return self.identity_resolver.identity_from(result.claims)
        except IdentityResolutionError:
            raise
        except Exception as e:
            raise IdentityResolutionError(f"Cannot determine WebID from claims: {e}", cause=e) from e

    def init_session_user_auth(self, result: CallbackResult, web_id: str) -> None:
        self.session.access_token = SecretStr(result.access_token) if result.access_token else None
        self.session.refresh_token = SecretStr(result.refresh_token) if result.refresh_token else None
        self.session.user_id = web_id
        self.session.identified = True

    def resume_user_workflow(self) -> FlowResponse:
        """
        Redirects to the URL the user originally requested. The stored URL is one-time use.
        """
        return_to = self.return_to_url()
        self.session.return_to_url = None
        logger.debug(f"Redirecting to {return_to}")
        return FlowResponse.redirect(return_to)

    async def handle(self) -> FlowResponse:
        """
        Runs the whole callback. Any failure is logged and answered with a redirect to the
        login entry point instead of an error page.

        Emits an OpenTelemetry span ``auth_callback``.
        """
        with tracer.start_as_current_span("auth_callback") as span:
            try:
                self.validate()
                web_id = await self.handle_callback()
            except Exception as e:
                if isinstance(e, CoreasonWebIDError):
                    logger.warning(f"Authorization callback failed ({e.status_code}): {e}")
                else:
                    logger.exception("Unexpected error during authorization callback")
                span.record_exception(e)
                span.set_status(Status(StatusCode.ERROR, str(e)))
                return FlowResponse.redirect(self.login_path)

            user_hash = anonymize(web_id, self.pii_salt.get_secret_value())
            logger.info(f"Session established for user {user_hash} via {self.issuer}")
            span.set_attribute("enduser.id", user_hash)
            span.set_status(Status(StatusCode.OK))
            return self.resume_user_workflow()
