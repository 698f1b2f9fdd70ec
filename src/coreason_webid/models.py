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
Data models for the coreason-webid package.
"""

from enum import StrEnum
from typing import Any
from urllib.parse import urlencode

from pydantic import BaseModel, ConfigDict, Field, SecretStr


class AuthorizeOutcome(StrEnum):
    """
    Result of a host step (authenticate / obtain consent) during `/authorize` processing.

    ``RESPONSE_SENT`` means a redirect was already produced for the current request and
    the Identity-Provider component must stop processing it.
    """

    GRANTED = "granted"
    PENDING = "pending"
    RESPONSE_SENT = "response_sent"


class PendingAuthorization(BaseModel):
    """
    State and nonce bookkeeping for an authorization request sent to a provider.
    """

    model_config = ConfigDict(frozen=True)

    issuer: str
    nonce: str


class Session(BaseModel):
    """
    Server-side browser session state.

    The model is mutable: the callback handler stores identity and tokens, the consent
    handler appends consented origins.
    """

    model_config = ConfigDict(validate_assignment=True)

    identified: bool = False
    user_id: str | None = None
    access_token: SecretStr | None = None
    refresh_token: SecretStr | None = None
    consented_origins: list[str] = Field(default_factory=list)
    return_to_url: str | None = None
    pending_authorizations: dict[str, PendingAuthorization] = Field(default_factory=dict)

    def add_consented_origin(self, origin: str) -> None:
        """Appends ``origin`` unless already present."""
        if origin not in self.consented_origins:
            self.consented_origins.append(origin)

    def has_consented(self, origin: str) -> bool:
        return origin in self.consented_origins

    def __repr__(self) -> str:
        # WebIDs and tokens stay out of reprs
        return (
            f"Session(identified={self.identified!r}, "
            f"user_id={'<REDACTED>' if self.user_id else None!r}, "
            f"consented_origins={self.consented_origins!r}, "
            f"return_to_url={self.return_to_url!r})"
        )

    def __str__(self) -> str:
        return self.__repr__()


class CallbackResult(BaseModel):
    """
    Outcome of validating a provider's authorization response.

    Attributes:
        claims (dict[str, Any]): The validated ID token claims.
        access_token (str | None): The access token issued by the provider.
        refresh_token (str | None): The refresh token, if issued.
        id_token (str | None): The raw ID token.
    """

    model_config = ConfigDict(frozen=True)

    claims: dict[str, Any]
    access_token: str | None = None
    refresh_token: str | None = None
    id_token: str | None = None


class FlowResponse(BaseModel):
    """
    Framework-neutral HTTP response produced by the request handlers.

    Either a redirect (``location`` set) or a rendered view (``view`` and ``context``).
    """

    model_config = ConfigDict(frozen=True)

    status_code: int = 200
    location: str | None = None
    view: str | None = None
    context: dict[str, Any] = Field(default_factory=dict)

    @classmethod
    def redirect(cls, location: str, status_code: int = 302) -> "FlowResponse":
        return cls(status_code=status_code, location=location)

    @classmethod
    def render(cls, view: str, status_code: int = 200, **context: Any) -> "FlowResponse":
        return cls(status_code=status_code, view=view, context=context)

    @property
    def is_redirect(self) -> bool:
        return self.location is not None


class AuthorizationRequest(BaseModel):
    """
    Per-request context of a `/authorize` call, shared by reference between the
    authenticate and obtain-consent steps.

    Input fields describe the requesting client; ``subject``, ``consent``, ``scope`` and
    ``response`` are outputs written by the steps. Never persisted.
    """

    model_config = ConfigDict(validate_assignment=True)

    client_id: str | None = None
    redirect_uri: str | None = None
    requested_scope: str | None = None
    params: dict[str, str] = Field(default_factory=dict)
    session: Session = Field(default_factory=Session)
    request_uri: str | None = None

    subject: str | None = None
    consent: bool = False
    scope: str | None = None
    response: FlowResponse | None = None

    @classmethod
    def from_params(
        cls,
        query: dict[str, str] | None,
        session: Session,
        body: dict[str, str] | None = None,
        request_uri: str | None = None,
    ) -> "AuthorizationRequest":
        """
        Builds the context from the request's query string, falling back to the form body
        when the query carries no ``client_id``.
        """
        query = dict(query or {})
        body = dict(body or {})
        params = query if query.get("client_id") else body or query

        return cls(
            client_id=params.get("client_id"),
            redirect_uri=params.get("redirect_uri"),
            requested_scope=params.get("scope"),
            params=params,
            session=session,
            request_uri=request_uri,
        )

    @property
    def query_string(self) -> str:
        return urlencode(self.params)
