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
Configuration for the coreason-webid package.
"""

from pydantic import BaseModel, Field, SecretStr, ValidationInfo, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from coreason_webid.uri import is_valid_uri, origin_of


class RelyingPartyRegistration(BaseModel):
    """
    A static client registration this node holds at a remote OpenID Connect Provider.

    Attributes:
        issuer (str): The provider origin the registration belongs to.
        client_id (str): The client id issued by the provider.
        client_secret (SecretStr | None): The client secret, if the client is confidential.
        redirect_uri (str): The callback URI registered with the provider.
        scope (str): The scopes requested during authorization.
    """

    issuer: str
    client_id: str
    client_secret: SecretStr | None = None
    redirect_uri: str
    scope: str = "openid profile"

    @field_validator("issuer")
    @classmethod
    def normalize_issuer(cls, v: str) -> str:
        if not is_valid_uri(v):
            raise ValueError(f"Issuer '{v}' is not a valid URI")
        return origin_of(v)


class CoreasonWebIDConfig(BaseSettings):
    """
    Configuration settings for coreason-webid.

    Attributes:
        server_uri (str): The public origin of this node (e.g. https://pod.example).
        local_client_id (str | None): Client id of this node's own relying-party registration.
            Consent for it is always implicit.
        login_path (str): Login entry point users are sent to when unauthenticated or after a failed callback.
        consent_path (str): Interactive consent page.
        skip_consent (bool): Grant consent to any client once the user is authenticated.
        http_timeout (float): Timeout in seconds for discovery and token-endpoint calls.
        max_response_bytes (int): Upper bound for fetched profile and metadata documents.
        pii_salt (SecretStr): Salt for anonymizing WebIDs in logs and traces.
        unsafe_local_dev (bool): Allow plain HTTP and private network targets.
        registrations (list[RelyingPartyRegistration]): Static client registrations, one per issuer.
    """

    model_config = SettingsConfigDict(
        env_prefix="COREASON_WEBID_",
        case_sensitive=False,
    )

    unsafe_local_dev: bool = False
    server_uri: str
    local_client_id: str | None = None
    login_path: str = "/login"
    consent_path: str = "/sharing"
    select_provider_view: str = "auth/select-provider"
    skip_consent: bool = True
    http_timeout: float = Field(default=10.0, gt=0, description="Timeout in seconds for all outbound calls.")
    max_response_bytes: int = Field(default=1_000_000, gt=0)
    pii_salt: SecretStr = SecretStr("coreason-unsafe-default-salt")
    allowed_algorithms: list[str] = Field(default_factory=lambda: ["RS256", "ES256", "PS256"])
    clock_skew_leeway: int = Field(default=0, ge=0)
    registrations: list[RelyingPartyRegistration] = Field(default_factory=list)

    @field_validator("server_uri", mode="after")
    @classmethod
    def normalize_server_uri(cls, v: str, info: ValidationInfo) -> str:
        """
        Reduces the server URI to its origin and enforces HTTPS outside local development.
        """
        v = v.strip()
        if "://" not in v:
            v = f"https://{v}"
        if not is_valid_uri(v):
            raise ValueError(f"server_uri '{v}' is not a valid URI")

        if v.startswith("http://") and not info.data.get("unsafe_local_dev", False):
            raise ValueError("HTTPS is required for production. Set 'unsafe_local_dev=True' only for local testing.")
        return origin_of(v)

    @field_validator("login_path", "consent_path")
    @classmethod
    def ensure_absolute_path(cls, v: str) -> str:
        if not v.startswith("/"):
            raise ValueError(f"'{v}' must be an absolute path")
        return v
