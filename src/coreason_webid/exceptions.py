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
Custom exceptions for the coreason-webid package.

Every error carries the HTTP status code the web layer should answer with.
"""

DISCOVERY_CONTRACT_URL = "https://github.com/solid/webid-oidc-spec#authorized-oidc-issuer-discovery"


class CoreasonWebIDError(Exception):
    """Base exception for all coreason-webid errors."""

    status_code: int = 400

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        if status_code is not None:
            self.status_code = status_code

    @property
    def message(self) -> str:
        return str(self)


class UserInputError(CoreasonWebIDError):
    """Raised when the submitted identity (or callback parameter) is missing or malformed."""


class ConfigurationError(CoreasonWebIDError):
    """Raised when a required server-side capability is not configured."""

    status_code = 500


class DiscoveryError(CoreasonWebIDError):
    """
    Raised when the authoritative provider for an identity cannot be determined.

    Attributes:
        identity_uri (str | None): The WebID (or provider URI) discovery was run for.
    """

    def __init__(self, message: str, identity_uri: str | None = None) -> None:
        super().__init__(message)
        self.identity_uri = identity_uri


class IdentityUnreachableError(DiscoveryError):
    """Raised when the identity document cannot be fetched."""


class IssuerNotAdvertisedError(DiscoveryError):
    """Raised when the identity is reachable but advertises no (matching) OIDC issuer."""


class InvalidIssuerError(DiscoveryError):
    """Raised when an advertised OIDC issuer is not a well-formed URI."""


class UnknownIssuerError(DiscoveryError):
    """Raised when no relying-party registration exists for a discovered issuer."""


class IdentityResolutionError(CoreasonWebIDError):
    """
    Raised when the provider's claims do not yield a usable identity.

    Attributes:
        cause (Exception | None): The underlying error, also chained as ``__cause__``.
    """

    status_code = 401

    def __init__(self, message: str, cause: Exception | None = None) -> None:
        super().__init__(message)
        self.cause = cause


class CallbackValidationError(CoreasonWebIDError):
    """Raised when an authorization response fails validation (state, nonce, code or ID token)."""


class OversizedResponseError(CoreasonWebIDError):
    """Raised when an HTTP response is too large."""


class SecurityError(CoreasonWebIDError):
    """Raised when a security violation is detected."""
