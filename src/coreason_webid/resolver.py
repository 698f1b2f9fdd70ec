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
ProviderResolver: decides which OpenID Connect Provider is authoritative for a URI.
"""

import httpx
from opentelemetry import trace
from opentelemetry.trace import Status, StatusCode
from pydantic import SecretStr

from coreason_webid.discovery import ProviderLinkDiscovery
from coreason_webid.exceptions import (
    DISCOVERY_CONTRACT_URL,
    DiscoveryError,
    InvalidIssuerError,
    IssuerNotAdvertisedError,
    SecurityError,
)
from coreason_webid.uri import WELL_KNOWN_CONFIGURATION, is_valid_uri, origin_of
from coreason_webid.utils.logger import anonymize, logger

tracer = trace.get_tracer(__name__)


def not_advertised(web_id: str) -> IssuerNotAdvertisedError:
    return IssuerNotAdvertisedError(
        f"OIDC issuer not advertised for {web_id}. See {DISCOVERY_CONTRACT_URL}",
        identity_uri=web_id,
    )


def validate_provider_uri(provider: str | None, web_id: str) -> None:
    """
    Makes sure a discovered provider URI is present and well-formed.

    Raises:
        IssuerNotAdvertisedError: If ``provider`` is empty.
        InvalidIssuerError: If ``provider`` is not a valid URI.
    """
    if not provider:
        raise not_advertised(web_id)

    if not is_valid_uri(provider):
        raise InvalidIssuerError(
            f"OIDC issuer for {web_id} is not a valid URI: {provider}. See {DISCOVERY_CONTRACT_URL}",
            identity_uri=web_id,
        )


class ProviderResolver:
    """
    Resolves a WebID or provider URI to the origin of its OpenID Connect Provider.

    Attributes:
        client (httpx.AsyncClient): Client used for the well-known self-check.
        discovery (ProviderLinkDiscovery): Issuer discovery for WebIDs.
        pii_salt (SecretStr): Salt for anonymizing identities in logs and traces.
    """

    def __init__(
        self,
        client: httpx.AsyncClient,
        discovery: ProviderLinkDiscovery | None = None,
        pii_salt: SecretStr | None = None,
    ) -> None:
        self.client = client
        self.pii_salt = pii_salt or SecretStr("")
        self.discovery = discovery or ProviderLinkDiscovery(client, pii_salt=self.pii_salt)

    def _anonymize(self, value: str) -> str:
        return anonymize(value, self.pii_salt.get_secret_value())

    async def provider_exists(self, uri: str) -> str | None:
        """
        Checks whether the origin of ``uri`` hosts an OpenID Connect Provider.

        Returns:
            The origin if ``<origin>/.well-known/openid-configuration`` answers with a
            success status, otherwise None.
        """
        provider_origin = origin_of(uri)
        config_uri = f"{provider_origin}{WELL_KNOWN_CONFIGURATION}"

        try:
            response = await self.client.head(config_uri)
        except (httpx.HTTPError, SecurityError) as e:
            logger.debug(f"Provider self-check failed for {self._anonymize(provider_origin)}: {type(e).__name__}")
            return None

        return provider_origin if response.is_success else None

    async def discover_provider_for(self, web_id: str, expected_issuer: str | None = None) -> str:
        """
        Discovers the provider a WebID advertises and picks one origin.

        Every candidate is reduced to its origin and validated. With ``expected_issuer``
        the first valid candidate equal to it is returned, otherwise the first valid one.

        Args:
            web_id: The WebID to discover the provider for.
            expected_issuer: The issuer the caller expects (e.g. when resuming a callback).

        Returns:
            str: The provider origin.

        Raises:
            IdentityUnreachableError: If the WebID cannot be reached.
            IssuerNotAdvertisedError: If no (matching) issuer is advertised.
            InvalidIssuerError: If the advertised issuers are malformed.
        """
        result = await self.discovery.discover(web_id)

        expected = origin_of(expected_issuer) if expected_issuer and is_valid_uri(expected_issuer) else expected_issuer
        last_error: DiscoveryError | None = None

        for candidate in result.candidates:
            provider = self._to_origin(candidate)
            try:
                validate_provider_uri(provider, web_id)
            except DiscoveryError as e:
                last_error = e
                continue

            if expected is None or provider == expected:
                return provider  # type: ignore[return-value]

            logger.debug(f"Skipping issuer {provider} for {self._anonymize(web_id)}: expected {expected}")

        if last_error is not None:
            raise last_error

        if expected and result.candidates:
            raise IssuerNotAdvertisedError(
                f"OIDC issuer {expected} not advertised for {web_id}. See {DISCOVERY_CONTRACT_URL}",
                identity_uri=web_id,
            )

        raise not_advertised(web_id)

    async def preferred_provider_for(self, uri: str, expected_issuer: str | None = None) -> str:
        """
        Returns the provider origin for a provider URI or a WebID.

        If the origin of ``uri`` is itself a provider it is returned without running
        discovery. Emits an OpenTelemetry span ``resolve_provider``.

        Args:
            uri: A provider URI or a WebID.
            expected_issuer: See `discover_provider_for`.

        Returns:
            str: The provider origin.

        Raises:
            DiscoveryError: If no provider can be determined.
        """
        if not is_valid_uri(uri):
            raise DiscoveryError(f"Cannot resolve a provider for invalid URI {uri!r}", identity_uri=uri)

        with tracer.start_as_current_span("resolve_provider") as span:
            span.set_attribute("enduser.id", self._anonymize(uri))
            try:
                provider = await self.provider_exists(uri)
                if provider:
                    span.set_attribute("webid.provider.source", "self")
                else:
                    provider = await self.discover_provider_for(uri, expected_issuer)
                    span.set_attribute("webid.provider.source", "discovery")
            except DiscoveryError as e:
                logger.warning(f"Provider resolution failed for {self._anonymize(uri)}: {type(e).__name__}")
                # Messages carry the identity URI, so only the error type is recorded
                span.set_attribute("error.type", type(e).__name__)
                span.set_status(Status(StatusCode.ERROR, type(e).__name__))
                raise

            span.set_attribute("webid.provider", provider)
            span.set_status(Status(StatusCode.OK))
            logger.info(f"Resolved provider {provider}")
            return provider

    @staticmethod
    def _to_origin(candidate: str | None) -> str | None:
        if not candidate:
            return candidate
        try:
            return origin_of(candidate)
        except ValueError:
            # Left as-is so validation reports it as malformed
            return candidate
