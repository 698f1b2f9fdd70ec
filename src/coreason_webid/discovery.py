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
Provider link discovery: finds the OIDC issuer(s) a WebID advertises.

Strategies run in order and the first non-empty result wins:

1. `HeaderProbeStrategy` - an ``OPTIONS`` request on the WebID, reading the issuer
   ``Link`` relation from the response headers.
2. `ProfileStrategy` - fetches the WebID profile document and reads its
   ``solid:oidcIssuer`` statements.

See https://github.com/solid/webid-oidc-spec#authorized-oidc-issuer-discovery
"""

from typing import Protocol
from urllib.parse import urldefrag

import anyio
import httpx
import rdflib
from pydantic import BaseModel, ConfigDict, SecretStr

from coreason_webid.exceptions import (
    DISCOVERY_CONTRACT_URL,
    IdentityUnreachableError,
    OversizedResponseError,
    SecurityError,
)
from coreason_webid.transport import read_limited
from coreason_webid.utils.logger import anonymize, logger

OIDC_ISSUER_REL = "http://openid.net/specs/connect/1.0/issuer"
SOLID_OIDC_ISSUER = rdflib.URIRef("http://www.w3.org/ns/solid/terms#oidcIssuer")

RDF_ACCEPT = (
    "text/turtle, application/ld+json;q=0.9, application/rdf+xml;q=0.8, "
    "text/n3;q=0.7, application/n-triples;q=0.6"
)

RDF_FORMATS = {
    "text/turtle": "turtle",
    "application/x-turtle": "turtle",
    "application/ld+json": "json-ld",
    "application/rdf+xml": "xml",
    "text/n3": "n3",
    "application/n-triples": "nt",
}


class DiscoveryResult(BaseModel):
    """
    Candidate issuers found for an identity.

    Attributes:
        identity_uri (str): The WebID discovery ran for.
        candidates (tuple[str, ...]): Advertised issuer URIs, not yet normalized.
        strategy (str | None): Name of the strategy that produced them, None if nothing was found.
    """

    model_config = ConfigDict(frozen=True)

    identity_uri: str
    candidates: tuple[str, ...] = ()
    strategy: str | None = None


class DiscoveryStrategy(Protocol):
    """A single way of finding the issuers a WebID advertises."""

    name: str

    async def candidates(self, identity_uri: str) -> list[str]:
        """Returns the advertised issuers, or an empty list when this strategy finds none."""
        ...


def parse_provider_link(response: httpx.Response) -> str | None:
    """
    Returns the target of the OIDC issuer ``Link`` relation, if any.

    Args:
        response: The response to an ``OPTIONS`` (or ``HEAD``) request on a WebID.
    """
    for link in response.links.values():
        if OIDC_ISSUER_REL in link.get("rel", "").split():
            return link.get("url") or None
    return None


def rdf_format_for(content_type: str | None) -> str:
    media_type = (content_type or "").split(";")[0].strip().lower()
    return RDF_FORMATS.get(media_type, "turtle")


def extract_issuers(body: bytes, content_type: str | None, web_id: str) -> list[str]:
    """
    Parses a profile document and collects the ``solid:oidcIssuer`` IRIs of ``web_id``.

    An RDF graph has no statement order, so the result is sorted to keep selection
    deterministic. Literal objects are ignored.
    """
    graph = rdflib.Graph()
    base = urldefrag(web_id)[0]
    try:
        graph.parse(data=body, format=rdf_format_for(content_type), publicID=base)
    except Exception as e:  # rdflib raises parser-specific errors
        logger.warning(f"Could not parse profile document: {type(e).__name__}")
        return []

    issuers = {
        str(obj) for obj in graph.objects(rdflib.URIRef(web_id), SOLID_OIDC_ISSUER) if isinstance(obj, rdflib.URIRef)
    }
    return sorted(issuers)


class HeaderProbeStrategy:
    name = "header"

    def __init__(self, client: httpx.AsyncClient, pii_salt: SecretStr | None = None) -> None:
        self.client = client
        self.pii_salt = pii_salt or SecretStr("")

    async def candidates(self, identity_uri: str) -> list[str]:
        try:
            response = await self.client.options(identity_uri)
        except (httpx.HTTPError, SecurityError) as e:
            user_hash = anonymize(identity_uri, self.pii_salt.get_secret_value())
            logger.debug(f"Link header probe failed for {user_hash}: {type(e).__name__}")
            return []

        if not response.is_success:
            user_hash = anonymize(identity_uri, self.pii_salt.get_secret_value())
            logger.debug(f"Link header probe on {user_hash} returned HTTP {response.status_code}")
            return []

        provider = parse_provider_link(response)
        return [provider] if provider else []


class ProfileStrategy:
    name = "profile"

    def __init__(self, client: httpx.AsyncClient, max_response_bytes: int = 1_000_000) -> None:
        self.client = client
        self.max_response_bytes = max_response_bytes

    async def candidates(self, identity_uri: str) -> list[str]:
        """
        Fetches the profile and returns its advertised issuers.

        Raises:
            IdentityUnreachableError: If the profile cannot be fetched.
        """
        try:
            async with self.client.stream(
                "GET", identity_uri, headers={"Accept": RDF_ACCEPT}, follow_redirects=True
            ) as response:
                if not response.is_success:
                    raise IdentityUnreachableError(
                        f"Could not reach Web ID {identity_uri} to discover provider (HTTP {response.status_code}). "
                        f"See {DISCOVERY_CONTRACT_URL}",
                        identity_uri=identity_uri,
                    )
                body = await read_limited(response, self.max_response_bytes)
                content_type = response.headers.get("Content-Type")
        except (httpx.HTTPError, SecurityError, OversizedResponseError) as e:
            raise IdentityUnreachableError(
                f"Could not reach Web ID {identity_uri} to discover provider: {e}. See {DISCOVERY_CONTRACT_URL}",
                identity_uri=identity_uri,
            ) from e

        return await anyio.to_thread.run_sync(extract_issuers, body, content_type, identity_uri)


class ProviderLinkDiscovery:
    """
    Runs the discovery strategies in order, short-circuiting on the first one that finds issuers.

    Attributes:
        strategies (list[DiscoveryStrategy]): The ordered strategies.
    """

    def __init__(
        self,
        client: httpx.AsyncClient,
        max_response_bytes: int = 1_000_000,
        strategies: list[DiscoveryStrategy] | None = None,
        pii_salt: SecretStr | None = None,
    ) -> None:
        self.client = client
        self.pii_salt = pii_salt or SecretStr("")
        self.strategies: list[DiscoveryStrategy] = strategies or [
            HeaderProbeStrategy(client, pii_salt=self.pii_salt),
            ProfileStrategy(client, max_response_bytes),
        ]

    async def discover(self, identity_uri: str) -> DiscoveryResult:
        """
        Discovers the issuers advertised by ``identity_uri``.

        Returns:
            DiscoveryResult: With empty ``candidates`` when the identity is reachable but
            advertises nothing.

        Raises:
            IdentityUnreachableError: If the identity cannot be reached.
        """
        for strategy in self.strategies:
            found = await strategy.candidates(identity_uri)
            if found:
                user_hash = anonymize(identity_uri, self.pii_salt.get_secret_value())
                logger.debug(f"Discovered {len(found)} issuer candidate(s) for {user_hash} via {strategy.name}")
                return DiscoveryResult(identity_uri=identity_uri, candidates=tuple(found), strategy=strategy.name)

        return DiscoveryResult(identity_uri=identity_uri)
