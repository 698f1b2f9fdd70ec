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
Maps validated ID token claims to the authenticated WebID.
"""

from typing import Any, Protocol

from pydantic import BaseModel, ConfigDict, ValidationError

from coreason_webid.exceptions import IdentityResolutionError
from coreason_webid.uri import is_valid_uri
from coreason_webid.utils.logger import logger


class IdentityResolver(Protocol):
    """Derives the authenticated identity from decoded claims."""

    def identity_from(self, claims: dict[str, Any]) -> str:
        """
        Raises:
            IdentityResolutionError: If no usable identity is present.
        """
        ...


class RawWebIDClaims(BaseModel):
    """
    Internal model to parse the identity-bearing claims.

    Attributes:
        sub (str | None): The subject; a WebID for WebID-OIDC providers.
        webid (str | None): Explicit WebID claim, preferred over ``sub`` when present.
        iss (str | None): The issuer.
    """

    model_config = ConfigDict(extra="allow")

    sub: str | None = None
    webid: str | None = None
    iss: str | None = None


class WebIDClaimsMapper:
    """
    Resolves the WebID from the ``webid`` claim, falling back to a URI-valued ``sub``.
    """

    def identity_from(self, claims: dict[str, Any]) -> str:
        """
        Args:
            claims: The validated ID token claims.

        Returns:
            str: The WebID.

        Raises:
            IdentityResolutionError: If the claims are malformed or carry no WebID.
        """
        try:
            raw = RawWebIDClaims(**claims)
        except ValidationError as e:
            raise IdentityResolutionError(f"Malformed identity claims: {e}", cause=e) from e

        for candidate in (raw.webid, raw.sub):
            if candidate and is_valid_uri(candidate):
                return candidate

        logger.warning(f"Claims from issuer {raw.iss} carry no WebID")
        raise IdentityResolutionError("Cannot determine WebID: no 'webid' claim and 'sub' is not a URI")
