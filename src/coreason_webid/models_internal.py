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
Internal data models for the coreason-webid package.
These are not exposed in the public API.
"""

from pydantic import BaseModel, ConfigDict, Field


class ProviderMetadata(BaseModel):
    """
    OpenID Provider metadata from .well-known/openid-configuration.
    """

    model_config = ConfigDict(frozen=True, extra="ignore")

    issuer: str = Field(..., description="The OIDC issuer URL.")
    authorization_endpoint: str = Field(..., description="The authorization endpoint URL.")
    token_endpoint: str = Field(..., description="The token endpoint URL.")
    jwks_uri: str = Field(..., description="The URL to the JWKS.")
    userinfo_endpoint: str | None = None
    end_session_endpoint: str | None = None
