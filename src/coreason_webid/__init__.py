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
Relying-party side of WebID-OIDC: provider discovery, callback handling and login consent.
"""

__version__ = "0.1.0"
__author__ = "Gowtham A Rao"
__email__ = "gowtham.rao@coreason.ai"

from .config import CoreasonWebIDConfig, RelyingPartyRegistration
from .discovery import ProviderLinkDiscovery
from .exceptions import (
    ConfigurationError,
    CoreasonWebIDError,
    DiscoveryError,
    IdentityResolutionError,
    UserInputError,
)
from .handlers import AuthCallbackRequest, LoginConsentRequest, SelectProviderRequest
from .host_api import HostAuthBridge
from .manager import WebIDAuthManager
from .models import AuthorizationRequest, AuthorizeOutcome, FlowResponse, Session
from .resolver import ProviderResolver
from .uri import normalize_uri

__all__ = [
    "AuthCallbackRequest",
    "AuthorizationRequest",
    "AuthorizeOutcome",
    "ConfigurationError",
    "CoreasonWebIDConfig",
    "CoreasonWebIDError",
    "DiscoveryError",
    "FlowResponse",
    "HostAuthBridge",
    "IdentityResolutionError",
    "LoginConsentRequest",
    "ProviderLinkDiscovery",
    "ProviderResolver",
    "RelyingPartyRegistration",
    "SelectProviderRequest",
    "Session",
    "UserInputError",
    "WebIDAuthManager",
    "normalize_uri",
]
