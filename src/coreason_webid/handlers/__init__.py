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
Request handlers for provider selection, the authorization callback and login consent.
"""

from .auth_callback import AuthCallbackRequest
from .login_consent import LoginConsentRequest
from .select_provider import SelectProviderRequest

__all__ = ["AuthCallbackRequest", "LoginConsentRequest", "SelectProviderRequest"]
