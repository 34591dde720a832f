# Copyright (c) 2025 CoReason, Inc.
#
# This software is proprietary and dual-licensed.
# Licensed under the Prosperity Public License 3.0 (the "License").
# A copy of the license is available at https://prosperitylicense.com/versions/3.0.0
# For details, see the LICENSE file.
# Commercial use beyond a 30-day trial requires a separate license.
#
# Source Code: https://github.com/CoReason-AI/coreason_identity

"""
Hand-rolled OpenID Connect sign-in against Azure AD B2C, without MSAL.
"""

__version__ = "0.1.0"
__author__ = "Gowtham A Rao"
__email__ = "gowtham.rao@coreason.ai"

from .authorization import AuthorizationRequestBuilder
from .callback import CallbackValidator
from .config import CoreasonB2CConfig
from .exceptions import CoreasonB2CError
from .manager import B2CLoginManager, B2CLoginManagerAsync
from .models import (
    AuthChallenge,
    AuthError,
    AuthErrorReason,
    CallbackParams,
    LoginResult,
    LoginSuccess,
    LogoutResult,
    LogoutSuccess,
    TokenSet,
    UserProfile,
)
from .oidc_provider import KeySetClient, MemoryKeySetCache
from .profile import decode_profile
from .session import MemorySessionStore, SessionStoreProtocol
from .time_projection import format_epoch, project_validity
from .token_client import TokenExchangeClient
from .validator import TokenVerifier

__all__ = [
    "AuthChallenge",
    "AuthError",
    "AuthErrorReason",
    "AuthorizationRequestBuilder",
    "B2CLoginManager",
    "B2CLoginManagerAsync",
    "CallbackParams",
    "CallbackValidator",
    "CoreasonB2CConfig",
    "CoreasonB2CError",
    "KeySetClient",
    "LoginResult",
    "LoginSuccess",
    "LogoutResult",
    "LogoutSuccess",
    "MemoryKeySetCache",
    "MemorySessionStore",
    "SessionStoreProtocol",
    "TokenExchangeClient",
    "TokenSet",
    "TokenVerifier",
    "UserProfile",
    "decode_profile",
    "format_epoch",
    "project_validity",
]
