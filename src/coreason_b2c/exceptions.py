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
Custom exceptions for the coreason-b2c package.

Every exception carries an `AuthErrorReason` so the login manager can turn it into
an `AuthError` result without inspecting messages.
"""

from coreason_b2c.models import AuthErrorReason


class CoreasonB2CError(Exception):
    """Base exception for all coreason-b2c errors."""

    reason: AuthErrorReason = AuthErrorReason.INTERNAL_ERROR


class InvalidStateError(CoreasonB2CError):
    """Raised when the callback `state` is missing or does not match the stored one."""

    reason = AuthErrorReason.INVALID_STATE


class ProviderError(CoreasonB2CError):
    """
    Raised when the identity provider redirected back with an `error` parameter.
    The provider's description is surfaced as the message.
    """

    reason = AuthErrorReason.PROVIDER_ERROR

    def __init__(self, description: str, error: str | None = None) -> None:
        super().__init__(description)
        self.description = description
        self.error = error


class MissingIdTokenError(CoreasonB2CError):
    """Raised when the callback carries no `id_token`."""

    reason = AuthErrorReason.MISSING_ID_TOKEN


class InvalidTokenError(CoreasonB2CError):
    """Base class for id token verification failures."""

    reason = AuthErrorReason.INVALID_CLAIMS


class MalformedTokenError(InvalidTokenError):
    """Raised when the id token cannot be parsed as a compact JWS."""

    reason = AuthErrorReason.MALFORMED_TOKEN


class UnknownKeyError(InvalidTokenError):
    """Raised when no key in the provider's key set matches the token's `kid`."""

    reason = AuthErrorReason.UNKNOWN_KEY


class SignatureVerificationError(InvalidTokenError):
    """Raised when the token's signature cannot be verified."""

    reason = AuthErrorReason.BAD_SIGNATURE


class InvalidClaimsError(InvalidTokenError):
    """Raised when a claim (iss, sub, aud, nonce, exp...) does not hold."""

    reason = AuthErrorReason.INVALID_CLAIMS


class TokenExpiredError(InvalidClaimsError):
    """Raised when the provided token has expired."""


class ExchangeFailedError(CoreasonB2CError):
    """Raised when the authorization code cannot be exchanged for tokens."""

    reason = AuthErrorReason.EXCHANGE_FAILED


class ProfileDecodeError(CoreasonB2CError):
    """Raised when `profile_info` is not base64-encoded JSON describing a user."""

    reason = AuthErrorReason.PROFILE_DECODE_ERROR


class NetworkError(CoreasonB2CError):
    """Raised when the identity provider cannot be reached (timeout, connection failure)."""

    reason = AuthErrorReason.NETWORK_ERROR


class KeySetFetchError(NetworkError):
    """Raised when the JWKS document cannot be fetched or is not a key set."""


class OversizedResponseError(NetworkError):
    """Raised when an HTTP response is too large."""
