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
Data models for the coreason-b2c package.
"""

from collections.abc import Mapping
from enum import StrEnum
from typing import Any, Literal
from urllib.parse import quote

from pydantic import BaseModel, ConfigDict, Field, SecretStr

from coreason_b2c.models_internal import B2CEndpoints


class AuthErrorReason(StrEnum):
    INVALID_STATE = "invalid_state"
    PROVIDER_ERROR = "provider_error"
    MISSING_ID_TOKEN = "missing_id_token"
    MALFORMED_TOKEN = "malformed_token"
    UNKNOWN_KEY = "unknown_key"
    BAD_SIGNATURE = "bad_signature"
    INVALID_CLAIMS = "invalid_claims"
    EXCHANGE_FAILED = "exchange_failed"
    PROFILE_DECODE_ERROR = "profile_decode_error"
    NETWORK_ERROR = "network_error"
    INTERNAL_ERROR = "internal_error"


class AuthChallenge(BaseModel):
    """
    The anti-CSRF / anti-replay pair bound to one login round-trip.

    Attributes:
        state (str): Canonical UUID string echoed back by the provider.
        nonce (str | None): Random string that must reappear in the id token's `nonce` claim.
            Sign-out challenges carry no nonce.
    """

    model_config = ConfigDict(frozen=True)

    state: str
    nonce: str | None = None

    def __repr__(self) -> str:
        return "AuthChallenge(state='<REDACTED>', nonce='<REDACTED>')"

    def __str__(self) -> str:
        return self.__repr__()


class AuthorizationRequest(BaseModel):
    """
    Everything needed to build the B2C authorize URL. Used once, never persisted.
    """

    model_config = ConfigDict(frozen=True)

    tenant: str
    user_flow: str
    client_id: str
    scope: str
    redirect_uri: str
    challenge: AuthChallenge

    def build_url(self) -> str:
        endpoint = B2CEndpoints(tenant=self.tenant, user_flow=self.user_flow).authorize_url
        # response_type is sent pre-encoded; the provider expects a literal '+'
        query = "&".join(
            [
                f"client_id={quote(self.client_id, safe='')}",
                "response_type=code+id_token",
                f"redirect_uri={quote(self.redirect_uri, safe=':/')}",
                "response_mode=query",
                f"scope={quote(self.scope, safe='')}",
                f"state={quote(self.challenge.state, safe='')}",
                f"nonce={quote(self.challenge.nonce or '', safe='')}",
            ]
        )
        return f"{endpoint}?{query}"


class CallbackParams(BaseModel):
    """
    Untrusted query parameters from the provider redirect.
    """

    model_config = ConfigDict(frozen=True, extra="ignore")

    state: str | None = None
    id_token: str | None = None
    code: str | None = None
    error: str | None = None
    error_description: str | None = None

    @classmethod
    def from_query(cls, query: Mapping[str, Any]) -> "CallbackParams":
        """
        Builds the params from a query mapping. Multi-valued entries (e.g. from
        `urllib.parse.parse_qs`) keep their first value.
        """
        values: dict[str, str | None] = {}
        for name in cls.model_fields:
            raw = query.get(name)
            if isinstance(raw, (list, tuple)):
                raw = raw[0] if raw else None
            values[name] = None if raw is None else str(raw)
        return cls(**values)


class IdTokenClaims(BaseModel):
    """
    Claims of a verified id token. Unregistered claims are kept as extras.
    """

    model_config = ConfigDict(frozen=True, extra="allow")

    iss: str
    sub: str
    aud: str | list[str]
    nonce: str
    exp: int
    kid: str
    nbf: int | None = None
    iat: int | None = None
    name: str | None = None


class TokenSet(BaseModel):
    """
    Token endpoint response. B2C sends lifetimes either as numbers or numeric strings,
    both are accepted and stored as integers.
    """

    model_config = ConfigDict(frozen=True, extra="ignore")

    access_token: SecretStr
    token_type: str = "Bearer"
    id_token: SecretStr | None = None
    refresh_token: SecretStr | None = None
    scope: str | None = None
    expires_in: int
    not_before: int
    expires_on: int | None = None
    id_token_expires_in: int | None = None
    profile_info: str | None = None
    refresh_token_expires_in: int | None = None


class UserProfile(BaseModel):
    """
    Display profile decoded from `profile_info`.
    """

    model_config = ConfigDict(frozen=True, extra="allow")

    name: str


class ValidityWindow(BaseModel):
    """
    Token lifetimes rendered as local `YYYY-MM-DD HH:MM:SS` strings.
    """

    model_config = ConfigDict(frozen=True)

    valid_from: str
    valid_until: str
    refresh_valid_until: str | None = None


class LoginSuccess(BaseModel):
    """
    Outcome of a fully verified login.

    The tokens are protected from logging; call `get_secret_value()` to hand them on.
    """

    model_config = ConfigDict(frozen=True)

    kind: Literal["success"] = "success"
    user_name: str
    access_token: SecretStr
    refresh_token: SecretStr | None = None
    valid_from: str
    valid_until: str
    refresh_valid_until: str | None = None
    claims: IdTokenClaims = Field(..., repr=False)


class LogoutSuccess(BaseModel):
    model_config = ConfigDict(frozen=True)

    kind: Literal["signed_out"] = "signed_out"


class AuthError(BaseModel):
    """
    Typed failure of a login or logout attempt. `message` is safe to show to the user.
    """

    model_config = ConfigDict(frozen=True)

    kind: Literal["error"] = "error"
    reason: AuthErrorReason
    message: str


LoginResult = LoginSuccess | AuthError
LogoutResult = LogoutSuccess | AuthError
