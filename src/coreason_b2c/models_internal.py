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
Internal data models for the coreason-b2c package.
These are not exposed in the public API.
"""

from typing import Any

from authlib.jose import JsonWebKey
from pydantic import BaseModel, ConfigDict, Field


class B2CEndpoints(BaseModel):
    """
    Azure AD B2C endpoints for one tenant and user flow.
    """

    model_config = ConfigDict(frozen=True)

    tenant: str = Field(..., description="The tenant short name (e.g. 'contoso').")
    user_flow: str = Field(..., description="The user flow / policy name (e.g. 'B2C_1_signin').")

    @property
    def authority(self) -> str:
        return f"https://{self.tenant}.b2clogin.com/{self.tenant}.onmicrosoft.com/{self.user_flow}"

    @property
    def authorize_url(self) -> str:
        return f"{self.authority}/oauth2/v2.0/authorize"

    @property
    def logout_url(self) -> str:
        return f"{self.authority}/oauth2/v2.0/logout"

    @property
    def token_url(self) -> str:
        return f"{self.authority}/oauth2/v2.0/token"

    @property
    def jwks_url(self) -> str:
        return f"{self.authority}/discovery/v2.0/keys/"


class JwkKey(BaseModel):
    """
    A single RSA signing key from the provider's JWKS document.
    """

    model_config = ConfigDict(frozen=True, extra="ignore")

    kid: str
    kty: str
    use: str | None = None
    n: str = Field(..., description="Base64url big-endian modulus.")
    e: str = Field(..., description="Base64url public exponent.")

    def to_public_key(self) -> Any:
        """
        Rebuilds the RSA public key from (n, e).

        Raises:
            ValueError: If the key is not an RSA key or its parameters are invalid.
        """
        if self.kty != "RSA":
            raise ValueError(f"Unsupported key type '{self.kty}' for kid {self.kid}")
        return JsonWebKey.import_key({"kty": "RSA", "kid": self.kid, "n": self.n, "e": self.e})


class JsonWebKeySet(BaseModel):
    """
    JWKS document. Keys that are not usable for signatures are dropped by `find`.
    """

    model_config = ConfigDict(frozen=True, extra="ignore")

    keys: list[JwkKey] = Field(default_factory=list)

    def find(self, kid: str) -> JwkKey | None:
        for key in self.keys:
            if key.kid == kid and key.use in (None, "sig"):
                return key
        return None
