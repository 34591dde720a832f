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
Configuration for the coreason-b2c package.
"""

import re
from urllib.parse import urlparse

from pydantic import Field, SecretStr, ValidationInfo, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from coreason_b2c.models_internal import B2CEndpoints

_TENANT_RE = re.compile(r"^[a-z0-9](?:[a-z0-9-]{0,61}[a-z0-9])?$")
_USER_FLOW_RE = re.compile(r"^[A-Za-z0-9_-]+$")
_LOCAL_HOSTS = {"localhost", "127.0.0.1", "::1"}


class CoreasonB2CConfig(BaseSettings):
    """
    Configuration settings for coreason-b2c.

    Attributes:
        tenant (str): The B2C tenant short name (e.g. contoso).
        user_flow (str): The user flow (policy) name (e.g. B2C_1_signin).
        client_id (str): The application (client) id registered in the tenant.
        client_secret (SecretStr): The client secret used for the code exchange.
        scope (str): Scopes requested on the authorize call.
        redirect_uri (str): Where B2C sends the login callback.
        logout_redirect_uri (str): Where B2C sends the sign-out callback.
        exchange_redirect_uri (str): redirect_uri sent to the token endpoint.
        exchange_scope (str | None): Scope sent to the token endpoint. Defaults to
            "{client_id} offline_access".
        expected_issuer (str | None): Pinned issuer. When unset, the token's own issuer is accepted.
        expected_audience (str | None): Pinned audience. When unset, the token's own audience is accepted.
        pii_salt (SecretStr): Salt for anonymizing PII in logs/traces.
    """

    model_config = SettingsConfigDict(
        env_prefix="COREASON_B2C_",
        case_sensitive=False,
    )

    tenant: str
    user_flow: str
    client_id: str
    client_secret: SecretStr
    scope: str = "openid"
    # Declared before the redirect URIs so their validators can read it
    unsafe_local_dev: bool = False
    redirect_uri: str
    logout_redirect_uri: str
    exchange_redirect_uri: str = "urn:ietf:wg:oauth:2.0:oob"
    exchange_scope: str | None = None
    http_timeout: float = Field(..., gt=0, description="Timeout in seconds for all IdP network operations.")
    jwks_cache_ttl: int = Field(default=300, ge=0, description="Seconds a fetched key set stays cached.")
    expected_issuer: str | None = None
    expected_audience: str | None = None
    clock_skew_leeway: int = Field(default=0, ge=0)
    pii_salt: SecretStr = SecretStr("coreason-unsafe-default-salt")

    @field_validator("tenant")
    @classmethod
    def normalize_tenant(cls, v: str) -> str:
        """
        Ensures tenant is the bare short name (e.g. contoso).
        Strips scheme and the onmicrosoft.com / b2clogin.com suffixes if present.

        Args:
            v: The tenant string to normalize.

        Returns:
            The normalized tenant name.

        Raises:
            ValueError: If the result is not a valid DNS label.
        """
        v = v.strip().lower()
        if "://" in v:
            v = urlparse(v).netloc
        for suffix in (".onmicrosoft.com", ".b2clogin.com"):
            v = v.removesuffix(suffix)
        if not _TENANT_RE.match(v):
            raise ValueError(f"Invalid B2C tenant name '{v}'")
        return v

    @field_validator("user_flow")
    @classmethod
    def validate_user_flow(cls, v: str) -> str:
        v = v.strip()
        if not _USER_FLOW_RE.match(v):
            raise ValueError(f"Invalid user flow name '{v}'")
        return v

    @field_validator("client_id")
    @classmethod
    def validate_client_id(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("client_id must not be empty")
        return v

    @field_validator("redirect_uri", "logout_redirect_uri")
    @classmethod
    def validate_https(cls, v: str, info: ValidationInfo) -> str:
        """
        Ensures callback URIs use HTTPS. Loopback hosts are always allowed, other
        plain-HTTP hosts only when strictly opted in for local dev.
        """
        parsed = urlparse(v)
        if parsed.scheme not in ("http", "https") or not parsed.netloc:
            raise ValueError(f"{info.field_name} must be an absolute http(s) URL")
        if parsed.scheme == "http" and parsed.hostname not in _LOCAL_HOSTS and not info.data.get("unsafe_local_dev"):
            raise ValueError("HTTPS is required for production. Set 'unsafe_local_dev=True' only for local testing.")
        return v

    @property
    def endpoints(self) -> B2CEndpoints:
        return B2CEndpoints(tenant=self.tenant, user_flow=self.user_flow)

    @property
    def token_scope(self) -> str:
        return self.exchange_scope or f"{self.client_id} offline_access"
