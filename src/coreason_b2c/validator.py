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
TokenVerifier component for validating id token signatures and claims.
"""

import hashlib
import hmac
from typing import Any, cast

from authlib.common.encoding import json_loads, to_bytes, urlsafe_b64decode
from authlib.jose import JsonWebToken
from authlib.jose.errors import (
    BadSignatureError,
    DecodeError,
    ExpiredTokenError,
    InvalidClaimError,
    JoseError,
    MissingClaimError,
    UnsupportedAlgorithmError,
)
from authlib.jose.errors import InvalidTokenError as JoseInvalidTokenError
from opentelemetry import trace
from opentelemetry.trace import Status, StatusCode
from pydantic import SecretStr, ValidationError

from coreason_b2c.exceptions import (
    CoreasonB2CError,
    InvalidClaimsError,
    MalformedTokenError,
    SignatureVerificationError,
    TokenExpiredError,
)
from coreason_b2c.models import IdTokenClaims
from coreason_b2c.oidc_provider import KeySetClient
from coreason_b2c.utils.logger import logger

tracer = trace.get_tracer(__name__)


def peek_token(token: str) -> tuple[dict[str, Any], dict[str, Any]]:
    """
    Decodes the header and payload of a compact JWS without verifying anything.
    Nothing returned here may be trusted before the signature is checked.

    Raises:
        MalformedTokenError: If the token is not three base64url JSON segments.
    """
    parts = token.split(".")
    if len(parts) != 3:
        raise MalformedTokenError("The id token is not a compact JWS.")
    try:
        header = json_loads(urlsafe_b64decode(to_bytes(parts[0])))
        payload = json_loads(urlsafe_b64decode(to_bytes(parts[1])))
    except ValueError as e:
        raise MalformedTokenError(f"The id token cannot be decoded: {e}") from e
    if not isinstance(header, dict) or not isinstance(payload, dict):
        raise MalformedTokenError("The id token header and payload must be JSON objects.")
    return header, payload


class TokenVerifier:
    """
    Verifies B2C id tokens against the tenant's JWKS.

    When `expected_issuer` / `expected_audience` are not configured, the token's own
    `iss` / `aud` are accepted. The signature then only proves the token was issued
    by a key listed in the tenant's key set, not that it was issued for this
    application. Pin both in production.

    Attributes:
        key_set_client (KeySetClient): Resolves signing keys by kid.
        expected_issuer (str | None): Pinned issuer.
        expected_audience (str | None): Pinned audience (normally the client id).
        leeway (int): Acceptable clock skew in seconds.
    """

    def __init__(
        self,
        key_set_client: KeySetClient,
        pii_salt: SecretStr,
        expected_issuer: str | None = None,
        expected_audience: str | None = None,
        leeway: int = 0,
    ) -> None:
        """
        Initialize the TokenVerifier.

        Args:
            key_set_client: The KeySetClient to resolve keys from.
            pii_salt: Salt for anonymizing PII in logs. REQUIRED.
            expected_issuer: The pinned issuer (iss) claim, if any.
            expected_audience: The pinned audience (aud) claim, if any.
            leeway: Acceptable clock skew in seconds. Defaults to 0.
        """
        self.key_set_client = key_set_client
        self.pii_salt = pii_salt
        self.expected_issuer = expected_issuer
        self.expected_audience = expected_audience
        self.leeway = leeway
        # Only RS256 is accepted; "none" and HMAC algorithms are rejected
        self.jwt = JsonWebToken(["RS256"])

    def _anonymize(self, value: str) -> str:
        return hmac.new(
            self.pii_salt.get_secret_value().encode("utf-8"),
            value.encode("utf-8"),
            hashlib.sha256,
        ).hexdigest()

    def _claims_options(self) -> dict[str, Any]:
        options: dict[str, Any] = {
            "iss": {"essential": True},
            "sub": {"essential": True},
            "aud": {"essential": True},
            "exp": {"essential": True},
            "nbf": {"essential": False},
            "nonce": {"essential": True},
        }
        if self.expected_issuer:
            options["iss"]["value"] = self.expected_issuer
        if self.expected_audience:
            options["aud"]["value"] = self.expected_audience
        return options

    async def verify(self, id_token: str, expected_nonce: str | None) -> IdTokenClaims:
        """
        Verifies the id token signature and claims in a single pass.

        Emits an OpenTelemetry span `verify_id_token`.

        Args:
            id_token: The raw id token from the callback.
            expected_nonce: The nonce stored with the login challenge.

        Returns:
            IdTokenClaims: The verified claims.

        Raises:
            MalformedTokenError: If the token cannot be parsed or has no kid.
            UnknownKeyError: If the kid is not in the key set.
            SignatureVerificationError: If the signature is invalid.
            InvalidClaimsError: If a claim is missing or wrong, including the nonce.
            TokenExpiredError: If the token has expired.
            NetworkError / KeySetFetchError: If the key set cannot be fetched.
        """
        with tracer.start_as_current_span("verify_id_token") as span:
            try:
                token = id_token.strip()
                header, _ = peek_token(token)
                kid = header.get("kid")
                if not isinstance(kid, str) or not kid:
                    raise MalformedTokenError("The id token header has no 'kid'.")
                span.set_attribute("jwt.kid", kid)

                jwk = await self.key_set_client.get_key(kid)
                try:
                    public_key = jwk.to_public_key()
                except ValueError as e:
                    raise SignatureVerificationError(f"Signing key {kid} is unusable: {e}") from e

                # Cast self.jwt to Any to bypass MyPy overload confusion or missing stubs
                jwt_any = cast("Any", self.jwt)
                claims = jwt_any.decode(token, public_key, claims_options=self._claims_options())
                claims.validate(leeway=self.leeway)

                nonce = claims.get("nonce")
                if expected_nonce is None or not hmac.compare_digest(
                    str(nonce).encode("utf-8"), str(expected_nonce).encode("utf-8")
                ):
                    raise InvalidClaimsError("Invalid claim: nonce does not match the login request.")

                payload = dict(claims)
                payload["nonce"] = str(nonce)
                payload["kid"] = kid
                result = IdTokenClaims.model_validate(payload)

                user_hash = self._anonymize(result.sub)
                logger.info(f"Id token verified for user {user_hash}")
                span.set_attribute("enduser.id", user_hash)
                span.set_status(Status(StatusCode.OK))
                return result

            except CoreasonB2CError as e:
                logger.warning(f"Id token rejected: {type(e).__name__}: {e}")
                self._record(span, e)
                raise
            except ExpiredTokenError as e:
                self._record(span, e)
                raise TokenExpiredError(f"Token has expired: {e}") from e
            except (InvalidClaimError, MissingClaimError, JoseInvalidTokenError) as e:
                logger.warning("Validation failed: Invalid claim", exc_info=True)
                self._record(span, e)
                raise InvalidClaimsError(f"Invalid claim: {e}") from e
            except (BadSignatureError, UnsupportedAlgorithmError) as e:
                logger.error("Validation failed: Bad signature", exc_info=True)
                self._record(span, e)
                raise SignatureVerificationError(f"Invalid signature: {e}") from e
            except (DecodeError, JoseError) as e:
                self._record(span, e)
                raise MalformedTokenError(f"Token validation failed: {e}") from e
            except ValidationError as e:
                self._record(span, e)
                raise InvalidClaimsError(f"Invalid claim: {e}") from e

    @staticmethod
    def _record(span: Any, error: Exception) -> None:
        span.record_exception(error)
        span.set_status(Status(StatusCode.ERROR, str(error)))
