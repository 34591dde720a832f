# Copyright (c) 2025 CoReason, Inc.
#
# This software is proprietary and dual-licensed.
# Licensed under the Prosperity Public License 3.0 (the "License").
# A copy of the license is available at https://prosperitylicense.com/versions/3.0.0
# For details, see the LICENSE file.
# Commercial use beyond a 30-day trial requires a separate license.
#
# Source Code: https://github.com/CoReason-AI/coreason_identity

import base64
import hashlib
import hmac
import json
import time
from typing import Any
from unittest.mock import patch

import httpx
import pytest
from fakes import CLIENT_ID, ISSUER, JWKS_URL, NONCE, FakeB2C, default_claims, kid_of, sign_token
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import SimpleSpanProcessor
from opentelemetry.sdk.trace.export.in_memory_span_exporter import InMemorySpanExporter
from opentelemetry.trace import StatusCode, Tracer
from pydantic import SecretStr

from coreason_b2c.exceptions import (
    InvalidClaimsError,
    MalformedTokenError,
    NetworkError,
    SignatureVerificationError,
    TokenExpiredError,
    UnknownKeyError,
)
from coreason_b2c.models import AuthErrorReason
from coreason_b2c.oidc_provider import KeySetClient
from coreason_b2c.utils.logger import logger
from coreason_b2c.validator import TokenVerifier, peek_token


def b64url(data: dict[str, Any]) -> str:
    return base64.urlsafe_b64encode(json.dumps(data).encode("utf-8")).rstrip(b"=").decode("ascii")


@pytest.fixture
def telemetry_setup() -> tuple[InMemorySpanExporter, Tracer]:
    """Sets up an OpenTelemetry tracer with an in-memory exporter."""
    exporter = InMemorySpanExporter()
    provider = TracerProvider()
    provider.add_span_processor(SimpleSpanProcessor(exporter))
    return exporter, provider.get_tracer("test_tracer")


@pytest.fixture
def key_set_client(http_client: httpx.AsyncClient) -> KeySetClient:
    return KeySetClient(JWKS_URL, http_client)


@pytest.fixture
def verifier(key_set_client: KeySetClient) -> TokenVerifier:
    return TokenVerifier(key_set_client, pii_salt=SecretStr("test-salt"))


@pytest.mark.asyncio
async def test_verify_success(verifier: TokenVerifier, rsa_key: Any) -> None:
    token = sign_token(rsa_key, default_claims())

    claims = await verifier.verify(token, NONCE)

    assert claims.sub == "user-0001"
    assert claims.iss == ISSUER
    assert claims.aud == CLIENT_ID
    assert claims.nonce == NONCE
    assert claims.kid == kid_of(rsa_key)
    assert claims.name == "Taro Yamada"
    assert claims.model_extra is not None
    assert claims.model_extra["tfp"] == "B2C_1_signin"


@pytest.mark.asyncio
async def test_surrounding_whitespace_is_ignored(verifier: TokenVerifier, rsa_key: Any) -> None:
    token = sign_token(rsa_key, default_claims())
    claims = await verifier.verify(f"  {token}\n", NONCE)
    assert claims.sub == "user-0001"


@pytest.mark.asyncio
async def test_unknown_key(verifier: TokenVerifier, other_rsa_key: Any, fake_b2c: FakeB2C) -> None:
    token = sign_token(other_rsa_key, default_claims())

    with pytest.raises(UnknownKeyError) as exc_info:
        await verifier.verify(token, NONCE)

    assert exc_info.value.reason == AuthErrorReason.UNKNOWN_KEY


@pytest.mark.asyncio
async def test_signature_from_wrong_key(verifier: TokenVerifier, rsa_key: Any, other_rsa_key: Any) -> None:
    # Signed by another key but claiming the tenant's kid
    token = sign_token(other_rsa_key, default_claims(), headers={"alg": "RS256", "kid": kid_of(rsa_key)})

    with pytest.raises(SignatureVerificationError, match="Invalid signature") as exc_info:
        await verifier.verify(token, NONCE)

    assert exc_info.value.reason == AuthErrorReason.BAD_SIGNATURE


@pytest.mark.asyncio
async def test_tampered_payload(verifier: TokenVerifier, rsa_key: Any) -> None:
    header, _, signature = sign_token(rsa_key, default_claims()).split(".")
    forged = f"{header}.{b64url(default_claims(sub='admin'))}.{signature}"

    with pytest.raises(SignatureVerificationError):
        await verifier.verify(forged, NONCE)


@pytest.mark.asyncio
async def test_hmac_algorithm_rejected(verifier: TokenVerifier, rsa_key: Any) -> None:
    token = sign_token(b"k" * 64, default_claims(), headers={"alg": "HS256", "kid": kid_of(rsa_key)})

    with pytest.raises(SignatureVerificationError):
        await verifier.verify(token, NONCE)


@pytest.mark.asyncio
async def test_none_algorithm_rejected(verifier: TokenVerifier, rsa_key: Any) -> None:
    token = f"{b64url({'alg': 'none', 'kid': kid_of(rsa_key)})}.{b64url(default_claims())}."

    with pytest.raises(SignatureVerificationError):
        await verifier.verify(token, NONCE)


@pytest.mark.asyncio
async def test_nonce_mismatch(verifier: TokenVerifier, rsa_key: Any) -> None:
    token = sign_token(rsa_key, default_claims(nonce="99999999999999999999"))

    with pytest.raises(InvalidClaimsError, match="nonce") as exc_info:
        await verifier.verify(token, NONCE)

    assert exc_info.value.reason == AuthErrorReason.INVALID_CLAIMS


@pytest.mark.asyncio
async def test_numeric_nonce_claim(verifier: TokenVerifier, rsa_key: Any) -> None:
    token = sign_token(rsa_key, default_claims(nonce=int(NONCE)))

    claims = await verifier.verify(token, NONCE)

    assert claims.nonce == NONCE


@pytest.mark.asyncio
async def test_numeric_nonce_claim_mismatch(verifier: TokenVerifier, rsa_key: Any) -> None:
    token = sign_token(rsa_key, default_claims(nonce=int(NONCE) + 1))

    with pytest.raises(InvalidClaimsError, match="nonce"):
        await verifier.verify(token, NONCE)


@pytest.mark.asyncio
async def test_no_expected_nonce(verifier: TokenVerifier, rsa_key: Any) -> None:
    token = sign_token(rsa_key, default_claims())

    with pytest.raises(InvalidClaimsError, match="nonce"):
        await verifier.verify(token, None)


@pytest.mark.asyncio
async def test_missing_nonce_claim(verifier: TokenVerifier, rsa_key: Any) -> None:
    claims = default_claims()
    del claims["nonce"]
    token = sign_token(rsa_key, claims)

    with pytest.raises(InvalidClaimsError):
        await verifier.verify(token, NONCE)


@pytest.mark.asyncio
@pytest.mark.parametrize("claim", ["iss", "sub", "aud", "exp"])
async def test_missing_required_claim(verifier: TokenVerifier, rsa_key: Any, claim: str) -> None:
    claims = default_claims()
    del claims[claim]
    token = sign_token(rsa_key, claims)

    with pytest.raises(InvalidClaimsError):
        await verifier.verify(token, NONCE)


@pytest.mark.asyncio
async def test_expired_token(verifier: TokenVerifier, rsa_key: Any) -> None:
    now = int(time.time())
    token = sign_token(rsa_key, default_claims(exp=now - 60, nbf=now - 3600, iat=now - 3600))

    with pytest.raises(TokenExpiredError) as exc_info:
        await verifier.verify(token, NONCE)

    assert exc_info.value.reason == AuthErrorReason.INVALID_CLAIMS


@pytest.mark.asyncio
async def test_leeway_accepts_small_skew(key_set_client: KeySetClient, rsa_key: Any) -> None:
    verifier = TokenVerifier(key_set_client, pii_salt=SecretStr("test-salt"), leeway=120)
    now = int(time.time())
    token = sign_token(rsa_key, default_claims(exp=now - 30, nbf=now - 3600, iat=now - 3600))

    claims = await verifier.verify(token, NONCE)
    assert claims.exp == now - 30


@pytest.mark.asyncio
async def test_not_yet_valid(verifier: TokenVerifier, rsa_key: Any) -> None:
    now = int(time.time())
    token = sign_token(rsa_key, default_claims(nbf=now + 600))

    with pytest.raises(InvalidClaimsError):
        await verifier.verify(token, NONCE)


@pytest.mark.asyncio
async def test_unpinned_accepts_any_issuer_and_audience(verifier: TokenVerifier, rsa_key: Any) -> None:
    token = sign_token(rsa_key, default_claims(iss="https://elsewhere.example/", aud="another-app"))

    claims = await verifier.verify(token, NONCE)
    assert claims.iss == "https://elsewhere.example/"


@pytest.mark.asyncio
async def test_pinned_issuer(key_set_client: KeySetClient, rsa_key: Any) -> None:
    verifier = TokenVerifier(key_set_client, pii_salt=SecretStr("test-salt"), expected_issuer=ISSUER)

    assert (await verifier.verify(sign_token(rsa_key, default_claims()), NONCE)).iss == ISSUER

    token = sign_token(rsa_key, default_claims(iss="https://elsewhere.example/"))
    with pytest.raises(InvalidClaimsError, match="iss"):
        await verifier.verify(token, NONCE)


@pytest.mark.asyncio
async def test_pinned_audience(key_set_client: KeySetClient, rsa_key: Any) -> None:
    verifier = TokenVerifier(key_set_client, pii_salt=SecretStr("test-salt"), expected_audience=CLIENT_ID)

    claims = await verifier.verify(sign_token(rsa_key, default_claims(aud=[CLIENT_ID, "other"])), NONCE)
    assert claims.aud == [CLIENT_ID, "other"]

    token = sign_token(rsa_key, default_claims(aud="another-app"))
    with pytest.raises(InvalidClaimsError, match="aud"):
        await verifier.verify(token, NONCE)


@pytest.mark.asyncio
@pytest.mark.parametrize("token", ["", "not-a-jwt", "a.b", "a.b.c.d", "bm90LWpzb24.e30.sig", "W10.e30.sig"])
async def test_malformed_token(verifier: TokenVerifier, fake_b2c: FakeB2C, token: str) -> None:
    with pytest.raises(MalformedTokenError) as exc_info:
        await verifier.verify(token, NONCE)

    assert exc_info.value.reason == AuthErrorReason.MALFORMED_TOKEN
    # Rejected before any key lookup
    assert fake_b2c.jwks_calls == 0


@pytest.mark.asyncio
async def test_missing_kid(verifier: TokenVerifier, rsa_key: Any) -> None:
    token = sign_token(rsa_key, default_claims(), headers={"alg": "RS256"})

    with pytest.raises(MalformedTokenError, match="kid"):
        await verifier.verify(token, NONCE)


@pytest.mark.asyncio
async def test_key_set_unreachable(verifier: TokenVerifier, fake_b2c: FakeB2C, rsa_key: Any) -> None:
    fake_b2c.jwks_error = httpx.ReadTimeout("timed out")

    with pytest.raises(NetworkError):
        await verifier.verify(sign_token(rsa_key, default_claims()), NONCE)


def test_peek_token(rsa_key: Any) -> None:
    header, payload = peek_token(sign_token(rsa_key, default_claims()))
    assert header["kid"] == kid_of(rsa_key)
    assert payload["nonce"] == NONCE


@pytest.mark.asyncio
async def test_success_telemetry(
    telemetry_setup: tuple[InMemorySpanExporter, Tracer], verifier: TokenVerifier, rsa_key: Any
) -> None:
    exporter, tracer = telemetry_setup

    with patch("coreason_b2c.validator.tracer", tracer):
        await verifier.verify(sign_token(rsa_key, default_claims()), NONCE)

    spans = exporter.get_finished_spans()
    assert len(spans) == 1
    span = spans[0]
    assert span.name == "verify_id_token"
    assert span.status.status_code == StatusCode.OK
    assert span.attributes is not None
    assert span.attributes["jwt.kid"] == kid_of(rsa_key)
    expected_hash = hmac.new(b"test-salt", b"user-0001", hashlib.sha256).hexdigest()
    assert span.attributes["enduser.id"] == expected_hash


@pytest.mark.asyncio
async def test_failure_telemetry(
    telemetry_setup: tuple[InMemorySpanExporter, Tracer], verifier: TokenVerifier, rsa_key: Any
) -> None:
    exporter, tracer = telemetry_setup

    with patch("coreason_b2c.validator.tracer", tracer):
        with pytest.raises(InvalidClaimsError):
            await verifier.verify(sign_token(rsa_key, default_claims(nonce="0")), NONCE)

    span = exporter.get_finished_spans()[0]
    assert span.status.status_code == StatusCode.ERROR
    assert span.events[0].name == "exception"


@pytest.mark.asyncio
async def test_user_id_is_hashed_in_logs(verifier: TokenVerifier, rsa_key: Any) -> None:
    logs: list[Any] = []
    handler_id = logger.add(logs.append, level="INFO", format="{message}")
    try:
        await verifier.verify(sign_token(rsa_key, default_claims(sub="sensitive-user-id")), NONCE)
    finally:
        logger.remove(handler_id)

    expected_hash = hmac.new(b"test-salt", b"sensitive-user-id", hashlib.sha256).hexdigest()
    assert any(f"Id token verified for user {expected_hash}" in m.record["message"] for m in logs)
    assert not any("sensitive-user-id" in m.record["message"] for m in logs)
