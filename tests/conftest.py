# Copyright (c) 2025 CoReason, Inc.
#
# This software is proprietary and dual-licensed.
# Licensed under the Prosperity Public License 3.0 (the "License").
# A copy of the license is available at https://prosperitylicense.com/versions/3.0.0
# For details, see the LICENSE file.
# Commercial use beyond a 30-day trial requires a separate license.
#
# Source Code: https://github.com/CoReason-AI/coreason_identity

import os
from collections.abc import AsyncGenerator
from typing import Any

# Keep the test run from writing logs/app.log; must happen before the package is imported
os.environ.setdefault("COREASON_B2C_LOG_FILE", "")

import httpx  # noqa: E402
import pytest  # noqa: E402
from authlib.jose import JsonWebKey  # noqa: E402
from fakes import CLIENT_ID, TENANT, USER_FLOW, FakeB2C  # noqa: E402

from coreason_b2c.config import CoreasonB2CConfig  # noqa: E402


@pytest.fixture(scope="session")
def rsa_key() -> Any:
    return JsonWebKey.generate_key("RSA", 2048, is_private=True)


@pytest.fixture(scope="session")
def other_rsa_key() -> Any:
    return JsonWebKey.generate_key("RSA", 2048, is_private=True)


@pytest.fixture
def jwks(rsa_key: Any) -> dict[str, Any]:
    public = rsa_key.as_dict(is_private=False)
    public["use"] = "sig"
    return {"keys": [public]}


@pytest.fixture
def fake_b2c(jwks: dict[str, Any]) -> FakeB2C:
    return FakeB2C(jwks)


@pytest.fixture
async def http_client(fake_b2c: FakeB2C) -> AsyncGenerator[httpx.AsyncClient, None]:
    async with fake_b2c.client() as client:
        yield client


@pytest.fixture
def config() -> CoreasonB2CConfig:
    return CoreasonB2CConfig(
        tenant=TENANT,
        user_flow=USER_FLOW,
        client_id=CLIENT_ID,
        client_secret="s3cret",
        scope="openid",
        redirect_uri="http://localhost:8080/success",
        logout_redirect_uri="http://localhost:8080/sign_out",
        http_timeout=5.0,
    )
