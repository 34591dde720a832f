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
TokenExchangeClient component for redeeming the authorization code (RFC 6749 §4.1.3).
"""

import json

import httpx
from pydantic import SecretStr, ValidationError

from coreason_b2c.exceptions import ExchangeFailedError
from coreason_b2c.models import TokenSet
from coreason_b2c.transport import fetch_bounded
from coreason_b2c.utils.logger import logger


class TokenExchangeClient:
    """
    Exchanges an authorization code for the B2C token set.

    Attributes:
        token_url (str): The tenant's token endpoint.
        client_id (str): The application (client) id.
        scope (str): Scope sent with the exchange (e.g. "{client_id} offline_access").
        redirect_uri (str): redirect_uri sent with the exchange.
    """

    def __init__(
        self,
        token_url: str,
        client_id: str,
        client_secret: SecretStr,
        scope: str,
        redirect_uri: str,
        client: httpx.AsyncClient,
    ) -> None:
        self.token_url = token_url
        self.client_id = client_id
        self.client_secret = client_secret
        self.scope = scope
        self.redirect_uri = redirect_uri
        self.client = client

    async def exchange_code(self, code: str | None) -> TokenSet:
        """
        Redeems the authorization code. No retries.

        Args:
            code: The `code` from the callback.

        Returns:
            TokenSet: The parsed token response.

        Raises:
            ExchangeFailedError: If the code is missing, the endpoint answers with an error
                status, or the body is not a token response.
            NetworkError: On timeouts and connection failures.
        """
        if not code:
            raise ExchangeFailedError("The authorization code is missing from the callback.")

        data = {
            "grant_type": "authorization_code",
            "client_id": self.client_id,
            "scope": self.scope,
            "code": code,
            "redirect_uri": self.redirect_uri,
            "client_secret": self.client_secret.get_secret_value(),
        }

        logger.debug(f"Exchanging authorization code at {self.token_url} for client {self.client_id}")
        response, content = await fetch_bounded(self.client, self.token_url, method="POST", data=data)

        try:
            body = json.loads(content)
        except ValueError:
            body = None

        if not response.is_success:
            detail = f"HTTP {response.status_code}"
            if isinstance(body, dict) and body.get("error"):
                detail = f"{body['error']}: {body.get('error_description') or 'no description'}"
            logger.error(f"Token exchange failed: {detail}")
            raise ExchangeFailedError(f"Token exchange failed ({detail})")

        if not isinstance(body, dict):
            raise ExchangeFailedError("Token endpoint returned a non-JSON body.")

        try:
            token_set = TokenSet.model_validate(body)
        except ValidationError as e:
            raise ExchangeFailedError(f"Invalid token response: {e.error_count()} invalid field(s)") from e

        logger.info("Authorization code exchanged successfully.")
        return token_set
