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
AuthorizationRequestBuilder component for building the B2C sign-in and sign-out redirects.
"""

import secrets
import uuid
from urllib.parse import quote

from coreason_b2c.models import AuthChallenge, AuthorizationRequest
from coreason_b2c.models_internal import B2CEndpoints

NONCE_DIGITS = 20


def generate_state() -> str:
    """Returns a canonical UUID4 string (122 random bits from the OS CSPRNG)."""
    return str(uuid.uuid4())


def generate_nonce() -> str:
    """
    Returns a random decimal string. It is stored and compared verbatim, so
    leading zeros are kept.
    """
    return f"{secrets.randbelow(10**NONCE_DIGITS):0{NONCE_DIGITS}d}"


class AuthorizationRequestBuilder:
    """
    Builds the provider's authorize and logout URLs together with a fresh challenge.

    The builder does no I/O; the caller must persist the returned challenge
    in the session before issuing the redirect.

    Attributes:
        tenant (str): The B2C tenant short name.
        user_flow (str): The user flow name.
        client_id (str): The application (client) id.
        scope (str): Requested scopes (space separated).
        redirect_uri (str): Login callback URI.
        logout_redirect_uri (str | None): Sign-out callback URI.
    """

    def __init__(
        self,
        tenant: str,
        user_flow: str,
        client_id: str,
        scope: str,
        redirect_uri: str,
        logout_redirect_uri: str | None = None,
    ) -> None:
        self.tenant = tenant
        self.user_flow = user_flow
        self.client_id = client_id
        self.scope = scope
        self.redirect_uri = redirect_uri
        self.logout_redirect_uri = logout_redirect_uri
        self.endpoints = B2CEndpoints(tenant=tenant, user_flow=user_flow)

    @staticmethod
    def new_challenge() -> AuthChallenge:
        return AuthChallenge(state=generate_state(), nonce=generate_nonce())

    def build_login_request(self, challenge: AuthChallenge | None = None) -> AuthorizationRequest:
        return AuthorizationRequest(
            tenant=self.tenant,
            user_flow=self.user_flow,
            client_id=self.client_id,
            scope=self.scope,
            redirect_uri=self.redirect_uri,
            challenge=challenge or self.new_challenge(),
        )

    def build_login_url(self) -> tuple[str, AuthChallenge]:
        """
        Builds the authorize URL.

        Returns:
            The URL to redirect the browser to, and the challenge to store in the session.
        """
        request = self.build_login_request()
        return request.build_url(), request.challenge

    def build_logout_url(self) -> tuple[str, AuthChallenge]:
        """
        Builds the sign-out URL. Only `redirect_uri` and `state` are sent.

        Returns:
            The URL and a nonce-less challenge to store in the session.

        Raises:
            ValueError: If no logout redirect URI was configured.
        """
        if not self.logout_redirect_uri:
            raise ValueError("logout_redirect_uri is required to build the sign-out URL")

        challenge = AuthChallenge(state=generate_state())
        query = f"redirect_uri={quote(self.logout_redirect_uri, safe=':/')}&state={challenge.state}"
        return f"{self.endpoints.logout_url}?{query}", challenge
