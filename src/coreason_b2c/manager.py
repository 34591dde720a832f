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
B2CLoginManager component for orchestrating the sign-in and sign-out round-trips.
"""

from collections.abc import Mapping
from typing import Any

import httpx
from anyio.from_thread import start_blocking_portal
from opentelemetry import trace
from opentelemetry.instrumentation.httpx import HTTPXClientInstrumentor
from opentelemetry.trace import Status, StatusCode

from coreason_b2c.authorization import AuthorizationRequestBuilder
from coreason_b2c.callback import CallbackValidator
from coreason_b2c.config import CoreasonB2CConfig
from coreason_b2c.exceptions import CoreasonB2CError
from coreason_b2c.models import (
    AuthError,
    CallbackParams,
    LoginResult,
    LoginSuccess,
    LogoutResult,
    LogoutSuccess,
)
from coreason_b2c.oidc_provider import KeySetCacheProtocol, KeySetClient
from coreason_b2c.profile import decode_profile
from coreason_b2c.session import ChallengeStore, SessionStoreProtocol
from coreason_b2c.time_projection import project_validity
from coreason_b2c.token_client import TokenExchangeClient
from coreason_b2c.utils.logger import logger
from coreason_b2c.validator import TokenVerifier

tracer = trace.get_tracer(__name__)


def _as_params(params: CallbackParams | Mapping[str, Any]) -> CallbackParams:
    if isinstance(params, CallbackParams):
        return params
    return CallbackParams.from_query(params)


class B2CLoginManagerAsync:
    """
    Async implementation of the login manager (The Core).
    Handles resources via async context manager.

    Only `complete_login` performs I/O. Failures never escape as exceptions: they
    come back as `AuthError` results, and the caller decides what to show and
    whether to invalidate the session.
    """

    def __init__(
        self,
        config: CoreasonB2CConfig,
        client: httpx.AsyncClient | None = None,
        key_set_cache: KeySetCacheProtocol | None = None,
    ) -> None:
        """
        Initialize the B2CLoginManagerAsync.

        Args:
            config: The configuration object.
            client: External async client (optional). If not provided, one is created with
                the configured `http_timeout`.
            key_set_cache: Shared key set cache (optional). Defaults to a per-manager memory cache.
        """
        self.config = config
        self._internal_client = client is None
        self._client = client or httpx.AsyncClient(timeout=self.config.http_timeout)

        # Instrument the client for distributed tracing
        HTTPXClientInstrumentor().instrument_client(self._client)

        endpoints = self.config.endpoints
        self.request_builder = AuthorizationRequestBuilder(
            tenant=self.config.tenant,
            user_flow=self.config.user_flow,
            client_id=self.config.client_id,
            scope=self.config.scope,
            redirect_uri=self.config.redirect_uri,
            logout_redirect_uri=self.config.logout_redirect_uri,
        )
        self.callback_validator = CallbackValidator()
        self.key_set_client = KeySetClient(
            endpoints.jwks_url,
            self._client,
            cache=key_set_cache,
            cache_ttl=self.config.jwks_cache_ttl,
        )
        self.verifier = TokenVerifier(
            key_set_client=self.key_set_client,
            pii_salt=self.config.pii_salt,
            expected_issuer=self.config.expected_issuer,
            expected_audience=self.config.expected_audience,
            leeway=self.config.clock_skew_leeway,
        )
        self.token_client = TokenExchangeClient(
            token_url=endpoints.token_url,
            client_id=self.config.client_id,
            client_secret=self.config.client_secret,
            scope=self.config.token_scope,
            redirect_uri=self.config.exchange_redirect_uri,
            client=self._client,
        )

    async def __aenter__(self) -> "B2CLoginManagerAsync":
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        if self._internal_client:
            await self._client.aclose()

    def begin_login(self, session: SessionStoreProtocol) -> str:
        """
        Starts a sign-in: stores a fresh challenge in the session and returns the
        authorize URL to redirect to. Any previous pending challenge is overwritten.
        """
        url, challenge = self.request_builder.build_login_url()
        ChallengeStore(session).save(challenge)
        logger.debug(f"Sign-in redirect built for tenant {self.config.tenant}")
        return url

    async def complete_login(
        self, session: SessionStoreProtocol, params: CallbackParams | Mapping[str, Any]
    ) -> LoginResult:
        """
        Finishes a sign-in from the callback parameters.

        Order: consume the stored challenge, validate the callback, verify the id
        token, exchange the code, decode the profile, project lifetimes. The first
        failure ends the attempt; nothing is retried.

        Args:
            session: The browser session holding the pending challenge.
            params: The callback query parameters.

        Returns:
            LoginSuccess on success, AuthError otherwise.
        """
        with tracer.start_as_current_span("complete_login") as span:
            try:
                callback = _as_params(params)
                challenge = ChallengeStore(session).consume()
                id_token = self.callback_validator.validate_login_callback(callback, challenge)
                nonce = challenge.nonce if challenge else None
                claims = await self.verifier.verify(id_token, nonce)
                token_set = await self.token_client.exchange_code(callback.code)
                profile = decode_profile(token_set.profile_info)
                window = project_validity(token_set)
            except CoreasonB2CError as e:
                logger.warning(f"Sign-in failed ({e.reason}): {e}")
                span.record_exception(e)
                span.set_status(Status(StatusCode.ERROR, e.reason.value))
                return AuthError(reason=e.reason, message=str(e))

            span.set_status(Status(StatusCode.OK))
            return LoginSuccess(
                user_name=profile.name,
                access_token=token_set.access_token,
                refresh_token=token_set.refresh_token,
                valid_from=window.valid_from,
                valid_until=window.valid_until,
                refresh_valid_until=window.refresh_valid_until,
                claims=claims,
            )

    def begin_logout(self, session: SessionStoreProtocol) -> str:
        """
        Starts a sign-out: stores a state-only challenge and returns the logout URL.
        """
        url, challenge = self.request_builder.build_logout_url()
        ChallengeStore(session).save(challenge)
        return url

    def complete_logout(
        self, session: SessionStoreProtocol, params: CallbackParams | Mapping[str, Any]
    ) -> LogoutResult:
        """
        Finishes a sign-out: checks the state, then invalidates the session.
        The session is left untouched when the state does not match.
        """
        challenge = ChallengeStore(session).load()
        try:
            self.callback_validator.validate_logout_callback(
                _as_params(params), challenge.state if challenge else None
            )
        except CoreasonB2CError as e:
            return AuthError(reason=e.reason, message=str(e))

        session.invalidate()
        logger.info("Session signed out.")
        return LogoutSuccess()


class B2CLoginManager:
    """
    Blocking facade over B2CLoginManagerAsync for synchronous web frameworks.

    The async manager runs on a private event loop thread (anyio blocking portal).
    An injected client must be an `httpx.AsyncClient`.
    """

    def __init__(
        self,
        config: CoreasonB2CConfig,
        client: httpx.AsyncClient | None = None,
        key_set_cache: KeySetCacheProtocol | None = None,
    ) -> None:
        self._async = B2CLoginManagerAsync(config, client=client, key_set_cache=key_set_cache)
        self._portal_cm = start_blocking_portal()
        self._portal = self._portal_cm.__enter__()

    def __enter__(self) -> "B2CLoginManager":
        return self

    def __exit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        self.close()

    def close(self) -> None:
        try:
            self._portal.call(self._async.__aexit__, None, None, None)
        finally:
            self._portal_cm.__exit__(None, None, None)

    def begin_login(self, session: SessionStoreProtocol) -> str:
        return self._async.begin_login(session)

    def complete_login(self, session: SessionStoreProtocol, params: CallbackParams | Mapping[str, Any]) -> LoginResult:
        return self._portal.call(self._async.complete_login, session, params)

    def begin_logout(self, session: SessionStoreProtocol) -> str:
        return self._async.begin_logout(session)

    def complete_logout(
        self, session: SessionStoreProtocol, params: CallbackParams | Mapping[str, Any]
    ) -> LogoutResult:
        return self._async.complete_logout(session, params)
