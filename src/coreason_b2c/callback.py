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
CallbackValidator component for gating the provider's redirect back to the application.
"""

import hmac

from coreason_b2c.exceptions import InvalidStateError, MissingIdTokenError, ProviderError
from coreason_b2c.models import AuthChallenge, CallbackParams
from coreason_b2c.utils.logger import logger


def _state_matches(received: str | None, expected: str | None) -> bool:
    if not received or not expected:
        return False
    return hmac.compare_digest(received.encode("utf-8"), expected.encode("utf-8"))


class CallbackValidator:
    """
    Decides whether a callback may proceed to token verification.
    Checks run in a fixed order and stop at the first failure.
    """

    def validate_login_callback(self, params: CallbackParams, challenge: AuthChallenge | None) -> str:
        """
        Validates the sign-in callback.

        Args:
            params: The untrusted callback parameters.
            challenge: The challenge stored before the redirect (None if the session has none).

        Returns:
            str: The id token to verify.

        Raises:
            InvalidStateError: If `state` is absent or differs from the stored one.
            ProviderError: If the provider reported an error.
            MissingIdTokenError: If no id token was returned.
        """
        self._check_state(params, challenge.state if challenge else None)

        if params.error is not None:
            description = params.error_description or params.error
            logger.warning(f"Identity provider returned error '{params.error}'")
            raise ProviderError(description, error=params.error)

        if not params.id_token:
            raise MissingIdTokenError("The id token is missing from the callback.")

        return params.id_token

    def validate_logout_callback(self, params: CallbackParams, expected_state: str | None) -> None:
        """
        Validates the sign-out callback (state check only).

        Raises:
            InvalidStateError: If `state` is absent or differs from the stored one.
        """
        self._check_state(params, expected_state)

    @staticmethod
    def _check_state(params: CallbackParams, expected_state: str | None) -> None:
        if not _state_matches(params.state, expected_state):
            logger.warning("Callback rejected: state mismatch")
            raise InvalidStateError("The state is invalid.")
