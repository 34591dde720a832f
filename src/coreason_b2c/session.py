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
Session capability used to carry the login challenge across the provider redirect.
"""

from typing import Any, Protocol

from coreason_b2c.models import AuthChallenge

STATE_KEY = "state"
NONCE_KEY = "nonce"


class SessionStoreProtocol(Protocol):
    """Protocol for the per-browser session owned by the web layer."""

    def get(self, key: str) -> Any | None:
        """Returns the stored value, or None when absent."""
        ...

    def put(self, key: str, value: Any) -> None:
        """Stores a value, overwriting any previous one."""
        ...

    def invalidate(self) -> None:
        """Destroys the session."""
        ...


class MemorySessionStore:
    """
    In-memory implementation of SessionStoreProtocol.
    One instance per browser session. Not suitable for multi-process deployments.
    """

    def __init__(self) -> None:
        self._data: dict[str, Any] = {}
        self.invalidated = False

    def get(self, key: str) -> Any | None:
        return self._data.get(key)

    def put(self, key: str, value: Any) -> None:
        self._data[key] = value

    def invalidate(self) -> None:
        self._data.clear()
        self.invalidated = True


class ChallengeStore:
    """
    Reads and writes the pending `AuthChallenge` in a session.

    A challenge is single use: `consume` blanks both keys so a replayed callback
    fails the state check. Two tabs sharing a session overwrite each other's
    challenge (last write wins).
    """

    def __init__(self, session: SessionStoreProtocol) -> None:
        self.session = session

    def save(self, challenge: AuthChallenge) -> None:
        self.session.put(STATE_KEY, challenge.state)
        self.session.put(NONCE_KEY, challenge.nonce)

    def load(self) -> AuthChallenge | None:
        state = self.session.get(STATE_KEY)
        if not state:
            return None
        nonce = self.session.get(NONCE_KEY)
        return AuthChallenge(state=str(state), nonce=None if nonce is None else str(nonce))

    def consume(self) -> AuthChallenge | None:
        challenge = self.load()
        self.session.put(STATE_KEY, None)
        self.session.put(NONCE_KEY, None)
        return challenge
