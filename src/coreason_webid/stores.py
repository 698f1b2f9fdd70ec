# Copyright (c) 2025 CoReason, Inc.
#
# This software is proprietary and dual-licensed.
# Licensed under the Prosperity Public License 3.0 (the "License").
# A copy of the license is available at https://prosperitylicense.com/versions/3.0.0
# For details, see the LICENSE file.
# Commercial use beyond a 30-day trial requires a separate license.
#
# Source Code: https://github.com/CoReason-AI/coreason_webid

"""
Storage contracts used by the flows, with in-memory implementations.

The in-memory stores are not suitable for multi-process deployments; production
hosts plug in their own backends behind the same protocols.
"""

from typing import Protocol

from coreason_webid.models import Session
from coreason_webid.utils.logger import logger


class ConsentStore(Protocol):
    """Durable record of clients the user has consented to."""

    async def has_consent(self, client_id: str) -> bool: ...

    async def save_consent(self, client_id: str) -> None: ...


class SessionStore(Protocol):
    """Server-side sessions addressed by the opaque id the web layer supplies."""

    async def get(self, session_id: str) -> Session:
        """Returns the session, creating it on first contact."""
        ...

    async def save(self, session_id: str, session: Session) -> None: ...

    async def delete(self, session_id: str) -> None: ...


class LogoutHandler(Protocol):
    """Terminates the user's session."""

    async def logout(self, session: Session) -> None: ...


class MemoryConsentStore:
    def __init__(self) -> None:
        self._client_ids: set[str] = set()

    async def has_consent(self, client_id: str) -> bool:
        return client_id in self._client_ids

    async def save_consent(self, client_id: str) -> None:
        self._client_ids.add(client_id)


class MemorySessionStore:
    def __init__(self) -> None:
        self._sessions: dict[str, Session] = {}

    async def get(self, session_id: str) -> Session:
        if session_id not in self._sessions:
            self._sessions[session_id] = Session()
        return self._sessions[session_id]

    async def save(self, session_id: str, session: Session) -> None:
        self._sessions[session_id] = session

    async def delete(self, session_id: str) -> None:
        self._sessions.pop(session_id, None)


class SessionLogout:
    """
    Default logout collaborator: resets the session in place so that the web layer
    persists an anonymous session.
    """

    async def logout(self, session: Session) -> None:
        session.identified = False
        session.user_id = None
        session.access_token = None
        session.refresh_token = None
        session.return_to_url = None
        session.consented_origins.clear()
        session.pending_authorizations.clear()
        logger.info("Session logged out")
