"""
Session loading and cookie issuance for the gateway.
"""

from dataclasses import dataclass
from typing import Any, Dict

from fastapi import Request, Response

from shared.logging import get_logger
from .cookies import SessionCookieSigner
from .store import SessionStore


@dataclass(frozen=True)
class LoadedSession:
    """The authoritative session as read at request start."""

    session_id: str
    data: Dict[str, Any]
    is_new: bool


class SessionManager:
    """Resolve the request's session id and load its data from the store."""

    def __init__(self, store: SessionStore, signer: SessionCookieSigner, cookie_name: str = "sid",
                 ttl_seconds: int = 86400, secure: bool = False, samesite: str = "lax"):
        self.store = store
        self.signer = signer
        self.cookie_name = cookie_name
        self.ttl_seconds = ttl_seconds
        self.secure = secure
        self.samesite = samesite
        self.logger = get_logger("gateway.session_manager")

    async def load(self, request: Request) -> LoadedSession:
        """Load the caller's session; unknown callers get a new, empty one.

        Store failures propagate as ``SessionStoreError``.
        """
        raw_cookie = request.cookies.get(self.cookie_name)
        session_id = self.signer.unsign(raw_cookie)
        if raw_cookie and session_id is None:
            self.logger.warning("Rejected session cookie with invalid signature")

        if session_id:
            data = await self.store.load(session_id)
            if data is not None:
                return LoadedSession(session_id=session_id, data=data, is_new=False)
            self.logger.info("Session expired or unknown, starting a new one")

        return LoadedSession(session_id=self.signer.new_session_id(), data={}, is_new=True)

    def issue_cookie(self, response: Response, session_id: str) -> None:
        """Set or refresh the signed session cookie."""
        response.set_cookie(
            self.cookie_name,
            self.signer.sign(session_id),
            max_age=self.ttl_seconds,
            httponly=True,
            secure=self.secure,
            samesite=self.samesite,
            path="/",
        )
