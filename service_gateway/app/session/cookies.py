"""
Signed session id cookies.

Values use the ``s:<id>.<signature>`` layout so an unsigned or tampered
cookie is rejected and a fresh session is started instead.
"""

import base64
import hashlib
import hmac
import secrets
from typing import Optional
from urllib.parse import unquote

SIGNED_PREFIX = "s:"


class SessionCookieSigner:
    """HMAC-SHA256 signing of session ids."""

    def __init__(self, secret: str):
        if not secret:
            raise ValueError("session secret must not be empty")
        self._key = secret.encode("utf-8")

    def _signature(self, session_id: str) -> str:
        digest = hmac.new(self._key, session_id.encode("utf-8"), hashlib.sha256).digest()
        return base64.urlsafe_b64encode(digest).decode("ascii").rstrip("=")

    def sign(self, session_id: str) -> str:
        return f"{SIGNED_PREFIX}{session_id}.{self._signature(session_id)}"

    def unsign(self, value: Optional[str]) -> Optional[str]:
        """Return the session id, or None for absent, unsigned or tampered values."""
        if not value:
            return None
        value = unquote(value)
        if not value.startswith(SIGNED_PREFIX):
            return None
        session_id, _, signature = value[len(SIGNED_PREFIX):].rpartition(".")
        if not session_id or not signature:
            return None
        if not hmac.compare_digest(signature, self._signature(session_id)):
            return None
        return session_id

    @staticmethod
    def new_session_id() -> str:
        return secrets.token_urlsafe(24)
