"""
Gateway side of session propagation.
"""

from typing import Dict

from shared.errors import EncodeError
from shared.logging import get_logger
from shared.session_codec import DEFAULT_MAX_BYTES, SESSION_HEADER, encode
from shared.session_models import SessionSnapshot

EMPTY_SESSION = "{}"


class SessionPropagator:
    """Derive outbound subgraph headers from a request's snapshot.

    Computed once per client request; every subgraph call of the request
    sends the same values.
    """

    def __init__(self, max_bytes: int = DEFAULT_MAX_BYTES):
        self.max_bytes = max_bytes
        self.logger = get_logger("gateway.propagation")

    def outbound_headers(self, snapshot: SessionSnapshot) -> Dict[str, str]:
        headers: Dict[str, str] = {}
        if snapshot.cookie:
            headers["cookie"] = snapshot.cookie

        try:
            headers[SESSION_HEADER] = encode(snapshot.data, self.max_bytes)
        except EncodeError as exc:
            self.logger.error(
                "Session snapshot cannot be propagated, sending empty session",
                error=exc.message,
                details=exc.details,
            )
            headers[SESSION_HEADER] = EMPTY_SESSION
        return headers
