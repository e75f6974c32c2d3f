"""
Shared error handling for the federation services.
"""

from typing import Dict, Any, List, Optional
from pydantic import BaseModel

from opentelemetry import trace


class ErrorResponse(BaseModel):
    """Standard error response format."""

    trace_id: Optional[str] = None
    code: str
    message: str
    details: Dict[str, Any] = {}


def _current_trace_id() -> Optional[str]:
    current_span = trace.get_current_span()
    if current_span and current_span.is_recording():
        span_context = current_span.get_span_context()
        if span_context.trace_id != 0:
            return f"{span_context.trace_id:032x}"
    return None


class FederationException(Exception):
    """Base exception for gateway and subgraph services."""

    def __init__(self, code: str, message: str, details: Optional[Dict[str, Any]] = None):
        self.code = code
        self.message = message
        self.details = details or {}
        super().__init__(message)

    def to_response(self) -> ErrorResponse:
        """Convert to error response."""
        return ErrorResponse(
            trace_id=_current_trace_id(),
            code=self.code,
            message=self.message,
            details=self.details
        )

    def to_graphql_error(self, path: Optional[List[Any]] = None) -> Dict[str, Any]:
        """Render as an entry of a GraphQL response's ``errors`` list."""
        error: Dict[str, Any] = {
            "message": self.message,
            "extensions": {"code": self.code, **self.details},
        }
        if path:
            error["path"] = list(path)
        trace_id = _current_trace_id()
        if trace_id:
            error["extensions"]["trace_id"] = trace_id
        return error


class ValidationError(FederationException):
    """Validation-related errors."""

    def __init__(self, message: str = "Validation failed", details: Optional[Dict[str, Any]] = None):
        super().__init__("VALIDATION_ERROR", message, details)


class QueryPlanningError(FederationException):
    """The operation could not be split across subgraphs."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__("GRAPHQL_VALIDATION_FAILED", message, details)


class DecodeError(FederationException):
    """A session snapshot or mutation header could not be decoded.

    Always recovered locally by substituting an empty value; never surfaced
    to the client.
    """

    def __init__(self, message: str = "Malformed session payload", details: Optional[Dict[str, Any]] = None):
        super().__init__("SESSION_DECODE_ERROR", message, details)


class EncodeError(FederationException):
    """A session value is not JSON-representable or exceeds the size bound."""

    def __init__(self, message: str = "Session payload cannot be encoded", details: Optional[Dict[str, Any]] = None):
        super().__init__("SESSION_ENCODE_ERROR", message, details)


class BackendCallError(FederationException):
    """A call to a subgraph failed; any proposal it carried is discarded."""

    def __init__(self, service: str, message: str = "Backend call failed", details: Optional[Dict[str, Any]] = None):
        self.service = service
        super().__init__(
            "BACKEND_CALL_FAILED",
            f"{service}: {message}",
            {"service": service, **(details or {})},
        )


class SessionPersistenceError(FederationException):
    """The reconciled session could not be saved to the store."""

    def __init__(self, message: str = "Session changes could not be persisted", details: Optional[Dict[str, Any]] = None):
        super().__init__("SESSION_PERSISTENCE_ERROR", message, details)


class SessionStoreError(FederationException):
    """Raised by store adapters when the backing store is unavailable."""

    def __init__(self, message: str = "Session store unavailable", details: Optional[Dict[str, Any]] = None):
        super().__init__("SESSION_STORE_ERROR", message, details)
