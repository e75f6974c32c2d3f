"""
Subgraph side of session propagation.

Each subgraph request gets a ``SessionContext`` built from the gateway's
``x-session-data`` header. Resolvers read ``info.context.session`` (a
read-only view) and request changes through ``propose_mutation`` /
``propose_deletion``. The staged changes leave the subgraph as a single
``x-session-mutation`` response header, written by
``SessionMutationExtension`` only when the operation finished without errors.
"""

from typing import Any, Awaitable, Callable, Dict, Mapping, Optional, Set, Tuple

from fastapi import Request
from strawberry.extensions import SchemaExtension
from strawberry.fastapi import BaseContext

from shared.errors import DecodeError, EncodeError
from shared.logging import get_logger
from shared.metrics import MetricsCollector
from shared.session_codec import (
    DEFAULT_MAX_BYTES,
    MUTATION_HEADER,
    SESSION_HEADER,
    decode,
    encode_mutation,
    to_jsonable,
)
from shared.session_models import MutationProposal, SessionData, freeze

logger = get_logger("shared.session_context")


class MutationChannel:
    """Collects the session changes staged during one subgraph call."""

    def __init__(self):
        self._updates: Dict[str, Any] = {}
        self._deletions: Set[str] = set()

    def stage(self, partial: Mapping[str, Any]) -> None:
        if not isinstance(partial, Mapping):
            raise EncodeError("Session mutation must be a mapping", details={"type": type(partial).__name__})
        # Raises inside the resolver for values that could not be encoded later.
        checked = to_jsonable(partial)
        for key, value in checked.items():
            self._updates[key] = value
            self._deletions.discard(key)

    def stage_deletion(self, *keys: str) -> None:
        for key in keys:
            if not isinstance(key, str):
                raise EncodeError("Session keys must be strings", details={"key": repr(key)})
            self._updates.pop(key, None)
            self._deletions.add(key)

    def staged(self, key: str) -> Tuple[bool, Any]:
        """``(True, value)`` if ``key`` was staged, ``(True, None)`` if deleted."""
        if key in self._updates:
            return True, self._updates[key]
        if key in self._deletions:
            return True, None
        return False, None

    def discard(self) -> None:
        self._updates.clear()
        self._deletions.clear()

    def proposal(self) -> Optional[MutationProposal]:
        """The merged proposal for this call, or None when nothing was staged."""
        if not self._updates and not self._deletions:
            return None
        return MutationProposal.of(self._updates, self._deletions)


class SessionContext(BaseContext):
    """Request-scoped Strawberry context carrying the session snapshot."""

    def __init__(self, session: Optional[Mapping[str, Any]] = None, cookie: Optional[str] = None):
        super().__init__()
        self._session = freeze(session or {})
        self.cookie = cookie
        self.mutations = MutationChannel()

    @property
    def session(self) -> Mapping[str, Any]:
        """Read-only view of the session as the gateway saw it."""
        return self._session

    def get(self, key: str, default: Any = None) -> Any:
        return self._session.get(key, default)

    def view(self, key: str, default: Any = None) -> Any:
        """Value of ``key`` with this call's staged changes applied."""
        staged, value = self.mutations.staged(key)
        if not staged:
            return self._session.get(key, default)
        return default if value is None else value

    def propose_mutation(self, partial: Mapping[str, Any]) -> None:
        """Stage keys to add or overwrite in the gateway's session."""
        self.mutations.stage(partial)

    def propose_deletion(self, *keys: str) -> None:
        """Stage keys to remove from the gateway's session."""
        self.mutations.stage_deletion(*keys)


def session_from_headers(headers: Mapping[str, str],
                         max_bytes: int = DEFAULT_MAX_BYTES,
                         metrics: Optional[MetricsCollector] = None) -> SessionData:
    """Decode the propagated session, substituting an empty one on failure."""
    raw = headers.get(SESSION_HEADER)
    if not raw:
        return {}
    try:
        return decode(raw, max_bytes)
    except DecodeError as exc:
        logger.warning("Session header rejected, using empty session", error=exc.message, details=exc.details)
        if metrics:
            metrics.increment_counter("session_decode_failures_total")
        return {}


def build_context_getter(max_bytes: int = DEFAULT_MAX_BYTES,
                         metrics: Optional[MetricsCollector] = None) -> Callable[[Request], Awaitable[SessionContext]]:
    """Create the ``context_getter`` dependency for a ``GraphQLRouter``."""

    async def get_session_context(request: Request) -> SessionContext:
        session = session_from_headers(request.headers, max_bytes, metrics)
        return SessionContext(session=session, cookie=request.headers.get("cookie"))

    return get_session_context


class SessionMutationExtension(SchemaExtension):
    """Emit the staged mutation proposal as a response header.

    Operations that produced any error emit nothing: a failed call never
    changes session state.
    """

    max_bytes = DEFAULT_MAX_BYTES
    metrics: Optional[MetricsCollector] = None

    def on_operation(self):
        yield
        context = self.execution_context.context
        if not isinstance(context, SessionContext):
            return

        result = self.execution_context.result
        if result is None or getattr(result, "errors", None):
            if context.mutations.proposal() is not None:
                logger.info("Dropping staged session mutation after failed operation")
            context.mutations.discard()
            return

        proposal = context.mutations.proposal()
        if proposal is None or context.response is None:
            return

        try:
            context.response.headers[MUTATION_HEADER] = encode_mutation(proposal, self.max_bytes)
        except EncodeError as exc:
            # A 5xx makes the gateway treat the whole call as failed.
            logger.error("Session mutation cannot be emitted", error=exc.message, details=exc.details)
            context.response.status_code = 500
            return
        if self.metrics:
            self.metrics.increment_counter("session_mutations_emitted_total")
        logger.debug("Emitted session mutation", keys=sorted(proposal.keys))


def mutation_extension(max_bytes: int = DEFAULT_MAX_BYTES,
                       metrics: Optional[MetricsCollector] = None) -> type:
    """Build a ``SessionMutationExtension`` bound to service settings."""
    return type(
        "BoundSessionMutationExtension",
        (SessionMutationExtension,),
        {"max_bytes": max_bytes, "metrics": metrics},
    )
