"""
Reconciliation of subgraph session mutations.

Every client request gets a ``RequestMutationLog``. Proposals are appended as
subgraph calls complete, each with the next completion sequence number. Once
all calls have settled the log is folded onto the session loaded at request
start (later completion wins on overlapping keys) and the result is saved
exactly once. A request that collected no proposals never touches the store.
"""

import itertools
import time
from dataclasses import dataclass
from typing import Any, Dict, List, Mapping, Optional, Tuple

from shared.errors import SessionPersistenceError
from shared.logging import get_logger
from shared.metrics import MetricsCollector
from shared.session_models import MutationProposal, SessionData, freeze, thaw
from shared.tracing import trace_operation
from ..federation.context import GatewayPlugin, GatewayRequestContext
from ..federation.data_source import SubgraphResponse
from .store import SessionStore


@dataclass(frozen=True)
class LoggedProposal:
    """A proposal tagged with the order in which its call completed."""

    sequence: int
    service: str
    proposal: MutationProposal


@dataclass(frozen=True)
class ReconciliationOutcome:
    """What reconciliation did for one request."""

    persisted: bool
    session: SessionData
    proposal_count: int
    error: Optional[SessionPersistenceError] = None


class RequestMutationLog:
    """Request-scoped accumulator of mutation proposals."""

    def __init__(self, session_id: str, base: Mapping[str, Any]):
        self.session_id = session_id
        self.base = freeze(base)
        self._entries: List[LoggedProposal] = []
        self._sequence = itertools.count(1)
        self._closed = False

    def append(self, service: str, proposal: MutationProposal) -> LoggedProposal:
        if self._closed:
            raise RuntimeError("mutation log already reconciled")
        entry = LoggedProposal(sequence=next(self._sequence), service=service, proposal=proposal)
        self._entries.append(entry)
        return entry

    @property
    def entries(self) -> Tuple[LoggedProposal, ...]:
        return tuple(sorted(self._entries, key=lambda entry: entry.sequence))

    @property
    def closed(self) -> bool:
        return self._closed

    def __len__(self) -> int:
        return len(self._entries)

    def is_empty(self) -> bool:
        return not self._entries

    def reconcile(self) -> SessionData:
        """Fold all proposals, in completion order, onto the base session."""
        session = thaw(self.base)
        for entry in self.entries:
            session = entry.proposal.apply_to(session)
        return session

    def close(self) -> None:
        if self._closed:
            raise RuntimeError("mutation log already reconciled")
        self._closed = True


class SessionReconciliationPlugin(GatewayPlugin):
    """Collects proposals per request and commits the merged session once."""

    def __init__(self, store: SessionStore, metrics: Optional[MetricsCollector] = None):
        self.store = store
        self.metrics = metrics
        self.logger = get_logger("gateway.reconciliation")

    async def request_did_start(self, context: GatewayRequestContext) -> None:
        context.mutation_log = RequestMutationLog(context.session_id, context.session_data)

    async def subgraph_response_received(self, context: GatewayRequestContext,
                                         response: SubgraphResponse) -> None:
        if response.proposal is None or context.mutation_log is None:
            return
        if response.errored:
            # Data sources already drop these; errored calls must never mutate.
            return
        entry = context.mutation_log.append(response.service, response.proposal)
        if self.metrics:
            self.metrics.increment_counter("session_mutations_total", service=response.service)
        self.logger.info(
            "Session mutation proposed",
            subgraph=response.service,
            sequence=entry.sequence,
            keys=sorted(response.proposal.keys),
        )

    async def will_send_response(self, context: GatewayRequestContext) -> None:
        if context.mutation_log is None:
            return
        try:
            context.reconciliation = await self.commit(context.mutation_log)
        except SessionPersistenceError as exc:
            context.reconciliation = ReconciliationOutcome(
                persisted=False,
                session=context.mutation_log.reconcile(),
                proposal_count=len(context.mutation_log),
                error=exc,
            )
            context.errors.append(exc.to_graphql_error())

    async def commit(self, log: RequestMutationLog) -> ReconciliationOutcome:
        """Merge and save ``log``; callable once per log.

        Raises ``SessionPersistenceError`` if the store rejects the save. The
        save is not retried here.
        """
        log.close()
        if log.is_empty():
            if self.metrics:
                self.metrics.increment_counter("session_saves_total", outcome="skipped")
            return ReconciliationOutcome(persisted=False, session=thaw(log.base), proposal_count=0)

        reconciled = log.reconcile()
        started = time.time()
        with trace_operation("session.reconcile", proposals=len(log)):
            try:
                await self.store.save(log.session_id, reconciled)
            except Exception as exc:
                if self.metrics:
                    self.metrics.increment_counter("session_saves_total", outcome="error")
                self.logger.error(
                    "Reconciled session could not be saved",
                    proposals=len(log),
                    error=str(exc),
                )
                raise SessionPersistenceError(
                    details={"proposals": len(log), "services": _services(log)},
                ) from exc

        if self.metrics:
            self.metrics.increment_counter("session_saves_total", outcome="saved")
        self.logger.info(
            "Session reconciled",
            proposals=len(log),
            services=_services(log),
            duration_ms=round((time.time() - started) * 1000, 2),
        )
        return ReconciliationOutcome(persisted=True, session=reconciled, proposal_count=len(log))


def _services(log: RequestMutationLog) -> List[str]:
    seen: Dict[str, None] = {}
    for entry in log.entries:
        seen.setdefault(entry.service, None)
    return list(seen)
