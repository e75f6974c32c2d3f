"""
HTTP data source for one subgraph.

Sends a subquery with the propagated session headers and reads the
``x-session-mutation`` carrier from the response. A proposal is only kept
when the call fully succeeded.
"""

import time
from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional

import httpx

from shared.circuit_breaker import CircuitBreaker, CircuitBreakerOpenError
from shared.errors import BackendCallError, DecodeError
from shared.logging import get_logger
from shared.metrics import MetricsCollector
from shared.session_codec import DEFAULT_MAX_BYTES, MUTATION_HEADER, decode_mutation
from shared.session_models import MutationProposal
from shared.tracing import trace_operation
from .planner import SubgraphFetch


@dataclass(frozen=True)
class SubgraphResponse:
    """A completed subgraph call."""

    service: str
    data: Optional[Dict[str, Any]]
    errors: List[Dict[str, Any]] = field(default_factory=list)
    proposal: Optional[MutationProposal] = None
    status_code: int = 200
    duration: float = 0.0

    @property
    def errored(self) -> bool:
        return bool(self.errors)


class RemoteGraphQLDataSource:
    """Client wrapper for a single subgraph endpoint."""

    def __init__(self, name: str, url: str, client: httpx.AsyncClient,
                 circuit_breaker: Optional[CircuitBreaker] = None,
                 timeout: float = 10.0,
                 max_bytes: int = DEFAULT_MAX_BYTES,
                 metrics: Optional[MetricsCollector] = None):
        self.name = name
        self.url = url
        self.client = client
        self.circuit_breaker = circuit_breaker or CircuitBreaker(
            name, tracked_exceptions=(httpx.HTTPError, BackendCallError)
        )
        self.timeout = timeout
        self.max_bytes = max_bytes
        self.metrics = metrics
        self.logger = get_logger(f"gateway.subgraph.{name}")

    def will_send_request(self, headers: Dict[str, str], propagated: Mapping[str, str]) -> Dict[str, str]:
        """Attach the request's session headers to an outbound call."""
        headers.update(propagated)
        return headers

    async def process(self, fetch: SubgraphFetch, propagated: Mapping[str, str],
                      request_id: Optional[str] = None) -> SubgraphResponse:
        """Run ``fetch``; raises ``BackendCallError`` when the call fails outright."""
        headers = {"content-type": "application/json", "accept": "application/json"}
        if request_id:
            headers["x-request-id"] = request_id
        self.will_send_request(headers, propagated)

        body: Dict[str, Any] = {"query": fetch.query}
        if fetch.variables:
            body["variables"] = fetch.variables
        if fetch.operation_name:
            body["operationName"] = fetch.operation_name

        started = time.time()
        outcome = "error"
        try:
            with trace_operation("subgraph.fetch", service=self.name, url=self.url):
                response = await self.circuit_breaker.call(self._post, body, headers)
            result = self.did_receive_response(response, time.time() - started)
            outcome = "errored" if result.errored else "ok"
            return result
        except CircuitBreakerOpenError as exc:
            outcome = "circuit_open"
            raise BackendCallError(self.name, "circuit open", details=exc.details) from exc
        except httpx.HTTPError as exc:
            self.logger.warning("Subgraph transport error", error=str(exc))
            raise BackendCallError(self.name, f"transport error: {exc.__class__.__name__}") from exc
        finally:
            if self.metrics:
                self.metrics.increment_counter("subgraph_requests_total", service=self.name, outcome=outcome)
                self.metrics.observe_histogram(
                    "subgraph_request_duration_seconds", time.time() - started, service=self.name
                )

    async def _post(self, body: Dict[str, Any], headers: Dict[str, str]) -> httpx.Response:
        response = await self.client.post(self.url, json=body, headers=headers, timeout=self.timeout)
        if response.status_code >= 500:
            raise BackendCallError(self.name, f"HTTP {response.status_code}", details={"status_code": response.status_code})
        return response

    def did_receive_response(self, response: httpx.Response, duration: float = 0.0) -> SubgraphResponse:
        """Interpret the HTTP response of a subgraph call."""
        if not 200 <= response.status_code < 300:
            raise BackendCallError(
                self.name,
                f"HTTP {response.status_code}",
                details={"status_code": response.status_code, "subgraph_errors": _error_messages(response)},
            )

        try:
            payload = response.json()
        except ValueError as exc:
            raise BackendCallError(self.name, "response is not JSON") from exc
        if not isinstance(payload, dict) or ("data" not in payload and "errors" not in payload):
            raise BackendCallError(self.name, "response is not a GraphQL result")

        data = payload.get("data")
        if data is not None and not isinstance(data, dict):
            raise BackendCallError(self.name, "response data is not an object")
        errors = [
            self._annotate(error) for error in payload.get("errors") or []
        ]

        proposal = self._read_proposal(response)
        if proposal is not None and errors:
            self.logger.warning(
                "Discarding session mutation from errored subgraph call",
                keys=sorted(proposal.keys),
                error_count=len(errors),
            )
            if self.metrics:
                self.metrics.increment_counter("session_mutations_discarded_total", service=self.name)
            proposal = None

        return SubgraphResponse(
            service=self.name,
            data=data,
            errors=errors,
            proposal=proposal,
            status_code=response.status_code,
            duration=duration,
        )

    def _read_proposal(self, response: httpx.Response) -> Optional[MutationProposal]:
        raw = response.headers.get(MUTATION_HEADER)
        if not raw:
            return None
        try:
            proposal = decode_mutation(raw, self.max_bytes)
        except DecodeError as exc:
            self.logger.warning("Ignoring malformed session mutation", error=exc.message, details=exc.details)
            return None
        return None if proposal.is_empty else proposal

    def _annotate(self, error: Any) -> Dict[str, Any]:
        if not isinstance(error, dict):
            error = {"message": str(error)}
        extensions = dict(error.get("extensions") or {})
        extensions.setdefault("serviceName", self.name)
        return {**error, "extensions": extensions}


def _error_messages(response: httpx.Response) -> List[str]:
    try:
        payload = response.json()
    except ValueError:
        return []
    if not isinstance(payload, dict):
        return []
    return [
        error.get("message", "") for error in payload.get("errors") or []
        if isinstance(error, dict)
    ]
