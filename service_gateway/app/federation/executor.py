"""
Plan execution.

Runs the fetches of a ``QueryPlan`` against their data sources, notifies the
gateway plugins as each call completes and stitches the client response.
"""

import asyncio
from typing import Any, Dict, Mapping, Optional, Sequence

from shared.errors import BackendCallError
from shared.logging import get_logger, subgraph_var
from shared.metrics import MetricsCollector
from .context import GatewayPlugin, GatewayRequestContext
from .data_source import RemoteGraphQLDataSource, SubgraphResponse
from .planner import QueryPlan, SubgraphFetch
from .propagation import SessionPropagator


class FederatedExecutor:
    """Execute query plans for the gateway."""

    def __init__(self, data_sources: Mapping[str, RemoteGraphQLDataSource],
                 propagator: SessionPropagator,
                 plugins: Sequence[GatewayPlugin] = (),
                 metrics: Optional[MetricsCollector] = None):
        self.data_sources = dict(data_sources)
        self.propagator = propagator
        self.plugins = list(plugins)
        self.metrics = metrics
        self.logger = get_logger("gateway.executor")

    async def execute(self, plan: QueryPlan, context: GatewayRequestContext) -> Dict[str, Any]:
        """Run ``plan`` and return the ``data`` object of the client response.

        Failures of individual calls are recorded in ``context.errors``; the
        response keys those calls owned resolve to null.
        """
        # Same snapshot and headers for every call of this request.
        headers = self.propagator.outbound_headers(context.snapshot)
        results: Dict[str, Any] = {}

        for stage in plan.stages:
            outcomes = await asyncio.gather(
                *(self._run_fetch(fetch, headers, context) for fetch in stage),
                return_exceptions=True,
            )
            for fetch, outcome in zip(stage, outcomes):
                if isinstance(outcome, BaseException):
                    self._record_failure(fetch, outcome, context)
                    continue
                self._merge(fetch, outcome, results, context)

        data: Dict[str, Any] = {}
        for key in plan.response_keys:
            if key in plan.local_fields:
                data[key] = plan.local_fields[key]
            else:
                data[key] = results.get(key)
        return data

    async def _run_fetch(self, fetch: SubgraphFetch, headers: Mapping[str, str],
                         context: GatewayRequestContext) -> SubgraphResponse:
        data_source = self.data_sources.get(fetch.service)
        if data_source is None:
            raise BackendCallError(fetch.service, "no data source configured")

        token = subgraph_var.set(fetch.service)
        try:
            response = await data_source.process(fetch, headers, request_id=context.request_id)
            # Runs as soon as this call completes, so plugins see completion order.
            for plugin in self.plugins:
                await plugin.subgraph_response_received(context, response)
            return response
        finally:
            subgraph_var.reset(token)

    def _merge(self, fetch: SubgraphFetch, response: SubgraphResponse,
               results: Dict[str, Any], context: GatewayRequestContext) -> None:
        if response.data:
            for key in fetch.response_keys:
                if key in response.data:
                    results[key] = response.data[key]
        context.errors.extend(response.errors)

    def _record_failure(self, fetch: SubgraphFetch, exc: BaseException,
                        context: GatewayRequestContext) -> None:
        if isinstance(exc, BackendCallError):
            error = exc
        else:
            self.logger.error(
                "Unexpected failure calling subgraph",
                subgraph=fetch.service,
                error=str(exc),
                exc_info=exc,
            )
            error = BackendCallError(fetch.service, "unexpected error")

        self.logger.warning(
            "Subgraph call failed",
            subgraph=fetch.service,
            error=error.message,
            fields=list(fetch.response_keys),
        )
        if self.metrics:
            self.metrics.record_error(error.code, service=fetch.service)

        graphql_error = error.to_graphql_error()
        graphql_error["path"] = list(fetch.response_keys[:1])
        graphql_error["extensions"]["serviceName"] = fetch.service
        context.errors.append(graphql_error)
