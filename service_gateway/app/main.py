"""
Federated GraphQL gateway.

Loads the caller's session, fans the operation out to the subgraphs with the
session snapshot attached and reconciles the mutations they propose before
answering.
"""

import asyncio
import time
from typing import Any, Dict, List, Optional, Set

import httpx
from fastapi import Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ConfigDict, Field

from shared.base_service import BaseService
from shared.circuit_breaker import CircuitBreakerRegistry
from shared.config import DEFAULT_SESSION_SECRET, ServiceConfig
from shared.errors import (
    BackendCallError,
    QueryPlanningError,
    SessionStoreError,
    ValidationError,
)
from shared.logging import clear_context, request_id_var, set_request_id, set_session_context
from shared.session_models import SessionSnapshot
from .federation import (
    FederatedExecutor,
    GatewayPlugin,
    GatewayRequestContext,
    QueryPlan,
    RemoteGraphQLDataSource,
    RootFieldPlanner,
    SessionPropagator,
)
from .session import (
    SessionCookieSigner,
    SessionManager,
    SessionReconciliationPlugin,
    SessionStore,
    create_session_store,
)


class GraphQLRequest(BaseModel):
    """Body of a GraphQL-over-HTTP POST."""

    model_config = ConfigDict(populate_by_name=True)

    query: str = Field(min_length=1)
    operation_name: Optional[str] = Field(default=None, alias="operationName")
    variables: Optional[Dict[str, Any]] = None


class GatewayService(BaseService):
    """Gateway service implementation."""

    def __init__(self, config: Optional[ServiceConfig] = None,
                 http_client: Optional[httpx.AsyncClient] = None,
                 store: Optional[SessionStore] = None):
        super().__init__("gateway", 4000, config)
        if self.config.session_secret == DEFAULT_SESSION_SECRET:
            if self.config.env != "local":
                raise ValueError("FEDERATION_SESSION_SECRET must be set outside local environments")
            self.logger.warning("Using the placeholder session secret")
        self.subgraphs = self.config.get_subgraphs()

        self.store = store or create_session_store(self.config)
        self._owns_client = http_client is None
        self.http_client = http_client or httpx.AsyncClient(
            timeout=self.config.subgraph_timeout_seconds,
            follow_redirects=False,
        )
        self.session_manager = SessionManager(
            self.store,
            SessionCookieSigner(self.config.session_secret),
            cookie_name=self.config.session_cookie_name,
            ttl_seconds=self.config.session_ttl_seconds,
            secure=self.config.session_cookie_secure,
            samesite=self.config.session_cookie_samesite,
        )

        self.planner = RootFieldPlanner(self.subgraphs)
        self.circuit_breakers = CircuitBreakerRegistry()
        self.data_sources = {
            subgraph.name: RemoteGraphQLDataSource(
                subgraph.name,
                subgraph.url,
                self.http_client,
                circuit_breaker=self.circuit_breakers.get(
                    subgraph.name,
                    failure_threshold=self.config.subgraph_failure_threshold,
                    recovery_timeout=self.config.subgraph_recovery_timeout,
                    tracked_exceptions=(httpx.HTTPError, BackendCallError),
                ),
                timeout=self.config.subgraph_timeout_seconds,
                max_bytes=self.config.session_max_header_bytes,
                metrics=self.metrics,
            )
            for subgraph in self.subgraphs
        }

        self.reconciliation = SessionReconciliationPlugin(self.store, metrics=self.metrics)
        self.plugins: List[GatewayPlugin] = [self.reconciliation]
        self.executor = FederatedExecutor(
            self.data_sources,
            SessionPropagator(self.config.session_max_header_bytes),
            plugins=self.plugins,
            metrics=self.metrics,
        )

        # Requests whose processing outlives a disconnected client.
        self._inflight: Set[asyncio.Task] = set()

        self._setup_observability_middleware()
        self._setup_gateway_routes()

        # Expose service instance via app state for introspection/testing
        self.app.state.gateway_service = self

    async def on_startup(self) -> None:
        self.logger.info(
            "Gateway starting",
            subgraphs={subgraph.name: subgraph.url for subgraph in self.subgraphs},
            session_store=self.config.session_store,
        )

    async def on_shutdown(self) -> None:
        if self._inflight:
            self.logger.info("Waiting for in-flight requests", count=len(self._inflight))
            await asyncio.gather(*self._inflight, return_exceptions=True)
        if self._owns_client:
            await self.http_client.aclose()
        await self.store.close()

    def _setup_observability_middleware(self):
        """Set up request id and log correlation middleware."""
        from starlette.middleware.base import BaseHTTPMiddleware

        class ObservabilityMiddleware(BaseHTTPMiddleware):
            async def dispatch(self, request: Request, call_next):
                request_id = set_request_id(request.headers.get("x-request-id"))
                try:
                    response = await call_next(request)
                    response.headers["X-Request-ID"] = request_id
                    return response
                finally:
                    clear_context()

        self.app.add_middleware(ObservabilityMiddleware)

    def _setup_gateway_routes(self):
        """Set up gateway routes."""

        @self.app.get("/")
        async def root():
            """Root endpoint."""
            return {
                "service": "gateway",
                "message": "Federated GraphQL gateway",
                "version": "1.0.0",
                "subgraphs": [subgraph.name for subgraph in self.subgraphs],
                "circuit_breakers": self.circuit_breakers.states(),
            }

        @self.app.post("/graphql")
        async def graphql_endpoint(request: Request):
            """Execute a GraphQL operation across the subgraphs."""
            try:
                body = GraphQLRequest.model_validate(await request.json())
            except ValueError as exc:
                error = ValidationError("Request body must be a GraphQL request", details={"reason": str(exc)})
                return JSONResponse(status_code=400, content={"errors": [error.to_graphql_error()]})

            try:
                loaded = await self.session_manager.load(request)
            except SessionStoreError as exc:
                self.logger.error("Session store unavailable", error=exc.message)
                self.metrics.record_error(exc.code)
                return JSONResponse(status_code=503, content={"errors": [exc.to_graphql_error()]})
            set_session_context(loaded.session_id)

            try:
                plan = self.planner.plan(body.query, body.operation_name, body.variables)
            except QueryPlanningError as exc:
                self.logger.info("Operation rejected", error=exc.message)
                return JSONResponse(status_code=400, content={"errors": [exc.to_graphql_error()]})

            context = GatewayRequestContext(
                request_id=request_id_var.get() or set_request_id(),
                session_id=loaded.session_id,
                session_data=loaded.data,
                snapshot=SessionSnapshot.capture(loaded.data, request.headers.get("cookie")),
                is_new_session=loaded.is_new,
            )

            task = asyncio.ensure_future(self.process_request(plan, context))
            self._inflight.add(task)
            task.add_done_callback(self._inflight.discard)
            task.add_done_callback(self._log_task_failure)
            # A disconnect cancels this handler but not the task, so
            # reconciliation still runs.
            payload = await asyncio.shield(task)

            response = JSONResponse(content=payload)
            if context.reconciliation is not None and context.reconciliation.persisted:
                self.session_manager.issue_cookie(response, context.session_id)
            return response

    def _log_task_failure(self, task: asyncio.Task) -> None:
        """Retrieve the outcome of a processing task whose client may be gone."""
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            self.logger.error("Request processing failed", error=str(exc), exc_info=exc)

    async def process_request(self, plan: QueryPlan, context: GatewayRequestContext) -> Dict[str, Any]:
        """Run a planned operation through the plugin lifecycle."""
        started = time.time()
        for plugin in self.plugins:
            await plugin.request_did_start(context)

        try:
            data = await self.executor.execute(plan, context)
        finally:
            for plugin in self.plugins:
                await plugin.will_send_response(context)

        self.logger.info(
            "Operation completed",
            operation=plan.operation_type,
            subgraph_calls=len(plan.fetches),
            errors=len(context.errors),
            duration_ms=round((time.time() - started) * 1000, 2),
        )
        payload: Dict[str, Any] = {"data": data}
        if context.errors:
            payload["errors"] = context.errors
        return payload

    async def _check_dependencies(self) -> Dict[str, str]:
        """Check session store and subgraph health."""
        dependencies = {"session_store": "ok" if await self.store.ping() else "error"}

        async def check(name: str, url: str) -> None:
            health_url = url.rsplit("/graphql", 1)[0] + "/health"
            try:
                response = await self.http_client.get(health_url, timeout=2.0)
                dependencies[name] = "ok" if response.status_code == 200 else "error"
            except httpx.HTTPError:
                dependencies[name] = "error"

        await asyncio.gather(*(check(subgraph.name, subgraph.url) for subgraph in self.subgraphs))
        return dependencies


def create_app():
    """Create FastAPI application."""
    service = GatewayService()
    return service.app


if __name__ == "__main__":
    service = GatewayService()
    service.run()
