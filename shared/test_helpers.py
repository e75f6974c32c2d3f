"""
Test helper functions and factory methods for the federation services.
"""

import json
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Mapping, Optional, Union

import httpx

from shared.config import ServiceConfig, get_config
from shared.session_codec import MUTATION_HEADER, encode_mutation
from shared.session_models import MutationProposal


@dataclass
class TestSession:
    """A stored session and the id it lives under."""
    session_id: str
    data: Dict[str, Any] = field(default_factory=dict)


class SessionDataFactory:
    """Factory for session payloads used across tests."""

    @staticmethod
    def create_cart(*items: tuple) -> Dict[str, Any]:
        """``create_cart(("1", 2), ("3", 1))`` -> cart session value."""
        return {
            "items": [
                {"productId": product_id, "quantity": quantity}
                for product_id, quantity in items
            ]
        }

    @staticmethod
    def create_auth_claims(customer_id: str = "cust-1") -> Dict[str, Any]:
        return {
            "customerId": customer_id,
            "email": f"{customer_id}@example.com",
            "name": "Test Customer",
        }

    @staticmethod
    def create_shopper_session(session_id: str = "sess-shopper") -> TestSession:
        """A signed-in shopper with one cart item and a locale preference."""
        return TestSession(
            session_id=session_id,
            data={
                "auth": SessionDataFactory.create_auth_claims(),
                "cart": SessionDataFactory.create_cart(("1", 1)),
                "preferences": {"locale": "en"},
                "recentlyViewed": ["2"],
            },
        )


def graphql_response(data: Optional[Dict[str, Any]] = None,
                     errors: Optional[List[Dict[str, Any]]] = None,
                     mutation: Optional[MutationProposal] = None,
                     status_code: int = 200,
                     raw_mutation: Optional[str] = None) -> httpx.Response:
    """Build the HTTP response a subgraph would send."""
    payload: Dict[str, Any] = {"data": data}
    if errors:
        payload["errors"] = errors
    headers = {"content-type": "application/json"}
    if mutation is not None:
        headers[MUTATION_HEADER] = encode_mutation(mutation)
    elif raw_mutation is not None:
        headers[MUTATION_HEADER] = raw_mutation
    return httpx.Response(status_code, content=json.dumps(payload).encode(), headers=headers)


Handler = Callable[[httpx.Request], Union[httpx.Response, Exception]]


class SubgraphStub:
    """Scripted subgraphs behind one ``httpx.MockTransport``.

    Responses are registered per host; every request is recorded so tests
    can inspect the propagated headers.
    """

    def __init__(self):
        self.handlers: Dict[str, Handler] = {}
        self.requests: List[httpx.Request] = []

    def respond(self, host: str, response: Union[httpx.Response, Exception, Handler]) -> None:
        if callable(response) and not isinstance(response, (httpx.Response, Exception)):
            self.handlers[host] = response
        else:
            self.handlers[host] = lambda request: response

    def requests_to(self, host: str) -> List[httpx.Request]:
        return [request for request in self.requests if request.url.host == host]

    def _handle(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        handler = self.handlers.get(request.url.host)
        if handler is None:
            return httpx.Response(404, json={"errors": [{"message": "no stub"}]})
        result = handler(request)
        if isinstance(result, Exception):
            raise result
        return result

    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self._handle)

    def client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(transport=self.transport())


class ASGIRoutingTransport(httpx.AsyncBaseTransport):
    """Route requests by host to in-process ASGI applications."""

    def __init__(self, apps: Mapping[str, Any]):
        self._transports = {host: httpx.ASGITransport(app=app) for host, app in apps.items()}

    async def handle_async_request(self, request: httpx.Request) -> httpx.Response:
        transport = self._transports.get(request.url.host)
        if transport is None:
            raise httpx.ConnectError(f"No route to {request.url.host}", request=request)
        return await transport.handle_async_request(request)


class TestEnvironment:
    """Test environment configuration."""

    @staticmethod
    def get_mock_config() -> Dict[str, Any]:
        """Get mock environment configuration."""
        return {
            "FEDERATION_ENV": "test",
            "FEDERATION_LOG_LEVEL": "debug",
            "FEDERATION_SESSION_STORE": "memory",
            "FEDERATION_SESSION_SECRET": "test-secret",
            "FEDERATION_ENABLE_TRACING": "false",
        }

    @staticmethod
    def get_service_urls() -> Dict[str, str]:
        """Subgraph URLs resolved by ``ASGIRoutingTransport`` or ``SubgraphStub``."""
        return {
            "products_url": "http://products/graphql",
            "customers_url": "http://customers/graphql",
            "content_url": "http://content/graphql",
            "orders_url": "http://orders/graphql",
        }

    @staticmethod
    def get_config(service_name: str = "gateway", port: int = 4000, **overrides) -> ServiceConfig:
        settings: Dict[str, Any] = {
            "env": "test",
            "log_level": "debug",
            "session_store": "memory",
            "session_secret": "test-secret",
            "enable_tracing": False,
            **TestEnvironment.get_service_urls(),
        }
        settings.update(overrides)
        return get_config(service_name, port, **settings)


# Global instances for easy access
session_data_factory = SessionDataFactory()
test_environment = TestEnvironment()
