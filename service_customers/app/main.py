"""
Customers subgraph service.
"""

from typing import Any, Dict, List, Mapping, Optional

import strawberry
from strawberry.types import Info

from shared.config import ServiceConfig
from shared.logging import get_logger
from shared.subgraph_service import SubgraphService

AUTH_KEY = "auth"

logger = get_logger("customers.resolvers")


@strawberry.federation.type(keys=["id"])
class Identity:
    id: strawberry.ID
    title: str

    @classmethod
    def resolve_reference(cls, id: strawberry.ID) -> Optional["Identity"]:
        return IDENTITIES.get(str(id))


IDENTITIES: Dict[str, Identity] = {
    "1": Identity(id=strawberry.ID("1"), title="Test Identity"),
    "2": Identity(id=strawberry.ID("2"), title="Another Identity"),
}


@strawberry.federation.type(keys=["id"])
class Customer:
    id: strawberry.ID
    email: Optional[str] = None
    name: Optional[str] = None


def customer_from_claims(claims: Any) -> Optional[Customer]:
    """Build the signed-in customer from session auth claims, if any."""
    if not isinstance(claims, Mapping):
        return None
    customer_id = claims.get("customerId")
    if not isinstance(customer_id, str) or not customer_id:
        return None
    return Customer(
        id=strawberry.ID(customer_id),
        email=claims.get("email"),
        name=claims.get("name"),
    )


@strawberry.type
class Query:
    @strawberry.field
    def identities(self) -> List[Identity]:
        return list(IDENTITIES.values())

    @strawberry.field
    def me(self, info: Info) -> Optional[Customer]:
        return customer_from_claims(info.context.get(AUTH_KEY))


@strawberry.type
class Mutation:
    @strawberry.mutation
    def sign_out(self, info: Info) -> bool:
        """Returns whether a customer was signed in."""
        signed_in = customer_from_claims(info.context.view(AUTH_KEY)) is not None
        info.context.propose_deletion(AUTH_KEY)
        if signed_in:
            logger.info("Customer signed out")
        return signed_in


class CustomersService(SubgraphService):
    """Customers subgraph service implementation."""

    def __init__(self, config: Optional[ServiceConfig] = None):
        super().__init__("customers", 4002, Query, Mutation, types=[Identity, Customer], config=config)

        @self.app.get("/")
        async def root():
            """Root endpoint."""
            return {
                "service": "customers",
                "message": "Customers subgraph",
                "version": "1.0.0"
            }


def create_app(config: Optional[ServiceConfig] = None):
    """Create FastAPI application."""
    service = CustomersService(config)
    return service.app


if __name__ == "__main__":
    service = CustomersService()
    service.run()
