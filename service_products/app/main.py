"""
Products subgraph service.
"""

from typing import Any, Dict, List, Optional

import strawberry
from strawberry.types import Info

from shared.config import ServiceConfig
from shared.subgraph_service import DeploymentInfo, SubgraphService, deployment_info

RECENTLY_VIEWED_KEY = "recentlyViewed"
RECENTLY_VIEWED_LIMIT = 5


@strawberry.federation.type(keys=["id"])
class Product:
    id: strawberry.ID
    title: str
    price: float

    @classmethod
    def resolve_reference(cls, id: strawberry.ID) -> Optional["Product"]:
        return PRODUCTS.get(str(id))


PRODUCTS: Dict[str, Product] = {
    "1": Product(id=strawberry.ID("1"), title="Test Product", price=19.99),
    "2": Product(id=strawberry.ID("2"), title="Another Product", price=5.0),
    "3": Product(id=strawberry.ID("3"), title="Gift Card", price=25.0),
}


def viewed_ids(raw: Any) -> List[str]:
    if not isinstance(raw, (list, tuple)):
        return []
    return [value for value in raw if isinstance(value, str)]


@strawberry.type
class Query:
    @strawberry.field
    def products(self) -> List[Product]:
        return list(PRODUCTS.values())

    @strawberry.field
    def product(self, id: strawberry.ID) -> Optional[Product]:
        return PRODUCTS.get(str(id))

    @strawberry.field
    def recently_viewed(self, info: Info) -> List[Product]:
        ids = viewed_ids(info.context.get(RECENTLY_VIEWED_KEY))
        return [PRODUCTS[product_id] for product_id in ids if product_id in PRODUCTS]

    @strawberry.field
    def deployment_info_products(self, info: Info) -> DeploymentInfo:
        return deployment_info("products", info.context.request.app.state.subgraph_service.config.env)


@strawberry.type
class Mutation:
    @strawberry.mutation
    def view_product(self, info: Info, id: strawberry.ID) -> Product:
        product = PRODUCTS.get(str(id))
        if product is None:
            raise ValueError(f"Unknown product: {id}")

        ids = viewed_ids(info.context.view(RECENTLY_VIEWED_KEY))
        ids = [str(id)] + [product_id for product_id in ids if product_id != str(id)]
        info.context.propose_mutation({RECENTLY_VIEWED_KEY: ids[:RECENTLY_VIEWED_LIMIT]})
        return product


class ProductsService(SubgraphService):
    """Products subgraph service implementation."""

    def __init__(self, config: Optional[ServiceConfig] = None):
        super().__init__("products", 4001, Query, Mutation, types=[Product], config=config)

        @self.app.get("/")
        async def root():
            """Root endpoint."""
            return {
                "service": "products",
                "message": "Products subgraph",
                "version": "1.0.0"
            }


def create_app(config: Optional[ServiceConfig] = None):
    """Create FastAPI application."""
    service = ProductsService(config)
    return service.app


if __name__ == "__main__":
    service = ProductsService()
    service.run()
