"""
Orders subgraph service.
"""

from typing import Any, Dict, List, Mapping, Optional

import strawberry
from strawberry.types import Info

from shared.config import ServiceConfig
from shared.subgraph_service import DeploymentInfo, SubgraphService, deployment_info

CART_KEY = "cart"
MAX_QUANTITY = 99


@strawberry.type
class CartItem:
    product_id: strawberry.ID
    quantity: int


@strawberry.type
class Cart:
    items: List[CartItem]

    @strawberry.field
    def total_quantity(self) -> int:
        return sum(item.quantity for item in self.items)


def read_cart(raw: Any) -> List[Dict[str, Any]]:
    """Normalize the stored cart into ``[{"productId", "quantity"}]``."""
    if not isinstance(raw, Mapping):
        return []
    items = []
    for entry in raw.get("items") or ():
        if not isinstance(entry, Mapping):
            continue
        product_id = entry.get("productId")
        quantity = entry.get("quantity")
        if isinstance(product_id, str) and isinstance(quantity, int) and quantity > 0:
            items.append({"productId": product_id, "quantity": quantity})
    return items


def to_cart(items: List[Dict[str, Any]]) -> Cart:
    return Cart(items=[
        CartItem(product_id=strawberry.ID(item["productId"]), quantity=item["quantity"])
        for item in items
    ])


@strawberry.type
class Query:
    @strawberry.field
    def cart(self, info: Info) -> Cart:
        return to_cart(read_cart(info.context.get(CART_KEY)))

    @strawberry.field
    def deployment_info_orders(self, info: Info) -> DeploymentInfo:
        return deployment_info("orders", info.context.request.app.state.subgraph_service.config.env)


@strawberry.type
class Mutation:
    @strawberry.mutation
    def add_to_cart(self, info: Info, product_id: strawberry.ID, quantity: int = 1) -> Cart:
        if quantity < 1:
            raise ValueError("quantity must be at least 1")

        items = read_cart(info.context.view(CART_KEY))
        for item in items:
            if item["productId"] == product_id:
                item["quantity"] = min(item["quantity"] + quantity, MAX_QUANTITY)
                break
        else:
            items.append({"productId": str(product_id), "quantity": min(quantity, MAX_QUANTITY)})

        info.context.propose_mutation({CART_KEY: {"items": items}})
        return to_cart(items)

    @strawberry.mutation
    def clear_cart(self, info: Info) -> Cart:
        info.context.propose_deletion(CART_KEY)
        return Cart(items=[])


class OrdersService(SubgraphService):
    """Orders subgraph service implementation."""

    def __init__(self, config: Optional[ServiceConfig] = None):
        super().__init__("orders", 4004, Query, Mutation, config=config)

        @self.app.get("/")
        async def root():
            """Root endpoint."""
            return {
                "service": "orders",
                "message": "Orders subgraph",
                "version": "1.0.0"
            }


def create_app(config: Optional[ServiceConfig] = None):
    """Create FastAPI application."""
    service = OrdersService(config)
    return service.app


if __name__ == "__main__":
    service = OrdersService()
    service.run()
