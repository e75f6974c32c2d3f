"""
Tests for the orders subgraph.
"""

import pytest
from fastapi.testclient import TestClient

from service_orders.app.main import MAX_QUANTITY, create_app, read_cart
from shared.session_codec import MUTATION_HEADER, SESSION_HEADER, decode_mutation, encode
from shared.test_helpers import session_data_factory, test_environment

CART_QUERY = "{ cart { totalQuantity items { productId quantity } } }"


@pytest.fixture
def client():
    """Create test client."""
    app = create_app(test_environment.get_config("orders", 4004))
    return TestClient(app)


def with_session(data):
    return {SESSION_HEADER: encode(data)}


def test_root_endpoint(client):
    response = client.get("/")
    assert response.status_code == 200
    assert response.json()["service"] == "orders"


def test_health_check(client):
    response = client.get("/health")
    assert response.status_code == 200
    assert response.json()["status"] == "ok"


def test_cart_read_from_session(client):
    session = {"cart": session_data_factory.create_cart(("1", 2), ("3", 1))}

    response = client.post("/graphql", json={"query": CART_QUERY}, headers=with_session(session))

    assert response.json()["data"]["cart"] == {
        "totalQuantity": 3,
        "items": [{"productId": "1", "quantity": 2}, {"productId": "3", "quantity": 1}],
    }
    assert MUTATION_HEADER not in response.headers


def test_empty_cart_without_session(client):
    response = client.post("/graphql", json={"query": CART_QUERY})

    assert response.json()["data"]["cart"] == {"totalQuantity": 0, "items": []}


def test_malformed_session_header_means_empty_cart(client):
    response = client.post("/graphql", json={"query": CART_QUERY}, headers={SESSION_HEADER: "{broken"})

    assert response.status_code == 200
    assert response.json()["data"]["cart"]["items"] == []


def test_add_to_cart_proposes_new_cart(client):
    session = {"cart": session_data_factory.create_cart(("1", 1)), "auth": {"customerId": "c1"}}

    response = client.post(
        "/graphql",
        json={"query": 'mutation { addToCart(productId: "1", quantity: 2) { totalQuantity } }'},
        headers=with_session(session),
    )

    assert response.json()["data"]["addToCart"]["totalQuantity"] == 3
    proposal = decode_mutation(response.headers[MUTATION_HEADER])
    assert set(proposal.keys) == {"cart"}
    assert read_cart(proposal.updates["cart"]) == [{"productId": "1", "quantity": 3}]


def test_repeated_adds_in_one_call_accumulate(client):
    response = client.post("/graphql", json={"query": """
        mutation {
          a: addToCart(productId: "1") { totalQuantity }
          b: addToCart(productId: "2", quantity: 4) { totalQuantity }
        }
    """})

    assert response.json()["data"]["b"]["totalQuantity"] == 5
    proposal = decode_mutation(response.headers[MUTATION_HEADER])
    assert read_cart(proposal.updates["cart"]) == [
        {"productId": "1", "quantity": 1},
        {"productId": "2", "quantity": 4},
    ]


def test_quantity_is_capped(client):
    response = client.post(
        "/graphql",
        json={"query": f'mutation {{ addToCart(productId: "1", quantity: {MAX_QUANTITY + 5}) {{ totalQuantity }} }}'},
    )

    assert response.json()["data"]["addToCart"]["totalQuantity"] == MAX_QUANTITY


def test_invalid_quantity_proposes_nothing(client):
    response = client.post(
        "/graphql",
        json={"query": 'mutation { addToCart(productId: "1", quantity: 0) { totalQuantity } }'},
    )

    assert response.json()["errors"][0]["message"] == "quantity must be at least 1"
    assert MUTATION_HEADER not in response.headers


def test_clear_cart_tombstones_key(client):
    session = {"cart": session_data_factory.create_cart(("1", 1))}

    response = client.post(
        "/graphql",
        json={"query": "mutation { clearCart { totalQuantity } }"},
        headers=with_session(session),
    )

    proposal = decode_mutation(response.headers[MUTATION_HEADER])
    assert proposal.deletions == frozenset({"cart"})
    assert proposal.updates == {}


def test_deployment_info(client):
    response = client.post("/graphql", json={"query": "{ deploymentInfoOrders { version environment } }"})

    assert response.json()["data"]["deploymentInfoOrders"] == {"version": "1.0.0", "environment": "test"}


def test_read_cart_ignores_malformed_entries():
    raw = {"items": [{"productId": "1", "quantity": 2}, {"productId": 5}, "junk", {"productId": "2", "quantity": 0}]}

    assert read_cart(raw) == [{"productId": "1", "quantity": 2}]
    assert read_cart(None) == []
