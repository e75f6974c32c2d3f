"""
Tests for the customers subgraph.
"""

import pytest
from fastapi.testclient import TestClient

from service_customers.app.main import create_app, customer_from_claims
from shared.session_codec import MUTATION_HEADER, SESSION_HEADER, decode_mutation, encode
from shared.test_helpers import session_data_factory, test_environment


@pytest.fixture
def client():
    """Create test client."""
    app = create_app(test_environment.get_config("customers", 4002))
    return TestClient(app)


def signed_in():
    return {SESSION_HEADER: encode({"auth": session_data_factory.create_auth_claims("cust-9")})}


def test_identities(client):
    response = client.post("/graphql", json={"query": "{ identities { id title } }"})

    assert response.json()["data"]["identities"][0] == {"id": "1", "title": "Test Identity"}


def test_me_from_session_claims(client):
    response = client.post("/graphql", json={"query": "{ me { id email } }"}, headers=signed_in())

    assert response.json()["data"]["me"] == {"id": "cust-9", "email": "cust-9@example.com"}
    assert MUTATION_HEADER not in response.headers


def test_me_is_null_when_anonymous(client):
    response = client.post("/graphql", json={"query": "{ me { id } }"})

    assert response.json()["data"]["me"] is None


def test_sign_out_tombstones_auth(client):
    response = client.post("/graphql", json={"query": "mutation { signOut }"}, headers=signed_in())

    assert response.json()["data"]["signOut"] is True
    proposal = decode_mutation(response.headers[MUTATION_HEADER])
    assert proposal.deletions == frozenset({"auth"})
    assert proposal.updates == {}


def test_sign_out_when_anonymous(client):
    response = client.post("/graphql", json={"query": "mutation { signOut }"})

    assert response.json()["data"]["signOut"] is False
    assert decode_mutation(response.headers[MUTATION_HEADER]).deletions == frozenset({"auth"})


@pytest.mark.parametrize("claims", [None, "token", {}, {"customerId": ""}, {"customerId": 7}])
def test_invalid_claims_mean_anonymous(claims):
    assert customer_from_claims(claims) is None
