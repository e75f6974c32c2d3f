"""
Tests for the subgraph session context and mutation extension.
"""

import json
from typing import Optional

import pytest
import strawberry
from fastapi import FastAPI
from fastapi.testclient import TestClient
from strawberry.fastapi import GraphQLRouter
from strawberry.types import Info

from shared.errors import EncodeError
from shared.metrics import MetricsCollector
from shared.session_codec import MUTATION_HEADER, SESSION_HEADER, decode_mutation
from shared.session_context import (
    MutationChannel,
    SessionContext,
    build_context_getter,
    mutation_extension,
    session_from_headers,
)


class TestMutationChannel:
    """Test cases for MutationChannel."""

    def test_nothing_staged(self):
        assert MutationChannel().proposal() is None

    def test_later_stage_wins_within_one_call(self):
        channel = MutationChannel()
        channel.stage({"locale": "en"})
        channel.stage({"locale": "fr"})

        assert channel.proposal().updates == {"locale": "fr"}

    def test_deletion_cancels_update_and_vice_versa(self):
        channel = MutationChannel()
        channel.stage({"auth": {"customerId": "c1"}, "cart": {}})
        channel.stage_deletion("auth")
        channel.stage_deletion("cart")
        channel.stage({"cart": {"items": []}})

        proposal = channel.proposal()
        assert proposal.to_wire()["set"] == {"cart": {"items": []}}
        assert proposal.deletions == frozenset({"auth"})

    def test_unencodable_values_rejected_when_staged(self):
        channel = MutationChannel()

        with pytest.raises(EncodeError):
            channel.stage({"when": object()})
        with pytest.raises(EncodeError):
            channel.stage(["not", "a", "mapping"])

    def test_discard(self):
        channel = MutationChannel()
        channel.stage({"a": 1})
        channel.discard()

        assert channel.proposal() is None


class TestSessionContext:
    """Test cases for SessionContext."""

    def test_session_is_read_only(self):
        context = SessionContext({"cart": {"items": []}})

        with pytest.raises(TypeError):
            context.session["cart"] = None
        assert context.get("missing", "default") == "default"

    def test_view_reflects_staged_changes(self):
        context = SessionContext({"locale": "en", "auth": {"customerId": "c1"}})
        context.propose_mutation({"locale": "fr"})
        context.propose_deletion("auth")

        assert context.view("locale") == "fr"
        assert context.view("auth") is None
        assert context.get("locale") == "en"


class TestSessionFromHeaders:
    """Test cases for reading the propagated session."""

    def test_missing_header_gives_empty_session(self):
        assert session_from_headers({}) == {}

    def test_valid_header(self):
        assert session_from_headers({SESSION_HEADER: '{"a":1}'}) == {"a": 1}

    def test_malformed_header_counts_failure(self):
        metrics = MetricsCollector("orders")

        assert session_from_headers({SESSION_HEADER: "{oops"}, metrics=metrics) == {}
        assert metrics.registry.get_sample_value("session_decode_failures_total") == 1.0

    def test_deeply_nested_header_gives_empty_session(self):
        metrics = MetricsCollector("orders")
        deep = '{"a":' + "[" * 2000 + "]" * 2000 + "}"

        assert session_from_headers({SESSION_HEADER: deep}, metrics=metrics) == {}
        assert metrics.registry.get_sample_value("session_decode_failures_total") == 1.0


@strawberry.type
class Query:
    @strawberry.field
    def locale(self, info: Info) -> Optional[str]:
        return info.context.get("locale")

    @strawberry.field
    def cookie(self, info: Info) -> Optional[str]:
        return info.context.cookie


@strawberry.type
class Mutation:
    @strawberry.mutation
    def set_locale(self, info: Info, locale: str) -> str:
        info.context.propose_mutation({"locale": locale})
        return locale

    @strawberry.mutation
    def set_locale_then_fail(self, info: Info, locale: str) -> str:
        info.context.propose_mutation({"locale": locale})
        raise ValueError("downstream failure")

    @strawberry.mutation
    def stash_huge(self, info: Info) -> bool:
        info.context.propose_mutation({"blob": "x" * 500})
        return True


class TestSessionMutationExtension:
    """Test cases for emitting mutations from a Strawberry subgraph."""

    @pytest.fixture
    def client(self):
        metrics = MetricsCollector("content")
        schema = strawberry.Schema(
            query=Query,
            mutation=Mutation,
            extensions=[mutation_extension(max_bytes=256, metrics=metrics)],
        )
        app = FastAPI()
        app.include_router(
            GraphQLRouter(schema, context_getter=build_context_getter(max_bytes=256, metrics=metrics)),
            prefix="/graphql",
        )
        app.state.metrics = metrics
        return TestClient(app)

    def test_reads_propagated_session_and_cookie(self, client):
        response = client.post(
            "/graphql",
            json={"query": "{ locale cookie }"},
            headers={SESSION_HEADER: '{"locale":"de"}', "cookie": "sid=s%3Aabc.sig"},
        )

        assert response.status_code == 200
        assert response.json()["data"] == {"locale": "de", "cookie": "sid=s%3Aabc.sig"}
        assert MUTATION_HEADER not in response.headers

    def test_successful_mutation_emits_header(self, client):
        response = client.post("/graphql", json={"query": 'mutation { setLocale(locale: "fr") }'})

        assert response.status_code == 200
        proposal = decode_mutation(response.headers[MUTATION_HEADER])
        assert proposal.updates == {"locale": "fr"}
        assert client.app.state.metrics.registry.get_sample_value("session_mutations_emitted_total") == 1.0

    def test_failed_operation_emits_nothing(self, client):
        response = client.post("/graphql", json={"query": 'mutation { setLocaleThenFail(locale: "fr") }'})

        assert response.json()["errors"][0]["message"] == "downstream failure"
        assert MUTATION_HEADER not in response.headers

    def test_unencodable_mutation_fails_the_call(self, client):
        response = client.post("/graphql", json={"query": "mutation { stashHuge }"})

        assert response.status_code == 500
        assert MUTATION_HEADER not in response.headers

    def test_mutation_is_compact_json(self, client):
        response = client.post("/graphql", json={"query": 'mutation { setLocale(locale: "en") }'})

        assert json.loads(response.headers[MUTATION_HEADER]) == {"set": {"locale": "en"}, "unset": []}
