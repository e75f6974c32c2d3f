"""
Unit tests for session stores, cookie signing and session loading.
"""

from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from redis.exceptions import ConnectionError as RedisConnectionError

from service_gateway.app.session.cookies import SessionCookieSigner
from service_gateway.app.session.manager import SessionManager
from service_gateway.app.session.store import (
    InMemorySessionStore,
    RedisSessionStore,
    create_session_store,
)
from shared.errors import SessionStoreError
from shared.retry import RetryConfig
from shared.test_helpers import test_environment


class TestInMemorySessionStore:
    """Test cases for InMemorySessionStore."""

    @pytest.mark.asyncio
    async def test_save_and_load(self):
        store = InMemorySessionStore()
        await store.save("s1", {"cart": {"items": []}})

        assert "s1" in store
        assert await store.load("s1") == {"cart": {"items": []}}
        assert await store.load("missing") is None

    @pytest.mark.asyncio
    async def test_loaded_sessions_are_independent_copies(self):
        store = InMemorySessionStore()
        await store.save("s1", {"items": [1]})

        loaded = await store.load("s1")
        loaded["items"].append(2)

        assert await store.load("s1") == {"items": [1]}

    @pytest.mark.asyncio
    async def test_unserializable_session_rejected(self):
        with pytest.raises(SessionStoreError):
            await InMemorySessionStore().save("s1", {"bad": object()})


class TestRedisSessionStore:
    """Test cases for RedisSessionStore."""

    @pytest.fixture
    def redis_client(self):
        client = MagicMock()
        client.get = AsyncMock(return_value=None)
        client.set = AsyncMock(return_value=True)
        client.ping = AsyncMock(return_value=True)
        client.aclose = AsyncMock()
        return client

    @pytest.fixture
    def store(self, redis_client):
        store = RedisSessionStore(
            "redis://localhost:6379/0",
            key_prefix="sess:",
            ttl_seconds=60,
            retry_config=RetryConfig(max_attempts=2, base_delay=0, jitter=False),
        )
        store._redis = redis_client
        return store

    @pytest.mark.asyncio
    async def test_save_writes_json_with_ttl(self, store, redis_client):
        await store.save("abc", {"b": 1, "a": [True]})

        redis_client.set.assert_awaited_once_with("sess:abc", '{"b": 1, "a": [true]}', ex=60)

    @pytest.mark.asyncio
    async def test_load(self, store, redis_client):
        redis_client.get.return_value = '{"locale": "fr"}'

        assert await store.load("abc") == {"locale": "fr"}
        redis_client.get.assert_awaited_once_with("sess:abc")

    @pytest.mark.asyncio
    @pytest.mark.parametrize("raw", ["{corrupt", "[1, 2]", '{"a":' + "[" * 5000 + "]" * 5000 + "}"])
    async def test_corrupt_session_treated_as_absent(self, store, redis_client, raw):
        redis_client.get.return_value = raw

        assert await store.load("abc") is None

    @pytest.mark.asyncio
    async def test_transient_errors_are_retried(self, store, redis_client):
        redis_client.set.side_effect = [RedisConnectionError("reset"), True]

        with patch("shared.retry.asyncio.sleep", new_callable=AsyncMock):
            await store.save("abc", {"a": 1})

        assert redis_client.set.await_count == 2

    @pytest.mark.asyncio
    async def test_exhausted_retries_raise_store_error(self, store, redis_client):
        redis_client.get.side_effect = RedisConnectionError("down")

        with patch("shared.retry.asyncio.sleep", new_callable=AsyncMock):
            with pytest.raises(SessionStoreError) as exc_info:
                await store.load("abc")

        assert exc_info.value.details == {"operation": "load"}
        assert redis_client.get.await_count == 2

    @pytest.mark.asyncio
    async def test_ping_and_close(self, store, redis_client):
        redis_client.ping.side_effect = RedisConnectionError("down")

        assert await store.ping() is False
        await store.close()
        redis_client.aclose.assert_awaited_once()

    def test_factory(self):
        assert isinstance(create_session_store(test_environment.get_config()), InMemorySessionStore)
        assert isinstance(
            create_session_store(test_environment.get_config(session_store="redis")), RedisSessionStore
        )
        with pytest.raises(ValueError):
            create_session_store(test_environment.get_config(session_store="dynamo"))


class TestSessionCookieSigner:
    """Test cases for SessionCookieSigner."""

    @pytest.fixture
    def signer(self):
        return SessionCookieSigner("test-secret")

    def test_round_trip(self, signer):
        assert signer.unsign(signer.sign("abc123")) == "abc123"

    def test_url_encoded_value_accepted(self, signer):
        signed = signer.sign("abc123").replace(":", "%3A")

        assert signer.unsign(signed) == "abc123"

    @pytest.mark.parametrize("value", [None, "", "abc123", "s:abc123", "s:.sig", "s:abc123.forged"])
    def test_invalid_values_rejected(self, signer, value):
        assert signer.unsign(value) is None

    def test_other_secret_rejected(self, signer):
        assert SessionCookieSigner("other").unsign(signer.sign("abc123")) is None

    def test_new_ids_are_unique(self):
        assert SessionCookieSigner.new_session_id() != SessionCookieSigner.new_session_id()

    def test_empty_secret(self):
        with pytest.raises(ValueError):
            SessionCookieSigner("")


class TestSessionManager:
    """Test cases for SessionManager."""

    @pytest.fixture
    def store(self):
        return InMemorySessionStore()

    @pytest.fixture
    def manager(self, store):
        return SessionManager(store, SessionCookieSigner("test-secret"))

    def request_with(self, cookie=None):
        request = MagicMock()
        request.cookies = {"sid": cookie} if cookie else {}
        return request

    @pytest.mark.asyncio
    async def test_known_session_loaded(self, manager, store):
        await store.save("abc", {"locale": "fr"})

        loaded = await manager.load(self.request_with(manager.signer.sign("abc")))

        assert loaded.session_id == "abc"
        assert loaded.data == {"locale": "fr"}
        assert not loaded.is_new

    @pytest.mark.asyncio
    async def test_unknown_session_starts_fresh(self, manager):
        loaded = await manager.load(self.request_with(manager.signer.sign("expired")))

        assert loaded.is_new
        assert loaded.session_id != "expired"
        assert loaded.data == {}

    @pytest.mark.asyncio
    async def test_tampered_cookie_starts_fresh(self, manager, store):
        await store.save("abc", {"auth": {"customerId": "c1"}})

        loaded = await manager.load(self.request_with("s:abc.forged"))

        assert loaded.is_new
        assert loaded.data == {}

    @pytest.mark.asyncio
    async def test_store_failure_propagates(self, manager, store):
        store.load = AsyncMock(side_effect=SessionStoreError())

        with pytest.raises(SessionStoreError):
            await manager.load(self.request_with(manager.signer.sign("abc")))
