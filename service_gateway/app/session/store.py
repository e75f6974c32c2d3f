"""
Session store adapters.

The gateway needs only ``load`` and ``save`` from persistence. Writes are
single-key and rely on the store's own per-key atomicity; two concurrent
requests for one session id are not sequenced here (last save wins).
"""

import asyncio
import json
from abc import ABC, abstractmethod
from typing import Any, Dict, Mapping, Optional

import redis.asyncio as redis
from redis.exceptions import RedisError

from shared.config import BaseConfig
from shared.errors import EncodeError, SessionStoreError
from shared.logging import get_logger
from shared.retry import RetryConfig, RetryError, retry_on_exception
from shared.session_codec import to_jsonable
from shared.session_models import SessionData


class SessionStore(ABC):
    """Durable key-value store keyed by session id."""

    @abstractmethod
    async def load(self, session_id: str) -> Optional[SessionData]:
        """Return the session, or None when it does not exist."""

    @abstractmethod
    async def save(self, session_id: str, data: Mapping[str, Any]) -> None:
        """Persist the full session; raises ``SessionStoreError`` on failure."""

    async def ping(self) -> bool:
        return True

    async def close(self) -> None:
        return None


class InMemorySessionStore(SessionStore):
    """Process-local store for local runs and tests."""

    def __init__(self):
        self._sessions: Dict[str, str] = {}
        self._lock = asyncio.Lock()
        self.logger = get_logger("gateway.session_store.memory")

    async def load(self, session_id: str) -> Optional[SessionData]:
        raw = self._sessions.get(session_id)
        return json.loads(raw) if raw is not None else None

    async def save(self, session_id: str, data: Mapping[str, Any]) -> None:
        try:
            raw = json.dumps(to_jsonable(data))
        except EncodeError as exc:
            raise SessionStoreError("Session is not serializable", details=exc.details) from exc
        async with self._lock:
            self._sessions[session_id] = raw

    def __contains__(self, session_id: str) -> bool:
        return session_id in self._sessions


class RedisSessionStore(SessionStore):
    """Redis-backed store; each session is one JSON string with a TTL."""

    def __init__(self, redis_url: str, key_prefix: str = "sess:", ttl_seconds: int = 86400,
                 retry_config: Optional[RetryConfig] = None):
        self.redis_url = redis_url
        self.key_prefix = key_prefix
        self.ttl_seconds = ttl_seconds
        self.retry_config = retry_config or RetryConfig(max_attempts=2)
        self.logger = get_logger("gateway.session_store.redis")
        self._redis: Optional[redis.Redis] = None

    def _key(self, session_id: str) -> str:
        return f"{self.key_prefix}{session_id}"

    async def _get_redis(self) -> redis.Redis:
        if self._redis is None:
            self._redis = redis.from_url(
                self.redis_url,
                encoding="utf-8",
                decode_responses=True,
                socket_connect_timeout=5,
                socket_timeout=5,
            )
        return self._redis

    @retry_on_exception((RedisError, OSError), config_attr="retry_config")
    async def _get(self, key: str) -> Optional[str]:
        client = await self._get_redis()
        return await client.get(key)

    @retry_on_exception((RedisError, OSError), config_attr="retry_config")
    async def _set(self, key: str, value: str) -> None:
        client = await self._get_redis()
        await client.set(key, value, ex=self.ttl_seconds)

    async def load(self, session_id: str) -> Optional[SessionData]:
        try:
            raw = await self._get(self._key(session_id))
        except RetryError as exc:
            self.logger.error("Session load failed", error=str(exc.last_exception))
            raise SessionStoreError("Session store unavailable", details={"operation": "load"}) from exc

        if raw is None:
            return None
        try:
            data = json.loads(raw)
        except (ValueError, RecursionError):
            self.logger.warning("Stored session is corrupt, treating as absent")
            return None
        if not isinstance(data, dict):
            self.logger.warning("Stored session is not an object, treating as absent")
            return None
        return data

    async def save(self, session_id: str, data: Mapping[str, Any]) -> None:
        try:
            raw = json.dumps(to_jsonable(data))
        except EncodeError as exc:
            raise SessionStoreError("Session is not serializable", details=exc.details) from exc
        try:
            await self._set(self._key(session_id), raw)
        except RetryError as exc:
            self.logger.error("Session save failed", error=str(exc.last_exception))
            raise SessionStoreError("Session store unavailable", details={"operation": "save"}) from exc

    async def ping(self) -> bool:
        try:
            client = await self._get_redis()
            return bool(await client.ping())
        except (RedisError, OSError) as exc:
            self.logger.warning("Session store ping failed", error=str(exc))
            return False

    async def close(self) -> None:
        if self._redis is not None:
            await self._redis.aclose()
            self._redis = None


def create_session_store(config: BaseConfig) -> SessionStore:
    """Build the store adapter selected by ``session_store``."""
    if config.session_store == "memory":
        return InMemorySessionStore()
    if config.session_store == "redis":
        return RedisSessionStore(
            config.redis_url,
            key_prefix=config.session_key_prefix,
            ttl_seconds=config.session_ttl_seconds,
            retry_config=RetryConfig(max_attempts=max(1, config.session_store_retry_attempts)),
        )
    raise ValueError(f"Unknown session store: {config.session_store}")
