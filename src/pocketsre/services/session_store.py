import json
import logging
from typing import Dict, Protocol

from ..errors import StorageError
from ..models import SessionState
from ..settings import get_settings
from .redis import RedisCrudService, get_redis_crud_service

logger = logging.getLogger(__name__)

SESSION_KEY_PREFIX = "session:"


class SessionStore(Protocol):
    """Durable single-slot storage for one session's state."""

    async def get(self, session_id: str) -> SessionState | None: ...

    async def put(self, session_id: str, state: SessionState) -> None: ...


class InMemorySessionStore:
    """Process-local store; state is lost on restart."""

    def __init__(self) -> None:
        self._data: Dict[str, str] = {}

    async def get(self, session_id: str) -> SessionState | None:
        raw = self._data.get(session_id)
        if raw is None:
            return None
        return SessionState.from_dict(json.loads(raw))

    async def put(self, session_id: str, state: SessionState) -> None:
        # Stored serialized so callers never share mutable state with the store.
        self._data[session_id] = json.dumps(state.to_dict())


class RedisSessionStore:
    """Keeps each session's state as one JSON value in Redis."""

    def __init__(self, redis_crud: RedisCrudService, ttl_seconds: int = 0) -> None:
        self._redis = redis_crud
        self._ttl = ttl_seconds

    def _key(self, session_id: str) -> str:
        return f"{SESSION_KEY_PREFIX}{session_id}"

    async def get(self, session_id: str) -> SessionState | None:
        """Load state for session_id. Returns None if missing or undecodable."""
        raw = await self._redis.get(self._key(session_id))
        if raw is None:
            return None
        try:
            data = json.loads(raw)
            return SessionState.from_dict(data)
        except (json.JSONDecodeError, AttributeError, TypeError, ValueError) as e:
            logger.warning("Invalid session data for %s: %s", session_id, e)
            return None

    async def put(self, session_id: str, state: SessionState) -> None:
        """Persist state for session_id (last writer wins)."""
        try:
            payload = json.dumps(state.to_dict())
        except (TypeError, ValueError) as e:
            raise StorageError(f"Session serialization failed: {e}") from e
        await self._redis.set(self._key(session_id), payload, ttl_seconds=self._ttl)


# Lazy singleton, connected at startup
_store_instance: SessionStore | None = None
_redis_crud: RedisCrudService | None = None


async def get_session_store_async() -> SessionStore:
    """Return the session store, preferring Redis when configured and reachable. Cached."""
    global _store_instance, _redis_crud
    if _store_instance is not None:
        return _store_instance

    redis_crud = get_redis_crud_service()
    if redis_crud is not None:
        try:
            await redis_crud.connect()
            _redis_crud = redis_crud
            _store_instance = RedisSessionStore(
                redis_crud=redis_crud,
                ttl_seconds=get_settings().session_ttl_seconds,
            )
            return _store_instance
        except StorageError as e:
            logger.warning("Session store unavailable (Redis), using memory: %s", e)

    _store_instance = InMemorySessionStore()
    return _store_instance


async def close_session_store() -> None:
    """Close the Redis connection used by the session store. Idempotent."""
    global _store_instance, _redis_crud
    if _redis_crud is not None:
        await _redis_crud.close()
        _redis_crud = None
        logger.debug("Session store (Redis) closed")
    _store_instance = None
