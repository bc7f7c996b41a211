"""State store backends shared by every order service.

``StateManager`` talks to Redis. ``MemoryStateManager`` keeps the same async
interface in-process for tests and single-node development runs.
"""

import asyncio
import json
import time
from typing import Any, Callable

import redis.asyncio as redis

from comanda.config import get_settings
from comanda.utils.logging import get_logger

logger = get_logger(__name__)

# Writes the field pairs only if the guard field still holds the expected
# value; companion keys (KEYS[2..]) are set in the same step.
CONDITIONAL_HSET_SCRIPT = """
local current = redis.call('HGET', KEYS[1], ARGV[1])
if current ~= ARGV[2] then
    return 0
end
local pairs_count = tonumber(ARGV[3])
for i = 4, 3 + pairs_count * 2, 2 do
    redis.call('HSET', KEYS[1], ARGV[i], ARGV[i + 1])
end
for k = 2, #KEYS do
    redis.call('SET', KEYS[k], ARGV[2 + pairs_count * 2 + k])
end
return 1
"""

# Deletes every key only if the guard field of KEYS[1] holds the expected value.
CONDITIONAL_DELETE_SCRIPT = """
local current = redis.call('HGET', KEYS[1], ARGV[1])
if current ~= ARGV[2] then
    return 0
end
redis.call('DEL', unpack(KEYS))
return 1
"""


def encode(value: Any) -> str:
    """Serialize a value for storage."""
    return json.dumps(value)


def decode(value: Any) -> Any:
    """Deserialize a stored value, falling back to the raw string."""
    if value is None:
        return None
    try:
        return json.loads(value)
    except (json.JSONDecodeError, TypeError):
        return value


class StateManager:
    """Centralized state management using Redis."""

    def __init__(self, redis_url: str | None = None) -> None:
        settings = get_settings()
        self.redis_client: redis.Redis | None = None
        self.redis_url = redis_url or settings.redis_url
        self._conditional_hset = None
        self._conditional_delete = None

    async def connect(self) -> None:
        """Establish Redis connection."""
        if self.redis_client is None:
            self.redis_client = redis.from_url(
                self.redis_url,
                encoding="utf-8",
                decode_responses=True,
            )
            self._conditional_hset = self.redis_client.register_script(
                CONDITIONAL_HSET_SCRIPT
            )
            self._conditional_delete = self.redis_client.register_script(
                CONDITIONAL_DELETE_SCRIPT
            )
            logger.info("redis_connected", url=self.redis_url)

    async def disconnect(self) -> None:
        """Close Redis connection."""
        if self.redis_client:
            await self.redis_client.aclose()
            self.redis_client = None
            self._conditional_hset = None
            self._conditional_delete = None
            logger.info("redis_disconnected")

    async def ping(self) -> bool:
        if not self.redis_client:
            await self.connect()

        return bool(await self.redis_client.ping())

    async def set(
        self,
        key: str,
        value: Any,
        ttl: int | None = None,
        nx: bool = False,
    ) -> bool:
        """Set a JSON value with optional TTL. With ``nx`` only if absent."""
        if not self.redis_client:
            await self.connect()

        written = await self.redis_client.set(key, encode(value), ex=ttl, nx=nx)

        logger.debug("state_set", key=key, ttl=ttl, nx=nx, written=bool(written))
        return bool(written)

    async def get(self, key: str) -> Any:
        """Get a value from Redis."""
        if not self.redis_client:
            await self.connect()

        return decode(await self.redis_client.get(key))

    async def delete(self, *keys: str) -> int:
        """Delete keys from Redis."""
        if not self.redis_client:
            await self.connect()

        removed = await self.redis_client.delete(*keys)
        logger.debug("state_deleted", keys=list(keys), removed=removed)
        return removed

    async def exists(self, key: str) -> bool:
        """Check if a key exists."""
        if not self.redis_client:
            await self.connect()

        return bool(await self.redis_client.exists(key))

    async def hset_many(self, key: str, mapping: dict[str, Any]) -> None:
        """Set several hash fields at once."""
        if not self.redis_client:
            await self.connect()

        await self.redis_client.hset(
            key, mapping={field: encode(value) for field, value in mapping.items()}
        )

    async def hgetall(self, key: str) -> dict[str, Any]:
        """Get all hash fields."""
        if not self.redis_client:
            await self.connect()

        data = await self.redis_client.hgetall(key)
        return {field: decode(value) for field, value in data.items()}

    async def conditional_hset(
        self,
        key: str,
        guard_field: str,
        expected: Any,
        mapping: dict[str, Any],
        companions: dict[str, Any] | None = None,
    ) -> bool:
        """
        Update hash fields only if ``guard_field`` still equals ``expected``.

        ``companions`` are plain keys written in the same step. Runs as a
        single server-side script, so concurrent callers cannot both succeed.
        Returns False when the guard did not match (zero rows).
        """
        if not self.redis_client:
            await self.connect()

        keys = [key]
        args: list[str] = [guard_field, encode(expected), str(len(mapping))]
        for field, value in mapping.items():
            args.extend([field, encode(value)])
        for companion_key, companion_value in (companions or {}).items():
            keys.append(companion_key)
            args.append(encode(companion_value))

        applied = await self._conditional_hset(keys=keys, args=args)
        logger.debug("state_conditional_hset", key=key, applied=bool(applied))
        return bool(applied)

    async def conditional_delete(
        self, key: str, guard_field: str, expected: Any, *also: str
    ) -> bool:
        """Delete ``key`` and ``also`` only if ``guard_field`` still equals ``expected``."""
        if not self.redis_client:
            await self.connect()

        applied = await self._conditional_delete(
            keys=[key, *also], args=[guard_field, encode(expected)]
        )
        logger.debug("state_conditional_delete", key=key, applied=bool(applied))
        return bool(applied)

    async def zadd(self, key: str, mapping: dict[str, float]) -> None:
        """Add members to a sorted set."""
        if not self.redis_client:
            await self.connect()

        await self.redis_client.zadd(key, mapping)

    async def zrange(
        self,
        key: str,
        start: int = 0,
        end: int = -1,
        desc: bool = False,
    ) -> list[str]:
        """Get members from a sorted set."""
        if not self.redis_client:
            await self.connect()

        return await self.redis_client.zrange(key, start, end, desc=desc)

    async def zrem(self, key: str, *members: str) -> None:
        """Remove members from a sorted set."""
        if not self.redis_client:
            await self.connect()

        await self.redis_client.zrem(key, *members)

    async def rpush(self, key: str, value: Any, ttl: int | None = None) -> None:
        """Append to a list."""
        if not self.redis_client:
            await self.connect()

        await self.redis_client.rpush(key, encode(value))
        if ttl:
            await self.redis_client.expire(key, ttl)

    async def lrange(self, key: str, start: int = 0, end: int = -1) -> list[Any]:
        if not self.redis_client:
            await self.connect()

        return [decode(v) for v in await self.redis_client.lrange(key, start, end)]

    async def publish(self, channel: str, message: Any) -> None:
        """Publish a message to a channel."""
        if not self.redis_client:
            await self.connect()

        await self.redis_client.publish(channel, encode(message))
        logger.debug("message_published", channel=channel)

    async def flush(self) -> None:
        """Remove every key in the current database."""
        if not self.redis_client:
            await self.connect()

        await self.redis_client.flushdb()


class MemoryStateManager:
    """In-process store with the same interface as StateManager."""

    def __init__(self, clock: Callable[[], float] = time.monotonic) -> None:
        self.clock = clock
        self._values: dict[str, str] = {}
        self._hashes: dict[str, dict[str, str]] = {}
        self._zsets: dict[str, dict[str, float]] = {}
        self._lists: dict[str, list[str]] = {}
        self._expiry: dict[str, float] = {}
        self.published: list[tuple[str, Any]] = []

    async def _tick(self) -> None:
        # Yield to the loop like a network round trip would.
        await asyncio.sleep(0)

    def _expire(self, key: str) -> None:
        deadline = self._expiry.get(key)
        if deadline is not None and deadline <= self.clock():
            self._drop(key)

    def _drop(self, key: str) -> bool:
        found = False
        for store in (self._values, self._hashes, self._zsets, self._lists):
            if key in store:
                del store[key]
                found = True
        self._expiry.pop(key, None)
        return found

    def _set_ttl(self, key: str, ttl: int | None) -> None:
        if ttl:
            self._expiry[key] = self.clock() + ttl

    async def connect(self) -> None:
        logger.info("memory_state_ready")

    async def disconnect(self) -> None:
        logger.info("memory_state_closed")

    async def ping(self) -> bool:
        return True

    async def set(
        self,
        key: str,
        value: Any,
        ttl: int | None = None,
        nx: bool = False,
    ) -> bool:
        await self._tick()
        self._expire(key)
        if nx and key in self._values:
            return False
        self._values[key] = encode(value)
        self._expiry.pop(key, None)
        self._set_ttl(key, ttl)
        return True

    async def get(self, key: str) -> Any:
        await self._tick()
        self._expire(key)
        return decode(self._values.get(key))

    async def delete(self, *keys: str) -> int:
        await self._tick()
        return sum(1 for key in keys if self._drop(key))

    async def exists(self, key: str) -> bool:
        await self._tick()
        self._expire(key)
        return any(
            key in store for store in (self._values, self._hashes, self._zsets, self._lists)
        )

    async def hset_many(self, key: str, mapping: dict[str, Any]) -> None:
        await self._tick()
        self._expire(key)
        target = self._hashes.setdefault(key, {})
        target.update({field: encode(value) for field, value in mapping.items()})

    async def hgetall(self, key: str) -> dict[str, Any]:
        await self._tick()
        self._expire(key)
        return {field: decode(value) for field, value in self._hashes.get(key, {}).items()}

    async def conditional_hset(
        self,
        key: str,
        guard_field: str,
        expected: Any,
        mapping: dict[str, Any],
        companions: dict[str, Any] | None = None,
    ) -> bool:
        await self._tick()
        # No awaits below: check and write happen in one step.
        self._expire(key)
        current = self._hashes.get(key, {}).get(guard_field)
        if current != encode(expected):
            return False
        self._hashes[key].update({field: encode(value) for field, value in mapping.items()})
        for companion_key, companion_value in (companions or {}).items():
            self._values[companion_key] = encode(companion_value)
            self._expiry.pop(companion_key, None)
        return True

    async def conditional_delete(
        self, key: str, guard_field: str, expected: Any, *also: str
    ) -> bool:
        await self._tick()
        self._expire(key)
        if self._hashes.get(key, {}).get(guard_field) != encode(expected):
            return False
        for target in (key, *also):
            self._drop(target)
        return True

    async def zadd(self, key: str, mapping: dict[str, float]) -> None:
        await self._tick()
        self._zsets.setdefault(key, {}).update(mapping)

    async def zrange(
        self,
        key: str,
        start: int = 0,
        end: int = -1,
        desc: bool = False,
    ) -> list[str]:
        await self._tick()
        members = sorted(
            self._zsets.get(key, {}).items(), key=lambda item: (item[1], item[0]), reverse=desc
        )
        names = [member for member, _ in members]
        return names[start:] if end == -1 else names[start : end + 1]

    async def zrem(self, key: str, *members: str) -> None:
        await self._tick()
        zset = self._zsets.get(key, {})
        for member in members:
            zset.pop(member, None)

    async def rpush(self, key: str, value: Any, ttl: int | None = None) -> None:
        await self._tick()
        self._expire(key)
        self._lists.setdefault(key, []).append(encode(value))
        self._set_ttl(key, ttl)

    async def lrange(self, key: str, start: int = 0, end: int = -1) -> list[Any]:
        await self._tick()
        self._expire(key)
        values = self._lists.get(key, [])
        selected = values[start:] if end == -1 else values[start : end + 1]
        return [decode(v) for v in selected]

    async def publish(self, channel: str, message: Any) -> None:
        await self._tick()
        self.published.append((channel, message))

    async def flush(self) -> None:
        self._values.clear()
        self._hashes.clear()
        self._zsets.clear()
        self._lists.clear()
        self._expiry.clear()


StateBackend = StateManager | MemoryStateManager

# Global state manager instance
_state_manager: StateBackend | None = None


async def get_state_manager() -> StateBackend:
    """Get the global state manager instance."""
    global _state_manager
    if _state_manager is None:
        settings = get_settings()
        if settings.state_backend == "memory":
            _state_manager = MemoryStateManager()
        else:
            _state_manager = StateManager()
        await _state_manager.connect()
    return _state_manager


async def close_state_manager() -> None:
    """Disconnect and forget the global state manager."""
    global _state_manager
    if _state_manager is not None:
        await _state_manager.disconnect()
        _state_manager = None
