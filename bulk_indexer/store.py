from __future__ import annotations

import logging
from collections import deque
from threading import Lock
from typing import Iterable, Protocol

import redis

logger = logging.getLogger(__name__)


class SetStore(Protocol):
    def sadd(self, key: str, member: str) -> int: ...

    def srem(self, key: str, member: str) -> int: ...

    def scard(self, key: str) -> int: ...

    def delete(self, key: str) -> None: ...


class ListStore(Protocol):
    def lpush(self, key: str, values: Iterable[str]) -> int: ...

    def rpop(self, key: str, count: int) -> list[str]: ...

    def llen(self, key: str) -> int: ...

    def delete(self, key: str) -> None: ...


class MemoryStore:
    """Process-local store with the same atomic primitives as the Redis one."""

    def __init__(self) -> None:
        self._sets: dict[str, set[str]] = {}
        self._lists: dict[str, deque[str]] = {}
        self._lock = Lock()

    def sadd(self, key: str, member: str) -> int:
        with self._lock:
            members = self._sets.setdefault(key, set())
            if member in members:
                return 0
            members.add(member)
            return 1

    def srem(self, key: str, member: str) -> int:
        with self._lock:
            members = self._sets.get(key)
            if not members or member not in members:
                return 0
            members.discard(member)
            return 1

    def scard(self, key: str) -> int:
        with self._lock:
            return len(self._sets.get(key, ()))

    def lpush(self, key: str, values: Iterable[str]) -> int:
        with self._lock:
            items = self._lists.setdefault(key, deque())
            for value in values:
                items.appendleft(value)
            return len(items)

    def rpop(self, key: str, count: int) -> list[str]:
        with self._lock:
            items = self._lists.get(key)
            popped: list[str] = []
            while items and len(popped) < count:
                popped.append(items.pop())
            return popped

    def llen(self, key: str) -> int:
        with self._lock:
            return len(self._lists.get(key, ()))

    def delete(self, key: str) -> None:
        with self._lock:
            self._sets.pop(key, None)
            self._lists.pop(key, None)


class RedisStore:
    def __init__(self, redis_url: str) -> None:
        self._redis = redis.Redis.from_url(redis_url, decode_responses=True)

    def sadd(self, key: str, member: str) -> int:
        return int(self._redis.sadd(key, member))

    def srem(self, key: str, member: str) -> int:
        return int(self._redis.srem(key, member))

    def scard(self, key: str) -> int:
        return int(self._redis.scard(key))

    def lpush(self, key: str, values: Iterable[str]) -> int:
        values = list(values)
        if not values:
            return self.llen(key)
        return int(self._redis.lpush(key, *values))

    def rpop(self, key: str, count: int) -> list[str]:
        popped = self._redis.rpop(key, count)
        return list(popped or [])

    def llen(self, key: str) -> int:
        return int(self._redis.llen(key))

    def delete(self, key: str) -> None:
        self._redis.delete(key)


def build_store(redis_url: str | None) -> MemoryStore | RedisStore:
    if redis_url:
        return RedisStore(redis_url)
    logger.warning("REDIS_URL not set; batch tracking and the reindex queue are process-local")
    return MemoryStore()
