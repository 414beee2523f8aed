"""In-memory stand-ins for the async Redis client used by the storage tests."""
import re
from typing import Any, Dict, List, Optional


def _glob_to_regex(pattern: str) -> "re.Pattern[str]":
    out = []
    i = 0
    while i < len(pattern):
        ch = pattern[i]
        if ch == "\\" and i + 1 < len(pattern):
            out.append(re.escape(pattern[i + 1]))
            i += 2
            continue
        if ch == "*":
            out.append(".*")
        elif ch == "?":
            out.append(".")
        else:
            out.append(re.escape(ch))
        i += 1
    return re.compile("^" + "".join(out) + "$", re.DOTALL)


class InMemoryRedis:
    """Covers the subset of redis.asyncio.Redis (decode_responses=True) the adapters call."""

    def __init__(self):
        self.store: Dict[str, Any] = {}
        self.calls: List[str] = []
        self.closed = False

    def _record(self, name: str) -> None:
        self.calls.append(name)

    async def get(self, key: str) -> Optional[str]:
        self._record("get")
        value = self.store.get(key)
        return value if isinstance(value, str) else None

    async def set(self, key: str, value: str) -> bool:
        self._record("set")
        self.store[key] = str(value)
        return True

    async def mget(self, keys, *args) -> List[Optional[str]]:
        self._record("mget")
        names = list(keys) + list(args)
        return [self.store.get(k) if isinstance(self.store.get(k), str) else None for k in names]

    async def delete(self, *keys: str) -> int:
        self._record("delete")
        removed = 0
        for key in keys:
            if self.store.pop(key, None) is not None:
                removed += 1
        return removed

    async def exists(self, *keys: str) -> int:
        self._record("exists")
        return sum(1 for key in keys if key in self.store)

    async def lrange(self, key: str, start: int, end: int) -> List[str]:
        self._record("lrange")
        items = self.store.get(key, [])
        stop = end + 1 if end >= 0 else len(items) + end + 1
        return list(items[start:stop])

    async def lrem(self, key: str, count: int, value: str) -> int:
        self._record("lrem")
        items = self.store.get(key, [])
        kept = [item for item in items if item != value]
        removed = len(items) - len(kept)
        self._store_list(key, kept)
        return removed

    async def lpush(self, key: str, *values: str) -> int:
        self._record("lpush")
        items = list(self.store.get(key, []))
        for value in values:
            items.insert(0, str(value))
        self._store_list(key, items)
        return len(items)

    async def ltrim(self, key: str, start: int, end: int) -> bool:
        self._record("ltrim")
        items = self.store.get(key, [])
        stop = end + 1 if end >= 0 else len(items) + end + 1
        self._store_list(key, items[start:stop])
        return True

    def _store_list(self, key: str, items: List[str]) -> None:
        if items:
            self.store[key] = items
        else:
            self.store.pop(key, None)

    async def sadd(self, key: str, *members: str) -> int:
        self._record("sadd")
        current = self.store.setdefault(key, set())
        before = len(current)
        current.update(str(m) for m in members)
        return len(current) - before

    async def srem(self, key: str, *members: str) -> int:
        self._record("srem")
        current = self.store.get(key, set())
        before = len(current)
        current.difference_update(members)
        if not current:
            self.store.pop(key, None)
        return before - len(current)

    async def smembers(self, key: str) -> set:
        self._record("smembers")
        return set(self.store.get(key, set()))

    async def scan_iter(self, match: Optional[str] = None, count: Optional[int] = None):
        self._record("scan")
        regex = _glob_to_regex(match) if match else None
        for key in list(self.store):
            if regex is None or regex.match(key):
                yield key

    async def aclose(self) -> None:
        self.closed = True


class FlakyRedis(InMemoryRedis):
    """InMemoryRedis whose named commands raise `error` for the first N calls."""

    def __init__(self, failures: Dict[str, int], error: Exception):
        super().__init__()
        self.failures = dict(failures)
        self.error = error

    def _record(self, name: str) -> None:
        super()._record(name)
        if self.failures.get(name, 0) > 0:
            self.failures[name] -= 1
            raise self.error
