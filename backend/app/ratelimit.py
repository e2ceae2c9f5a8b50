import threading
import time
import uuid
from collections import deque
from typing import Callable, Deque, Dict, Protocol

import redis


class RateLimiter(Protocol):
    def limit(self, identifier: str) -> bool: ...


# KEYS[1] bucket; ARGV: now_ms, window_ms, capacity, member
SLIDING_WINDOW_SCRIPT = """
local key = KEYS[1]
local now = tonumber(ARGV[1])
local window = tonumber(ARGV[2])
local capacity = tonumber(ARGV[3])
redis.call('ZREMRANGEBYSCORE', key, 0, now - window)
if redis.call('ZCARD', key) >= capacity then
  return 0
end
redis.call('ZADD', key, now, ARGV[4])
redis.call('PEXPIRE', key, window)
return 1
"""


class RedisSlidingWindowLimiter:
    """Sliding-window limiter whose state lives entirely in Redis.

    Each bucket is a sorted set of request ids scored by arrival time in ms.
    Trimming, counting and recording run in one Lua script, so a rejected
    request never occupies a slot, even briefly.
    """

    def __init__(
        self,
        client: "redis.Redis",
        requests: int = 10,
        window_seconds: float = 10.0,
        prefix: str = "ratelimit",
    ):
        self.client = client
        self.requests = requests
        self.window_ms = int(window_seconds * 1000)
        self.prefix = prefix
        self._script = client.register_script(SLIDING_WINDOW_SCRIPT)

    @classmethod
    def from_url(cls, url: str, **kwargs) -> "RedisSlidingWindowLimiter":
        return cls(redis.Redis.from_url(url), **kwargs)

    def limit(self, identifier: str) -> bool:
        key = f"{self.prefix}:{identifier}"
        now_ms = int(time.time() * 1000)
        member = f"{now_ms}-{uuid.uuid4().hex}"
        allowed = self._script(keys=[key], args=[now_ms, self.window_ms, self.requests, member])
        return int(allowed) == 1


class MemorySlidingWindowLimiter:
    """Per-process limiter used when no Redis is configured (development)."""

    def __init__(
        self,
        requests: int = 10,
        window_seconds: float = 10.0,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.requests = requests
        self.window_seconds = window_seconds
        self.clock = clock
        self._hits: Dict[str, Deque[float]] = {}
        self._lock = threading.Lock()

    def limit(self, identifier: str) -> bool:
        now = self.clock()
        with self._lock:
            hits = self._hits.setdefault(identifier, deque())
            while hits and hits[0] <= now - self.window_seconds:
                hits.popleft()
            if len(hits) >= self.requests:
                return False
            hits.append(now)
            return True
