"""Time-bound key-value stores for issued hashed codes."""

import time
from typing import Callable, Dict, Optional, Tuple

import redis.asyncio as redis
from redis.exceptions import ConnectionError as RedisConnectionError
from redis.exceptions import RedisError
from redis.exceptions import TimeoutError as RedisTimeoutError


class StoreError(Exception):
    """Base class for store failures surfaced to callers."""


class StoreUnavailable(StoreError):
    """The store could not be reached."""


class StoreTimeout(StoreError):
    """The store did not answer within its client timeout."""


class TimeBoundStore:
    """Key-value store where every key carries its own expiration.

    Subclasses implement connect, set, get and close. Used as an async
    context manager the store is connected on entry and always closed on exit.
    """

    async def connect(self):
        raise NotImplementedError

    async def set(self, key: str, value: str, ttl_seconds: int):
        """Write value under key, expiring ttl_seconds after this call."""
        raise NotImplementedError

    async def get(self, key: str) -> Optional[str]:
        raise NotImplementedError

    async def close(self):
        raise NotImplementedError

    async def __aenter__(self):
        await self.connect()
        return self

    async def __aexit__(self, exc_type, exc, tb):
        await self.close()


class RedisStore(TimeBoundStore):
    """Redis-backed store using SET with EX."""

    def __init__(self, host: str = 'localhost', port: int = 6379, db: int = 0,
                 password: Optional[str] = None, socket_timeout: Optional[float] = 5.0):
        self.host = host
        self.port = port
        self.db = db
        self.password = password or None
        self.socket_timeout = socket_timeout
        self._redis: Optional[redis.Redis] = None

    def _client(self) -> redis.Redis:
        if self._redis is None:
            self._redis = redis.Redis(
                host=self.host,
                port=self.port,
                db=self.db,
                password=self.password,
                socket_timeout=self.socket_timeout,
                socket_connect_timeout=self.socket_timeout,
                decode_responses=True,
                encoding_errors="surrogatepass"
            )
        return self._redis

    async def connect(self):
        """Open the connection pool and check the server answers PING."""
        try:
            await self._client().ping()
        except RedisError as e:
            raise StoreUnavailable(f"cannot reach redis at {self.host}:{self.port}: {e}") from e

    async def set(self, key: str, value: str, ttl_seconds: int):
        try:
            await self._client().set(key, value, ex=ttl_seconds)
        except RedisTimeoutError as e:
            raise StoreTimeout(f"redis timeout: {e}") from e
        except RedisConnectionError as e:
            raise StoreUnavailable(f"redis unavailable: {e}") from e
        except RedisError as e:
            raise StoreError(f"redis error: {e}") from e

    async def get(self, key: str) -> Optional[str]:
        try:
            return await self._client().get(key)
        except RedisTimeoutError as e:
            raise StoreTimeout(f"redis timeout: {e}") from e
        except RedisConnectionError as e:
            raise StoreUnavailable(f"redis unavailable: {e}") from e
        except RedisError as e:
            raise StoreError(f"redis error: {e}") from e

    async def close(self):
        if self._redis is not None:
            await self._redis.aclose()
            self._redis = None


class MemoryStore(TimeBoundStore):
    """In-process store with lazy per-key expiration.

    The clock is injectable so expiry can be checked without sleeping.
    """

    def __init__(self, clock: Callable[[], float] = time.time):
        self.clock = clock
        self.entries: Dict[str, Tuple[str, float]] = {}
        self.closed = False

    async def connect(self):
        self.closed = False

    async def set(self, key: str, value: str, ttl_seconds: int):
        if self.closed:
            raise StoreUnavailable("memory store is closed")
        self.entries[key] = (value, self.clock() + ttl_seconds)

    async def get(self, key: str) -> Optional[str]:
        if self.closed:
            raise StoreUnavailable("memory store is closed")
        self._cleanup_expired(self.clock())
        entry = self.entries.get(key)
        return entry[0] if entry else None

    async def close(self):
        self.closed = True

    def _cleanup_expired(self, current_time: float):
        """Remove expired entries."""
        expired = [
            key for key, (_, expires_at) in self.entries.items()
            if current_time >= expires_at
        ]
        for key in expired:
            del self.entries[key]
