"""Shared Redis connection management.

One ``RedisConnection`` owns a connection pool and is injected into both the
Redis event store and the Redis queue transport so they share sockets.
"""

import asyncio
from typing import Any
from urllib.parse import urlparse, urlunparse

from redis.asyncio import ConnectionPool, Redis

from menuvo_worker.core.logging import get_logger

logger = get_logger("redis")


def sanitize_url(url: str) -> str:
    """Mask password in Redis URL for logging."""
    try:
        parsed = urlparse(url)
        if parsed.password:
            netloc = f"{parsed.username or ''}:****@{parsed.hostname}"
            if parsed.port:
                netloc += f":{parsed.port}"
            return urlunparse(
                (parsed.scheme, netloc, parsed.path, parsed.params, parsed.query, parsed.fragment)
            )
        return f"{parsed.hostname}:{parsed.port or 6379}"
    except Exception:
        return "<url>"


class RedisConnection:
    """Lazily connected, self-healing Redis client holder."""

    def __init__(self, redis_url: str, pool_size: int = 10) -> None:
        """Initialize the connection holder.

        Args:
            redis_url: Redis connection URL.
            pool_size: Connection pool size.
        """
        self._url = redis_url
        self._url_safe = sanitize_url(redis_url)
        self._pool_size = pool_size
        self._redis: Redis | None = None
        self._connected = False  # Explicit connection state flag
        self._conn_lock = asyncio.Lock()  # Protects connection creation
        self.reconnections = 0

    @property
    def redis_url(self) -> str:
        return self._url

    @property
    def safe_url(self) -> str:
        return self._url_safe

    async def get_client(self) -> Redis:
        """Get Redis client with connection pooling.

        All connection state changes are protected by _conn_lock to prevent
        races and resource leaks.
        """
        # Fast path: if we have a connection, try to use it
        if self._redis is not None:
            try:
                await self._redis.ping()
                return self._redis
            except Exception as e:
                logger.warning(f"Redis connection lost: {e}, reconnecting...")

        async with self._conn_lock:
            # Re-check after acquiring lock - another coroutine may have reconnected
            if self._redis is not None:
                try:
                    await self._redis.ping()
                    return self._redis
                except Exception:
                    pass

            old_redis = self._redis
            if old_redis is not None:
                try:
                    await old_redis.aclose()
                except Exception as close_err:
                    logger.debug(f"Error closing old connection: {close_err}")

            is_reconnection = self._connected

            pool = ConnectionPool.from_url(
                self._url, max_connections=self._pool_size, decode_responses=True
            )
            new_redis = Redis(connection_pool=pool)

            # Verify new connection works before committing
            try:
                await new_redis.ping()
            except Exception:
                try:
                    await new_redis.aclose()
                except Exception as close_err:
                    logger.debug(f"Error closing failed connection: {close_err}")
                raise

            self._redis = new_redis
            self._connected = True
            if is_reconnection:
                self.reconnections += 1
                logger.info(f"Reconnected to Redis at {self._url_safe}")
            else:
                logger.info(f"Connected to Redis at {self._url_safe}")

            return self._redis

    async def close(self) -> None:
        """Close Redis connection."""
        if self._redis is not None:
            await self._redis.aclose()
            self._redis = None
            logger.info("Closed Redis connection")


def as_connection(connection: "RedisConnection | str", **kwargs: Any) -> RedisConnection:
    """Accept either a shared connection or a URL."""
    if isinstance(connection, RedisConnection):
        return connection
    return RedisConnection(connection, **kwargs)
