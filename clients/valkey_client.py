"""
Valkey (Redis-compatible) client for the job queue, carts, rate limits and sweep locks.

Simple wrapper around redis-py. Connection URL from Vault.
Fail-fast: raises on connection failure, never returns fallback values.
"""

import json
import logging

import redis

logger = logging.getLogger(__name__)


class ValkeyClient:
    """
    Redis-compatible client for Valkey.

    Usage:
        client = ValkeyClient("redis://localhost:6379/0")
        client.set("key", "value", expire_seconds=300)
        value = client.get("key")  # Returns None if missing
    """

    def __init__(self, url: str):
        """
        Initialize Valkey connection.

        Args:
            url: Redis-compatible connection URL (e.g., redis://localhost:6379/0)

        Raises:
            redis.ConnectionError: If connection fails
        """
        self._client = redis.from_url(url, decode_responses=True)
        # Verify connectivity immediately (fail-fast)
        self._client.ping()
        logger.info("ValkeyClient connected")

    @classmethod
    def from_redis(cls, client: redis.Redis) -> "ValkeyClient":
        """
        Wrap an already-constructed redis client.

        The client must be created with decode_responses=True.
        """
        instance = cls.__new__(cls)
        instance._client = client
        instance._client.ping()
        return instance

    def ping(self) -> bool:
        """
        Health check.

        Returns True if Valkey responds.
        Raises redis.ConnectionError if unreachable.
        """
        self._client.ping()
        return True

    def get(self, key: str) -> str | None:
        """
        Get value by key.

        Returns None if key doesn't exist (not an error).
        Raises on connection failure.
        """
        return self._client.get(key)

    def set(self, key: str, value: str, expire_seconds: int | None = None) -> None:
        """
        Set key to value, optionally with expiration.

        Args:
            key: Key to set
            value: Value to store
            expire_seconds: TTL in seconds (None for no expiration)
        """
        if expire_seconds is not None:
            self._client.setex(key, expire_seconds, value)
        else:
            self._client.set(key, value)

    def set_if_absent(self, key: str, value: str, expire_seconds: int | None = None) -> bool:
        """
        Set key only if it does not exist (SET NX).

        Returns True if the key was set, False if it already existed.
        """
        return bool(self._client.set(key, value, nx=True, ex=expire_seconds))

    def delete(self, key: str) -> bool:
        """
        Delete key.

        Returns True if key existed and was deleted, False if key didn't exist.
        """
        return self._client.delete(key) > 0

    def delete_if_equals(self, key: str, expected: str) -> bool:
        """
        Delete key only while it still holds `expected`.

        Uses WATCH/MULTI so a concurrent overwrite between the read and the
        delete aborts the delete. Returns True if the key was deleted.
        """
        with self._client.pipeline() as pipe:
            try:
                pipe.watch(key)
                if pipe.get(key) != expected:
                    pipe.unwatch()
                    return False
                pipe.multi()
                pipe.delete(key)
                pipe.execute()
                return True
            except redis.WatchError:
                return False

    def exists(self, key: str) -> bool:
        """Check if key exists."""
        return self._client.exists(key) > 0

    def ttl(self, key: str) -> int:
        """
        Get remaining TTL in seconds.

        Returns:
            -2 if key doesn't exist
            -1 if key has no expiration
            Positive int: remaining seconds
        """
        return self._client.ttl(key)

    def expire(self, key: str, seconds: int) -> bool:
        """Set TTL on an existing key. Returns False if the key doesn't exist."""
        return bool(self._client.expire(key, seconds))

    def incr(self, key: str) -> int:
        """
        Increment key by 1.

        Creates key with value 1 if it doesn't exist.
        Returns the new value.
        """
        return self._client.incr(key)

    # Sorted sets

    def zadd(self, key: str, member: str, score: float) -> None:
        """Add member with score, replacing the score if already present."""
        self._client.zadd(key, {member: score})

    def zrem(self, key: str, member: str) -> bool:
        """
        Remove member.

        Returns True only for the caller that actually removed it, which makes
        ZREM usable as an atomic claim between competing consumers.
        """
        return self._client.zrem(key, member) > 0

    def zrange_by_score(
        self,
        key: str,
        min_score: float | str,
        max_score: float | str,
        limit: int | None = None,
    ) -> list[str]:
        """Members with min_score <= score <= max_score, lowest score first."""
        if limit is None:
            return self._client.zrangebyscore(key, min_score, max_score)
        return self._client.zrangebyscore(key, min_score, max_score, start=0, num=limit)

    def zscore(self, key: str, member: str) -> float | None:
        """Score of member, None if absent."""
        return self._client.zscore(key, member)

    def zcard(self, key: str) -> int:
        """Number of members in the sorted set."""
        return self._client.zcard(key)

    def zrem_range_by_score(self, key: str, min_score: float | str, max_score: float | str) -> int:
        """Remove members with min_score <= score <= max_score. Returns how many."""
        return self._client.zremrangebyscore(key, min_score, max_score)

    def sliding_window_add(self, key: str, member: str, now: float, window_seconds: int) -> int:
        """
        Record `member` at time `now` in a rolling window and return the window size.

        Entries older than `now - window_seconds` are discarded in the same
        MULTI block, so the returned count covers exactly the last window.
        """
        with self._client.pipeline(transaction=True) as pipe:
            pipe.zremrangebyscore(key, "-inf", now - window_seconds)
            pipe.zadd(key, {member: now})
            pipe.zcard(key)
            pipe.expire(key, window_seconds)
            _, _, count, _ = pipe.execute()
        return count

    # JSON helpers

    def set_json(self, key: str, value: dict | list, expire_seconds: int | None = None) -> None:
        """
        Set key to JSON-serialized value.

        Args:
            key: Key to set
            value: Dict or list to serialize
            expire_seconds: TTL in seconds (None for no expiration)
        """
        json_str = json.dumps(value)
        self.set(key, json_str, expire_seconds)

    def get_json(self, key: str) -> dict | list | None:
        """
        Get and deserialize JSON value.

        Returns None if key doesn't exist.
        Raises ValueError if value is not valid JSON.
        """
        value = self.get(key)
        if value is None:
            return None
        try:
            return json.loads(value)
        except json.JSONDecodeError as e:
            raise ValueError(f"Invalid JSON in key '{key}': {e}")

    def close(self) -> None:
        """Close the connection."""
        self._client.close()
        logger.info("ValkeyClient closed")
