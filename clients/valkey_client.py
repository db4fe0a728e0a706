"""
Valkey (Redis-compatible) client for persisted session state.

Thin wrapper around redis-py storing JSON documents under a namespace.
Fail-fast: raises on connection failure, never returns fallback values.
"""

import json
import logging

import redis

logger = logging.getLogger(__name__)


class ValkeyClient:
    """
    Redis-compatible JSON document client for Valkey.

    Usage:
        client = ValkeyClient("redis://localhost:6379/0", namespace="identity")
        client.set_json("session:current", {"a": 1}, expire_seconds=300)
        value = client.get_json("session:current")  # None if missing or expired
    """

    def __init__(self, url: str, namespace: str = "identity"):
        """
        Initialize Valkey connection.

        Args:
            url: Redis-compatible connection URL (e.g., redis://localhost:6379/0)
            namespace: Prefix applied to every key this client touches

        Raises:
            redis.ConnectionError: If connection fails
        """
        self._client = redis.from_url(url, decode_responses=True)
        self._namespace = namespace
        # Verify connectivity immediately (fail-fast)
        self._client.ping()
        logger.info("ValkeyClient connected (namespace=%s)", namespace)

    def _key(self, key: str) -> str:
        return f"{self._namespace}:{key}" if self._namespace else key

    def ping(self) -> bool:
        """
        Health check.

        Returns True if Valkey responds.
        Raises redis.ConnectionError if unreachable.
        """
        self._client.ping()
        return True

    def set_json(self, key: str, value: dict | list, expire_seconds: int) -> None:
        """
        Store a JSON document that expires after ``expire_seconds``.

        Raises:
            ValueError: If expire_seconds is not positive.
        """
        if expire_seconds < 1:
            raise ValueError("expire_seconds must be positive")
        self._client.setex(self._key(key), expire_seconds, json.dumps(value))

    def get_json(self, key: str) -> dict | list | None:
        """
        Get and deserialize a JSON document.

        Returns None if key doesn't exist.
        Raises ValueError if value is not valid JSON.
        """
        value = self._client.get(self._key(key))
        if value is None:
            return None
        try:
            return json.loads(value)
        except json.JSONDecodeError as e:
            raise ValueError(f"Invalid JSON in key '{key}': {e}")

    def delete(self, key: str) -> bool:
        """
        Delete key.

        Returns True if key existed and was deleted, False if key didn't exist.
        """
        return self._client.delete(self._key(key)) > 0

    def close(self) -> None:
        """Close the connection."""
        self._client.close()
        logger.info("ValkeyClient closed")
