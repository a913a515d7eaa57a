"""
Redis-backed attribute store.

Subjects live in hashes at ``<prefix>:subject:<subject_id>`` with fields
``role`` and ``assigned_location``; device pairings live in hashes at
``<prefix>:device:<device_id>`` with field ``mac_address``.
"""

from typing import Dict, Optional

import redis
from redis.exceptions import RedisError, TimeoutError as RedisTimeoutError

from shared.errors import AttributeStoreError, AttributeStoreTimeout
from shared.logging import get_logger

from ..models import DevicePairing, SubjectAttributes


class RedisAttributeStore:
    """Read-only attribute lookups against Redis."""

    def __init__(self, client: redis.Redis, key_prefix: str = "abac"):
        self.redis = client
        self.key_prefix = key_prefix
        self.logger = get_logger("abac.stores.redis")

    @classmethod
    def from_url(cls, redis_url: str, key_prefix: str = "abac", socket_timeout: float = 0.5) -> "RedisAttributeStore":
        """Create a store; ``socket_timeout`` bounds every lookup."""
        client = redis.Redis.from_url(
            redis_url,
            encoding="utf-8",
            decode_responses=True,
            socket_connect_timeout=socket_timeout,
            socket_timeout=socket_timeout,
            retry_on_timeout=False,
            health_check_interval=30
        )
        return cls(client, key_prefix)

    def _subject_key(self, subject_id: str) -> str:
        return f"{self.key_prefix}:subject:{subject_id}"

    def _device_key(self, device_id: str) -> str:
        return f"{self.key_prefix}:device:{device_id}"

    def _hgetall(self, key: str) -> Dict[str, str]:
        try:
            return self.redis.hgetall(key)
        except RedisTimeoutError as e:
            raise AttributeStoreTimeout(details={"key": key}) from e
        except RedisError as e:
            raise AttributeStoreError(str(e), details={"key": key}) from e

    def get_subject_attributes(self, subject_id: str, timeout: Optional[float] = None) -> Optional[SubjectAttributes]:
        data = self._hgetall(self._subject_key(subject_id))
        if not data or not data.get("role"):
            return None
        return SubjectAttributes(role=data["role"], assigned_location=data.get("assigned_location") or None)

    def get_device_pairing(self, device_id: str, timeout: Optional[float] = None) -> Optional[DevicePairing]:
        data = self._hgetall(self._device_key(device_id))
        if not data or not data.get("mac_address"):
            return None
        return DevicePairing(device_id=device_id, mac_address=data["mac_address"])

    def health_check(self) -> bool:
        """Check Redis health."""
        try:
            return bool(self.redis.ping())
        except RedisError as e:
            self.logger.warning("Redis health check failed", error=str(e))
            return False
