"""
Attribute store adapters: in-memory and Redis.
"""

from .memory import InMemoryAttributeStore
from .redis_store import RedisAttributeStore

__all__ = ["InMemoryAttributeStore", "RedisAttributeStore"]
