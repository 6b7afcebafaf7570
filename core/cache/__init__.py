from core.cache.plan_storage import PlanStorage, probe_available_space, strip_images
from core.cache.stores import KeyValueStore, MemoryStore, RedisStore, build_stores

__all__ = [
    "KeyValueStore",
    "MemoryStore",
    "PlanStorage",
    "RedisStore",
    "build_stores",
    "probe_available_space",
    "strip_images",
]
