from .ttl_cache import CacheEntry, TTLCache
from .ttl_config import TTL, chart_ttl_name

__all__ = ["CacheEntry", "TTLCache", "TTL", "chart_ttl_name"]
