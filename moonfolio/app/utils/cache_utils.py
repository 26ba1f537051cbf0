"""
Named TTL caches (cachetools).

Used for lookups that are expensive upstream and stable for minutes,
e.g. ENS name -> address resolution. Entries expire on their own; tests
reset everything with clear_all_caches().
"""
import structlog
from cachetools import TTLCache

logger = structlog.get_logger(__name__)

_cache_registry: dict[str, TTLCache] = {}


def get_ttl_cache(name: str, maxsize: int = 1000, ttl: int = 3600) -> TTLCache:
    """
    Get or create a named TTL cache.

    The first call fixes maxsize/ttl for the name; later calls return the
    same instance whatever they pass.

    Example:
        cache = get_ttl_cache('ens_resolution', maxsize=512, ttl=600)
        cache['vitalik.eth'] = identity
    """
    if name not in _cache_registry:
        logger.info("Creating new TTL cache", cache_name=name, maxsize=maxsize, ttl_seconds=ttl)
        _cache_registry[name] = TTLCache(maxsize=maxsize, ttl=ttl)
    return _cache_registry[name]


def clear_cache(name: str) -> bool:
    """Empty one named cache; False when it does not exist."""
    cache = _cache_registry.get(name)
    if cache is None:
        return False
    cache.clear()
    logger.info("Cache cleared", cache_name=name)
    return True


def clear_all_caches() -> int:
    """Empty every registered cache and return how many there were."""
    for cache in _cache_registry.values():
        cache.clear()
    return len(_cache_registry)
