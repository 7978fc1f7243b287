"""Time-bounded cache for fetched datasets backing the paginated views."""

from typing import Any, Callable, Optional

from cachelib import SimpleCache

from config import DATASET_CACHE_TTL_SECONDS, logger


class DatasetCache:
    """
    Keeps whole datasets for ``ttl_seconds`` after they were fetched.

    Backed by cachelib's ``SimpleCache``, the in-process store behind flask-caching's
    ``SimpleCache`` type. The cache is owned by whoever builds it (one per service
    instance); nothing is shared through module state. A ``ttl_seconds`` of 0 never expires.
    """

    def __init__(self, ttl_seconds: int = DATASET_CACHE_TTL_SECONDS, threshold: int = 50) -> None:
        self._ttl_seconds = ttl_seconds
        self._cache = SimpleCache(threshold=threshold, default_timeout=ttl_seconds)

    @property
    def ttl_seconds(self) -> int:
        return self._ttl_seconds

    def get(self, name: str) -> Optional[Any]:
        return self._cache.get(name)

    def put(self, name: str, value: Any) -> None:
        self._cache.set(name, value)

    def invalidate(self, name: Optional[str] = None) -> None:
        if name is None:
            self._cache.clear()
        else:
            self._cache.delete(name)

    def get_or_load(self, name: str, loader: Callable[[], Any]) -> Any:
        """Return the cached dataset, calling ``loader`` when it is missing or stale."""
        cached = self.get(name)
        if cached is not None:
            logger.info("Using cached dataset", dataset=name)
            return cached

        logger.info("Fetching fresh dataset", dataset=name, ttl_seconds=self._ttl_seconds)
        value = loader()
        self.put(name, value)
        return value
