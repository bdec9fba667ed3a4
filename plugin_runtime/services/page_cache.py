"""
Rendered Page Cache

Cached renderings of the site's pages, keyed by URL path. Redis is used
when `redis_url` is configured; otherwise (or while Redis is unreachable)
an in-process LRU keeps the cache for a single-worker deployment.

Revalidation only ever deletes from here; the page renderer fills it.
"""

import logging
import time

import redis.asyncio as redis

from plugin_runtime.utils.cache import LRUCache

logger = logging.getLogger(__name__)


class PageCache:
    """
    Page-rendering cache with shell / listing / content-page invalidation.

    Key layout:
        cache:layout:<path>   shared shell (layout) fragments
        cache:page:<path>     full page renderings
    """

    PREFIX_LAYOUT = "cache:layout:"
    PREFIX_PAGE = "cache:page:"

    SHELL_PATH = "/"
    LISTING_PATH = "/blog"
    CONTENT_PREFIX = "/blog/"

    TTL_PAGE = 3600  # 1 hour

    def __init__(self, redis_url: str | None = None, memory: LRUCache | None = None):
        self._redis_url = redis_url
        self._redis: redis.Redis | None = None
        self._enabled = bool(redis_url)
        self._last_connect_attempt: float = 0
        self._memory = memory or LRUCache(max_size=2000)

    # ── Connection ────────────────────────────────────────────────────────────

    async def connect(self) -> None:
        """Establish connection to Redis; on failure fall back to memory."""
        if self._redis is not None or not self._redis_url:
            return

        self._last_connect_attempt = time.time()
        try:
            self._redis = redis.Redis.from_url(self._redis_url, decode_responses=True)
            await self._redis.ping()
            self._enabled = True
            logger.info("PageCache: connected to Redis")
        except Exception as e:
            logger.warning(f"PageCache: failed to connect to Redis: {e}. Using in-memory cache.")
            self._redis = None
            self._enabled = False

    async def disconnect(self) -> None:
        if self._redis:
            await self._redis.aclose()
            self._redis = None
            logger.info("PageCache: disconnected from Redis")

    async def _maybe_retry_connect(self) -> None:
        """Re-attempt connection after a 30-second cooldown."""
        if self._redis_url and not self._enabled and time.time() - self._last_connect_attempt >= 30:
            self._enabled = True
            await self.connect()

    async def _backend(self) -> redis.Redis | None:
        await self._maybe_retry_connect()
        if self._enabled and self._redis is None:
            await self.connect()
        return self._redis if self._enabled else None

    # ── Get / set ─────────────────────────────────────────────────────────────

    async def get(self, path: str) -> str | None:
        key = f"{self.PREFIX_PAGE}{path}"
        backend = await self._backend()
        if backend is None:
            return self._memory.get(key)
        try:
            return await backend.get(key)
        except Exception as e:
            logger.warning(f"PageCache get error for {key}: {e}")
            return None

    async def set(self, path: str, html: str, ttl: int | None = None) -> None:
        key = f"{self.PREFIX_PAGE}{path}"
        ttl = ttl or self.TTL_PAGE
        backend = await self._backend()
        if backend is None:
            self._memory.set(key, html, ttl=ttl)
            return
        try:
            await backend.setex(key, ttl, html)
        except Exception as e:
            logger.warning(f"PageCache set error for {key}: {e}")

    # ── Invalidation ──────────────────────────────────────────────────────────

    async def delete(self, key: str) -> int:
        backend = await self._backend()
        if backend is None:
            return int(self._memory.delete(key))
        try:
            return await backend.delete(key)
        except Exception as e:
            logger.warning(f"PageCache delete error for {key}: {e}")
            return 0

    async def delete_pattern(self, prefix: str) -> int:
        """Delete every key beginning with `prefix`."""
        backend = await self._backend()
        if backend is None:
            return self._memory.delete_prefix(prefix)
        try:
            keys = [key async for key in backend.scan_iter(match=f"{prefix}*")]
            if keys:
                return await backend.delete(*keys)
            return 0
        except Exception as e:
            logger.warning(f"PageCache delete pattern error for {prefix}: {e}")
            return 0

    async def invalidate_shell(self) -> int:
        """The home page and every shared layout fragment."""
        deleted = await self.delete(f"{self.PREFIX_PAGE}{self.SHELL_PATH}")
        deleted += await self.delete_pattern(self.PREFIX_LAYOUT)
        return deleted

    async def invalidate_listings(self) -> int:
        """The blog index including its paginated / filtered variants."""
        deleted = await self.delete(f"{self.PREFIX_PAGE}{self.LISTING_PATH}")
        deleted += await self.delete_pattern(f"{self.PREFIX_PAGE}{self.LISTING_PATH}?")
        return deleted

    async def invalidate_content_pages(self) -> int:
        return await self.delete_pattern(f"{self.PREFIX_PAGE}{self.CONTENT_PREFIX}")

    async def invalidate_site(self) -> int:
        deleted = await self.invalidate_shell()
        deleted += await self.invalidate_listings()
        deleted += await self.invalidate_content_pages()
        logger.info("PageCache: invalidated %d cached renderings", deleted)
        return deleted
