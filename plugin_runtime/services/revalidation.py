"""
Revalidation Scheduler

After a plugin change the cached renderings of the site go stale. In
`immediate` mode they are invalidated right away and a background
pre-warm re-requests every page once. In `debounced` mode nothing is
invalidated here: the caller is told the delay and schedules a single
follow-up (see plugin_runtime.scheduler).
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass

import httpx

from plugin_runtime.config import Settings, settings as default_settings
from plugin_runtime.plugins.models import RevalidationMode, RevalidationPolicy
from plugin_runtime.services.page_cache import PageCache
from plugin_runtime.storage import ContentStore

logger = logging.getLogger(__name__)

CONTENT_EXTENSIONS = (".mdx", ".md")


@dataclass(frozen=True)
class RevalidationResult:
    """What happened (or what the caller still has to schedule)."""

    mode: RevalidationMode | None
    delay_seconds: int = 0
    triggered: bool = False

    @classmethod
    def skipped(cls) -> RevalidationResult:
        return cls(mode=None)

    def to_dict(self) -> dict:
        return {
            "mode": self.mode.value if self.mode else None,
            "delay_seconds": self.delay_seconds,
            "triggered": self.triggered,
        }


class RevalidationScheduler:
    def __init__(
        self,
        page_cache: PageCache,
        store: ContentStore,
        config: Settings | None = None,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self._page_cache = page_cache
        self._store = store
        self._settings = config or default_settings
        self._client = client
        self._owns_client = client is None
        self._tasks: set[asyncio.Task] = set()

    async def trigger(self, policy: RevalidationPolicy) -> RevalidationResult:
        if policy.mode is RevalidationMode.DEBOUNCED:
            logger.info("Debounced revalidation requested (%ss)", policy.debounce_seconds)
            return RevalidationResult(mode=RevalidationMode.DEBOUNCED, delay_seconds=policy.debounce_seconds)
        return await self.revalidate_now()

    async def revalidate_now(self) -> RevalidationResult:
        """Invalidate synchronously; pre-warm in the background."""
        await self._page_cache.invalidate_site()
        self.start_prewarm()
        return RevalidationResult(mode=RevalidationMode.IMMEDIATE, triggered=True)

    # ── Pre-warm ──────────────────────────────────────────────────────────────

    def start_prewarm(self) -> asyncio.Task:
        """Fire-and-forget pre-warm; the task is kept referenced until it finishes."""
        task = asyncio.create_task(self.prewarm())
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    async def content_page_ids(self) -> list[str]:
        try:
            names = await self._store.list(self._settings.posts_dir)
        except OSError as exc:
            logger.debug("Listing content pages failed: %s", exc)
            return []
        ids = []
        for name in names:
            for ext in CONTENT_EXTENSIONS:
                if name.endswith(ext):
                    ids.append(name[: -len(ext)])
                    break
        return ids

    async def prewarm_urls(self) -> list[str]:
        base = self._settings.site_base_url.rstrip("/")
        slugs = await self.content_page_ids()
        return [f"{base}/", f"{base}/blog", *(f"{base}/blog/{slug}" for slug in slugs)]

    async def prewarm(self) -> int:
        """
        Request every known page once. Best effort: individual failures are
        ignored and the whole batch is abandoned after the timeout budget.

        Returns the number of pages that answered below HTTP 400.
        """
        urls = await self.prewarm_urls()
        semaphore = asyncio.Semaphore(self._settings.prewarm_concurrency)
        warmed = 0

        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self._settings.prewarm_timeout_seconds)
        client = self._client

        async def _warm(url: str) -> None:
            nonlocal warmed
            async with semaphore:
                try:
                    response = await client.get(url, headers={"purpose": "prefetch"})
                except httpx.HTTPError:
                    return
                if response.status_code < 400:
                    warmed += 1

        try:
            await asyncio.wait_for(
                asyncio.gather(*(_warm(url) for url in urls)),
                timeout=self._settings.prewarm_timeout_seconds,
            )
        except asyncio.TimeoutError:
            logger.debug("Pre-warm timed out after %ss", self._settings.prewarm_timeout_seconds)
        except Exception as exc:
            logger.debug("Pre-warm aborted: %s", exc)

        logger.info("Pre-warmed %d/%d pages", warmed, len(urls))
        return warmed

    async def drain(self) -> None:
        """Wait for any in-flight pre-warm (shutdown and tests)."""
        if self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    async def aclose(self) -> None:
        await self.drain()
        if self._client is not None and self._owns_client:
            await self._client.aclose()
            self._client = None
