"""
Remote Plugin Registry Client

Reads `registry.json`, per-plugin manifests and entry files from the
plugin registry repository through the GitHub contents API (or from a
local checkout when `registry_local_path` is configured).

The access token only ever travels in outgoing request headers; nothing
this module returns or logs contains it.

Reads are cached per path for `asset_ttl_seconds`; the parsed registry
snapshot is cached for `registry_ttl_seconds`. Upstream failures and
rate limiting are logged and turned into `None` / the last good snapshot.
"""

from __future__ import annotations

import base64
import json
import logging
import time
from collections.abc import Callable
from pathlib import Path

import httpx

from plugin_runtime.config import Settings, settings as default_settings
from plugin_runtime.exceptions import RateLimitedError, UpstreamUnavailableError
from plugin_runtime.plugins.models import PluginManifest, RegistryPlugin, RegistrySnapshot
from plugin_runtime.utils.cache import LRUCache

logger = logging.getLogger(__name__)

REGISTRY_FILE = "registry.json"
# First match wins; older registries publish `plugin.json`.
MANIFEST_FILENAMES = ("manifest.json", "plugin.json")


class RegistryClient:
    """Read-only access to the plugin registry repository."""

    def __init__(
        self,
        config: Settings | None = None,
        client: httpx.AsyncClient | None = None,
        cache: LRUCache | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._settings = config or default_settings
        self._client = client
        self._owns_client = client is None
        self._cache = cache or LRUCache(max_size=500, clock=clock)
        self._clock = clock
        self._snapshot: RegistrySnapshot | None = None
        self._snapshot_at: float = 0.0

    # ── Properties ────────────────────────────────────────────────────────────

    @property
    def is_local(self) -> bool:
        return bool(self._settings.registry_local_path)

    @property
    def cache(self) -> LRUCache:
        return self._cache

    def _headers(self) -> dict[str, str]:
        headers = {"Accept": "application/vnd.github.v3+json"}
        if self._settings.registry_token:
            headers["Authorization"] = f"Bearer {self._settings.registry_token}"
        return headers

    def _http(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self._settings.upstream_timeout_seconds)
        return self._client

    async def aclose(self) -> None:
        if self._client is not None and self._owns_client:
            await self._client.aclose()
            self._client = None

    # ── Raw file access ───────────────────────────────────────────────────────

    async def _fetch_remote(self, path: str) -> str | None:
        """
        Fetch one file from the contents API.

        Returns None when the file does not exist; raises
        UpstreamUnavailableError / RateLimitedError for anything else.
        """
        s = self._settings
        url = f"{s.registry_api_url.rstrip('/')}/repos/{s.registry_repo}/contents/{path}"
        try:
            response = await self._http().get(url, params={"ref": s.registry_branch}, headers=self._headers())
        except httpx.TimeoutException as exc:
            raise UpstreamUnavailableError("Registry request timed out", path=path) from exc
        except httpx.RequestError as exc:
            raise UpstreamUnavailableError(f"Registry request error: {exc.__class__.__name__}", path=path) from exc

        if response.status_code == 404:
            return None
        if response.status_code == 429 or (
            response.status_code == 403 and response.headers.get("x-ratelimit-remaining") == "0"
        ):
            raise RateLimitedError(path=path)
        if response.status_code >= 400:
            raise UpstreamUnavailableError(f"Registry returned HTTP {response.status_code}", path=path)

        try:
            payload = response.json()
            return base64.b64decode(payload["content"]).decode("utf-8")
        except (ValueError, KeyError, TypeError) as exc:
            raise UpstreamUnavailableError("Malformed registry response", path=path) from exc

    def _read_local(self, path: str) -> str | None:
        full = Path(self._settings.registry_local_path) / path
        try:
            return full.read_text(encoding="utf-8")
        except (OSError, ValueError) as exc:
            logger.debug("Local registry read failed for %s: %s", path, exc)
            return None

    async def fetch_file(self, path: str) -> str | None:
        """Registry-relative read with request-level caching; None when unavailable."""
        path = path.strip("/")
        cached = self._cache.get(path)
        if cached is not None:
            logger.debug("Registry cache HIT: %s", path)
            return cached

        logger.debug("Registry cache MISS: %s", path)
        if self.is_local:
            content = self._read_local(path)
        else:
            try:
                content = await self._fetch_remote(path)
            except RateLimitedError:
                logger.warning("Registry rate limited while fetching %s", path)
                return None
            except UpstreamUnavailableError as exc:
                logger.warning("Registry unavailable while fetching %s: %s", path, exc.message)
                return None

        if content is not None:
            self._cache.set(path, content, ttl=self._settings.asset_ttl_seconds)
        return content

    # ── Registry & manifests ──────────────────────────────────────────────────

    async def get_snapshot(self, force: bool = False) -> RegistrySnapshot:
        """
        Current registry snapshot, refreshed at most every `registry_ttl_seconds`.

        When the registry cannot be read the previous snapshot is kept; with
        no previous snapshot an empty one is returned.
        """
        fresh = self._clock() - self._snapshot_at < self._settings.registry_ttl_seconds
        if self._snapshot is not None and fresh and not force:
            return self._snapshot

        if force:
            self._cache.delete(REGISTRY_FILE)
        raw = await self.fetch_file(REGISTRY_FILE)
        if raw is None:
            return self._snapshot or RegistrySnapshot()

        try:
            snapshot = RegistrySnapshot.from_dict(json.loads(raw))
        except (ValueError, KeyError, TypeError) as exc:
            logger.warning("Failed to parse %s: %s", REGISTRY_FILE, exc)
            return self._snapshot or RegistrySnapshot()

        self._snapshot = snapshot
        self._snapshot_at = self._clock()
        logger.info("Registry snapshot refreshed (%d entries)", len(snapshot))
        return snapshot

    async def fetch_manifest_raw(self, source: str) -> tuple[str, str] | None:
        """`(filename, raw json)` of the manifest under `source`, or None."""
        for filename in MANIFEST_FILENAMES:
            raw = await self.fetch_file(f"{source.strip('/')}/{filename}")
            if raw is not None:
                return filename, raw
        return None

    async def fetch_manifest(self, plugin: RegistryPlugin) -> PluginManifest | None:
        found = await self.fetch_manifest_raw(plugin.source)
        if found is None:
            return None
        try:
            return PluginManifest.from_dict(json.loads(found[1]))
        except (ValueError, TypeError) as exc:
            logger.warning("Malformed manifest for %s: %s", plugin.id, exc)
            return None
