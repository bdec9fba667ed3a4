"""
Plugin Asset Cache & Proxy

Mirrors a plugin's manifest and entry files into the content store under
`installed-plugins/{id}/` at install time and serves registry paths back
to the browser, cache first, without exposing the registry credential.

A plugin whose mirroring partly failed is still installable: any file
missing from the store is fetched live from the registry on each read.
"""

from __future__ import annotations

import asyncio
import hashlib
import json
import logging
import re
from dataclasses import dataclass

from plugin_runtime.exceptions import InvalidAssetPathError
from plugin_runtime.plugins.models import PluginManifest
from plugin_runtime.plugins.registry_client import RegistryClient
from plugin_runtime.storage import ContentStore

logger = logging.getLogger(__name__)

INSTALLED_PLUGINS_DIR = "installed-plugins"
CACHED_MANIFEST = "manifest.json"

# plugins/{category}/{id}/{rel} or plugins/{id}/{rel}
_PLUGIN_PATH_RE = re.compile(r"^plugins/(?:[^/]+/)?([^/]+)/(.+)$")

# NUL and the other C0/DEL control characters never appear in a registry path.
_CONTROL_CHARS_RE = re.compile(r"[\x00-\x1f\x7f]")

_MEDIA_TYPES = {
    ".css": "text/css",
    ".js": "application/javascript",
    ".mjs": "application/javascript",
    ".json": "application/json",
    ".svg": "image/svg+xml",
    ".html": "text/html",
}

_DOWNLOAD_CONCURRENCY = 4


@dataclass(frozen=True)
class AssetResponse:
    content: str
    media_type: str
    cache_control: str
    source: str


def infer_media_type(path: str) -> str:
    for suffix, media_type in _MEDIA_TYPES.items():
        if path.endswith(suffix):
            return media_type
    return "text/plain"


def validate_asset_path(path: str | None) -> str:
    """Reject empty or absolute paths, control characters and any parent-directory segment."""
    if not path or path.startswith(("/", "\\")):
        raise InvalidAssetPathError(path or "")
    if _CONTROL_CHARS_RE.search(path):
        raise InvalidAssetPathError(path)
    segments = re.split(r"[\\/]", path)
    if any(segment == ".." for segment in segments):
        raise InvalidAssetPathError(path)
    return path


def sha256_digest(content: str) -> str:
    return "sha256:" + hashlib.sha256(content.encode("utf-8")).hexdigest()


def cached_asset_path(plugin_id: str, relative_path: str = "") -> str:
    base = f"{INSTALLED_PLUGINS_DIR}/{plugin_id}"
    return f"{base}/{relative_path.lstrip('/')}" if relative_path else base


class AssetCache:
    """Durable per-plugin asset mirror in front of the registry."""

    def __init__(self, store: ContentStore, registry: RegistryClient) -> None:
        self._store = store
        self._registry = registry

    # ── Install-time mirroring ────────────────────────────────────────────────

    async def cache_assets(self, plugin_id: str, source: str) -> bool:
        """
        Download the manifest plus every declared entry file into the store.

        Returns True as soon as the manifest itself was cached; individual
        entry failures (404, checksum mismatch, upstream error) are logged
        and left to the live-fetch path.
        """
        found = await self._registry.fetch_manifest_raw(source)
        if found is None:
            logger.warning("Asset caching skipped for %s: manifest unavailable", plugin_id)
            return False

        _, raw_manifest = found
        try:
            manifest = PluginManifest.from_dict(json.loads(raw_manifest))
        except (ValueError, TypeError) as exc:
            logger.warning("Asset caching skipped for %s: malformed manifest (%s)", plugin_id, exc)
            return False

        try:
            await self._store.write(cached_asset_path(plugin_id, CACHED_MANIFEST), raw_manifest)
        except OSError as exc:
            logger.warning("Failed to persist manifest for %s: %s", plugin_id, exc)
            return False

        semaphore = asyncio.Semaphore(_DOWNLOAD_CONCURRENCY)

        async def _mirror(entry: str) -> bool:
            async with semaphore:
                return await self._mirror_entry(plugin_id, source, entry, manifest.checksums.get(entry))

        results = await asyncio.gather(*(_mirror(entry) for entry in manifest.entry_files()))
        logger.info(
            "Cached assets for %s: manifest + %d/%d entry files",
            plugin_id,
            sum(results),
            len(results),
        )
        return True

    async def _mirror_entry(self, plugin_id: str, source: str, entry: str, checksum: str | None) -> bool:
        content = await self._registry.fetch_file(f"{source}/{entry}")
        if content is None:
            logger.warning("Entry %s of %s could not be downloaded", entry, plugin_id)
            return False
        if checksum and sha256_digest(content) != checksum:
            logger.warning("Checksum mismatch for %s/%s; not cached", plugin_id, entry)
            return False
        try:
            await self._store.write(cached_asset_path(plugin_id, entry), content)
        except OSError as exc:
            logger.warning("Failed to persist %s/%s: %s", plugin_id, entry, exc)
            return False
        return True

    # ── Reads ─────────────────────────────────────────────────────────────────

    async def read_asset(self, plugin_id: str, relative_path: str, source: str | None = None) -> str | None:
        """Cache-first read; falls back to a live fetch of `{source}/{relative_path}`."""
        cached = await self._store.read(cached_asset_path(plugin_id, relative_path))
        if cached is not None:
            return cached

        if source is None:
            plugin = (await self._registry.get_snapshot()).get(plugin_id)
            if plugin is None:
                return None
            source = plugin.source
        return await self._registry.fetch_file(f"{source}/{relative_path}")

    async def is_cached(self, plugin_id: str) -> bool:
        return await self._store.read(cached_asset_path(plugin_id, CACHED_MANIFEST)) is not None

    async def read_manifest(self, plugin_id: str, source: str) -> PluginManifest | None:
        """Plugin manifest, from the mirror when present, otherwise from the registry."""
        raw = await self._store.read(cached_asset_path(plugin_id, CACHED_MANIFEST))
        if raw is None:
            found = await self._registry.fetch_manifest_raw(source)
            if found is None:
                return None
            raw = found[1]
        try:
            return PluginManifest.from_dict(json.loads(raw))
        except (ValueError, TypeError) as exc:
            logger.warning("Malformed manifest for %s: %s", plugin_id, exc)
            return None

    async def remove_assets(self, plugin_id: str) -> None:
        await self._store.delete(cached_asset_path(plugin_id))
        logger.info("Removed cached assets for %s", plugin_id)

    # ── Browser-facing proxy ──────────────────────────────────────────────────

    async def _locate(self, path: str) -> tuple[str, str] | None:
        """Map a registry path to `(plugin_id, relative_path)` when it belongs to a known plugin."""
        snapshot = await self._registry.get_snapshot()
        for plugin in snapshot:
            prefix = f"{plugin.source}/"
            if plugin.source and path.startswith(prefix):
                return plugin.id, path[len(prefix):]
        match = _PLUGIN_PATH_RE.match(path)
        if match:
            return match.group(1), match.group(2)
        return None

    async def proxy_asset(self, path: str | None, version: str | None = None) -> AssetResponse | None:
        """
        Serve a registry-relative path to the browser.

        `version` only exists to bust downstream HTTP caches after an
        update and never affects which content is returned.
        """
        path = validate_asset_path(path)
        media_type = infer_media_type(path)

        located = await self._locate(path)
        if located is not None:
            cached = await self._store.read(cached_asset_path(*located))
            if cached is not None:
                cache_control = "no-store" if media_type == "application/javascript" else "public, max-age=3600"
                return AssetResponse(cached, media_type, cache_control, "cache")

        content = await self._registry.fetch_file(path)
        if content is None:
            return None
        if self._registry.is_local:
            return AssetResponse(content, media_type, "no-store", "local")
        return AssetResponse(content, media_type, "public, max-age=300", "origin")
