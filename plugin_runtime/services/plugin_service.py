"""
Plugin Installation Service

Server-side lifecycle of installed plugins:

    absent ── install ──> installed+enabled <── setEnabled ──> installed+disabled
       ^                         │                                   │
       └──────── uninstall ──────┴───────────────────────────────────┘

Theme plugins are single-select: enabling a theme *is* activating it, and
activating one disables every other installed theme. A theme can only be
switched off by activating another one (or uninstalling it, which falls
back to the default theme).

All records live in one JSON blob in the content store (`settings.json`,
key `plugins`). Mutations are load-modify-save; an in-process lock keeps
one worker's mutations from interleaving, across workers the last writer
wins.
"""

from __future__ import annotations

import asyncio
import copy
import json
import logging
from dataclasses import dataclass, field
from typing import Any

from plugin_runtime.exceptions import (
    PluginNotFoundError,
    PluginNotInstalledError,
    UpstreamUnavailableError,
    ValidationError,
)
from plugin_runtime.plugins.config_schema import defaults, resolve, to_style_bindings, validate_config
from plugin_runtime.plugins.models import (
    ConfigSchema,
    FormatKind,
    InstalledPlugin,
    PluginCategory,
    PluginManifest,
    RegistryPlugin,
    RegistrySnapshot,
    RevalidationPolicy,
    resolve_format,
)
from plugin_runtime.plugins.registry_client import RegistryClient
from plugin_runtime.services.asset_cache import AssetCache
from plugin_runtime.services.revalidation import RevalidationResult, RevalidationScheduler
from plugin_runtime.services.styles import StyleEntry
from plugin_runtime.storage import ContentStore

logger = logging.getLogger(__name__)

SETTINGS_FILE = "settings.json"


def _render_format(manifest: PluginManifest | None) -> str | None:
    if manifest is None:
        return None
    try:
        return resolve_format(manifest).value
    except ValueError:
        return None


# ── Persisted state ──────────────────────────────────────────────────────────


@dataclass
class PluginState:
    records: dict[str, InstalledPlugin] = field(default_factory=dict)
    active_theme: str = ""
    settings: dict[str, Any] = field(default_factory=dict)
    # Ids read from the legacy `installed` list, which carries no metadata.
    migrated: set[str] = field(default_factory=set)

    def themes(self) -> list[InstalledPlugin]:
        return [record for record in self.records.values() if record.is_theme]

    def adopt_registry(self, snapshot: RegistrySnapshot) -> None:
        """Fill migrated records from the registry, then keep only the active theme enabled."""
        for plugin_id in self.migrated:
            plugin = snapshot.get(plugin_id)
            record = self.records.get(plugin_id)
            if plugin is None or record is None:
                continue
            record.category = plugin.category
            record.name = plugin.name
            record.version = plugin.version
        for theme in self.themes():
            theme.enabled = theme.id == self.active_theme


class PluginStateStore:
    """Reads and writes the `plugins` section of `settings.json`."""

    def __init__(self, store: ContentStore, default_theme_id: str) -> None:
        self._store = store
        self._default_theme_id = default_theme_id

    async def load(self) -> PluginState:
        raw = await self._store.read(SETTINGS_FILE)
        settings: dict[str, Any] = {}
        if raw:
            try:
                settings = json.loads(raw)
            except json.JSONDecodeError as exc:
                logger.warning("Failed to parse %s: %s", SETTINGS_FILE, exc)
        if not isinstance(settings, dict):
            settings = {}

        plugins = settings.get("plugins") or {}
        records: dict[str, InstalledPlugin] = {}
        migrated: set[str] = set()
        registry = plugins.get("registry")
        if isinstance(registry, dict):
            for plugin_id, data in registry.items():
                if isinstance(data, dict):
                    records[plugin_id] = InstalledPlugin.from_dict({"id": plugin_id, **data})
            active_theme = plugins.get("activeTheme") or self._default_theme_id
        elif isinstance(plugins.get("installed"), list):
            # Legacy layout: a bare list of enabled ids plus the theme pointer.
            active_theme = plugins.get("theme") or self._default_theme_id
            for plugin_id in plugins["installed"]:
                category = PluginCategory.THEME if plugin_id == active_theme else PluginCategory.UI
                records[plugin_id] = InstalledPlugin(id=plugin_id, name=plugin_id, enabled=True, category=category)
                migrated.add(plugin_id)
        else:
            active_theme = self._default_theme_id

        return PluginState(records=records, active_theme=active_theme, settings=settings, migrated=migrated)

    async def save(self, state: PluginState) -> None:
        settings = copy.deepcopy(state.settings)
        plugins = settings.get("plugins")
        if not isinstance(plugins, dict):
            plugins = {}
        plugins.pop("installed", None)
        plugins.pop("theme", None)
        plugins["registry"] = {plugin_id: record.to_dict() for plugin_id, record in state.records.items()}
        plugins["activeTheme"] = state.active_theme
        settings["plugins"] = plugins
        await self._store.write(SETTINGS_FILE, json.dumps(settings, indent=2, ensure_ascii=False))
        state.settings = settings


@dataclass(frozen=True)
class MutationResult:
    plugin: InstalledPlugin | None
    revalidation: RevalidationResult


# ── Service ──────────────────────────────────────────────────────────────────


class PluginService:
    def __init__(
        self,
        store: ContentStore,
        registry: RegistryClient,
        assets: AssetCache,
        revalidation: RevalidationScheduler,
        default_theme_id: str,
    ) -> None:
        self._state_store = PluginStateStore(store, default_theme_id)
        self._registry = registry
        self._assets = assets
        self._revalidation = revalidation
        self._default_theme_id = default_theme_id
        self._lock = asyncio.Lock()

    @property
    def default_theme_id(self) -> str:
        return self._default_theme_id

    async def load_state(self) -> PluginState:
        state = await self._state_store.load()
        if state.migrated:
            state.adopt_registry(await self._registry.get_snapshot())
        return state

    async def _require_installed(self, state: PluginState, plugin_id: str) -> InstalledPlugin:
        record = state.records.get(plugin_id)
        if record is None:
            raise PluginNotInstalledError(plugin_id)
        return record

    async def _schema_for(self, plugin_id: str) -> ConfigSchema | None:
        """Manifest schema when the manifest declares one, else the registry entry's; None if unknown."""
        plugin = (await self._registry.get_snapshot()).get(plugin_id)
        if plugin is None:
            return None
        manifest = await self._assets.read_manifest(plugin_id, plugin.source)
        if manifest is not None and manifest.config_schema:
            return manifest.config_schema
        if manifest is None and not plugin.config_schema:
            return None
        return plugin.config_schema

    # ── Lifecycle transitions ─────────────────────────────────────────────────

    async def install(self, plugin_id: str) -> MutationResult:
        plugin = (await self._registry.get_snapshot()).get(plugin_id)
        if plugin is None:
            raise PluginNotFoundError(plugin_id)

        assets_cached = await self._assets.cache_assets(plugin_id, plugin.source)

        async with self._lock:
            state = await self.load_state()
            previous = state.records.get(plugin_id)
            record = InstalledPlugin.from_registry(plugin)
            record.assets_cached = assets_cached
            if previous is not None:
                record.config = previous.config
                record.revalidation = previous.revalidation
            state.records[plugin_id] = record

            if plugin.is_theme:
                for other in state.themes():
                    other.enabled = other.id == plugin_id
                state.active_theme = plugin_id

            await self._state_store.save(state)

        logger.info("Plugin installed: %s v%s (assets cached: %s)", plugin_id, plugin.version, assets_cached)

        if plugin.is_theme:
            revalidation = await self._revalidation.revalidate_now()
        else:
            revalidation = await self._revalidation.trigger(record.revalidation)
        return MutationResult(record, revalidation)

    async def uninstall(self, plugin_id: str) -> MutationResult:
        async with self._lock:
            state = await self.load_state()
            record = await self._require_installed(state, plugin_id)

            await self._assets.remove_assets(plugin_id)

            if state.active_theme == plugin_id:
                state.active_theme = self._default_theme_id
                default_theme = state.records.get(self._default_theme_id)
                if default_theme is not None:
                    default_theme.enabled = True

            del state.records[plugin_id]
            await self._state_store.save(state)

        logger.info("Plugin uninstalled: %s", plugin_id)

        if record.enabled:
            revalidation = await self._revalidation.revalidate_now()
        else:
            revalidation = RevalidationResult.skipped()
        return MutationResult(None, revalidation)

    async def set_enabled(self, plugin_id: str, enabled: bool) -> MutationResult:
        async with self._lock:
            state = await self.load_state()
            record = await self._require_installed(state, plugin_id)

            if record.is_theme:
                if not enabled:
                    logger.info("Ignoring direct disable of theme %s; activate another theme instead", plugin_id)
                    return MutationResult(record, RevalidationResult.skipped())
            else:
                record.enabled = enabled
                await self._state_store.save(state)
                logger.info("Plugin %s: %s", "enabled" if enabled else "disabled", plugin_id)

        if record.is_theme:
            return await self.activate_theme(plugin_id)
        return MutationResult(record, await self._revalidation.trigger(record.revalidation))

    async def activate_theme(self, plugin_id: str) -> MutationResult:
        async with self._lock:
            state = await self.load_state()
            record = await self._require_installed(state, plugin_id)
            if not record.is_theme:
                raise ValidationError(f"Plugin '{plugin_id}' is not a theme", field="id")

            if state.active_theme == plugin_id and record.enabled:
                return MutationResult(record, RevalidationResult.skipped())

            for theme in state.themes():
                theme.enabled = theme.id == plugin_id
            state.active_theme = plugin_id
            await self._state_store.save(state)

        logger.info("Theme activated: %s", plugin_id)
        return MutationResult(record, await self._revalidation.revalidate_now())

    async def set_revalidation_policy(self, plugin_id: str, patch: dict[str, Any]) -> InstalledPlugin:
        async with self._lock:
            state = await self.load_state()
            record = await self._require_installed(state, plugin_id)
            record.revalidation = record.revalidation.merged(patch)
            await self._state_store.save(state)
        logger.info("Revalidation policy for %s set to %s", plugin_id, record.revalidation.to_dict())
        return record

    async def set_config(self, plugin_id: str, config: dict[str, Any]) -> InstalledPlugin:
        state = await self.load_state()
        await self._require_installed(state, plugin_id)

        schema = await self._schema_for(plugin_id)
        if schema is None:
            raise UpstreamUnavailableError("Plugin configuration schema unavailable")
        cleaned = validate_config(schema, config)

        async with self._lock:
            state = await self.load_state()
            record = await self._require_installed(state, plugin_id)
            record.config = cleaned
            await self._state_store.save(state)
        logger.info("Plugin config updated: %s", plugin_id)
        return record

    async def revalidate(self, policy: RevalidationPolicy | None = None) -> RevalidationResult:
        if policy is None:
            return await self._revalidation.revalidate_now()
        return await self._revalidation.trigger(policy)

    # ── Queries ───────────────────────────────────────────────────────────────

    async def list_plugins(self) -> dict[str, Any]:
        snapshot = await self._registry.get_snapshot()
        state = await self.load_state()

        plugins = []
        for plugin in snapshot:
            record = state.records.get(plugin.id)
            entry = plugin.to_dict()
            entry.update(
                installed=record is not None,
                enabled=record.enabled if record else False,
                active=plugin.is_theme and state.active_theme == plugin.id,
                installedAt=record.installed_at if record else None,
                assetsCached=record.assets_cached if record else False,
                revalidation=(record.revalidation if record else plugin.revalidation).to_dict(),
            )
            plugins.append(entry)

        return {
            "plugins": plugins,
            "installed": [record.to_dict() for record in state.records.values()],
            "activeTheme": state.active_theme,
        }

    async def get_plugin_detail(self, plugin_id: str) -> dict[str, Any]:
        plugin = (await self._registry.get_snapshot()).get(plugin_id)
        if plugin is None:
            raise PluginNotFoundError(plugin_id)
        state = await self.load_state()
        record = state.records.get(plugin_id)

        schema = await self._schema_for(plugin_id) or {}
        user_config = dict(record.config) if record else {}
        manifest = await self._assets.read_manifest(plugin_id, plugin.source)
        return {
            "plugin": {
                **plugin.to_dict(),
                "installed": record is not None,
                "enabled": record.enabled if record else False,
                "active": plugin.is_theme and state.active_theme == plugin_id,
            },
            "renderFormat": _render_format(manifest),
            "schema": {name: spec.to_dict() for name, spec in schema.items()},
            "schemaDefaults": defaults(schema),
            "userConfig": user_config,
            "mergedConfig": resolve(schema, user_config),
        }

    async def _enabled_with_manifests(
        self,
    ) -> list[tuple[InstalledPlugin, RegistryPlugin, PluginManifest]]:
        state = await self.load_state()
        snapshot = await self._registry.get_snapshot()

        async def _pair(record: InstalledPlugin):
            plugin = snapshot.get(record.id)
            if plugin is None:
                return None
            manifest = await self._assets.read_manifest(record.id, plugin.source)
            if manifest is None:
                return None
            return record, plugin, manifest

        enabled = [record for record in state.records.values() if record.enabled]
        pairs = await asyncio.gather(*(_pair(record) for record in enabled))
        return [pair for pair in pairs if pair is not None]

    async def runtime_plugins(self) -> list[dict[str, Any]]:
        """Enabled plugins that offer a mountable fragment, in install order."""
        results = []
        for record, plugin, manifest in await self._enabled_with_manifests():
            fmt = manifest.format(FormatKind.WEBCOMPONENT)
            if fmt is None or not fmt.entry or not fmt.element:
                continue
            schema = manifest.config_schema or plugin.config_schema
            results.append(
                {
                    "id": record.id,
                    "source": plugin.source,
                    "version": plugin.version,
                    "entry": fmt.entry,
                    "element": fmt.element,
                    "slots": list(manifest.mount_slots),
                    "allowedRoutes": list(manifest.allowed_routes) if manifest.allowed_routes is not None else None,
                    "config": resolve(schema, record.config),
                    "cached": await self._assets.is_cached(record.id),
                }
            )
        return results

    async def admin_navigation(self) -> list[dict[str, Any]]:
        entries = []
        for record, _plugin, manifest in await self._enabled_with_manifests():
            fmt = manifest.format(FormatKind.ADMIN_PAGE)
            if fmt is None:
                continue
            icon = manifest.icon or "🔌"
            nav = fmt.extra.get("nav") or {"label": manifest.name, "icon": icon, "section": "plugins"}
            entries.append({"id": record.id, "name": manifest.name, "icon": icon, "nav": nav})
        return entries

    async def style_entries(self) -> list[StyleEntry]:
        """Stylesheet text and CSS variable bindings of every enabled plugin."""
        entries = []
        for record, plugin, manifest in await self._enabled_with_manifests():
            schema = manifest.config_schema or plugin.config_schema
            bindings = to_style_bindings(schema, resolve(schema, record.config))
            css = None
            css_format = manifest.format(FormatKind.CSS)
            if css_format and css_format.entry:
                css = await self._assets.read_asset(record.id, css_format.entry, plugin.source)
            if css or bindings:
                entries.append(StyleEntry(plugin_id=record.id, css=css, bindings=bindings))
        return entries
