"""
Plugin Runtime Loader

Page-side lifecycle of the active plugins:

    fetch /api/plugins/runtime
      └─> seed PluginConfigService, build PluginContext
            └─> for each plugin, in order:  load_code ─> mount
                (one plugin failing is logged and skipped)

Start-up ends by emitting the route-change and content-ready events for the
first page. After that, `navigate` keeps the context's route current, re-applies
route gating to every mounted element and re-emits the route-change and
content-ready events.
"""

from __future__ import annotations

import asyncio
import inspect
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Any, Protocol
from urllib.parse import urlencode

import httpx

from plugin_runtime.exceptions import PluginLoadError, PluginMountError
from plugin_runtime.runtime.components import ComponentRegistry
from plugin_runtime.runtime.config_service import PluginConfigService
from plugin_runtime.runtime.context import (
    ContentSnapshot,
    PlatformSnapshot,
    PluginContext,
    PluginEntry,
    RouteDescriptor,
)
from plugin_runtime.runtime.document import Element, HostDocument, SlotContainer
from plugin_runtime.runtime.events import CONTENT_READY, ROUTE_CHANGE, EventChannel
from plugin_runtime.runtime.routing import RouteType, route_allowed

logger = logging.getLogger(__name__)

RUNTIME_ENDPOINT = "/api/plugins/runtime"
ASSET_ENDPOINT = "/api/registry/asset"


@dataclass(frozen=True)
class RuntimePlugin:
    """One entry of the runtime plugin list."""

    id: str
    source: str
    version: str
    entry: str
    element: str
    slots: tuple[str, ...] = ()
    allowed_routes: tuple[str, ...] | None = None
    config: dict[str, Any] | None = None
    cached: bool = False

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> RuntimePlugin:
        allowed = data.get("allowedRoutes")
        return cls(
            id=str(data["id"]),
            source=str(data.get("source", "")),
            version=str(data.get("version", "")),
            entry=str(data.get("entry") or data.get("wcEntry") or ""),
            element=str(data["element"]),
            slots=tuple(data.get("slots") or ()),
            allowed_routes=tuple(allowed) if allowed is not None else None,
            config=data.get("config"),
            cached=bool(data.get("cached", False)),
        )

    @property
    def asset_url(self) -> str:
        params = {"path": f"{self.source}/{self.entry}"}
        if self.version:
            params["v"] = self.version
        return f"{ASSET_ENDPOINT}?{urlencode(params, safe='/')}"


# ── Collaborators ─────────────────────────────────────────────────────────────


class ScriptLoader(Protocol):
    async def load(self, url: str) -> None: ...


class HttpScriptLoader:
    """Fetches a code resource and hands its source to `evaluate(url, source)`."""

    def __init__(self, client: httpx.AsyncClient, evaluate: Callable[[str, str], Awaitable[None] | None]) -> None:
        self._client = client
        self._evaluate = evaluate

    async def load(self, url: str) -> None:
        response = await self._client.get(url)
        response.raise_for_status()
        result = self._evaluate(url, response.text)
        if inspect.isawaitable(result):
            await result


class FrameScheduler:
    """Resolves once per display frame."""

    def __init__(self, frame_seconds: float = 1 / 60) -> None:
        self._frame_seconds = frame_seconds

    async def next_frame(self) -> None:
        await asyncio.sleep(self._frame_seconds)


# ── Runtime ───────────────────────────────────────────────────────────────────


class PluginRuntime:
    def __init__(
        self,
        client: httpx.AsyncClient,
        document: HostDocument,
        components: ComponentRegistry,
        scripts: ScriptLoader,
        frames: FrameScheduler | None = None,
        channel: EventChannel | None = None,
        theme_id: str = "",
        locale: str = "en",
        dark_mode: bool = False,
    ) -> None:
        self._client = client
        self._document = document
        self._components = components
        self._scripts = scripts
        self._frames = frames or FrameScheduler()
        self._channel = channel or EventChannel()
        self._theme_id = theme_id
        self._locale = locale
        self._dark_mode = dark_mode

        self.plugins: list[RuntimePlugin] = []
        self.config = PluginConfigService()
        self.context: PluginContext | None = None
        self._mounted: dict[str, RuntimePlugin] = {}

    @property
    def mounted_ids(self) -> list[str]:
        return list(self._mounted)

    async def fetch_plugins(self) -> list[RuntimePlugin]:
        """The active plugin list; an unreachable or failing endpoint means no plugins."""
        try:
            response = await self._client.get(RUNTIME_ENDPOINT)
        except httpx.HTTPError as e:
            logger.warning(f"[PluginRuntime] Could not fetch plugin list: {e}")
            return []
        if response.status_code >= 400:
            logger.warning(f"[PluginRuntime] Plugin list request failed with HTTP {response.status_code}")
            return []
        data = response.json()
        entries = data.get("plugins", []) if isinstance(data, dict) else data
        plugins = []
        for entry in entries:
            try:
                plugins.append(RuntimePlugin.from_dict(entry))
            except (KeyError, TypeError) as e:
                logger.warning(f"[PluginRuntime] Skipping malformed plugin entry: {e}")
        return plugins

    async def initialize(self, path: str = "/", content: ContentSnapshot | None = None) -> list[str]:
        """Load and mount every active plugin; returns the ids that mounted."""
        self.plugins = await self.fetch_plugins()
        self.config = PluginConfigService.from_plugins(self.plugins)

        route = RouteDescriptor.for_path(path)
        platform = PlatformSnapshot(
            theme_id=self._theme_id, route=route, dark_mode=self._dark_mode, locale=self._locale
        )
        entries = {plugin.id: PluginEntry(config=self.config.get(plugin.id)) for plugin in self.plugins}
        self.context = PluginContext(
            platform=platform,
            channel=self._channel,
            plugins=entries,
            content=content if route.type is RouteType.ARTICLE else None,
        )

        for plugin in self.plugins:
            try:
                await self.load_code(plugin)
                self.mount(plugin)
            except Exception as e:
                logger.error(f"[PluginRuntime] Plugin '{plugin.id}' failed: {e}")

        logger.info(f"[PluginRuntime] Mounted {len(self._mounted)}/{len(self.plugins)} plugins")
        await self._announce_route(route)
        return self.mounted_ids

    async def load_code(self, plugin: RuntimePlugin) -> None:
        if self._components.is_defined(plugin.element):
            return
        try:
            await self._scripts.load(plugin.asset_url)
        except Exception as e:
            raise PluginLoadError(plugin.id, str(e)) from e
        if not self._components.is_defined(plugin.element):
            raise PluginLoadError(plugin.id, f"code did not define <{plugin.element}>")

    def mount(self, plugin: RuntimePlugin) -> int:
        """Insert one instance per tagged location; returns how many were newly inserted."""
        factory = self._components.get(plugin.element)
        if factory is None:
            raise PluginMountError(plugin.id, f"<{plugin.element}> is not defined")

        visible = self._route_visible(plugin)
        added: list[tuple[SlotContainer, Element]] = []
        for slot in plugin.slots:
            for container in self._document.mount_targets(slot):
                if container.find(plugin.element) is not None:
                    continue
                try:
                    component = factory(self.context)
                except Exception as e:
                    # All or nothing: take back the instances this call already placed.
                    for placed_in, element in added:
                        placed_in.remove(element)
                    raise PluginMountError(plugin.id, str(e)) from e
                element = Element(plugin.element, plugin_id=plugin.id, hidden=not visible, component=component)
                added.append((container, container.append(element)))

        self._mounted[plugin.id] = plugin
        return len(added)

    def _route_visible(self, plugin: RuntimePlugin) -> bool:
        path = self.context.platform.route.pathname if self.context else "/"
        return route_allowed(plugin.allowed_routes, path)

    def apply_visibility(self) -> None:
        for plugin in self._mounted.values():
            visible = self._route_visible(plugin)
            for element in self._document.find_all(plugin.element):
                element.hidden = not visible

    async def navigate(self, path: str, content: ContentSnapshot | None = None) -> RouteDescriptor:
        if self.context is None:
            msg = "PluginRuntime.navigate() called before initialize()"
            raise RuntimeError(msg)

        route = RouteDescriptor.for_path(path)
        self.context.set_route(route, content)
        self.apply_visibility()
        await self._announce_route(route)
        return route

    async def _announce_route(self, route: RouteDescriptor) -> None:
        self.context.emit(ROUTE_CHANGE, route)
        if route.type is RouteType.ARTICLE:
            # Let the page finish laying out before DOM-scanning plugins run.
            await self._frames.next_frame()
            await self._frames.next_frame()
            self.context.emit(CONTENT_READY, self.context.content)
