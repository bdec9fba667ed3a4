"""
Plugin Context

The single shared object every mounted plugin receives. Only the
runtime writes to it (route updates); plugins read the snapshots and
talk to each other through `emit` / `on` / `off`.
"""

from __future__ import annotations

from collections.abc import Callable, Mapping
from dataclasses import dataclass, field, replace
from typing import Any

from plugin_runtime.runtime.events import EventChannel, EventHandler
from plugin_runtime.runtime.routing import RouteType, classify_route, normalize_path


@dataclass(frozen=True)
class RouteDescriptor:
    pathname: str
    type: RouteType

    @classmethod
    def for_path(cls, path: str) -> RouteDescriptor:
        return cls(pathname=normalize_path(path), type=classify_route(path))


@dataclass(frozen=True)
class TocItem:
    id: str
    text: str
    level: int


@dataclass(frozen=True)
class ContentSnapshot:
    """Present only on content-page routes."""

    slug: str
    title: str
    tags: tuple[str, ...] = ()
    category: str = ""
    word_count: int = 0
    read_time_mins: int = 0
    published_at: str = ""
    toc: tuple[TocItem, ...] = ()


@dataclass(frozen=True)
class PlatformSnapshot:
    theme_id: str
    route: RouteDescriptor
    dark_mode: bool = False
    locale: str = "en"


@dataclass
class PluginEntry:
    config: Mapping[str, Any]
    api: dict[str, Callable[..., Any]] = field(default_factory=dict)


class PluginContext:
    def __init__(
        self,
        platform: PlatformSnapshot,
        channel: EventChannel,
        plugins: dict[str, PluginEntry] | None = None,
        content: ContentSnapshot | None = None,
    ) -> None:
        self._platform = platform
        self._channel = channel
        self._content = content
        self.plugins: dict[str, PluginEntry] = plugins or {}

    @property
    def platform(self) -> PlatformSnapshot:
        return self._platform

    @property
    def content(self) -> ContentSnapshot | None:
        return self._content

    def publish_api(self, plugin_id: str, name: str, func: Callable[..., Any]) -> None:
        """Let a plugin expose a capability other plugins can call."""
        entry = self.plugins.setdefault(plugin_id, PluginEntry(config={}))
        entry.api[name] = func

    def emit(self, event: str, payload: Any = None) -> None:
        self._channel.dispatch(event, payload)

    def on(self, event: str, handler: EventHandler) -> None:
        self._channel.add_listener(event, handler)

    def off(self, event: str, handler: EventHandler) -> None:
        self._channel.remove_listener(event, handler)

    # Called by the runtime only.

    def set_route(self, route: RouteDescriptor, content: ContentSnapshot | None) -> None:
        self._platform = replace(self._platform, route=route)
        self._content = content if route.type is RouteType.ARTICLE else None
