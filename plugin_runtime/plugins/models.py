"""
Plugin Manifest Model

Data shapes describing a plugin as published by the remote registry
(RegistryPlugin, PluginManifest) and as installed on this blog
(InstalledPlugin). Wire dicts use the registry's camelCase keys; the
dataclasses expose snake_case attributes.
"""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class PluginCategory(str, Enum):
    THEME = "theme"
    UI = "ui"
    CONTENT = "content"
    SOCIAL = "social"
    ANALYTICS = "analytics"
    SEO = "seo"
    PAGE = "page"

    @classmethod
    def parse(cls, value: Any) -> PluginCategory:
        try:
            return cls(value)
        except ValueError:
            return cls.UI


# Categories where at most one installed plugin may be enabled.
SINGLE_SELECT_CATEGORIES = frozenset({PluginCategory.THEME})


class RevalidationMode(str, Enum):
    IMMEDIATE = "immediate"
    DEBOUNCED = "debounced"


class FormatKind(str, Enum):
    WEBCOMPONENT = "webcomponent"
    SCRIPT = "script"
    CSS = "css"
    PAGE = "page"
    ADMIN_PAGE = "adminPage"


# Renderable surfaces in order of preference.
FORMAT_PRIORITY = (FormatKind.WEBCOMPONENT, FormatKind.SCRIPT, FormatKind.CSS)

# Formats whose entry file is mirrored into the content store on install.
CACHEABLE_FORMATS = (FormatKind.CSS, FormatKind.WEBCOMPONENT, FormatKind.SCRIPT)


@dataclass(frozen=True)
class RevalidationPolicy:
    mode: RevalidationMode = RevalidationMode.IMMEDIATE
    debounce_seconds: int = 0

    @classmethod
    def from_dict(cls, data: dict[str, Any] | None) -> RevalidationPolicy:
        if not data:
            return cls()
        try:
            mode = RevalidationMode(data.get("mode", RevalidationMode.IMMEDIATE.value))
        except ValueError:
            mode = RevalidationMode.IMMEDIATE
        return cls(mode=mode, debounce_seconds=int(data.get("debounceSeconds", 0) or 0))

    def to_dict(self) -> dict[str, Any]:
        return {"mode": self.mode.value, "debounceSeconds": self.debounce_seconds}

    def merged(self, patch: dict[str, Any]) -> RevalidationPolicy:
        """Return a copy with the keys present in `patch` applied."""
        return RevalidationPolicy.from_dict({**self.to_dict(), **patch})

    @property
    def is_immediate(self) -> bool:
        return self.mode is RevalidationMode.IMMEDIATE


@dataclass(frozen=True)
class ConfigField:
    """One entry of a plugin's configuration schema."""

    type: str
    default: Any = None
    label: str = ""
    css_var: str | None = None
    min: float | None = None
    max: float | None = None
    unit: str | None = None
    options: tuple[Any, ...] = ()

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ConfigField:
        return cls(
            type=str(data.get("type", "string")),
            default=data.get("default"),
            label=str(data.get("label", "")),
            css_var=data.get("cssVar"),
            min=data.get("min"),
            max=data.get("max"),
            unit=data.get("unit"),
            options=tuple(data.get("options") or ()),
        )

    def to_dict(self) -> dict[str, Any]:
        out: dict[str, Any] = {"type": self.type, "default": self.default}
        if self.label:
            out["label"] = self.label
        if self.css_var:
            out["cssVar"] = self.css_var
        for key in ("min", "max", "unit"):
            value = getattr(self, key)
            if value is not None:
                out[key] = value
        if self.options:
            out["options"] = list(self.options)
        return out


ConfigSchema = dict[str, ConfigField]


def parse_config_schema(data: Any) -> ConfigSchema:
    """Accept both `{"schema": {...}}` and a bare field mapping; keeps declaration order."""
    if not isinstance(data, dict):
        return {}
    raw = data.get("schema", data) if isinstance(data.get("schema"), dict) else data
    return {name: ConfigField.from_dict(spec) for name, spec in raw.items() if isinstance(spec, dict)}


@dataclass(frozen=True)
class PluginFormat:
    entry: str | None = None
    element: str | None = None
    slots: tuple[str, ...] = ()
    extra: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> PluginFormat:
        extra = {k: v for k, v in data.items() if k not in ("entry", "element", "slots")}
        return cls(
            entry=data.get("entry"),
            element=data.get("element"),
            slots=tuple(data.get("slots") or ()),
            extra=extra,
        )


@dataclass(frozen=True)
class PluginManifest:
    """Contents of `{source}/plugin.json` in the registry."""

    id: str
    name: str
    version: str
    formats: dict[str, PluginFormat] = field(default_factory=dict)
    slots: tuple[str, ...] = ()
    config_schema: ConfigSchema = field(default_factory=dict)
    allowed_routes: tuple[str, ...] | None = None
    checksums: dict[str, str] = field(default_factory=dict)
    icon: str | None = None

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> PluginManifest:
        formats = {
            name: PluginFormat.from_dict(spec) for name, spec in (data.get("formats") or {}).items() if isinstance(spec, dict)
        }
        allowed = data.get("allowedRoutes")
        return cls(
            id=str(data.get("id", "")),
            name=str(data.get("name", data.get("id", ""))),
            version=str(data.get("version", "1.0.0")),
            formats=formats,
            slots=tuple(data.get("slots") or ()),
            config_schema=parse_config_schema(data.get("config")),
            allowed_routes=tuple(allowed) if allowed is not None else None,
            checksums=dict(data.get("checksums") or {}),
            icon=data.get("icon"),
        )

    def format(self, kind: FormatKind) -> PluginFormat | None:
        return self.formats.get(kind.value)

    def entry_files(self) -> list[str]:
        """Entry paths (relative to the plugin source) of every cacheable format."""
        entries = []
        for kind in CACHEABLE_FORMATS:
            fmt = self.format(kind)
            if fmt and fmt.entry and fmt.entry not in entries:
                entries.append(fmt.entry)
        return entries

    @property
    def mount_slots(self) -> tuple[str, ...]:
        fmt = self.format(FormatKind.WEBCOMPONENT)
        if fmt and fmt.slots:
            return fmt.slots
        return self.slots


def resolve_format(manifest: PluginManifest) -> FormatKind:
    """Pick the most capable renderable surface the manifest offers."""
    for kind in FORMAT_PRIORITY:
        if manifest.format(kind):
            return kind
    msg = f"{manifest.id}: no compatible format found"
    raise ValueError(msg)


@dataclass(frozen=True)
class RegistryPlugin:
    """Immutable registry entry as listed in `registry.json`."""

    id: str
    name: str
    category: PluginCategory
    version: str
    source: str
    declared_formats: tuple[str, ...] = ()
    config_schema: ConfigSchema = field(default_factory=dict)
    revalidation: RevalidationPolicy = field(default_factory=RevalidationPolicy)
    verified: bool = False
    description: str = ""
    author: Any = None
    tags: tuple[str, ...] = ()
    icon: str | None = None
    coming_soon: bool = False

    @classmethod
    def from_dict(cls, data: dict[str, Any], category: PluginCategory | None = None) -> RegistryPlugin:
        return cls(
            id=str(data["id"]),
            name=str(data.get("name") or data["id"]),
            category=category or PluginCategory.parse(data.get("category")),
            version=str(data.get("version", "1.0.0")),
            source=str(data.get("source", "")).strip("/"),
            declared_formats=tuple(data.get("formats") or ()),
            config_schema=parse_config_schema(data.get("config") or data.get("configSchema")),
            revalidation=RevalidationPolicy.from_dict(data.get("revalidation")),
            verified=bool(data.get("verified", False)),
            description=str(data.get("description") or ""),
            author=data.get("author"),
            tags=tuple(data.get("tags") or ()),
            icon=data.get("icon"),
            coming_soon=bool(data.get("comingSoon", False)),
        )

    @property
    def is_theme(self) -> bool:
        return self.category in SINGLE_SELECT_CATEGORIES

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "category": self.category.value,
            "version": self.version,
            "source": self.source,
            "formats": list(self.declared_formats),
            "revalidation": self.revalidation.to_dict(),
            "verified": self.verified,
            "description": self.description,
            "author": self.author,
            "tags": list(self.tags),
            "icon": self.icon,
            "comingSoon": self.coming_soon,
        }


@dataclass(frozen=True)
class RegistrySnapshot:
    plugins: dict[str, RegistryPlugin] = field(default_factory=dict)
    version: str = ""

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> RegistrySnapshot:
        plugins: dict[str, RegistryPlugin] = {}
        for entry in data.get("themes") or []:
            plugin = RegistryPlugin.from_dict(entry, category=PluginCategory.THEME)
            plugins[plugin.id] = plugin
        for entry in data.get("plugins") or []:
            plugin = RegistryPlugin.from_dict(entry)
            plugins[plugin.id] = plugin
        return cls(plugins=plugins, version=str(data.get("version", "")))

    def get(self, plugin_id: str) -> RegistryPlugin | None:
        return self.plugins.get(plugin_id)

    def __iter__(self):
        return iter(self.plugins.values())

    def __len__(self) -> int:
        return len(self.plugins)


def _now_ms() -> int:
    return int(time.time() * 1000)


@dataclass
class InstalledPlugin:
    """Mutable, persisted install record for one plugin id."""

    id: str
    enabled: bool = True
    installed_at: int = field(default_factory=_now_ms)
    assets_cached: bool = False
    revalidation: RevalidationPolicy = field(default_factory=RevalidationPolicy)
    config: dict[str, Any] = field(default_factory=dict)
    category: PluginCategory = PluginCategory.UI
    name: str = ""
    version: str = ""

    @classmethod
    def from_registry(cls, plugin: RegistryPlugin) -> InstalledPlugin:
        return cls(
            id=plugin.id,
            enabled=True,
            revalidation=plugin.revalidation,
            category=plugin.category,
            name=plugin.name,
            version=plugin.version,
        )

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> InstalledPlugin:
        return cls(
            id=str(data["id"]),
            enabled=bool(data.get("enabled", False)),
            installed_at=int(data.get("installedAt") or 0),
            assets_cached=bool(data.get("assetsCached", False)),
            revalidation=RevalidationPolicy.from_dict(data.get("revalidation")),
            config=dict(data.get("config") or {}),
            category=PluginCategory.parse(data.get("category")),
            name=str(data.get("name") or data["id"]),
            version=str(data.get("version") or ""),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "version": self.version,
            "category": self.category.value,
            "enabled": self.enabled,
            "installedAt": self.installed_at,
            "assetsCached": self.assets_cached,
            "revalidation": self.revalidation.to_dict(),
            "config": dict(self.config),
        }

    @property
    def is_theme(self) -> bool:
        return self.category in SINGLE_SELECT_CATEGORIES
