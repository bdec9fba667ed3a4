from __future__ import annotations

from collections.abc import Iterable, Mapping
from types import MappingProxyType
from typing import Any


class PluginConfigService:
    """
    Plugin id -> resolved configuration, written once when the runtime
    starts and handed to every consumer. Both levels are read-only.
    """

    def __init__(self, configs: Mapping[str, Mapping[str, Any]] | None = None) -> None:
        frozen = {plugin_id: MappingProxyType(dict(config)) for plugin_id, config in (configs or {}).items()}
        self._configs = MappingProxyType(frozen)

    @classmethod
    def from_plugins(cls, plugins: Iterable[Any]) -> PluginConfigService:
        return cls({plugin.id: plugin.config for plugin in plugins if plugin.config is not None})

    def get(self, plugin_id: str) -> Mapping[str, Any]:
        return self._configs.get(plugin_id, MappingProxyType({}))

    def as_mapping(self) -> Mapping[str, Mapping[str, Any]]:
        return self._configs

    def __contains__(self, plugin_id: object) -> bool:
        return plugin_id in self._configs

    def __len__(self) -> int:
        return len(self._configs)
