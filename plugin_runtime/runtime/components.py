"""Tag name -> component factory registry, populated by plugin code at load time."""

from collections.abc import Callable
from typing import Any

ComponentFactory = Callable[..., Any]


class ComponentRegistry:
    def __init__(self) -> None:
        self._factories: dict[str, ComponentFactory] = {}

    def define(self, tag: str, factory: ComponentFactory) -> None:
        if tag in self._factories:
            msg = f"Component '{tag}' is already defined"
            raise ValueError(msg)
        self._factories[tag] = factory

    def get(self, tag: str) -> ComponentFactory | None:
        return self._factories.get(tag)

    def is_defined(self, tag: str) -> bool:
        return tag in self._factories

    def __len__(self) -> int:
        return len(self._factories)
