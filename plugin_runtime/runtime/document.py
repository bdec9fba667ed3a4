"""
Host Document

A minimal model of the page a plugin mounts into: named slot containers
(`data-blog-slot="..."` in the rendered layout) plus the document body.
Containers hold mounted elements; an element's `hidden` flag is what
route gating toggles.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

BODY_SLOT = "body"


@dataclass(eq=False)
class Element:
    tag: str
    plugin_id: str | None = None
    hidden: bool = False
    component: Any = None


@dataclass(eq=False)
class SlotContainer:
    name: str
    children: list[Element] = field(default_factory=list)

    def find(self, tag: str) -> Element | None:
        for child in self.children:
            if child.tag == tag:
                return child
        return None

    def append(self, element: Element) -> Element:
        self.children.append(element)
        return element

    def remove(self, element: Element) -> None:
        self.children.remove(element)


class HostDocument:
    def __init__(self, slot_names: list[str] | None = None) -> None:
        self.body = SlotContainer(BODY_SLOT)
        self._containers: list[SlotContainer] = []
        for name in slot_names or []:
            self.add_slot(name)

    def add_slot(self, name: str) -> SlotContainer:
        """Add a container tagged with `name`; a layout may repeat a slot name."""
        container = SlotContainer(name)
        self._containers.append(container)
        return container

    def slots(self, name: str) -> list[SlotContainer]:
        return [container for container in self._containers if container.name == name]

    def mount_targets(self, slot: str) -> list[SlotContainer]:
        if slot == BODY_SLOT:
            return [self.body]
        return self.slots(slot)

    def find_all(self, tag: str) -> list[Element]:
        found = []
        for container in [self.body, *self._containers]:
            found.extend(child for child in container.children if child.tag == tag)
        return found
