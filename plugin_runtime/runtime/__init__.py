"""
Client Runtime

The page-side half of the plugin system: loads each active plugin's code
through the asset proxy, mounts its component into the page's slots,
gates visibility by route and runs the shared context/event channel.
"""

from plugin_runtime.runtime.components import ComponentRegistry
from plugin_runtime.runtime.config_service import PluginConfigService
from plugin_runtime.runtime.context import PluginContext
from plugin_runtime.runtime.document import Element, HostDocument
from plugin_runtime.runtime.events import CONTENT_READY, ROUTE_CHANGE, EventChannel
from plugin_runtime.runtime.loader import FrameScheduler, HttpScriptLoader, PluginRuntime, RuntimePlugin
from plugin_runtime.runtime.routing import route_allowed

__all__ = [
    "CONTENT_READY",
    "ROUTE_CHANGE",
    "ComponentRegistry",
    "Element",
    "EventChannel",
    "FrameScheduler",
    "HostDocument",
    "HttpScriptLoader",
    "PluginConfigService",
    "PluginContext",
    "PluginRuntime",
    "RuntimePlugin",
    "route_allowed",
]
