"""
Plugin registry model

Public API:
    RegistryPlugin   — immutable registry entry
    PluginManifest   — per-plugin manifest (formats, slots, config schema)
    InstalledPlugin  — persisted install record
    RegistryClient   — cached reads of the remote registry
    resolve / to_style_bindings — config schema engine
"""

from .config_schema import resolve, to_style_bindings, validate_config
from .models import InstalledPlugin, PluginCategory, PluginManifest, RegistryPlugin, RegistrySnapshot
from .registry_client import RegistryClient

__all__ = [
    "InstalledPlugin",
    "PluginCategory",
    "PluginManifest",
    "RegistryClient",
    "RegistryPlugin",
    "RegistrySnapshot",
    "resolve",
    "to_style_bindings",
    "validate_config",
]
