"""
Pytest configuration and fixtures for the plugin runtime tests

Nothing here touches the network: the remote registry (GitHub contents
API) and the blog's own pages are served by httpx.MockTransport, the
content store lives in a temporary directory and the page cache runs in
its in-memory mode.
"""

import base64
import hashlib
import json
import os
import sys

import httpx
import pytest

sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), "..")))  # noqa: PTH100, PTH118, PTH120

from main import create_app  # noqa: E402
from plugin_runtime.config import Settings  # noqa: E402

REGISTRY_REPO = "acme/blog-plugins"
REGISTRY_TOKEN = "ghp_registry_secret"
ADMIN_TOKEN = "admin-secret"
SITE_URL = "http://blog.test"
CONTENTS_PREFIX = f"/repos/{REGISTRY_REPO}/contents/"

TOC_JS = "customElements.define('blog-toc', class extends HTMLElement {});"
TOC_CSS = ".blog-toc { position: sticky; }"
EDITORIAL_CSS = "body { font-family: Georgia, serif; }"
MINIMAL_CSS = "body { font-family: system-ui; }"


def sha256_of(content: str) -> str:
    return "sha256:" + hashlib.sha256(content.encode("utf-8")).hexdigest()


REGISTRY = {
    "version": "2026.10.1",
    "themes": [
        {
            "id": "theme-editorial",
            "name": "Editorial",
            "version": "1.0.0",
            "source": "themes/theme-editorial",
            "formats": ["css"],
        },
        {
            "id": "theme-minimal",
            "name": "Minimal",
            "version": "1.2.0",
            "source": "themes/theme-minimal",
            "formats": ["css"],
        },
    ],
    "plugins": [
        {
            "id": "toc",
            "name": "Table of Contents",
            "category": "content",
            "version": "1.1.0",
            "source": "plugins/content/toc",
            "formats": ["webcomponent", "css"],
            "revalidation": {"mode": "immediate"},
            "verified": True,
        },
        {
            "id": "reading-progress",
            "name": "Reading Progress",
            "category": "ui",
            "version": "0.3.0",
            "source": "plugins/ui/reading-progress",
            "formats": ["webcomponent"],
            "revalidation": {"mode": "debounced", "debounceSeconds": 30},
        },
        {
            "id": "analytics-lite",
            "name": "Analytics Lite",
            "category": "analytics",
            "version": "2.0.0",
            "source": "plugins/analytics/analytics-lite",
            "formats": ["adminPage"],
        },
    ],
}

TOC_MANIFEST = {
    "id": "toc",
    "name": "Table of Contents",
    "version": "1.1.0",
    "formats": {
        "webcomponent": {"entry": "webcomponent/index.js", "element": "blog-toc", "slots": ["post-sidebar"]},
        "css": {"entry": "style.css"},
    },
    "allowedRoutes": ["/blog/*"],
    "config": {
        "schema": {
            "title": {"type": "string", "default": "Contents"},
            "maxDepth": {"type": "number", "default": 3, "min": 1, "max": 6},
            "accentColor": {"type": "color", "default": "#3b82f6", "cssVar": "toc-accent"},
            "width": {"type": "range", "default": 240, "unit": "px", "min": 160, "max": 400, "cssVar": "--toc-width"},
        }
    },
    "checksums": {"webcomponent/index.js": sha256_of(TOC_JS)},
}

# Older registries publish plugin.json; its entry file is missing upstream.
READING_PROGRESS_MANIFEST = {
    "id": "reading-progress",
    "name": "Reading Progress",
    "version": "0.3.0",
    "formats": {"webcomponent": {"entry": "index.js", "element": "reading-progress", "slots": ["body"]}},
}

ANALYTICS_MANIFEST = {
    "id": "analytics-lite",
    "name": "Analytics Lite",
    "version": "2.0.0",
    "icon": "📈",
    "formats": {"adminPage": {"entry": "admin.js", "nav": {"label": "Analytics", "section": "insights"}}},
}


def _theme_manifest(theme_id: str, name: str) -> dict:
    return {
        "id": theme_id,
        "name": name,
        "version": "1.0.0",
        "formats": {"css": {"entry": "theme.css"}},
        "config": {"schema": {"accent": {"type": "color", "default": "#111111", "cssVar": "accent"}}},
    }


def default_registry_files() -> dict:
    return {
        "registry.json": json.dumps(REGISTRY),
        "plugins/content/toc/manifest.json": json.dumps(TOC_MANIFEST),
        "plugins/content/toc/webcomponent/index.js": TOC_JS,
        "plugins/content/toc/style.css": TOC_CSS,
        "plugins/ui/reading-progress/plugin.json": json.dumps(READING_PROGRESS_MANIFEST),
        "plugins/analytics/analytics-lite/manifest.json": json.dumps(ANALYTICS_MANIFEST),
        "themes/theme-editorial/manifest.json": json.dumps(_theme_manifest("theme-editorial", "Editorial")),
        "themes/theme-editorial/theme.css": EDITORIAL_CSS,
        "themes/theme-minimal/manifest.json": json.dumps(_theme_manifest("theme-minimal", "Minimal")),
        "themes/theme-minimal/theme.css": MINIMAL_CSS,
    }


class FakeGitHub:
    """GitHub contents API over a dict of path -> file text (or a canned httpx.Response)."""

    def __init__(self, files: dict | None = None):
        self.files = files if files is not None else default_registry_files()
        self.requests: list[httpx.Request] = []

    def paths(self) -> list[str]:
        return [request.url.path[len(CONTENTS_PREFIX) :] for request in self.requests]

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        path = request.url.path[len(CONTENTS_PREFIX) :]
        entry = self.files.get(path)
        if entry is None:
            return httpx.Response(404, json={"message": "Not Found"})
        if isinstance(entry, httpx.Response):
            return entry
        encoded = base64.b64encode(entry.encode("utf-8")).decode("ascii")
        return httpx.Response(200, json={"content": encoded, "encoding": "base64", "path": path})


class FakeSite:
    """The blog's own pages, as seen by the pre-warm requests."""

    def __init__(self, status_code: int = 200):
        self.status_code = status_code
        self.requests: list[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        return httpx.Response(self.status_code, text="<html></html>")


# ── Fixtures ──────────────────────────────────────────────────────────────────


@pytest.fixture
def test_settings(tmp_path):
    return Settings(
        content_dir=str(tmp_path / "content"),
        registry_repo=REGISTRY_REPO,
        registry_branch="main",
        registry_api_url="https://api.github.test",
        registry_token=REGISTRY_TOKEN,
        registry_local_path=None,
        admin_token=ADMIN_TOKEN,
        site_base_url=SITE_URL,
        default_theme_id="theme-editorial",
        redis_url=None,
        prewarm_timeout_seconds=5.0,
    )


@pytest.fixture
def store(test_settings):
    from plugin_runtime.storage import LocalContentStore

    return LocalContentStore(test_settings.content_dir)


@pytest.fixture
def fake_github():
    return FakeGitHub()


@pytest.fixture
def fake_site():
    return FakeSite()


@pytest.fixture
def registry(test_settings, fake_github):
    from plugin_runtime.plugins.registry_client import RegistryClient

    client = httpx.AsyncClient(transport=httpx.MockTransport(fake_github))
    return RegistryClient(test_settings, client=client)


@pytest.fixture
def page_cache():
    from plugin_runtime.services.page_cache import PageCache

    return PageCache(redis_url=None)


@pytest.fixture
def asset_cache(store, registry):
    from plugin_runtime.services.asset_cache import AssetCache

    return AssetCache(store, registry)


@pytest.fixture
def prewarm_client(fake_site):
    return httpx.AsyncClient(transport=httpx.MockTransport(fake_site))


@pytest.fixture
async def revalidation(page_cache, store, test_settings, prewarm_client):
    from plugin_runtime.services.revalidation import RevalidationScheduler

    scheduler = RevalidationScheduler(page_cache, store, test_settings, client=prewarm_client)
    yield scheduler
    await scheduler.drain()


@pytest.fixture
def plugin_service(store, registry, asset_cache, revalidation, test_settings):
    from plugin_runtime.services.plugin_service import PluginService

    return PluginService(store, registry, asset_cache, revalidation, test_settings.default_theme_id)


@pytest.fixture
async def app(test_settings, store, registry, page_cache, prewarm_client):
    application = create_app(
        config=test_settings,
        store=store,
        registry=registry,
        page_cache=page_cache,
        prewarm_client=prewarm_client,
    )
    yield application
    await application.state.revalidation.drain()
    if application.state.scheduler.running:
        application.state.scheduler.shutdown(wait=False)


@pytest.fixture
async def client(app):
    async with httpx.AsyncClient(transport=httpx.ASGITransport(app=app), base_url="http://test") as ac:
        yield ac


@pytest.fixture
def admin_headers():
    return {"X-Admin-Token": ADMIN_TOKEN}
