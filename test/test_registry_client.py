"""
Registry Client Tests

Test classes:
    TestFetchFile     — contents API reads, auth header, request-level cache
    TestUpstreamErrors — 404 / rate limiting / outages degrade to None
    TestSnapshot      — registry.json TTL and last-good fallback
    TestManifests     — manifest.json / plugin.json lookup
    TestLocalRegistry — reading from a local checkout
"""

import json
import logging

import httpx
import pytest


class FakeClock:
    def __init__(self, now: float = 1000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now


def _client(test_settings, handler, clock=None):
    from plugin_runtime.plugins.registry_client import RegistryClient

    kwargs = {"clock": clock} if clock else {}
    return RegistryClient(test_settings, client=httpx.AsyncClient(transport=httpx.MockTransport(handler)), **kwargs)


# ══════════════════════════════════════════════════════════════════════════════
# 1. TestFetchFile
# ══════════════════════════════════════════════════════════════════════════════


class TestFetchFile:
    async def test_decodes_base64_content(self, registry):
        from conftest import TOC_JS

        assert await registry.fetch_file("plugins/content/toc/webcomponent/index.js") == TOC_JS

    async def test_sends_bearer_token_and_branch(self, registry, fake_github):
        from conftest import REGISTRY_TOKEN

        await registry.fetch_file("registry.json")
        request = fake_github.requests[0]
        assert request.headers["Authorization"] == f"Bearer {REGISTRY_TOKEN}"
        assert request.url.params["ref"] == "main"
        assert request.url.host == "api.github.test"

    async def test_no_authorization_header_without_token(self, test_settings, fake_github):
        test_settings.registry_token = None
        client = _client(test_settings, fake_github)
        await client.fetch_file("registry.json")
        assert "Authorization" not in fake_github.requests[0].headers

    async def test_repeated_reads_hit_the_cache(self, registry, fake_github):
        await registry.fetch_file("plugins/content/toc/style.css")
        await registry.fetch_file("plugins/content/toc/style.css")
        await registry.fetch_file("/plugins/content/toc/style.css")
        assert fake_github.paths() == ["plugins/content/toc/style.css"]

    async def test_cache_expires_after_ttl(self, test_settings, fake_github):
        clock = FakeClock()
        client = _client(test_settings, fake_github, clock)

        await client.fetch_file("registry.json")
        clock.now += test_settings.asset_ttl_seconds + 1
        await client.fetch_file("registry.json")
        assert len(fake_github.requests) == 2


# ══════════════════════════════════════════════════════════════════════════════
# 2. TestUpstreamErrors
# ══════════════════════════════════════════════════════════════════════════════


class TestUpstreamErrors:
    async def test_missing_file_is_none(self, registry):
        assert await registry.fetch_file("plugins/nope/manifest.json") is None

    async def test_missing_file_is_not_cached(self, registry, fake_github):
        await registry.fetch_file("plugins/nope/manifest.json")
        await registry.fetch_file("plugins/nope/manifest.json")
        assert len(fake_github.requests) == 2

    async def test_rate_limit_429_resolves_to_none(self, registry, fake_github, caplog):
        fake_github.files["registry.json"] = httpx.Response(429, json={"message": "slow down"})
        with caplog.at_level(logging.WARNING, logger="plugin_runtime.plugins.registry_client"):
            assert await registry.fetch_file("registry.json") is None
        assert "rate limited" in caplog.text

    async def test_rate_limit_403_with_exhausted_quota(self, registry, fake_github, caplog):
        fake_github.files["registry.json"] = httpx.Response(
            403, headers={"x-ratelimit-remaining": "0"}, json={"message": "API rate limit exceeded"}
        )
        with caplog.at_level(logging.WARNING, logger="plugin_runtime.plugins.registry_client"):
            assert await registry.fetch_file("registry.json") is None
        assert "rate limited" in caplog.text

    async def test_fetch_remote_raises_typed_errors(self, registry, fake_github):
        from plugin_runtime.exceptions import RateLimitedError, UpstreamUnavailableError

        fake_github.files["a.js"] = httpx.Response(429)
        fake_github.files["b.js"] = httpx.Response(500)
        with pytest.raises(RateLimitedError) as exc_info:
            await registry._fetch_remote("a.js")
        assert exc_info.value.status_code == 429
        with pytest.raises(UpstreamUnavailableError) as exc_info:
            await registry._fetch_remote("b.js")
        assert exc_info.value.status_code == 502

    async def test_timeout_resolves_to_none(self, test_settings):
        def handler(request):
            raise httpx.ConnectTimeout("timed out", request=request)

        client = _client(test_settings, handler)
        assert await client.fetch_file("registry.json") is None

    async def test_malformed_payload_resolves_to_none(self, registry, fake_github):
        fake_github.files["registry.json"] = httpx.Response(200, json={"unexpected": True})
        assert await registry.fetch_file("registry.json") is None

    async def test_token_never_appears_in_logs(self, registry, fake_github, caplog):
        from conftest import REGISTRY_TOKEN

        fake_github.files["registry.json"] = httpx.Response(500)
        with caplog.at_level(logging.DEBUG):
            await registry.fetch_file("registry.json")
        assert REGISTRY_TOKEN not in caplog.text


# ══════════════════════════════════════════════════════════════════════════════
# 3. TestSnapshot
# ══════════════════════════════════════════════════════════════════════════════


class TestSnapshot:
    async def test_snapshot_contains_themes_and_plugins(self, registry):
        snapshot = await registry.get_snapshot()
        assert snapshot.get("theme-minimal").is_theme
        assert snapshot.get("toc").source == "plugins/content/toc"

    async def test_snapshot_is_reused_within_ttl(self, registry, fake_github):
        first = await registry.get_snapshot()
        second = await registry.get_snapshot()
        assert first is second
        assert fake_github.paths().count("registry.json") == 1

    async def test_force_refetches(self, registry, fake_github):
        await registry.get_snapshot()
        await registry.get_snapshot(force=True)
        assert fake_github.paths().count("registry.json") == 2

    async def test_last_good_snapshot_survives_outage(self, test_settings, fake_github):
        clock = FakeClock()
        client = _client(test_settings, fake_github, clock)
        good = await client.get_snapshot()

        fake_github.files["registry.json"] = httpx.Response(503)
        clock.now += test_settings.registry_ttl_seconds + 1
        assert await client.get_snapshot() is good

    async def test_empty_snapshot_when_never_loaded(self, registry, fake_github):
        fake_github.files["registry.json"] = httpx.Response(503)
        snapshot = await registry.get_snapshot()
        assert len(snapshot) == 0

    async def test_unparseable_registry_keeps_previous(self, registry, fake_github):
        good = await registry.get_snapshot()
        fake_github.files["registry.json"] = "{not json"
        assert await registry.get_snapshot(force=True) is good


# ══════════════════════════════════════════════════════════════════════════════
# 4. TestManifests
# ══════════════════════════════════════════════════════════════════════════════


class TestManifests:
    async def test_manifest_json_preferred(self, registry, fake_github):
        filename, raw = await registry.fetch_manifest_raw("plugins/content/toc")
        assert filename == "manifest.json"
        assert json.loads(raw)["id"] == "toc"
        assert "plugins/content/toc/plugin.json" not in fake_github.paths()

    async def test_plugin_json_fallback(self, registry):
        filename, raw = await registry.fetch_manifest_raw("plugins/ui/reading-progress")
        assert filename == "plugin.json"
        assert json.loads(raw)["id"] == "reading-progress"

    async def test_missing_manifest(self, registry):
        assert await registry.fetch_manifest_raw("plugins/ui/ghost") is None

    async def test_fetch_manifest_parses(self, registry):
        snapshot = await registry.get_snapshot()
        manifest = await registry.fetch_manifest(snapshot.get("toc"))
        assert list(manifest.formats) == ["webcomponent", "css"]
        assert manifest.allowed_routes == ("/blog/*",)


# ══════════════════════════════════════════════════════════════════════════════
# 5. TestLocalRegistry
# ══════════════════════════════════════════════════════════════════════════════


class TestLocalRegistry:
    async def test_reads_from_checkout_without_network(self, test_settings, tmp_path, fake_github):
        checkout = tmp_path / "registry"
        (checkout / "plugins" / "ui" / "x").mkdir(parents=True)
        (checkout / "registry.json").write_text(json.dumps({"plugins": [{"id": "x", "source": "plugins/ui/x"}]}))
        test_settings.registry_local_path = str(checkout)

        client = _client(test_settings, fake_github)
        assert client.is_local
        snapshot = await client.get_snapshot()
        assert snapshot.get("x") is not None
        assert await client.fetch_file("plugins/ui/x/missing.js") is None
        assert fake_github.requests == []
