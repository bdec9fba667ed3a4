import logging
from contextlib import asynccontextmanager
from typing import Optional

import httpx
import uvicorn
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from plugin_runtime.config import Settings, settings
from plugin_runtime.exception_handlers import register_exception_handlers
from plugin_runtime.middleware.logging import StructuredLoggingMiddleware, setup_structured_logging
from plugin_runtime.plugins.registry_client import RegistryClient
from plugin_runtime.routes import plugins, runtime
from plugin_runtime.scheduler import create_scheduler
from plugin_runtime.services.asset_cache import AssetCache
from plugin_runtime.services.page_cache import PageCache
from plugin_runtime.services.plugin_service import PluginService
from plugin_runtime.services.revalidation import RevalidationScheduler
from plugin_runtime.services.styles import StyleRenderer
from plugin_runtime.storage import ContentStore, LocalContentStore

setup_structured_logging(
    log_level="DEBUG" if settings.debug else "INFO",
    json_format=settings.environment == "production",
)
logger = logging.getLogger(__name__)


def create_app(
    config: Optional[Settings] = None,
    store: Optional[ContentStore] = None,
    registry: Optional[RegistryClient] = None,
    page_cache: Optional[PageCache] = None,
    prewarm_client: Optional[httpx.AsyncClient] = None,
) -> FastAPI:
    """Create the FastAPI application."""
    config = config or settings
    store = store or LocalContentStore(config.content_dir)
    registry = registry or RegistryClient(config)
    page_cache = page_cache or PageCache(config.redis_url)
    asset_cache = AssetCache(store, registry)
    revalidation = RevalidationScheduler(page_cache, store, config, client=prewarm_client)
    plugin_service = PluginService(store, registry, asset_cache, revalidation, config.default_theme_id)
    scheduler = create_scheduler()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logger.info("Starting up the plugin runtime...")
        await page_cache.connect()
        scheduler.start()
        yield
        logger.info("Shutting down the plugin runtime...")
        scheduler.shutdown(wait=False)
        await revalidation.aclose()
        await registry.aclose()
        await page_cache.disconnect()

    app = FastAPI(
        title=config.app_name,
        description="Plugin registry, asset proxy and install state for the blog",
        debug=config.debug,
        version=config.app_version,
        lifespan=lifespan,
    )

    app.state.settings = config
    app.state.plugin_service = plugin_service
    app.state.asset_cache = asset_cache
    app.state.page_cache = page_cache
    app.state.revalidation = revalidation
    app.state.scheduler = scheduler
    app.state.style_renderer = StyleRenderer()

    # Add middleware
    app.add_middleware(
        CORSMiddleware,
        allow_origins=config.allowed_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.add_middleware(StructuredLoggingMiddleware)

    register_exception_handlers(app)

    # Include routers
    app.include_router(plugins.router, prefix="/api/admin")
    app.include_router(runtime.router, prefix="/api")

    @app.get("/health", tags=["Root"])
    async def health():
        return {"status": "ok", "version": config.app_version}

    if config.debug:
        logger.info(f"Running in {config.environment} mode")

    return app


app = create_app()


if __name__ == "__main__":
    uvicorn.run("main:app", host="0.0.0.0", port=8000, reload=settings.debug)
