"""
Public Plugin Runtime Routes

GET /api/plugins/runtime      → enabled plugins the browser runtime should load and mount
GET /api/plugins/head         → `<style>` fragment for the layout's <head>
GET /api/registry/asset       → cache-first proxy for registry files (?path=...&v=...)

None of these require authentication and none of them ever expose the
registry credential.
"""

import logging
from typing import Any, Optional

from fastapi import APIRouter, Depends, Query
from fastapi.responses import HTMLResponse, Response

from plugin_runtime.dependencies import get_asset_cache, get_plugin_service, get_style_renderer
from plugin_runtime.exceptions import ResourceNotFoundError
from plugin_runtime.services.asset_cache import AssetCache
from plugin_runtime.services.plugin_service import PluginService
from plugin_runtime.services.styles import StyleRenderer

router = APIRouter(tags=["Runtime"])
logger = logging.getLogger(__name__)


@router.get("/plugins/runtime")
async def runtime_plugins(service: PluginService = Depends(get_plugin_service)) -> dict[str, Any]:
    return {"plugins": await service.runtime_plugins()}


@router.get("/plugins/head", response_class=HTMLResponse)
async def plugin_head(
    service: PluginService = Depends(get_plugin_service),
    renderer: StyleRenderer = Depends(get_style_renderer),
) -> HTMLResponse:
    entries = await service.style_entries()
    return HTMLResponse(renderer.render_head(entries), headers={"Cache-Control": "no-store"})


@router.get("/registry/asset")
async def registry_asset(
    path: Optional[str] = Query(default=None),
    v: Optional[str] = Query(default=None, description="Cache-busting version; does not affect content"),
    assets: AssetCache = Depends(get_asset_cache),
) -> Response:
    asset = await assets.proxy_asset(path, version=v)
    if asset is None:
        raise ResourceNotFoundError("Asset", path)
    logger.debug("Asset %s served from %s", path, asset.source, extra={"asset_source": asset.source})
    return Response(
        content=asset.content,
        media_type=asset.media_type,
        headers={"Cache-Control": asset.cache_control, "X-Asset-Source": asset.source},
    )
