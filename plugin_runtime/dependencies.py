import logging
import secrets
from typing import Optional

from fastapi import Header, Request

from plugin_runtime.config import Settings
from plugin_runtime.exceptions import AuthenticationError
from plugin_runtime.services.asset_cache import AssetCache
from plugin_runtime.services.plugin_service import PluginService
from plugin_runtime.services.styles import StyleRenderer

logger = logging.getLogger(__name__)


def get_settings(request: Request) -> Settings:
    return request.app.state.settings


def get_plugin_service(request: Request) -> PluginService:
    return request.app.state.plugin_service


def get_asset_cache(request: Request) -> AssetCache:
    return request.app.state.asset_cache


def get_style_renderer(request: Request) -> StyleRenderer:
    return request.app.state.style_renderer


# Admin calls carry the shared token in X-Admin-Token; without a configured token they are refused.
async def require_admin(request: Request, x_admin_token: Optional[str] = Header(default=None)) -> None:
    expected = request.app.state.settings.admin_token
    if not expected or not x_admin_token:
        logger.warning(f"Admin request without credentials: {request.method} {request.url.path}")
        raise AuthenticationError("Admin token required")
    if not secrets.compare_digest(x_admin_token.encode("utf-8"), expected.encode("utf-8")):
        logger.warning(f"Admin request with invalid token: {request.method} {request.url.path}")
        raise AuthenticationError("Invalid admin token")
