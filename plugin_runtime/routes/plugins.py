"""
Plugin Administration Routes

All routes require the admin token (X-Admin-Token header).

GET    /api/admin/plugins                      → registry listing merged with install state
GET    /api/admin/plugins/{id}                 → plugin detail with schema and merged config
POST   /api/admin/plugins/{id}/install         → install (or reinstall) a plugin
DELETE /api/admin/plugins/{id}                 → uninstall a plugin
PATCH  /api/admin/plugins/{id}                 → enable/disable, activate theme, revalidation policy
PUT    /api/admin/plugins/{id}/config          → replace a plugin's saved config
POST   /api/admin/revalidate                   → invalidate the whole site now
POST   /api/admin/revalidate/schedule          → debounced site revalidation
GET    /api/admin/plugin-nav                   → admin navigation entries contributed by plugins

Every mutation answers with a `revalidation` object describing what
happened to the rendered site.

No DB dependency — plugin state is stored in settings.json.
"""

from __future__ import annotations

import logging
from typing import Any, Literal, Optional

from fastapi import APIRouter, Depends, Request, status
from pydantic import BaseModel, Field

from plugin_runtime.dependencies import get_plugin_service, require_admin
from plugin_runtime.exceptions import ValidationError
from plugin_runtime.plugins.models import InstalledPlugin, RevalidationMode, RevalidationPolicy
from plugin_runtime.scheduler import pending_revalidation, schedule_revalidation
from plugin_runtime.services.plugin_service import MutationResult, PluginService
from plugin_runtime.services.revalidation import RevalidationResult

router = APIRouter(tags=["Plugins"], dependencies=[Depends(require_admin)])
logger = logging.getLogger(__name__)


# ── Pydantic schemas ───────────────────────────────────────────────────────────


class RevalidationPatch(BaseModel):
    mode: Optional[Literal["immediate", "debounced"]] = None
    debounceSeconds: Optional[int] = Field(default=None, ge=0)


class PluginPatch(BaseModel):
    enabled: Optional[bool] = None
    activate_theme: bool = False
    revalidation: Optional[RevalidationPatch] = None


class PluginConfigUpdate(BaseModel):
    config: dict[str, Any]


class ScheduleRequest(BaseModel):
    delay_seconds: int = Field(default=30, ge=0)


class RevalidationResponse(BaseModel):
    mode: Optional[str] = None
    delay_seconds: int = 0
    triggered: bool = False
    scheduled_at: Optional[str] = None


class MutationResponse(BaseModel):
    success: bool = True
    plugin: Optional[dict[str, Any]] = None
    revalidation: RevalidationResponse


# ── Helpers ────────────────────────────────────────────────────────────────────


def _revalidation_response(request: Request, service: PluginService, result: RevalidationResult) -> RevalidationResponse:
    """Debounced results are turned into (or folded into) the single pending site job."""
    response = RevalidationResponse(**result.to_dict())
    if result.mode is RevalidationMode.DEBOUNCED:
        run_at = schedule_revalidation(request.app.state.scheduler, service.revalidate, result.delay_seconds)
        response.scheduled_at = run_at.isoformat()
    return response


def _build_response(request: Request, service: PluginService, result: MutationResult) -> MutationResponse:
    return MutationResponse(
        plugin=result.plugin.to_dict() if result.plugin else None,
        revalidation=_revalidation_response(request, service, result.revalidation),
    )


# ── Routes ─────────────────────────────────────────────────────────────────────


@router.get("/plugins")
async def list_plugins(service: PluginService = Depends(get_plugin_service)) -> dict[str, Any]:
    """Registry entries annotated with their install state, plus the active theme."""
    return await service.list_plugins()


@router.get("/plugins/{plugin_id}")
async def get_plugin(plugin_id: str, service: PluginService = Depends(get_plugin_service)) -> dict[str, Any]:
    return await service.get_plugin_detail(plugin_id)


@router.post("/plugins/{plugin_id}/install", response_model=MutationResponse, status_code=status.HTTP_201_CREATED)
async def install_plugin(
    plugin_id: str,
    request: Request,
    service: PluginService = Depends(get_plugin_service),
) -> MutationResponse:
    result = await service.install(plugin_id)
    return _build_response(request, service, result)


@router.delete("/plugins/{plugin_id}", response_model=MutationResponse)
async def uninstall_plugin(
    plugin_id: str,
    request: Request,
    service: PluginService = Depends(get_plugin_service),
) -> MutationResponse:
    result = await service.uninstall(plugin_id)
    return _build_response(request, service, result)


@router.patch("/plugins/{plugin_id}", response_model=MutationResponse)
async def update_plugin(
    plugin_id: str,
    payload: PluginPatch,
    request: Request,
    service: PluginService = Depends(get_plugin_service),
) -> MutationResponse:
    """
    Apply one change to an installed plugin.

    `revalidation` only updates the stored policy; `activate_theme` and
    `enabled` change what the site renders and trigger a revalidation.
    """
    record: InstalledPlugin | None = None
    if payload.revalidation is not None:
        patch = payload.revalidation.model_dump(exclude_none=True)
        record = await service.set_revalidation_policy(plugin_id, patch)

    if payload.activate_theme:
        return _build_response(request, service, await service.activate_theme(plugin_id))
    if payload.enabled is not None:
        return _build_response(request, service, await service.set_enabled(plugin_id, payload.enabled))
    if record is None:
        raise ValidationError("Nothing to update", details={"fields": ["enabled", "activate_theme", "revalidation"]})
    return _build_response(request, service, MutationResult(record, RevalidationResult.skipped()))


@router.put("/plugins/{plugin_id}/config", response_model=MutationResponse)
async def update_plugin_config(
    plugin_id: str,
    payload: PluginConfigUpdate,
    request: Request,
    service: PluginService = Depends(get_plugin_service),
) -> MutationResponse:
    """Replace the plugin's saved config; values are validated against its schema."""
    record = await service.set_config(plugin_id, payload.config)
    result = await service.revalidate(record.revalidation)
    return _build_response(request, service, MutationResult(record, result))


@router.post("/revalidate", response_model=MutationResponse)
async def revalidate_site(request: Request, service: PluginService = Depends(get_plugin_service)) -> MutationResponse:
    logger.info("Manual site revalidation requested")
    result = await service.revalidate()
    return MutationResponse(revalidation=_revalidation_response(request, service, result))


@router.post("/revalidate/schedule", response_model=MutationResponse)
async def schedule_site_revalidation(
    payload: ScheduleRequest,
    request: Request,
    service: PluginService = Depends(get_plugin_service),
) -> MutationResponse:
    policy = RevalidationPolicy(mode=RevalidationMode.DEBOUNCED, debounce_seconds=payload.delay_seconds)
    result = await service.revalidate(policy)
    response = _revalidation_response(request, service, result)
    pending = pending_revalidation(request.app.state.scheduler)
    logger.info(f"Site revalidation scheduled for {pending}")
    return MutationResponse(revalidation=response)


@router.get("/plugin-nav")
async def plugin_navigation(service: PluginService = Depends(get_plugin_service)) -> dict[str, Any]:
    return {"items": await service.admin_navigation()}
