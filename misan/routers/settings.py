"""System settings, pricing and LLM settings APIs."""
from dataclasses import asdict
from typing import Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel

from misan.core.auth import require_admin
from misan.core.responses import result_response
from misan.services.llm_settings_service import get_masked_llm_settings, get_public_llm_settings
from misan.services.settings_service import (
    get_admin_settings,
    load_pricing_settings,
    load_trial_config,
    update_settings,
    update_trial_config,
)

router = APIRouter(prefix="/api")
admin_router = APIRouter(prefix="/api/admin", dependencies=[Depends(require_admin)])


class UpdateSettingsRequest(BaseModel):
    settings: Optional[dict] = None
    pricing: Optional[dict] = None
    alerts: Optional[dict] = None
    llm: Optional[dict] = None


class TrialConfigRequest(BaseModel):
    duration_days: Optional[int] = None
    tokens_amount: Optional[int] = None
    enabled: Optional[bool] = None


@router.get("/free-trial-config")
async def free_trial_config():
    return {"success": True, "config": asdict(load_trial_config())}


@router.get("/pricing")
async def pricing():
    return {
        "success": True,
        "pricing": load_pricing_settings().api_dict(),
        "trial": asdict(load_trial_config()),
    }


@router.get("/llm-settings")
async def public_llm_settings():
    return {"success": True, "settings": get_public_llm_settings()}


@admin_router.get("/settings")
async def admin_settings():
    return get_admin_settings()


@admin_router.post("/settings")
async def admin_update_settings(req: UpdateSettingsRequest):
    return result_response(update_settings(req.model_dump(exclude_none=True)))


@admin_router.post("/trial-config")
async def admin_update_trial_config(req: TrialConfigRequest):
    return result_response(update_trial_config(req.model_dump(exclude_none=True)))


@admin_router.get("/llm-settings")
async def admin_llm_settings():
    return {"success": True, "settings": get_masked_llm_settings()}


@admin_router.post("/llm-settings")
async def admin_update_llm_settings(request: dict):
    return result_response(update_settings({"llm": request}))
