from typing import Any, Dict

from fastapi import APIRouter, HTTPException
from pydantic import BaseModel, Field

from konbase.modules.errors import ModuleError, ModuleNotFoundError, PersistenceError, ValidationError
from konbase.modules.manager import ModuleManager

class SettingsPayload(BaseModel):
    settings: Dict[str, Any] = Field(default_factory=dict)

def _status_for(error: Exception) -> int:
    if isinstance(error, ModuleNotFoundError):
        return 404
    if isinstance(error, ValidationError):
        return 400
    if isinstance(error, PersistenceError):
        return 503
    return 409

def create_module_router(manager: ModuleManager) -> APIRouter:
    """Host-Schnittstelle des Modul-Systems als FastAPI-Router."""
    router = APIRouter()

    def _require(module_id: str):
        if manager.registry.get(module_id) is None:
            raise HTTPException(status_code=404, detail=f"Modul '{module_id}' ist nicht registriert")

    @router.get("/modules")
    def list_modules():
        return [m.model_dump(mode="json") for m in manager.list_manifests()]

    @router.post("/modules/{module_id}/enable")
    async def enable_module(module_id: str):
        result = await manager.enable(module_id)
        if not result:
            raise HTTPException(status_code=_status_for(result.error), detail=result.message)
        return {"ok": True, "message": result.message}

    @router.post("/modules/{module_id}/disable")
    async def disable_module(module_id: str):
        result = await manager.disable(module_id)
        if not result:
            raise HTTPException(status_code=_status_for(result.error), detail=result.message)
        return {"ok": True, "message": result.message}

    @router.get("/modules/{module_id}/configuration")
    async def get_configuration(module_id: str):
        _require(module_id)
        try:
            config = await manager.get_configuration(module_id)
        except ModuleError as e:
            raise HTTPException(status_code=_status_for(e), detail=e.message)
        return config.model_dump(mode="json")

    @router.put("/modules/{module_id}/configuration")
    async def save_configuration(module_id: str, payload: SettingsPayload):
        _require(module_id)
        try:
            config = await manager.save_configuration({"module_id": module_id, "settings": payload.settings})
        except ModuleError as e:
            raise HTTPException(status_code=_status_for(e), detail=e.message)
        return config.model_dump(mode="json")

    @router.get("/extensions/dashboard")
    def dashboard_extensions():
        return [item.model_dump(mode="json") for item in manager.get_dashboard_extensions()]

    @router.get("/extensions/navigation")
    def navigation_extensions():
        return [item.model_dump(mode="json") for item in manager.get_navigation_extensions()]

    @router.get("/extensions/settings")
    def settings_extensions():
        return [page.model_dump(mode="json") for page in manager.get_settings_pages()]

    return router
