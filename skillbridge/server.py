"""HTTP API over SkillService."""

import logging

from fastapi import FastAPI, HTTPException, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from skillbridge import __version__
from skillbridge.errors import (
    FetchFailure,
    NotFoundError,
    SkillBridgeError,
    TargetPathConflict,
)
from skillbridge.models import ImportResolution, SyncMode
from skillbridge.service import SkillService

logger = logging.getLogger(__name__)


def _status_for(error: SkillBridgeError) -> int:
    if isinstance(error, NotFoundError):
        return 404
    if isinstance(error, TargetPathConflict):
        return 409
    if isinstance(error, FetchFailure):
        return 502
    return 400


def create_app(service: SkillService) -> FastAPI:
    """Create a FastAPI app bound to a service instance."""
    new_app = FastAPI(
        title="SkillBridge",
        description="Central skill store synchronized into AI coding tools",
        version=__version__,
    )

    class LocalInstallRequest(BaseModel):
        path: str
        name: str | None = None
        sync: bool = False

    class GitInstallRequest(BaseModel):
        ref: str
        subpath: str | None = None
        name: str | None = None
        sync: bool = False

    class SyncRequest(BaseModel):
        enabled: bool = True
        mode: SyncMode | None = None
        overwrite: bool = False

    class NewToolsRequest(BaseModel):
        tools: list[str] | None = None

    class ImportRequest(BaseModel):
        name: str
        tool: str | None = None
        skip: bool = False

    class IntValue(BaseModel):
        value: int

    class PreferredToolsRequest(BaseModel):
        tools: list[str] | None = None

    class RelocateRequest(BaseModel):
        path: str

    @new_app.exception_handler(SkillBridgeError)
    async def handle_skill_error(request: Request, exc: SkillBridgeError):
        status = _status_for(exc)
        if status >= 500:
            logger.error(f"{request.method} {request.url.path} failed: {exc}")
        return JSONResponse(status_code=status, content={"detail": str(exc)})

    @new_app.exception_handler(ValueError)
    async def handle_value_error(request: Request, exc: ValueError):
        return JSONResponse(status_code=400, content={"detail": str(exc)})

    # --------------------------------------------------------
    # Skills
    # --------------------------------------------------------

    @new_app.get("/skills", tags=["Skills"])
    def list_skills():
        return [s.to_dict() for s in service.list_skills()]

    @new_app.get("/skills/{skill_id}", tags=["Skills"])
    def get_skill(skill_id: str):
        return service.get_skill(skill_id).to_dict()

    @new_app.post("/skills/local", tags=["Skills"], status_code=201)
    def install_local(req: LocalInstallRequest):
        result = service.install_local(req.path, name=req.name)
        body = result.to_dict()
        if req.sync:
            body["sync"] = service.sync_to_preferred(result.skill_id).to_dict()
        return body

    @new_app.get("/git/candidates", tags=["Skills"])
    def git_candidates(ref: str):
        return [c.to_dict() for c in service.list_git_candidates(ref)]

    @new_app.post("/skills/git", tags=["Skills"], status_code=201)
    def install_git(req: GitInstallRequest):
        result = service.install_git(req.ref, subpath=req.subpath, name=req.name)
        body = result.to_dict()
        if req.sync:
            body["sync"] = service.sync_to_preferred(result.skill_id).to_dict()
        return body

    @new_app.delete("/skills/{skill_id}", tags=["Skills"])
    def delete_skill(skill_id: str):
        skill = service.delete_skill(skill_id)
        return {"deleted": skill.id, "name": skill.name}

    @new_app.post("/skills/{skill_id}/update", tags=["Skills"])
    def update_skill(skill_id: str):
        return service.update_skill(skill_id).to_dict()

    @new_app.put("/skills/{skill_id}/tools/{tool}", tags=["Sync"])
    def set_sync(skill_id: str, tool: str, req: SyncRequest):
        result = service.set_sync(
            skill_id, tool, req.enabled, mode=req.mode, overwrite=req.overwrite
        )
        if result is None:
            return {"tool": tool, "enabled": False}
        return {"enabled": True, **result.to_dict()}

    @new_app.post("/skills/{skill_id}/sync-preferred", tags=["Sync"])
    def sync_preferred(skill_id: str):
        return service.sync_to_preferred(skill_id).to_dict()

    @new_app.post("/sync/new-tools", tags=["Sync"])
    def sync_new_tools(req: NewToolsRequest):
        return service.sync_all_new_tools(req.tools).to_dict()

    # --------------------------------------------------------
    # Tools & onboarding
    # --------------------------------------------------------

    @new_app.get("/tools", tags=["Tools"])
    def tool_status():
        return service.tool_status().to_dict()

    @new_app.get("/onboarding", tags=["Onboarding"])
    def onboarding_scan():
        return service.onboarding_scan().to_dict()

    @new_app.post("/onboarding/import", tags=["Onboarding"])
    def onboarding_import(req: ImportRequest):
        if not req.skip and not req.tool:
            raise HTTPException(status_code=400, detail="Either tool or skip is required")
        result = service.onboarding_import(
            req.name, ImportResolution(tool=req.tool, skip=req.skip)
        )
        return {"imported": result.to_dict() if result else None}

    # --------------------------------------------------------
    # Git cache & preferences
    # --------------------------------------------------------

    @new_app.get("/cache", tags=["Cache"])
    def cache_info():
        return {
            "path": str(service.get_cache_path()),
            "ttl_secs": service.get_cache_ttl_secs(),
            "cleanup_days": service.get_cache_cleanup_days(),
        }

    @new_app.put("/cache/ttl", tags=["Cache"])
    def set_cache_ttl(req: IntValue):
        return {"ttl_secs": service.set_cache_ttl_secs(req.value)}

    @new_app.put("/cache/cleanup-days", tags=["Cache"])
    def set_cache_cleanup_days(req: IntValue):
        return {"cleanup_days": service.set_cache_cleanup_days(req.value)}

    @new_app.post("/cache/cleanup", tags=["Cache"])
    def cleanup_cache():
        return {"removed": service.cleanup_cache()}

    @new_app.post("/cache/clear", tags=["Cache"])
    def clear_cache():
        return {"removed": service.clear_cache()}

    @new_app.get("/preferences/tools", tags=["Preferences"])
    def get_preferred_tools():
        return {"tools": service.get_preferred_tools()}

    @new_app.put("/preferences/tools", tags=["Preferences"])
    def set_preferred_tools(req: PreferredToolsRequest):
        return {"tools": service.set_preferred_tools(req.tools)}

    @new_app.get("/preferences/central-path", tags=["Preferences"])
    def get_central_path():
        return {"path": str(service.get_central_path())}

    @new_app.put("/preferences/central-path", tags=["Preferences"])
    def relocate_central(req: RelocateRequest):
        result = service.relocate_central(req.path)
        return {"path": str(service.get_central_path()), "relink": result.to_dict()}

    return new_app


def run_server(service: SkillService, host: str = "127.0.0.1", port: int = 8765) -> None:
    import uvicorn

    service.cleanup_cache()
    logger.info(f"Starting SkillBridge API on {host}:{port}")
    uvicorn.run(create_app(service), host=host, port=port, log_level="info")
