"""
FastAPI surface over the vault core.
Authentication happens upstream; the caller is identified by the X-User-Id header.
"""

from fastapi import FastAPI, HTTPException, Depends, Header, Request
from fastapi.responses import JSONResponse
from fastapi.middleware.cors import CORSMiddleware
from typing import List, Dict, Any, Optional
import logging

from .schemas import (
    HealthResponse,
    MessageResponse,
    ActivityResponse,
    SettingsUpdateRequest,
    AddDependentRequest,
    UpdatePermissionsRequest,
    AccessRequestCreate,
    AccessDecisionRequest,
    UserStatsResponse,
    SweepTransition,
    SweepResponse,
)
from ..core.config import VERSION, debug_enabled
from ..core.db import health_check
from ..core.errors import VaultError, NotFound, Forbidden, Conflict, InvalidState, ValidationError
from ..core.heartbeat import Heartbeat
from ..core.schema import Role, User
from ..core.services import Services, build_services

app = FastAPI(
    title="Legacy Vault API",
    version=VERSION,
    description="Access control for a digital legacy vault: dependents, inactivity and admin-approved access",
    docs_url="/docs" if debug_enabled() else None,
    redoc_url="/redoc" if debug_enabled() else None
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["http://localhost:3000", "http://127.0.0.1:3000", "http://localhost:19006"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

ERROR_STATUS = {
    NotFound: 404,
    Forbidden: 403,
    Conflict: 409,
    InvalidState: 400,
    ValidationError: 422,
}


def get_services() -> Services:
    """Services bound to the configured database, built on first use."""
    services = getattr(app.state, "services", None)
    if services is None:
        services = build_services()
        app.state.services = services
    return services


def get_heartbeat() -> Heartbeat:
    heartbeat = getattr(app.state, "heartbeat", None)
    if heartbeat is None:
        heartbeat = Heartbeat()
        app.state.heartbeat = heartbeat
    return heartbeat


def current_user(x_user_id: Optional[str] = Header(None),
                 services: Services = Depends(get_services)) -> User:
    if not x_user_id:
        raise HTTPException(status_code=401, detail="Missing X-User-Id header")
    user = services.users.get_user(x_user_id)
    if not user:
        raise HTTPException(status_code=401, detail="Unknown user")
    return user


def require_role(role: Role):
    def dependency(user: User = Depends(current_user)) -> User:
        if user.role != role:
            raise HTTPException(status_code=403, detail=f"Access denied. {role.value.capitalize()} role required.")
        return user
    return dependency


require_owner = require_role(Role.OWNER)
require_dependent = require_role(Role.DEPENDENT)
require_admin = require_role(Role.ADMIN)


@app.exception_handler(VaultError)
async def vault_error_handler(request: Request, exc: VaultError):
    status_code = ERROR_STATUS.get(type(exc), 400)
    content = {"detail": exc.message}
    if debug_enabled() and exc.details:
        content["debug"] = exc.details
    return JSONResponse(status_code=status_code, content=content)


@app.get("/health", response_model=HealthResponse)
def health_check_endpoint(services: Services = Depends(get_services),
                          heartbeat: Heartbeat = Depends(get_heartbeat)):
    """Check system health."""
    db_health = health_check(services.users.db_path)
    return HealthResponse(
        status="healthy" if db_health else "unhealthy",
        version=VERSION,
        db_health=db_health,
        heartbeat=heartbeat.get_status()
    )


@app.post("/activity/heartbeat", response_model=ActivityResponse)
def activity_heartbeat(user: User = Depends(current_user), services: Services = Depends(get_services)):
    """Record that the caller is alive. Clears an owner's inactive flag."""
    updated = services.activity.touch(user.id)
    return ActivityResponse(message="Activity updated", last_activity_at=updated.last_activity_at)


# Users

@app.put("/users/settings")
def update_settings(req: SettingsUpdateRequest, user: User = Depends(require_owner),
                    services: Services = Depends(get_services)) -> Dict[str, Any]:
    updated = services.activity.update_settings(user.id, inactivity_days=req.inactivity_days, name=req.name)
    return {"message": "Settings updated", "user": updated.to_dict()}


@app.get("/users/stats", response_model=UserStatsResponse)
def user_stats(user: User = Depends(require_admin), services: Services = Depends(get_services)):
    return UserStatsResponse(**services.users.get_stats().to_dict())


@app.get("/users")
def list_users(user: User = Depends(require_admin), services: Services = Depends(get_services)) -> List[Dict[str, Any]]:
    return [u.to_dict() for u in services.users.list_users()]


# Dependents. /dependents/owners is declared before /dependents/{id}

@app.get("/dependents/owners")
def list_my_owners(user: User = Depends(require_dependent),
                   services: Services = Depends(get_services)) -> List[Dict[str, Any]]:
    return [v.to_dict() for v in services.registry.list_for_dependent(user.id)]


@app.get("/dependents")
def list_dependents(user: User = Depends(require_owner),
                    services: Services = Depends(get_services)) -> List[Dict[str, Any]]:
    return [v.to_dict() for v in services.registry.list_for_owner(user.id)]


@app.post("/dependents", status_code=201)
def add_dependent(req: AddDependentRequest, user: User = Depends(require_owner),
                  services: Services = Depends(get_services)) -> Dict[str, Any]:
    relationship = services.registry.add_dependent(user.id, req.email, req.permissions)
    return relationship.to_dict()


@app.put("/dependents/{relationship_id}")
def update_dependent_permissions(relationship_id: str, req: UpdatePermissionsRequest,
                                 user: User = Depends(require_owner),
                                 services: Services = Depends(get_services)) -> Dict[str, Any]:
    return services.registry.update_permissions(user.id, relationship_id, req.permissions).to_dict()


@app.delete("/dependents/{relationship_id}", response_model=MessageResponse)
def remove_dependent(relationship_id: str, user: User = Depends(require_owner),
                     services: Services = Depends(get_services)):
    services.registry.remove_dependent(user.id, relationship_id)
    return MessageResponse(message="Dependent removed")


# Access requests. Fixed paths are declared before /access/{request_id}/...

@app.post("/access/request", status_code=201)
def submit_access_request(req: AccessRequestCreate, user: User = Depends(require_dependent),
                          services: Services = Depends(get_services)) -> Dict[str, Any]:
    return services.access.submit(user.id, req.owner_id, req.reason).to_dict()


@app.get("/access/my-requests")
def my_access_requests(user: User = Depends(require_dependent),
                       services: Services = Depends(get_services)) -> List[Dict[str, Any]]:
    return [v.to_dict() for v in services.access.list_for_dependent(user.id)]


@app.get("/access/pending")
def pending_access_requests(user: User = Depends(require_admin),
                            services: Services = Depends(get_services)) -> List[Dict[str, Any]]:
    return [v.to_dict() for v in services.access.list_pending_for_admin()]


@app.get("/access/all")
def all_access_requests(user: User = Depends(require_admin),
                        services: Services = Depends(get_services)) -> List[Dict[str, Any]]:
    return [v.to_dict() for v in services.access.list_all_for_admin()]


@app.get("/access/logs")
def audit_logs(user: User = Depends(require_owner),
               services: Services = Depends(get_services)) -> List[Dict[str, Any]]:
    return [v.to_dict() for v in services.audit.activity_log(user.id)]


@app.get("/access/vault/{owner_id}")
def view_vault(owner_id: str, user: User = Depends(require_dependent),
               services: Services = Depends(get_services)) -> Dict[str, Any]:
    return services.vault.view_vault(user.id, owner_id).to_dict()


@app.post("/access/{request_id}/approve")
def approve_access_request(request_id: str, req: Optional[AccessDecisionRequest] = None,
                           user: User = Depends(require_admin),
                           services: Services = Depends(get_services)) -> Dict[str, Any]:
    note = req.admin_note if req else ""
    request = services.access.approve(request_id, user.id, note)
    return {"message": "Access approved", "request": request.to_dict()}


@app.post("/access/{request_id}/reject")
def reject_access_request(request_id: str, req: Optional[AccessDecisionRequest] = None,
                          user: User = Depends(require_admin),
                          services: Services = Depends(get_services)) -> Dict[str, Any]:
    note = req.admin_note if req else ""
    request = services.access.reject(request_id, user.id, note)
    return {"message": "Access rejected", "request": request.to_dict()}


# Vault

@app.get("/vault/stats/summary")
def vault_stats_summary(user: User = Depends(require_owner),
                        services: Services = Depends(get_services)) -> Dict[str, int]:
    return services.vault.stats_summary(user.id)


# Admin

@app.post("/admin/inactivity/sweep", response_model=SweepResponse)
def run_inactivity_sweep(user: User = Depends(require_admin), services: Services = Depends(get_services)):
    """Run the inactivity sweep now instead of waiting for the scheduler."""
    transitions = services.activity.sweep()
    return SweepResponse(
        transitions=[SweepTransition(**vars(t)) for t in transitions],
        count=len(transitions)
    )


@app.exception_handler(Exception)
async def global_exception_handler(request, exc):
    """Handle all unhandled exceptions."""
    logging.error(f"Unhandled exception: {exc}")
    content = {"detail": "Internal server error"}
    if debug_enabled():
        content["debug"] = str(exc)
    return JSONResponse(status_code=500, content=content)
