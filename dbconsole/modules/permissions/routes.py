from fastapi import APIRouter, Depends, HTTPException, Query, status
from dbconsole.modules.permissions.schemas import (
    DetailedPermissions, RequestedTarget, SystemAdminResponse, UserPermissions
)
from dbconsole.modules.permissions.service import PermissionService
from dbconsole.core.dependencies import get_current_user, get_permission_service
from typing import Dict, Optional

router = APIRouter(prefix="/auth/current-user", tags=["permissions"])


@router.get("/permissions", response_model=UserPermissions)
async def get_current_user_permissions(
    user_data: Dict = Depends(get_current_user),
    service: PermissionService = Depends(get_permission_service)
):
    """Coarse permissions for top-level navigation"""
    return service.get_user_permissions(user_data["id"])


@router.get(
    "/detailed-permissions",
    response_model=DetailedPermissions,
    response_model_exclude_none=True,
)
async def get_detailed_permissions(
    schema_name: Optional[str] = Query(None, alias="schemaName"),
    table_name: Optional[str] = Query(None, alias="tableName"),
    view_name: Optional[str] = Query(None, alias="viewName"),
    user_data: Dict = Depends(get_current_user),
    service: PermissionService = Depends(get_permission_service)
):
    """Permissions for the global question, one schema, or one table/view"""
    try:
        target = RequestedTarget.from_params(schema_name, table_name, view_name)
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
    return service.get_detailed_permissions(user_data["id"], target)


@router.get("/is-system-admin", response_model=SystemAdminResponse)
async def get_is_system_admin(
    user_data: Dict = Depends(get_current_user),
    service: PermissionService = Depends(get_permission_service)
):
    return SystemAdminResponse(is_system_admin=service.is_system_admin(user_data["id"]))


@router.post("/permissions/refresh", status_code=204)
async def refresh_permissions(
    user_data: Dict = Depends(get_current_user),
    service: PermissionService = Depends(get_permission_service)
):
    """Drop cached permissions after the API rejected an action the console allowed"""
    service.refresh(user_data["id"])
    return None
