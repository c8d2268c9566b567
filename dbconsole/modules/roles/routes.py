from fastapi import APIRouter, Depends, Query
from dbconsole.database.supabase_client import get_supabase
from dbconsole.modules.permissions.schemas import PermissionGrantInput, PermissionType, Role
from dbconsole.modules.roles.schemas import (
    RoleCreate, RolePage, RoleSortField, RoleUpdate, RoleUsersResponse, SortDirection, UserRoleResponse
)
from dbconsole.modules.roles.service import RoleService
from dbconsole.core.dependencies import require_user_management
from supabase import Client
from typing import Dict, Optional

router = APIRouter(prefix="/roles", tags=["roles"])


def get_role_service(supabase: Client = Depends(get_supabase)) -> RoleService:
    return RoleService(supabase)


@router.post("", response_model=Role, status_code=201)
async def create_role(
    role_data: RoleCreate,
    user_data: Dict = Depends(require_user_management),
    service: RoleService = Depends(get_role_service)
):
    """Create a new custom role"""
    return service.create_role(role_data)


@router.get("", response_model=RolePage)
async def list_roles(
    page: int = Query(0, ge=0),
    size: int = Query(10, ge=1, le=100),
    search: Optional[str] = None,
    sort_by: RoleSortField = Query(RoleSortField.NAME, alias="sortBy"),
    sort_direction: SortDirection = Query(SortDirection.ASC, alias="sortDirection"),
    user_data: Dict = Depends(require_user_management),
    service: RoleService = Depends(get_role_service)
):
    """List roles a page at a time; `search` matches role names case-insensitively"""
    return service.list_roles(
        page=page, size=size, search=search, sort_by=sort_by, sort_direction=sort_direction
    )


@router.get("/{role_id}", response_model=Role)
async def get_role(
    role_id: int,
    user_data: Dict = Depends(require_user_management),
    service: RoleService = Depends(get_role_service)
):
    return service.get_role(role_id)


@router.put("/{role_id}", response_model=Role)
async def update_role(
    role_id: int,
    role_data: RoleUpdate,
    user_data: Dict = Depends(require_user_management),
    service: RoleService = Depends(get_role_service)
):
    """Update a custom role; a permissions list replaces the current grants"""
    return service.update_role(role_id, role_data)


@router.delete("/{role_id}", status_code=204)
async def delete_role(
    role_id: int,
    user_data: Dict = Depends(require_user_management),
    service: RoleService = Depends(get_role_service)
):
    service.delete_role(role_id)
    return None


# Role-permission endpoints
@router.post("/{role_id}/permissions", response_model=Role, status_code=201)
async def add_permission_to_role(
    role_id: int,
    grant: PermissionGrantInput,
    user_data: Dict = Depends(require_user_management),
    service: RoleService = Depends(get_role_service)
):
    """Add one permission to a role"""
    return service.add_permission(role_id, grant)


@router.delete("/{role_id}/permissions", status_code=204)
async def remove_permission_from_role(
    role_id: int,
    permission_type: PermissionType = Query(..., alias="permissionType"),
    schema_name: Optional[str] = Query(None, alias="schemaName"),
    table_name: Optional[str] = Query(None, alias="tableName"),
    view_name: Optional[str] = Query(None, alias="viewName"),
    user_data: Dict = Depends(require_user_management),
    service: RoleService = Depends(get_role_service)
):
    """Remove the permission matching all four fields from a role"""
    grant = PermissionGrantInput(
        permission_type=permission_type,
        schema_name=schema_name,
        table_name=table_name,
        view_name=view_name,
    )
    service.remove_permission(role_id, grant)
    return None


# Role-user endpoints
@router.get("/{role_id}/users", response_model=RoleUsersResponse)
async def get_role_users(
    role_id: int,
    user_data: Dict = Depends(require_user_management),
    service: RoleService = Depends(get_role_service)
):
    return service.get_role_users(role_id)


@router.put("/{role_id}/users/{user_id}", response_model=UserRoleResponse)
async def assign_role_to_user(
    role_id: int,
    user_id: int,
    user_data: Dict = Depends(require_user_management),
    service: RoleService = Depends(get_role_service)
):
    return service.assign_role_to_user(role_id, user_id)


@router.delete("/{role_id}/users/{user_id}", status_code=204)
async def unassign_role_from_user(
    role_id: int,
    user_id: int,
    user_data: Dict = Depends(require_user_management),
    service: RoleService = Depends(get_role_service)
):
    service.unassign_role_from_user(role_id, user_id)
    return None
