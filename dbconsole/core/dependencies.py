"""
Core dependencies for identifying the acting user and gating routes on resolved permissions
"""

from fastapi import Depends, HTTPException, Security, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from dbconsole.database.supabase_client import get_supabase
from dbconsole.modules.auth.service import AuthService
from dbconsole.modules.permissions.service import PermissionService
from supabase import Client
from typing import Dict, Any
import logging

logger = logging.getLogger(__name__)

security = HTTPBearer()


def get_auth_service(supabase: Client = Depends(get_supabase)) -> AuthService:
    return AuthService(supabase)


def get_permission_service(supabase: Client = Depends(get_supabase)) -> PermissionService:
    return PermissionService(supabase)


def get_current_user(
    credentials: HTTPAuthorizationCredentials = Security(security),
    auth_service: AuthService = Depends(get_auth_service)
) -> Dict[str, Any]:
    """Resolve the bearer token to the console user ({"id", "username", "active"})"""
    return auth_service.get_current_user(credentials.credentials)


def require_user_management(
    user_data: Dict[str, Any] = Depends(get_current_user),
    permissions: PermissionService = Depends(get_permission_service)
) -> Dict[str, Any]:
    """Dependency for role and user administration; only system admins manage users"""
    if not permissions.get_user_permissions(user_data["id"]).has_user_management_access:
        logger.info(f"User {user_data['id']} denied user management access")
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Insufficient permissions. Required: user management access"
        )
    return user_data
