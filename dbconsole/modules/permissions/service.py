import logging
from collections import defaultdict
from typing import Dict, Iterable, List, Mapping, Optional, Set

from fastapi import HTTPException
from supabase import Client

from dbconsole.database.supabase_client import ROLE_PERMISSIONS_TABLE, ROLES_TABLE, USER_ROLES_TABLE, USERS_TABLE
from dbconsole.modules.permissions.cache import PermissionCache, permission_cache
from dbconsole.modules.permissions.resolver import resolve, to_user_permissions
from dbconsole.modules.permissions.schemas import (
    DetailedPermissions, PermissionGrant, Principal, RequestedTarget, Role, UserPermissions
)

logger = logging.getLogger(__name__)


def grant_from_row(row: Mapping) -> Optional[PermissionGrant]:
    """Build a grant from a role_permissions row; malformed rows are logged and skipped."""
    try:
        return PermissionGrant(
            permission_type=row["permission_type"],
            schema_name=row.get("schema_name"),
            table_name=row.get("table_name"),
            view_name=row.get("view_name"),
        )
    except (KeyError, ValueError) as e:
        logger.warning(f"Skipping malformed grant {row.get('id')} on role {row.get('role_id')}: {e}")
        return None


def grant_to_row(role_id: int, grant: PermissionGrant) -> Dict:
    return {
        "role_id": role_id,
        "permission_type": grant.permission_type.value,
        "schema_name": grant.schema_name,
        "table_name": grant.table_name,
        "view_name": grant.view_name,
    }


def role_from_row(row: Mapping, grants: Iterable[PermissionGrant] = ()) -> Role:
    return Role(
        id=row["id"],
        name=row["name"],
        description=row.get("description"),
        is_system_role=bool(row.get("is_system_role")),
        role_class=row.get("role_class"),
        grants=frozenset(grants),
    )


def load_grants(supabase: Client, role_ids: List[int]) -> Dict[int, Set[PermissionGrant]]:
    """Return role_id -> grants for the given roles."""
    grants: Dict[int, Set[PermissionGrant]] = defaultdict(set)
    if not role_ids:
        return grants
    result = supabase.table(ROLE_PERMISSIONS_TABLE)\
        .select("*")\
        .in_("role_id", role_ids)\
        .execute()
    for row in result.data or []:
        grant = grant_from_row(row)
        if grant is not None:
            grants[row["role_id"]].add(grant)
    return grants


def load_roles(supabase: Client, role_ids: List[int]) -> List[Role]:
    """Return fully expanded roles, each carrying its grants."""
    if not role_ids:
        return []
    roles_result = supabase.table(ROLES_TABLE)\
        .select("*")\
        .in_("id", role_ids)\
        .execute()
    grants = load_grants(supabase, role_ids)
    return [role_from_row(row, grants.get(row["id"], ())) for row in roles_result.data or []]


class PermissionService:
    def __init__(self, supabase: Client, cache: PermissionCache = permission_cache):
        self.supabase = supabase
        self.cache = cache

    def load_principal(self, user_id: int) -> Principal:
        """Load a denormalized snapshot of the user and every role assigned to them"""
        try:
            user_result = self.supabase.table(USERS_TABLE)\
                .select("id, username, active")\
                .eq("id", user_id)\
                .execute()

            if not user_result.data:
                # Unknown users resolve to an unprivileged principal
                logger.warning(f"No user row for id {user_id}; resolving without roles")
                return Principal(id=user_id)

            user = user_result.data[0]
            links = self.supabase.table(USER_ROLES_TABLE)\
                .select("role_id")\
                .eq("user_id", user_id)\
                .execute()
            role_ids = sorted({link["role_id"] for link in links.data or []})

            return Principal(
                id=user["id"],
                username=user.get("username"),
                active=user.get("active", True),
                roles=load_roles(self.supabase, role_ids),
            )
        except HTTPException:
            raise
        except Exception as e:
            logger.error(f"Error loading principal {user_id}: {e}")
            raise HTTPException(status_code=500, detail="Failed to load user permissions")

    def get_detailed_permissions(self, user_id: int, target: RequestedTarget) -> DetailedPermissions:
        """Resolve permissions for a target, served from the cache when possible"""
        cached = self.cache.get(user_id, target)
        if cached is not None:
            logger.debug(f"Permission cache hit for user {user_id} on {target.cache_key}")
            return cached

        # Captured before the load so a concurrent role edit voids this result
        generation = self.cache.generation(user_id)
        detailed = resolve(self.load_principal(user_id), target)
        self.cache.set(user_id, target, detailed, generation=generation)
        return detailed

    def get_user_permissions(self, user_id: int) -> UserPermissions:
        return to_user_permissions(self.get_detailed_permissions(user_id, RequestedTarget.global_target()))

    def is_system_admin(self, user_id: int) -> bool:
        return self.get_user_permissions(user_id).is_admin

    def refresh(self, user_id: int) -> int:
        """Forget every cached answer for the user so the next request re-resolves"""
        return self.cache.invalidate_principal(user_id)
