import logging
from typing import Iterable, List, Optional

from fastapi import HTTPException
from supabase import Client

from dbconsole.database.supabase_client import ROLE_PERMISSIONS_TABLE, ROLES_TABLE, USER_ROLES_TABLE, USERS_TABLE
from dbconsole.modules.permissions.cache import PermissionCache, permission_cache
from dbconsole.modules.permissions.schemas import PermissionGrant, PermissionGrantInput, Role, RoleClass
from dbconsole.modules.permissions.service import grant_from_row, grant_to_row, load_grants, role_from_row
from dbconsole.modules.permissions.validation import (
    PermissionValidationError, validate_grant_list, validate_new_grant, validate_role_name
)
from dbconsole.modules.roles.schemas import (
    RoleCreate, RolePage, RoleSortField, RoleUpdate, RoleUsersResponse, SortDirection, UserRoleResponse
)

logger = logging.getLogger(__name__)

# Errors that already carry their own status and must not be turned into a 500
_PASSTHROUGH = (HTTPException, PermissionValidationError)


class RoleService:
    """
    Role management write path.

    Every change that can alter a user's effective rights drops the whole
    cached permission set of each affected user, not only the entries for the
    schema or object being edited.
    """

    def __init__(self, supabase: Client, cache: PermissionCache = permission_cache):
        self.supabase = supabase
        self.cache = cache

    def _invalidate_users(self, user_ids: Iterable[int]) -> None:
        for user_id in user_ids:
            self.cache.invalidate_principal(user_id)

    def _ensure_editable(self, role: Role) -> None:
        if role.is_system_role:
            raise HTTPException(status_code=403, detail="System roles cannot be modified")

    def _ensure_name_available(self, name: str, role_id: int = None) -> None:
        existing = self.supabase.table(ROLES_TABLE)\
            .select("id")\
            .eq("name", name)\
            .execute()
        if any(row["id"] != role_id for row in existing.data or []):
            raise PermissionValidationError({"name": ["A role with this name already exists"]})

    def _insert_grants(self, role_id: int, grants: List[PermissionGrant]) -> None:
        if grants:
            self.supabase.table(ROLE_PERMISSIONS_TABLE)\
                .insert([grant_to_row(role_id, grant) for grant in grants])\
                .execute()

    def _replace_grants(self, role_id: int, grants: List[PermissionGrant]) -> None:
        """
        Make the stored grants of a role equal `grants`.

        New rows are inserted before stale rows are deleted, so a failed insert
        leaves the previous grants in place instead of an empty role.
        """
        current = self.supabase.table(ROLE_PERMISSIONS_TABLE)\
            .select("*")\
            .eq("role_id", role_id)\
            .execute()
        rows = current.data or []
        stored = {grant_from_row(row) for row in rows}

        self._insert_grants(role_id, [grant for grant in grants if grant not in stored])

        wanted = set(grants)
        stale_ids = [row["id"] for row in rows if grant_from_row(row) not in wanted]
        if stale_ids:
            self.supabase.table(ROLE_PERMISSIONS_TABLE)\
                .delete()\
                .in_("id", stale_ids)\
                .execute()

    def create_role(self, role_data: RoleCreate) -> Role:
        """Create a custom role with its grants"""
        try:
            validate_role_name(role_data.name)
            grants = validate_grant_list(role_data.permissions)
            self._ensure_name_available(role_data.name)

            result = self.supabase.table(ROLES_TABLE).insert({
                "name": role_data.name,
                "description": role_data.description,
                "is_system_role": False,
                "role_class": RoleClass.STANDARD.value
            }).execute()

            if not result.data:
                raise HTTPException(status_code=500, detail="Failed to create role")

            role_row = result.data[0]
            self._insert_grants(role_row["id"], grants)
            logger.info(f"Created role {role_row['id']} ({role_data.name}) with {len(grants)} permissions")
            return role_from_row(role_row, grants)
        except _PASSTHROUGH:
            raise
        except Exception as e:
            logger.error(f"Error creating role {role_data.name}: {e}")
            raise HTTPException(status_code=500, detail=str(e))

    def get_role(self, role_id: int) -> Role:
        """Get role by ID with all of its grants"""
        try:
            result = self.supabase.table(ROLES_TABLE)\
                .select("*")\
                .eq("id", role_id)\
                .execute()

            if not result.data:
                raise HTTPException(status_code=404, detail="Role not found")

            grants = load_grants(self.supabase, [role_id])
            return role_from_row(result.data[0], grants.get(role_id, ()))
        except _PASSTHROUGH:
            raise
        except Exception as e:
            logger.error(f"Error loading role {role_id}: {e}")
            raise HTTPException(status_code=500, detail=str(e))

    def list_roles(
        self,
        page: int = 0,
        size: int = 10,
        search: Optional[str] = None,
        sort_by: RoleSortField = RoleSortField.NAME,
        sort_direction: SortDirection = SortDirection.ASC
    ) -> RolePage:
        """List one page of roles with their grants, optionally filtered by name"""
        try:
            query = self.supabase.table(ROLES_TABLE)\
                .select("*", count="exact")
            if search and search.strip():
                query = query.ilike("name", f"%{search.strip()}%")
            result = query\
                .order(sort_by.value, desc=sort_direction == SortDirection.DESC)\
                .limit(size)\
                .offset(page * size)\
                .execute()

            rows = result.data or []
            grants = load_grants(self.supabase, [row["id"] for row in rows])
            total = result.count if result.count is not None else len(rows)
            return RolePage(
                items=[role_from_row(row, grants.get(row["id"], ())) for row in rows],
                total_items=total,
                current_page=page,
                page_size=size,
                total_pages=-(-total // size),
            )
        except _PASSTHROUGH:
            raise
        except Exception as e:
            logger.error(f"Error listing roles: {e}")
            raise HTTPException(status_code=500, detail=str(e))

    def update_role(self, role_id: int, role_data: RoleUpdate) -> Role:
        """Update name/description and optionally replace the role's grants"""
        try:
            role = self.get_role(role_id)
            self._ensure_editable(role)

            update_data = {}
            if role_data.name and role_data.name != role.name:
                validate_role_name(role_data.name)
                self._ensure_name_available(role_data.name, role_id)
                update_data["name"] = role_data.name
            if role_data.description is not None:
                update_data["description"] = role_data.description

            grants = None
            if role_data.permissions is not None:
                grants = validate_grant_list(role_data.permissions)

            if not update_data and grants is None:
                return role

            holders = self.get_role_user_ids(role_id)
            try:
                if update_data:
                    self.supabase.table(ROLES_TABLE)\
                        .update(update_data)\
                        .eq("id", role_id)\
                        .execute()
                if grants is not None:
                    self._replace_grants(role_id, grants)
            finally:
                # Also on failure: part of the write may have landed.
                # A rename alone can change the inferred role class of legacy rows.
                self._invalidate_users(holders)

            return self.get_role(role_id)
        except _PASSTHROUGH:
            raise
        except Exception as e:
            logger.error(f"Error updating role {role_id}: {e}")
            raise HTTPException(status_code=500, detail=str(e))

    def delete_role(self, role_id: int) -> bool:
        """Delete a custom role, its grants and its user assignments"""
        try:
            role = self.get_role(role_id)
            self._ensure_editable(role)
            holders = self.get_role_user_ids(role_id)

            try:
                self.supabase.table(ROLE_PERMISSIONS_TABLE)\
                    .delete()\
                    .eq("role_id", role_id)\
                    .execute()
                self.supabase.table(USER_ROLES_TABLE)\
                    .delete()\
                    .eq("role_id", role_id)\
                    .execute()
                result = self.supabase.table(ROLES_TABLE)\
                    .delete()\
                    .eq("id", role_id)\
                    .execute()
            finally:
                self._invalidate_users(holders)
            return len(result.data) > 0
        except _PASSTHROUGH:
            raise
        except Exception as e:
            logger.error(f"Error deleting role {role_id}: {e}")
            raise HTTPException(status_code=500, detail=str(e))

    def add_permission(self, role_id: int, grant_input: PermissionGrantInput) -> Role:
        """Add one grant to a role after rejecting duplicates and malformed scopes"""
        try:
            role = self.get_role(role_id)
            self._ensure_editable(role)
            grant = validate_new_grant(grant_input, role.grants)

            holders = self.get_role_user_ids(role_id)
            try:
                self._insert_grants(role_id, [grant])
            finally:
                self._invalidate_users(holders)
            return role.model_copy(update={"grants": role.grants | {grant}})
        except _PASSTHROUGH:
            raise
        except Exception as e:
            logger.error(f"Error adding permission to role {role_id}: {e}")
            raise HTTPException(status_code=500, detail=str(e))

    def remove_permission(self, role_id: int, grant_input: PermissionGrantInput) -> bool:
        """Remove the grant identical to `grant_input` from a role"""
        try:
            role = self.get_role(role_id)
            self._ensure_editable(role)

            query = self.supabase.table(ROLE_PERMISSIONS_TABLE)\
                .delete()\
                .eq("role_id", role_id)\
                .eq("permission_type", grant_input.permission_type.value)
            for column in ("schema_name", "table_name", "view_name"):
                value = getattr(grant_input, column)
                query = query.is_(column, "null") if value is None else query.eq(column, value)

            holders = self.get_role_user_ids(role_id)
            try:
                result = query.execute()
            finally:
                self._invalidate_users(holders)

            if not result.data:
                raise HTTPException(status_code=404, detail="Permission not assigned to role")
            return True
        except _PASSTHROUGH:
            raise
        except Exception as e:
            logger.error(f"Error removing permission from role {role_id}: {e}")
            raise HTTPException(status_code=500, detail=str(e))

    def get_role_user_ids(self, role_id: int) -> List[int]:
        result = self.supabase.table(USER_ROLES_TABLE)\
            .select("user_id")\
            .eq("role_id", role_id)\
            .execute()
        return sorted({row["user_id"] for row in result.data or []})

    def get_role_users(self, role_id: int) -> RoleUsersResponse:
        """List the users holding a role"""
        self.get_role(role_id)
        return RoleUsersResponse(role_id=role_id, user_ids=self.get_role_user_ids(role_id))

    def assign_role_to_user(self, role_id: int, user_id: int) -> UserRoleResponse:
        """Assign a role to a user"""
        try:
            self.get_role(role_id)

            user = self.supabase.table(USERS_TABLE)\
                .select("id")\
                .eq("id", user_id)\
                .execute()
            if not user.data:
                raise HTTPException(status_code=404, detail="User not found")

            existing = self.supabase.table(USER_ROLES_TABLE)\
                .select("id")\
                .eq("role_id", role_id)\
                .eq("user_id", user_id)\
                .execute()
            if existing.data:
                raise HTTPException(status_code=400, detail="Role already assigned to user")

            try:
                self.supabase.table(USER_ROLES_TABLE).insert({
                    "role_id": role_id,
                    "user_id": user_id
                }).execute()
            finally:
                self.cache.invalidate_principal(user_id)
            return UserRoleResponse(user_id=user_id, role_id=role_id)
        except _PASSTHROUGH:
            raise
        except Exception as e:
            logger.error(f"Error assigning role {role_id} to user {user_id}: {e}")
            raise HTTPException(status_code=500, detail=str(e))

    def unassign_role_from_user(self, role_id: int, user_id: int) -> bool:
        """Remove a role from a user"""
        try:
            try:
                result = self.supabase.table(USER_ROLES_TABLE)\
                    .delete()\
                    .eq("role_id", role_id)\
                    .eq("user_id", user_id)\
                    .execute()
            finally:
                self.cache.invalidate_principal(user_id)

            if not result.data:
                raise HTTPException(status_code=404, detail="Role not assigned to user")
            return True
        except _PASSTHROUGH:
            raise
        except Exception as e:
            logger.error(f"Error removing role {role_id} from user {user_id}: {e}")
            raise HTTPException(status_code=500, detail=str(e))
