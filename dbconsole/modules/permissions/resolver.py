from typing import FrozenSet, Iterable

from dbconsole.modules.permissions.aggregator import aggregate, flatten_grants
from dbconsole.modules.permissions.schemas import (
    CapabilitySet, DatabasePermissions, DetailedPermissions, PermissionGrant, PermissionType,
    Principal, RequestedTarget, Role, RoleClass, RolePermissions, UserPermissions
)
from dbconsole.modules.permissions.scope import relevant

WRITE_TYPES = frozenset({PermissionType.WRITE, PermissionType.CREATE, PermissionType.DELETE})


def resolve_role_permissions(roles: Iterable[Role]) -> RolePermissions:
    """Coarse role-class flags; these come from role classes, never from grants."""
    classes = {role.effective_role_class for role in roles}
    is_system_admin = RoleClass.SYSTEM_ADMIN in classes
    return RolePermissions(
        is_system_admin=is_system_admin,
        is_database_admin=is_system_admin,
        is_database_viewer=RoleClass.SYSTEM_VIEWER in classes,
        # No grant type manages users; only system admins may
        has_user_management_access=is_system_admin,
    )


def resolve_database_permissions(
    grants: FrozenSet[PermissionGrant],
    target: RequestedTarget,
    is_system_admin: bool
) -> DatabasePermissions:
    if is_system_admin:
        return DatabasePermissions(has_db_access=True, has_db_read_access=True, has_db_write_access=True)
    scoped = [grant for grant in grants if relevant(grant, target)]
    return DatabasePermissions(
        has_db_access=bool(scoped),
        has_db_read_access=any(grant.permission_type == PermissionType.READ for grant in scoped),
        has_db_write_access=any(grant.permission_type in WRITE_TYPES for grant in scoped),
    )


def resolve(principal: Principal, target: RequestedTarget) -> DetailedPermissions:
    """
    Resolve everything the console needs to gate a screen for `target`.

    Granular capabilities are only produced once a schema is named. System
    admins get full granular access without consulting grants, so an admin role
    with an empty or stale grant list still resolves to full access.
    """
    grants = flatten_grants(principal.roles)
    role_permissions = resolve_role_permissions(principal.roles)
    database_permissions = resolve_database_permissions(grants, target, role_permissions.is_system_admin)

    granular = None
    if not target.is_global:
        if role_permissions.is_system_admin:
            granular = CapabilitySet.full()
        else:
            granular = aggregate(grants, target)

    return DetailedPermissions(
        current_user=principal,
        role_permissions=role_permissions,
        database_permissions=database_permissions,
        granular_permissions=granular,
        target_schema=target.schema_name,
        target_table=target.table_name,
        target_view=target.view_name,
    )


def to_user_permissions(detailed: DetailedPermissions) -> UserPermissions:
    roles = detailed.role_permissions
    database = detailed.database_permissions
    return UserPermissions(
        is_admin=roles.is_system_admin,
        is_viewer=roles.is_database_viewer,
        has_user_management_access=roles.has_user_management_access,
        has_db_access=database.has_db_access,
        has_db_read_access=database.has_db_read_access,
        has_db_write_access=database.has_db_write_access,
    )


def resolve_user_permissions(principal: Principal) -> UserPermissions:
    return to_user_permissions(resolve(principal, RequestedTarget.global_target()))
