"""
Permissions and Roles Configuration
Defines the naming policy for grants and roles and the system roles every
deployment ships with. Used by role validation and by the seed script.
"""

import re

from dbconsole.config.settings import settings
from dbconsole.modules.permissions.schemas import PermissionType, RoleClass

# Schema, table and view identifiers accepted on the write path
IDENTIFIER_PATTERN = re.compile(r"^[a-zA-Z][a-zA-Z0-9_]*$")

IDENTIFIER_MESSAGES = {
    "schemaName": "Schema name must start with a letter and contain only letters, numbers, and underscores",
    "tableName": "Table name must start with a letter and contain only letters, numbers, and underscores",
    "viewName": "View name must start with a letter and contain only letters, numbers, and underscores",
}

ROLE_NAME_MIN_LENGTH = 3
ROLE_NAME_MAX_LENGTH = 50

# Role names that still drive legacy role-class inference
RESERVED_ROLE_NAMES = {
    settings.admin_role_name.upper(): RoleClass.SYSTEM_ADMIN,
    settings.viewer_role_name.upper(): RoleClass.SYSTEM_VIEWER,
}

# System roles; immutable through the role management flow
SYSTEM_ROLES = {
    settings.admin_role_name: {
        "role_class": RoleClass.SYSTEM_ADMIN,
        "description": "Full administrative access to every schema, table and view",
        # ADMIN resolves through the system-admin override, not through grants
        "permissions": [],
    },
    settings.viewer_role_name: {
        "role_class": RoleClass.SYSTEM_VIEWER,
        "description": "Read-only access to every schema, table and view",
        "permissions": [
            {"permission_type": PermissionType.READ},
        ],
    },
}


def get_system_role_matrix():
    """
    Returns the system roles as rows ready for the roles/role_permissions tables
    Format: [
        {
            "name": "ADMIN",
            "description": "...",
            "role_class": "SYSTEM_ADMIN",
            "permissions": [{"permission_type": "READ", "schema_name": None, ...}, ...]
        },
        ...
    ]
    """
    roles = []
    for name, config in SYSTEM_ROLES.items():
        permissions = []
        for permission in config["permissions"]:
            permissions.append({
                "permission_type": permission["permission_type"].value,
                "schema_name": permission.get("schema_name"),
                "table_name": permission.get("table_name"),
                "view_name": permission.get("view_name"),
            })
        roles.append({
            "name": name,
            "description": config["description"],
            "role_class": config["role_class"].value,
            "permissions": permissions,
        })
    return roles
