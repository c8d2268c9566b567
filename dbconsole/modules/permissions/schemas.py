from enum import Enum
from typing import Dict, FrozenSet, List, Optional, Tuple

from pydantic import (
    BaseModel, ConfigDict, Field, FieldSerializationInfo,
    field_serializer, field_validator, model_validator
)
from pydantic.alias_generators import to_camel

from dbconsole.config.settings import settings
from dbconsole.modules.permissions.scope import (
    GLOBAL_SCOPE, Scope, GlobalScope, SchemaScope, TableScope, ViewScope
)


class PermissionType(str, Enum):
    READ = "READ"
    WRITE = "WRITE"
    CREATE = "CREATE"
    DELETE = "DELETE"


class ObjectKind(str, Enum):
    TABLE = "TABLE"
    VIEW = "VIEW"


class RoleClass(str, Enum):
    STANDARD = "STANDARD"
    SYSTEM_ADMIN = "SYSTEM_ADMIN"
    SYSTEM_VIEWER = "SYSTEM_VIEWER"


class CamelModel(BaseModel):
    """Base for models exchanged with the console; JSON uses camelCase names."""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class FrozenCamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)


def scope_errors(
    schema_name: Optional[str],
    table_name: Optional[str],
    view_name: Optional[str]
) -> Dict[str, List[str]]:
    """Structural problems with a grant's scope, keyed by the offending field."""
    errors: Dict[str, List[str]] = {}
    if not schema_name and (table_name or view_name):
        errors.setdefault("schemaName", []).append(
            "If schemaName is not set, tableName and viewName must also be unset"
        )
    if table_name and view_name:
        errors.setdefault("tableName", []).append("Only one of tableName or viewName can be set")
    return errors


def _blank_to_none(value):
    if isinstance(value, str) and value == "":
        return None
    return value


class PermissionGrant(FrozenCamelModel):
    """An atomic rule: a permission type plus an optional schema/table/view scope."""

    permission_type: PermissionType
    schema_name: Optional[str] = None
    table_name: Optional[str] = None
    view_name: Optional[str] = None

    @field_validator("schema_name", "table_name", "view_name", mode="before")
    @classmethod
    def blank_to_none(cls, value):
        return _blank_to_none(value)

    @model_validator(mode="after")
    def check_scope(self) -> "PermissionGrant":
        errors = scope_errors(self.schema_name, self.table_name, self.view_name)
        if errors:
            raise ValueError("; ".join(message for messages in errors.values() for message in messages))
        return self

    @property
    def scope(self) -> Scope:
        if self.schema_name is None:
            return GLOBAL_SCOPE
        if self.table_name is not None:
            return TableScope(self.schema_name, self.table_name)
        if self.view_name is not None:
            return ViewScope(self.schema_name, self.view_name)
        return SchemaScope(self.schema_name)

    @property
    def key(self) -> Tuple[str, Optional[str], Optional[str], Optional[str]]:
        return (self.permission_type.value, self.schema_name, self.table_name, self.view_name)

    @classmethod
    def from_scope(cls, permission_type: PermissionType, scope: Scope) -> "PermissionGrant":
        if isinstance(scope, GlobalScope):
            return cls(permission_type=permission_type)
        if isinstance(scope, SchemaScope):
            return cls(permission_type=permission_type, schema_name=scope.schema)
        if isinstance(scope, TableScope):
            return cls(permission_type=permission_type, schema_name=scope.schema, table_name=scope.table)
        return cls(permission_type=permission_type, schema_name=scope.schema, view_name=scope.view)


class PermissionGrantInput(CamelModel):
    """A grant as submitted by the role form, before write-path validation."""

    permission_type: PermissionType
    schema_name: Optional[str] = None
    table_name: Optional[str] = None
    view_name: Optional[str] = None

    @field_validator("schema_name", "table_name", "view_name", mode="before")
    @classmethod
    def blank_to_none(cls, value):
        return _blank_to_none(value)

    def to_grant(self) -> PermissionGrant:
        return PermissionGrant(
            permission_type=self.permission_type,
            schema_name=self.schema_name,
            table_name=self.table_name,
            view_name=self.view_name,
        )


def _sort_key(grant: PermissionGrant):
    return tuple(part or "" for part in grant.key)


class TargetObject(FrozenCamelModel):
    name: str
    kind: ObjectKind


class RequestedTarget(FrozenCamelModel):
    """The authorization question: global, one schema, or one table/view in a schema."""

    schema_name: Optional[str] = None
    object: Optional[TargetObject] = None

    @model_validator(mode="after")
    def check_shape(self) -> "RequestedTarget":
        if self.object is not None and self.schema_name is None:
            raise ValueError("A table or view target must name its schema")
        return self

    @classmethod
    def global_target(cls) -> "RequestedTarget":
        return cls()

    @classmethod
    def for_schema(cls, schema_name: str) -> "RequestedTarget":
        return cls(schema_name=schema_name)

    @classmethod
    def for_table(cls, schema_name: str, table_name: str) -> "RequestedTarget":
        return cls(schema_name=schema_name, object=TargetObject(name=table_name, kind=ObjectKind.TABLE))

    @classmethod
    def for_view(cls, schema_name: str, view_name: str) -> "RequestedTarget":
        return cls(schema_name=schema_name, object=TargetObject(name=view_name, kind=ObjectKind.VIEW))

    @classmethod
    def from_params(
        cls,
        schema_name: Optional[str] = None,
        table_name: Optional[str] = None,
        view_name: Optional[str] = None
    ) -> "RequestedTarget":
        """Build a target from route parameters; raises ValueError on an impossible combination."""
        if table_name and view_name:
            raise ValueError("Only one of tableName or viewName can be given")
        if not schema_name:
            if table_name or view_name:
                raise ValueError("tableName and viewName require schemaName")
            return cls.global_target()
        if table_name:
            return cls.for_table(schema_name, table_name)
        if view_name:
            return cls.for_view(schema_name, view_name)
        return cls.for_schema(schema_name)

    @property
    def is_global(self) -> bool:
        return self.schema_name is None

    @property
    def table_name(self) -> Optional[str]:
        if self.object is not None and self.object.kind == ObjectKind.TABLE:
            return self.object.name
        return None

    @property
    def view_name(self) -> Optional[str]:
        if self.object is not None and self.object.kind == ObjectKind.VIEW:
            return self.object.name
        return None

    @property
    def scope(self) -> Scope:
        if self.schema_name is None:
            return GLOBAL_SCOPE
        if self.object is None:
            return SchemaScope(self.schema_name)
        if self.object.kind == ObjectKind.TABLE:
            return TableScope(self.schema_name, self.object.name)
        return ViewScope(self.schema_name, self.object.name)

    @property
    def cache_key(self) -> Tuple[Optional[str], Optional[str], Optional[str]]:
        """Two targets with the same (schema, table, view) are the same question."""
        return (self.schema_name, self.table_name, self.view_name)


def infer_role_class(name: str) -> RoleClass:
    """Legacy role-class inference: case-insensitive match on the reserved names."""
    upper = name.upper()
    if upper == settings.admin_role_name.upper():
        return RoleClass.SYSTEM_ADMIN
    if upper == settings.viewer_role_name.upper():
        return RoleClass.SYSTEM_VIEWER
    return RoleClass.STANDARD


class Role(CamelModel):
    id: int
    name: str
    description: Optional[str] = None
    is_system_role: bool = False
    # None for rows written before role classes were stored
    role_class: Optional[RoleClass] = None
    grants: FrozenSet[PermissionGrant] = Field(default_factory=frozenset, alias="permissions")

    @property
    def effective_role_class(self) -> RoleClass:
        if self.role_class is not None:
            return self.role_class
        return infer_role_class(self.name)

    @field_serializer("grants")
    def serialize_grants(self, grants: FrozenSet[PermissionGrant], info: FieldSerializationInfo):
        return [
            grant.model_dump(by_alias=info.by_alias, mode=info.mode)
            for grant in sorted(grants, key=_sort_key)
        ]


class Principal(CamelModel):
    id: int
    username: Optional[str] = None
    active: bool = True
    roles: List[Role] = Field(default_factory=list)


class CapabilitySet(FrozenCamelModel):
    can_read: bool = False
    can_write: bool = False
    can_create: bool = False
    can_delete: bool = False

    def __or__(self, other: "CapabilitySet") -> "CapabilitySet":
        return CapabilitySet(
            can_read=self.can_read or other.can_read,
            can_write=self.can_write or other.can_write,
            can_create=self.can_create or other.can_create,
            can_delete=self.can_delete or other.can_delete,
        )

    @classmethod
    def none(cls) -> "CapabilitySet":
        return cls()

    @classmethod
    def full(cls) -> "CapabilitySet":
        return cls(can_read=True, can_write=True, can_create=True, can_delete=True)

    @classmethod
    def for_type(cls, permission_type: PermissionType) -> "CapabilitySet":
        return cls(**{_CAPABILITY_FIELDS[permission_type]: True})

    def allows(self, permission_type: PermissionType) -> bool:
        return getattr(self, _CAPABILITY_FIELDS[permission_type])


_CAPABILITY_FIELDS = {
    PermissionType.READ: "can_read",
    PermissionType.WRITE: "can_write",
    PermissionType.CREATE: "can_create",
    PermissionType.DELETE: "can_delete",
}


class RolePermissions(CamelModel):
    is_system_admin: bool = False
    is_database_admin: bool = False
    is_database_viewer: bool = False
    has_user_management_access: bool = False


class DatabasePermissions(CamelModel):
    has_db_access: bool = False
    has_db_read_access: bool = False
    has_db_write_access: bool = False


class DetailedPermissions(CamelModel):
    current_user: Principal
    role_permissions: RolePermissions
    database_permissions: DatabasePermissions
    granular_permissions: Optional[CapabilitySet] = None
    target_schema: Optional[str] = None
    target_table: Optional[str] = None
    target_view: Optional[str] = None


class UserPermissions(CamelModel):
    """Coarse flags used for top-level navigation gating."""
    is_admin: bool = False
    is_viewer: bool = False
    has_user_management_access: bool = False
    has_db_access: bool = False
    has_db_read_access: bool = False
    has_db_write_access: bool = False


class SystemAdminResponse(CamelModel):
    is_system_admin: bool
