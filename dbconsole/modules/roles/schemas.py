from enum import Enum
from typing import List, Optional

from dbconsole.modules.permissions.schemas import CamelModel, PermissionGrantInput, Role


class RoleCreate(CamelModel):
    name: str
    description: Optional[str] = None
    permissions: List[PermissionGrantInput]


class RoleUpdate(CamelModel):
    name: Optional[str] = None
    description: Optional[str] = None
    # None keeps the current grants; a list replaces them
    permissions: Optional[List[PermissionGrantInput]] = None


class UserRoleResponse(CamelModel):
    user_id: int
    role_id: int


class RoleUsersResponse(CamelModel):
    role_id: int
    user_ids: List[int]


class RoleSortField(str, Enum):
    ID = "id"
    NAME = "name"


class SortDirection(str, Enum):
    ASC = "ASC"
    DESC = "DESC"


class RolePage(CamelModel):
    """One page of roles in the console's page envelope"""
    items: List[Role]
    total_items: int
    current_page: int
    page_size: int
    total_pages: int
