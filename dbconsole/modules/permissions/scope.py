"""
Scope matching for permission grants.

A grant's scope is one of four shapes, from broadest to narrowest:

    GlobalScope                every schema and every object in it
    SchemaScope(schema)        one schema and every object in it
    TableScope(schema, table)  exactly one table
    ViewScope(schema, view)    exactly one view

A requested target uses the same shapes. A grant answers a target when the
grant's scope is equal to or broader than the target's scope. A narrow grant
is never elevated to answer a broader question.
"""

from dataclasses import dataclass
from typing import TYPE_CHECKING, Union

if TYPE_CHECKING:
    from dbconsole.modules.permissions.schemas import PermissionGrant, RequestedTarget


@dataclass(frozen=True)
class GlobalScope:
    pass


@dataclass(frozen=True)
class SchemaScope:
    schema: str


@dataclass(frozen=True)
class TableScope:
    schema: str
    table: str


@dataclass(frozen=True)
class ViewScope:
    schema: str
    view: str


Scope = Union[GlobalScope, SchemaScope, TableScope, ViewScope]

GLOBAL_SCOPE = GlobalScope()


def scope_covers(granted: Scope, requested: Scope) -> bool:
    """True if a grant written for `granted` implies rights on `requested`."""
    if isinstance(granted, GlobalScope):
        return True
    if isinstance(granted, SchemaScope):
        # Schema-wide grants cover the schema question and every object inside it
        return not isinstance(requested, GlobalScope) and requested.schema == granted.schema
    # Table and view grants only answer the exact same object; dataclass
    # equality keeps a table and a view of the same name apart.
    return granted == requested


def scope_within(granted: Scope, requested: Scope) -> bool:
    """True if `granted` is equal to or narrower than `requested`."""
    if isinstance(requested, GlobalScope):
        return True
    if isinstance(granted, GlobalScope):
        return False
    if isinstance(requested, SchemaScope):
        return granted.schema == requested.schema
    return granted == requested


def matches(grant: "PermissionGrant", target: "RequestedTarget") -> bool:
    return scope_covers(grant.scope, target.scope)


def within(grant: "PermissionGrant", target: "RequestedTarget") -> bool:
    return scope_within(grant.scope, target.scope)


def relevant(grant: "PermissionGrant", target: "RequestedTarget") -> bool:
    """A grant is relevant to a target if it covers it or lies inside it."""
    return matches(grant, target) or within(grant, target)
