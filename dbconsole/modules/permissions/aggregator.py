"""
Union-of-grants aggregation.

A capability is granted when at least one grant of that type covers the
target. The fold is a boolean OR per capability, so the result does not
depend on grant order, duplicates, or how the grants were split across roles.
"""

from functools import reduce
from typing import FrozenSet, Iterable

from dbconsole.modules.permissions.schemas import CapabilitySet, PermissionGrant, RequestedTarget, Role
from dbconsole.modules.permissions.scope import matches


def flatten_grants(roles: Iterable[Role]) -> FrozenSet[PermissionGrant]:
    """Union of every grant held through the given roles."""
    return frozenset(grant for role in roles for grant in role.grants)


def grant_capabilities(grant: PermissionGrant, target: RequestedTarget) -> CapabilitySet:
    if not matches(grant, target):
        return CapabilitySet.none()
    return CapabilitySet.for_type(grant.permission_type)


def aggregate(grants: Iterable[PermissionGrant], target: RequestedTarget) -> CapabilitySet:
    return reduce(
        lambda acc, grant: acc | grant_capabilities(grant, target),
        grants,
        CapabilitySet.none(),
    )


def aggregate_roles(roles: Iterable[Role], target: RequestedTarget) -> CapabilitySet:
    return aggregate(flatten_grants(roles), target)
