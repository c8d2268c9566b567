"""
Write-path validation for roles and their grants.

Problems are collected as field-level errors (field -> list of messages) so
the role form can show them next to the offending input. Helpers that
accept or reject raise PermissionValidationError carrying those errors; the
HTTP layer turns it into a 422 response.
"""

from typing import Dict, Iterable, List, Optional

from dbconsole.config.permissions_config import (
    IDENTIFIER_MESSAGES, IDENTIFIER_PATTERN, RESERVED_ROLE_NAMES,
    ROLE_NAME_MAX_LENGTH, ROLE_NAME_MIN_LENGTH
)
from dbconsole.modules.permissions.schemas import PermissionGrant, PermissionGrantInput, scope_errors

FieldErrors = Dict[str, List[str]]

DUPLICATE_MESSAGE = "This permission is already assigned to the role"


class PermissionValidationError(ValueError):
    def __init__(self, errors: FieldErrors, message: str = "Validation failed"):
        super().__init__(message)
        self.message = message
        self.errors = errors


def grant_field_errors(grant_input: PermissionGrantInput) -> FieldErrors:
    errors = scope_errors(grant_input.schema_name, grant_input.table_name, grant_input.view_name)
    names = (
        ("schemaName", grant_input.schema_name),
        ("tableName", grant_input.table_name),
        ("viewName", grant_input.view_name),
    )
    for field, value in names:
        if value and not IDENTIFIER_PATTERN.match(value):
            errors.setdefault(field, []).append(IDENTIFIER_MESSAGES[field])
    return errors


def check_new_grant(
    grant_input: PermissionGrantInput,
    existing: Iterable[PermissionGrant]
) -> FieldErrors:
    """Errors that would stop `grant_input` from being added to a role holding `existing`."""
    errors = grant_field_errors(grant_input)
    if errors:
        return errors
    if grant_input.to_grant() in set(existing):
        return {"permissions": [DUPLICATE_MESSAGE]}
    return {}


def validate_new_grant(
    grant_input: PermissionGrantInput,
    existing: Iterable[PermissionGrant]
) -> PermissionGrant:
    errors = check_new_grant(grant_input, existing)
    if errors:
        raise PermissionValidationError(errors)
    return grant_input.to_grant()


def validate_grant_list(grant_inputs: List[PermissionGrantInput]) -> List[PermissionGrant]:
    """Validate a full permission list as submitted by the create/edit role form."""
    errors: FieldErrors = {}
    grants: List[PermissionGrant] = []
    if not grant_inputs:
        errors["permissions"] = ["At least one permission must be selected"]

    for index, grant_input in enumerate(grant_inputs):
        item_errors = check_new_grant(grant_input, grants)
        for field, messages in item_errors.items():
            key = f"permissions.{index}" if field == "permissions" else f"permissions.{index}.{field}"
            errors.setdefault(key, []).extend(messages)
        if not item_errors:
            grants.append(grant_input.to_grant())

    if errors:
        raise PermissionValidationError(errors)
    return grants


def role_name_errors(name: Optional[str]) -> FieldErrors:
    if name is None:
        return {}
    messages = []
    if len(name) < ROLE_NAME_MIN_LENGTH:
        messages.append(f"Role name must be at least {ROLE_NAME_MIN_LENGTH} characters")
    if len(name) > ROLE_NAME_MAX_LENGTH:
        messages.append(f"Role name must be less than {ROLE_NAME_MAX_LENGTH} characters")
    if name.upper() in RESERVED_ROLE_NAMES:
        messages.append(f"Role name '{name}' is reserved for a system role")
    return {"name": messages} if messages else {}


def validate_role_name(name: Optional[str]) -> None:
    errors = role_name_errors(name)
    if errors:
        raise PermissionValidationError(errors)
