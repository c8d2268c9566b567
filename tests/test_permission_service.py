from conftest import FakeQuery
from dbconsole.modules.permissions.schemas import CapabilitySet, RequestedTarget, RoleClass
from dbconsole.modules.permissions.service import PermissionService, grant_from_row


def test_load_principal_expands_roles_and_grants(supabase, cache):
    service = PermissionService(supabase, cache)
    bob = service.load_principal(2)
    assert bob.username == "bob"
    assert [r.name for r in bob.roles] == ["Analyst"]
    assert len(bob.roles[0].grants) == 2
    assert bob.roles[0].effective_role_class == RoleClass.STANDARD


def test_unknown_user_resolves_unprivileged(supabase, cache):
    service = PermissionService(supabase, cache)
    detailed = service.get_detailed_permissions(99, RequestedTarget.for_schema("sales"))
    assert detailed.current_user.roles == []
    assert detailed.granular_permissions == CapabilitySet.none()
    assert not detailed.role_permissions.is_system_admin


def test_user_without_roles_is_unprivileged(supabase, cache):
    flags = PermissionService(supabase, cache).get_user_permissions(3)
    assert not any(flags.model_dump().values())


def test_malformed_stored_grants_are_skipped(supabase, cache):
    supabase.tables["role_permissions"].append({
        "id": 50, "role_id": 3, "permission_type": "DELETE",
        "schema_name": None, "table_name": "orders", "view_name": None,
    })
    service = PermissionService(supabase, cache)
    detailed = service.get_detailed_permissions(2, RequestedTarget.for_table("sales", "orders"))
    assert not detailed.granular_permissions.can_delete


def test_grant_from_row_rejects_unknown_type():
    assert grant_from_row({"id": 1, "role_id": 1, "permission_type": "EXECUTE"}) is None


def test_results_are_cached_per_target(supabase, cache):
    service = PermissionService(supabase, cache)
    target = RequestedTarget.for_table("sales", "orders")
    first = service.get_detailed_permissions(2, target)
    loads = supabase.calls[("users", "select")]

    again = service.get_detailed_permissions(2, RequestedTarget.from_params("sales", "orders"))
    assert again == first
    assert supabase.calls[("users", "select")] == loads

    service.get_detailed_permissions(2, RequestedTarget.for_table("sales", "customers"))
    assert supabase.calls[("users", "select")] == loads + 1


def test_refresh_forces_re_resolution(supabase, cache):
    service = PermissionService(supabase, cache)
    target = RequestedTarget.for_table("sales", "orders")
    assert not service.get_detailed_permissions(2, target).granular_permissions.can_delete

    supabase.tables["role_permissions"].append({
        "id": 60, "role_id": 3, "permission_type": "DELETE",
        "schema_name": "sales", "table_name": None, "view_name": None,
    })
    # Still served from cache until the principal is refreshed
    assert not service.get_detailed_permissions(2, target).granular_permissions.can_delete
    service.refresh(2)
    assert service.get_detailed_permissions(2, target).granular_permissions.can_delete


def test_system_admin_and_viewer_flags(supabase, cache):
    service = PermissionService(supabase, cache)
    assert service.is_system_admin(1)
    assert not service.is_system_admin(2)

    dave = service.get_user_permissions(4)
    assert dave.is_viewer
    assert not dave.is_admin
    assert dave.has_db_read_access


def test_role_edit_during_load_is_not_cached(supabase, cache):
    service = PermissionService(supabase, cache)
    orders = RequestedTarget.for_table("sales", "orders")
    edited = []

    def table(name):
        query = FakeQuery(supabase, name)
        if name == "role_permissions" and not edited:
            execute = query.execute

            def read_then_edit():
                result = execute()
                # The role edit commits after this read returned the old rows
                edited.append(True)
                supabase.tables["role_permissions"] = [
                    row for row in supabase.tables["role_permissions"] if row["role_id"] != 3
                ]
                cache.invalidate_principal(2)
                return result
            query.execute = read_then_edit
        return query

    supabase.table = table

    assert service.get_detailed_permissions(2, orders).granular_permissions.can_write
    assert cache.get(2, orders) is None
    assert not service.get_detailed_permissions(2, orders).granular_permissions.can_write
    assert cache.get(2, orders) is not None
