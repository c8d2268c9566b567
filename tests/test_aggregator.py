import itertools
import random

import pytest

from conftest import grant, role
from dbconsole.modules.permissions.aggregator import aggregate, aggregate_roles, flatten_grants
from dbconsole.modules.permissions.schemas import CapabilitySet, RequestedTarget

GRANTS = [
    grant("READ", "sales"),
    grant("WRITE", "sales", table="orders"),
    grant("CREATE", "hr"),
    grant("DELETE", "sales", view="orders"),
]

TARGETS = [
    RequestedTarget.global_target(),
    RequestedTarget.for_schema("sales"),
    RequestedTarget.for_table("sales", "orders"),
    RequestedTarget.for_view("sales", "orders"),
    RequestedTarget.for_table("hr", "staff"),
]


def test_empty_grant_set_grants_nothing():
    assert aggregate([], RequestedTarget.for_schema("sales")) == CapabilitySet.none()


@pytest.mark.parametrize("target", TARGETS)
def test_result_ignores_order_and_duplicates(target):
    expected = aggregate(GRANTS, target)
    for permutation in itertools.permutations(GRANTS):
        assert aggregate(permutation, target) == expected
    assert aggregate(GRANTS + GRANTS, target) == expected

    shuffled = GRANTS * 3
    random.Random(7).shuffle(shuffled)
    assert aggregate(shuffled, target) == expected


def test_global_read_grants_read_everywhere():
    for target in TARGETS:
        assert aggregate({grant("READ")}, target).can_read


def test_schema_write_reaches_objects_only_in_that_schema():
    schema_write = {grant("WRITE", "s")}
    assert aggregate(schema_write, RequestedTarget.for_table("s", "orders")).can_write
    assert not aggregate(schema_write, RequestedTarget.for_table("other", "orders")).can_write


def test_table_delete_does_not_answer_schema_question():
    table_delete = {grant("DELETE", "s", table="orders")}
    assert not aggregate(table_delete, RequestedTarget.for_schema("s")).can_delete
    assert aggregate(table_delete, RequestedTarget.for_table("s", "orders")).can_delete


def test_table_grant_never_matches_view_of_same_name():
    assert aggregate({grant("READ", "s", table="t")}, RequestedTarget.for_view("s", "t")) == CapabilitySet.none()


def test_capabilities_are_per_type():
    result = aggregate(GRANTS, RequestedTarget.for_table("sales", "orders"))
    assert result == CapabilitySet(can_read=True, can_write=True, can_create=False, can_delete=False)


def test_per_role_and_flattened_aggregation_agree():
    roles = [
        role(1, "Readers", grant("READ", "sales")),
        role(2, "Writers", grant("WRITE", "sales", table="orders"), grant("READ", "sales")),
        role(3, "Empty"),
    ]
    for target in TARGETS:
        per_role = CapabilitySet.none()
        for each in roles:
            per_role = per_role | aggregate(each.grants, target)
        assert aggregate_roles(roles, target) == per_role


def test_flatten_grants_deduplicates_across_roles():
    shared = grant("READ", "sales")
    roles = [role(1, "A", shared), role(2, "B", shared, grant("CREATE"))]
    assert flatten_grants(roles) == frozenset({shared, grant("CREATE")})


def test_capability_set_union_identity():
    some = CapabilitySet(can_write=True)
    assert some | CapabilitySet.none() == some
    assert CapabilitySet.none() | some == some
    assert some | CapabilitySet.full() == CapabilitySet.full()
