from __future__ import annotations

import pytest

from resource_vm.errors import InvalidProgram, MissingData, ResourceAlreadyExists
from resource_vm.state.store import GlobalStore, slot_str
from resource_vm.types.module import make_struct
from resource_vm.types.values import StructValue

from .helpers import ALICE, BOB, new_module, r_value


def test_publish_then_exists_and_get(module):
    store = GlobalStore()
    tag = module.tag("R")
    assert not store.exists(ALICE, tag)
    assert store.get(ALICE, tag) is None

    inst = r_value(module, 3)
    store.publish(ALICE, tag, inst)

    assert store.exists(ALICE, tag)
    assert store.get(ALICE, tag) is inst
    assert not store.exists(BOB, tag)
    assert (ALICE, tag) in store
    assert len(store) == 1


def test_publish_into_occupied_slot_aborts(module):
    store = GlobalStore()
    tag = module.tag("R")
    store.publish(ALICE, tag, r_value(module, 1))
    with pytest.raises(ResourceAlreadyExists) as ei:
        store.publish(ALICE, tag, r_value(module, 2))
    assert ei.value.data["slot"] == slot_str(ALICE, tag)
    # first instance is untouched
    assert store.get(ALICE, tag).fields == {"v": 1}


def test_remove_returns_instance_and_frees_slot(module):
    store = GlobalStore()
    tag = module.tag("R")
    store.publish(ALICE, tag, r_value(module, 9))
    inst = store.remove(ALICE, tag)
    assert inst.fields == {"v": 9}
    assert not store.exists(ALICE, tag)
    assert store.addresses() == ()
    # the slot can be published again
    store.publish(ALICE, tag, r_value(module, 10))
    assert store.get(ALICE, tag).fields["v"] == 10


def test_remove_missing_aborts(module):
    with pytest.raises(MissingData):
        GlobalStore().remove(ALICE, module.tag("R"))


def test_distinct_types_coexist_at_one_address(module):
    make_struct(module, "S", {"w": "u64"}, resource=True)
    store = GlobalStore()
    store.publish(ALICE, module.tag("R"), r_value(module, 1))
    store.publish(ALICE, module.tag("S"), StructValue(module.tag("S"), {"w": 2}, is_resource=True))
    assert set(store.resources_at(ALICE)) == {module.tag("R"), module.tag("S")}


def test_same_struct_name_in_other_module_is_a_different_type(module):
    other = new_module(name="M", address="0x2")
    store = GlobalStore()
    store.publish(ALICE, module.tag("R"), r_value(module, 1))
    store.publish(ALICE, other.tag("R"), r_value(other, 2))
    assert len(store) == 2


def test_publish_rejects_non_resources_and_mismatched_tags(module):
    store = GlobalStore()
    plain = StructValue(module.tag("P"), {"a": 1, "b": 2})
    with pytest.raises(InvalidProgram):
        store.publish(ALICE, module.tag("P"), plain)
    with pytest.raises(InvalidProgram):
        store.publish(ALICE, module.tag("P"), r_value(module, 1))
    with pytest.raises(InvalidProgram):
        store.publish(b"\x01" * 20, module.tag("R"), r_value(module, 1))
    assert len(store) == 0


def test_copy_is_independent(module):
    store = GlobalStore()
    tag = module.tag("R")
    store.publish(ALICE, tag, r_value(module, 1))
    dup = store.copy()
    assert dup == store
    dup.get(ALICE, tag).fields["v"] = 99
    assert store.get(ALICE, tag).fields["v"] == 1
    assert dup != store


def test_items_are_sorted(module):
    store = GlobalStore()
    tag = module.tag("R")
    store.publish(BOB, tag, r_value(module, 2))
    store.publish(ALICE, tag, r_value(module, 1))
    assert [addr for addr, _, _ in store.items()] == sorted([ALICE, BOB])
