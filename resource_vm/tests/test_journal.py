from __future__ import annotations

import pytest

from resource_vm.errors import MissingData, ResourceAlreadyExists
from resource_vm.state.journal import StoreJournal
from resource_vm.state.store import GlobalStore

from .helpers import ALICE, BOB, r_value, store_with


def test_staged_publish_is_visible_but_base_untouched(module):
    base = GlobalStore()
    j = StoreJournal(base)
    tag = module.tag("R")
    j.publish(ALICE, tag, r_value(module, 1))
    assert j.exists(ALICE, tag)
    assert not base.exists(ALICE, tag)

    out = j.materialize()
    assert out.get(ALICE, tag).fields == {"v": 1}
    assert len(base) == 0


def test_get_for_write_promotes_a_clone(module):
    base = store_with(module, (ALICE, 5))
    j = StoreJournal(base)
    tag = module.tag("R")
    inst = j.get_for_write(ALICE, tag)
    inst.fields["v"] = 6
    assert base.get(ALICE, tag).fields["v"] == 5
    assert j.get(ALICE, tag).fields["v"] == 6
    # a second promotion returns the staged object
    assert j.get_for_write(ALICE, tag) is inst
    assert j.materialize().get(ALICE, tag).fields["v"] == 6


def test_remove_from_base_hands_out_clone(module):
    base = store_with(module, (ALICE, 5))
    j = StoreJournal(base)
    tag = module.tag("R")
    inst = j.remove(ALICE, tag)
    inst.fields["v"] = 0
    assert not j.exists(ALICE, tag)
    assert base.get(ALICE, tag).fields["v"] == 5
    assert not j.materialize().exists(ALICE, tag)


def test_slot_errors_follow_visible_state(module):
    base = store_with(module, (ALICE, 5))
    j = StoreJournal(base)
    tag = module.tag("R")
    with pytest.raises(ResourceAlreadyExists):
        j.publish(ALICE, tag, r_value(module, 1))
    with pytest.raises(MissingData):
        j.remove(BOB, tag)
    with pytest.raises(MissingData):
        j.get_for_write(BOB, tag)

    j.remove(ALICE, tag)
    with pytest.raises(MissingData):
        j.remove(ALICE, tag)
    j.publish(ALICE, tag, r_value(module, 2))
    assert j.get(ALICE, tag).fields["v"] == 2


def test_staged_instances_are_handed_back_as_is(module):
    j = StoreJournal(GlobalStore())
    tag = module.tag("R")
    inst = r_value(module, 1)
    j.publish(ALICE, tag, inst)
    assert j.get_for_write(ALICE, tag) is inst
    assert j.remove(ALICE, tag) is inst
    assert not j.exists(ALICE, tag)
    j.publish(ALICE, tag, r_value(module, 3))
    out = j.materialize()
    assert out.get(ALICE, tag).fields["v"] == 3
    assert len(out) == 1


def test_pending_slots(module):
    j = StoreJournal(store_with(module, (ALICE, 1)))
    tag = module.tag("R")
    j.get_for_write(ALICE, tag)
    j.publish(BOB, tag, r_value(module, 2))
    assert j.pending_slots() == {(ALICE, tag), (BOB, tag)}
