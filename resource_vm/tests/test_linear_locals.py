from __future__ import annotations

import pytest

from resource_vm.errors import (CopyOfResource, InvalidProgram, UninitializedLocal,
                                UnusedResource, UseAfterMove)
from resource_vm.runtime.linear import LinearLocals, LocalState, destructure
from resource_vm.types.values import StructValue

from .helpers import new_module, r_value


def test_state_machine(module):
    loc = LinearLocals([True])
    assert loc.state(0) is LocalState.UNINITIALIZED
    loc.store(0, r_value(module, 1))
    assert loc.state(0) is LocalState.INITIALIZED
    inst = loc.move(0)
    assert inst.fields == {"v": 1}
    assert loc.state(0) is LocalState.CONSUMED
    # a consumed slot may be re-initialized
    loc.store(0, inst)
    assert loc.state(0) is LocalState.INITIALIZED


def test_use_after_move(module):
    loc = LinearLocals([True])
    loc.store(0, r_value(module, 1))
    loc.move(0)
    with pytest.raises(UseAfterMove) as ei:
        loc.move(0)
    assert ei.value.data["local"] == 0
    with pytest.raises(UseAfterMove):
        loc.peek(0)


def test_uninitialized_read():
    loc = LinearLocals([False, False])
    with pytest.raises(UninitializedLocal):
        loc.copy(1)
    with pytest.raises(UninitializedLocal):
        loc.move(0)


def test_resource_locals_cannot_be_copied(module):
    loc = LinearLocals([True])
    loc.store(0, r_value(module, 1))
    with pytest.raises(CopyOfResource):
        loc.copy(0)
    assert loc.state(0) is LocalState.INITIALIZED


def test_overwriting_an_unconsumed_resource(module):
    loc = LinearLocals([True])
    loc.store(0, r_value(module, 1))
    with pytest.raises(UnusedResource):
        loc.store(0, r_value(module, 2))


def test_plain_locals_copy_and_overwrite_freely(module):
    loc = LinearLocals([False])
    p = StructValue(module.tag("P"), {"a": 1, "b": 2})
    loc.store(0, p)
    c = loc.copy(0)
    c.fields["a"] = 100
    assert loc.peek(0).fields["a"] == 1
    loc.store(0, 5)
    assert loc.copy(0) == 5
    loc.check_exit()


def test_kind_mismatch_is_invalid(module):
    loc = LinearLocals([False, True])
    with pytest.raises(InvalidProgram):
        loc.store(0, r_value(module, 1))
    with pytest.raises(InvalidProgram):
        loc.store(1, 7)
    with pytest.raises(InvalidProgram):
        loc.store(2, 7)


def test_check_exit_flags_live_resources(module):
    loc = LinearLocals([False, True], labels=["n", "coin"])
    loc.store(0, 1)
    loc.check_exit()  # never-initialized resource local is fine
    loc.store(1, r_value(module, 1))
    with pytest.raises(UnusedResource) as ei:
        loc.check_exit()
    assert ei.value.data["name"] == "coin"
    loc.move(1)
    loc.check_exit()


def test_destructure_consumes_value(module):
    inst = r_value(module, 4)
    assert destructure(inst, module.struct("R"), module.tag("R")) == (4,)
    assert inst.fields == {}
    with pytest.raises(InvalidProgram):
        destructure(r_value(module, 1), module.struct("P"), module.tag("P"))


def test_destructure_rejects_same_named_struct_of_another_module(module):
    other = new_module(name="Other", address="0x2")
    foreign = r_value(other, 1)
    with pytest.raises(InvalidProgram):
        destructure(foreign, module.struct("R"), module.tag("R"))
    assert foreign.fields == {"v": 1}
