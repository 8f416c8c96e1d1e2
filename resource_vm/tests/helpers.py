"""Shared builders for runtime tests."""

from __future__ import annotations

from pathlib import Path
from typing import Any, Iterable, Optional, Sequence

from resource_vm.runtime.executor import execute
from resource_vm.state.store import GlobalStore
from resource_vm.types.module import ModuleDef, instr, make_function, make_struct
from resource_vm.types.values import ModuleId, StructValue, to_address

HERE = Path(__file__).resolve().parent
EXAMPLES = HERE.parent / "examples"

ALICE = to_address("0xa11ce")
BOB = to_address("0xb0b")


def new_module(name: str = "M", address: str = "0x1") -> ModuleDef:
    """A module with a resource R{v: u64} and a plain struct P{a, b}."""
    m = ModuleDef(id=ModuleId(address=to_address(address), name=name))
    make_struct(m, "R", {"v": "u64"}, resource=True)
    make_struct(m, "P", {"a": "u64", "b": "u64"})
    return m


def r_value(module: ModuleDef, v: int) -> StructValue:
    return StructValue(tag=module.tag("R"), fields={"v": v}, is_resource=True)


def store_with(module: ModuleDef, *holdings: Any) -> GlobalStore:
    """store_with(m, (ALICE, 5), (BOB, 7)) → R{v} published at each address."""
    store = GlobalStore()
    for addr, v in holdings:
        store.publish(addr, module.tag("R"), r_value(module, v))
    return store


def fn(module: ModuleDef, name: str, code: Iterable[Sequence[Any]], **kw: Any):
    """Register a function from (op, *args) tuples."""
    return make_function(module, name, [instr(*c) for c in code], **kw)


def run(
    module: ModuleDef,
    name: str,
    args: Sequence[Any] = (),
    store: Optional[GlobalStore] = None,
    *,
    sender: bytes = ALICE,
    **kw: Any,
):
    return execute(name, module, sender, list(args), store if store is not None else GlobalStore(), **kw)


