"""
resource_vm.runtime.acquires — Acquires Safety Checker.

A function may touch global storage directly (exists / borrow / publish /
remove) only for resource types listed in its declared AcquiresSet. The check
runs per operation and per call, against the *executing* function's own
declaration, so a composed call chain is covered by each callee's declaration
rather than by any whole-program precomputation.

At a call boundary the checker also cooperates with the borrow tracker: when
strict mode is on, calling a function that acquires T while the call stack
holds a live reference to some T slot is rejected up front. The callee could
otherwise remove or re-borrow the slot that reference points into.

Every check raises before any state is touched.
"""

from __future__ import annotations

from typing import AbstractSet

from ..errors import MissingAcquires, ReferenceConflict
from ..types.module import FunctionDef
from ..types.values import StructTag

STORAGE_OPS = ("exists", "borrow", "publish", "remove")


class AcquiresChecker:
    def __init__(self, *, strict_calls: bool = True) -> None:
        self.strict_calls = strict_calls

    def require(self, function: FunctionDef, tag: StructTag, op: str) -> None:
        if op not in STORAGE_OPS:
            raise ValueError(f"unknown storage op {op!r}")
        if tag not in function.acquires:
            raise MissingAcquires(
                f"{function.name} accesses {tag} via {op} without acquiring it",
                function=function.name,
                type_tag=str(tag),
                op=op,
            )

    def check_call(self, callee: FunctionDef, live_types: AbstractSet[StructTag]) -> None:
        if not self.strict_calls:
            return
        clash = sorted(str(t) for t in callee.acquires & live_types)
        if clash:
            raise ReferenceConflict(
                f"call to {callee.name} acquires a type with a live reference",
                data={"function": callee.name, "types": clash},
            )


__all__ = ["AcquiresChecker", "STORAGE_OPS"]
