"""
resource_vm.runtime.linear — per-frame local slots with linear (single-use) tracking.

State machine per local::

    UNINITIALIZED --(store / receive argument)--> INITIALIZED --(move)--> CONSUMED
                                                       ^                     |
                                                       +------(store)--------+

Only INITIALIZED locals may be read, borrowed through or moved from. A local
whose declared type is a resource struct is *linear*:

- copying it is CopyOfResource,
- storing over it while it still holds an unconsumed value is UnusedResource,
- leaving the frame normally while it is INITIALIZED is UnusedResource.

Non-linear locals follow the same state machine, but they may be copied and
silently overwritten or dropped.
"""

from __future__ import annotations

from enum import Enum
from typing import Any, List, Optional, Sequence, Tuple

from ..errors import (CopyOfResource, InvalidProgram, UninitializedLocal,
                      UnusedResource, UseAfterMove)
from ..types.module import StructDef
from ..types.values import StructTag, StructValue, copy_value, is_resource_value


class LocalState(str, Enum):
    UNINITIALIZED = "uninitialized"
    INITIALIZED = "initialized"
    CONSUMED = "consumed"


class LinearLocals:
    """
    Local slots of one call frame.

    `linear[i]` tells whether local i holds a resource type; `labels[i]` is an
    optional label used in abort data.
    """

    __slots__ = ("_linear", "_states", "_values", "_labels")

    def __init__(self, linear: Sequence[bool], labels: Optional[Sequence[str]] = None) -> None:
        self._linear: Tuple[bool, ...] = tuple(bool(x) for x in linear)
        self._states: List[LocalState] = [LocalState.UNINITIALIZED] * len(self._linear)
        self._values: List[Any] = [None] * len(self._linear)
        self._labels = tuple(labels) if labels else tuple(str(i) for i in range(len(self._linear)))

    def __len__(self) -> int:
        return len(self._linear)

    def _index(self, idx: Any) -> int:
        if not isinstance(idx, int) or isinstance(idx, bool) or not 0 <= idx < len(self._linear):
            raise InvalidProgram(f"local index out of range: {idx!r}")
        return idx

    def state(self, idx: int) -> LocalState:
        return self._states[self._index(idx)]

    def is_linear(self, idx: int) -> bool:
        return self._linear[self._index(idx)]

    def _readable(self, idx: int) -> int:
        i = self._index(idx)
        st = self._states[i]
        if st is LocalState.UNINITIALIZED:
            raise UninitializedLocal(local=i)
        if st is LocalState.CONSUMED:
            raise UseAfterMove(local=i)
        return i

    # ------------------------------------------------------------------ #
    # Transitions
    # ------------------------------------------------------------------ #

    def store(self, idx: int, value: Any) -> None:
        """Initialize (or re-initialize) a local with a value the frame now owns."""
        i = self._index(idx)
        resource = is_resource_value(value)
        if resource and not self._linear[i]:
            raise InvalidProgram(f"resource value stored into non-resource local {i}")
        if self._linear[i] and not resource:
            raise InvalidProgram(f"non-resource value stored into resource local {i}")
        if self._linear[i] and self._states[i] is LocalState.INITIALIZED:
            raise UnusedResource("overwriting an unconsumed resource", local=i)
        self._values[i] = value
        self._states[i] = LocalState.INITIALIZED

    def copy(self, idx: int) -> Any:
        i = self._readable(idx)
        if self._linear[i]:
            value = self._values[i]
            raise CopyOfResource(type_tag=str(getattr(value, "tag", "")), data={"local": i})
        return copy_value(self._values[i])

    def move(self, idx: int) -> Any:
        """Transfer ownership out of the local. The local becomes CONSUMED."""
        i = self._readable(idx)
        value = self._values[i]
        self._values[i] = None
        self._states[i] = LocalState.CONSUMED
        return value

    def peek(self, idx: int) -> Any:
        """Read without transferring ownership (used to borrow through a reference local)."""
        return self._values[self._readable(idx)]

    # ------------------------------------------------------------------ #
    # Scope exit
    # ------------------------------------------------------------------ #

    def check_exit(self) -> None:
        """Normal scope exit: every linear local must be consumed or never initialized."""
        for i, linear in enumerate(self._linear):
            if linear and self._states[i] is LocalState.INITIALIZED:
                value = self._values[i]
                raise UnusedResource(
                    type_tag=str(getattr(value, "tag", "")),
                    local=i,
                    data={"name": self._labels[i]},
                )

    def initialized_values(self) -> List[Any]:
        return [v for v, st in zip(self._values, self._states) if st is LocalState.INITIALIZED]


def destructure(value: Any, struct: StructDef, tag: StructTag) -> Tuple[Any, ...]:
    """
    Consume a struct instance and return its field values in declaration order.

    Resource-typed fields come back as independent linear values; the caller
    must route each of them into a local, storage or another consuming
    operation.
    """
    if not isinstance(value, StructValue) or value.tag != tag or tag.name != struct.name:
        raise InvalidProgram(f"UNPACK expects a {tag} value", op="UNPACK")
    try:
        fields = tuple(value.fields[name] for name in struct.field_names)
    except KeyError as e:
        raise InvalidProgram(f"{struct.name} value is missing field {e}", op="UNPACK") from None
    value.fields = {}
    return fields


__all__ = ["LocalState", "LinearLocals", "destructure"]
