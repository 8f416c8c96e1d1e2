"""
resource_vm.state.store — the Global Resource Store.

Maps (owning address, resource type) to at most one resource instance:

    _data: Dict[address, Dict[StructTag, StructValue]]

The two-level layout keeps per-address existence checks and removals local
and avoids composite-key hashing.

This is the leaf of the runtime: it knows nothing about references, acquires
sets or frames. Those rules are layered on top by resource_vm.runtime.globals.
It does enforce the one invariant that belongs to storage itself: no two
instances of the same type ever coexist at one address.
"""

from __future__ import annotations

import logging
from typing import Dict, Iterator, Mapping, Optional, Tuple

from ..errors import InvalidProgram, MissingData, ResourceAlreadyExists
from ..types.values import Address, StructTag, StructValue, clone_stored, is_address, to_hex

log = logging.getLogger(__name__)

Slot = Tuple[Address, StructTag]


def slot_str(address: Address, tag: StructTag) -> str:
    return f"{to_hex(address)}/{tag}"


def _check_slot(address: Address, tag: StructTag) -> None:
    if not is_address(address):
        raise InvalidProgram(f"bad address operand: {address!r}")
    if not isinstance(tag, StructTag):
        raise InvalidProgram(f"bad resource type: {tag!r}")


def _check_instance(tag: StructTag, instance: StructValue) -> None:
    if not isinstance(instance, StructValue) or instance.tag != tag:
        raise InvalidProgram(f"publish expects an instance of {tag}")
    if not instance.is_resource:
        raise InvalidProgram(f"{tag} is not a resource and cannot be published")


class GlobalStore:
    """
    In-memory resource store.

    Operations
    ----------
    - exists(address, tag) -> bool         (pure lookup)
    - get(address, tag) -> StructValue?    (read-only view, never raises)
    - publish(address, tag, instance)      (ResourceAlreadyExists if occupied)
    - remove(address, tag) -> instance     (MissingData if empty)
    """

    def __init__(
        self, data: Optional[Mapping[Address, Mapping[StructTag, StructValue]]] = None
    ) -> None:
        self._data: Dict[Address, Dict[StructTag, StructValue]] = {}
        for addr, resources in (data or {}).items():
            for tag, inst in resources.items():
                self.publish(addr, tag, inst)

    # ------------------------------------------------------------------ #
    # Core operations
    # ------------------------------------------------------------------ #

    def exists(self, address: Address, tag: StructTag) -> bool:
        at = self._data.get(address)
        return at is not None and tag in at

    def get(self, address: Address, tag: StructTag) -> Optional[StructValue]:
        at = self._data.get(address)
        if at is None:
            return None
        return at.get(tag)

    def publish(self, address: Address, tag: StructTag, instance: StructValue) -> None:
        _check_slot(address, tag)
        _check_instance(tag, instance)
        at = self._data.setdefault(address, {})
        if tag in at:
            raise ResourceAlreadyExists(slot=slot_str(address, tag))
        at[tag] = instance
        log.debug("publish %s", slot_str(address, tag))

    def remove(self, address: Address, tag: StructTag) -> StructValue:
        _check_slot(address, tag)
        at = self._data.get(address)
        if at is None or tag not in at:
            raise MissingData(slot=slot_str(address, tag))
        inst = at.pop(tag)
        if not at:
            del self._data[address]
        log.debug("remove %s", slot_str(address, tag))
        return inst

    # ------------------------------------------------------------------ #
    # Views
    # ------------------------------------------------------------------ #

    def addresses(self) -> Tuple[Address, ...]:
        return tuple(sorted(self._data))

    def resources_at(self, address: Address) -> Dict[StructTag, StructValue]:
        return dict(self._data.get(address, {}))

    def items(self) -> Iterator[Tuple[Address, StructTag, StructValue]]:
        """Stable iteration by address, then type."""
        for addr in sorted(self._data):
            at = self._data[addr]
            for tag in sorted(at):
                yield addr, tag, at[tag]

    def copy(self) -> "GlobalStore":
        """Independent deep copy (instances are cloned)."""
        out = GlobalStore()
        for addr, tag, inst in self.items():
            out._data.setdefault(addr, {})[tag] = clone_stored(inst)
        return out

    def __len__(self) -> int:
        return sum(len(at) for at in self._data.values())

    def __contains__(self, slot: object) -> bool:
        if not isinstance(slot, tuple) or len(slot) != 2:
            return False
        return self.exists(slot[0], slot[1])  # type: ignore[arg-type]

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, GlobalStore):
            return NotImplemented
        return list(self.items()) == list(other.items())

    def __repr__(self) -> str:
        return f"GlobalStore({len(self)} resources at {len(self._data)} addresses)"


__all__ = ["GlobalStore", "Slot", "slot_str"]
