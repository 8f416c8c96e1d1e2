"""
resource_vm.state.journal — copy-on-write overlay over a GlobalStore snapshot.

Execution is all-or-nothing. The entry point never writes into the caller's
snapshot: every publish, remove and in-place mutation lands in one overlay,
which on success is folded into a *new* store and on abort is simply dropped.

A slot about to be mutated through a reference is first promoted into the
overlay as a structural clone, so instances owned by the snapshot are never
touched. Removal stages a deletion marker (None).

    j = StoreJournal(snapshot)
    j.publish(addr, tag, instance)
    inst = j.get_for_write(addr, tag)   # promoted clone, safe to mutate
    new_store = j.materialize()
"""

from __future__ import annotations

from typing import Dict, Optional, Set

from ..errors import MissingData, ResourceAlreadyExists
from ..types.values import Address, StructTag, StructValue, clone_stored
from .store import GlobalStore, Slot, _check_instance, _check_slot, slot_str

_DELETED = None


class StoreJournal:
    """
    Staged view of a snapshot with the same slot operations as GlobalStore.

    Parameters
    ----------
    base : GlobalStore
        The snapshot. Never mutated.
    """

    def __init__(self, base: GlobalStore) -> None:
        self._base = base
        # staged[(address, tag)] is the visible instance, or None once removed
        self._staged: Dict[Slot, Optional[StructValue]] = {}

    def _visible(self, address: Address, tag: StructTag) -> Optional[StructValue]:
        slot = (address, tag)
        if slot in self._staged:
            return self._staged[slot]
        return self._base.get(address, tag)

    def exists(self, address: Address, tag: StructTag) -> bool:
        return self._visible(address, tag) is not None

    def get(self, address: Address, tag: StructTag) -> Optional[StructValue]:
        """Read-only view of the visible instance. Do not mutate the result."""
        return self._visible(address, tag)

    def get_for_write(self, address: Address, tag: StructTag) -> StructValue:
        _check_slot(address, tag)
        slot = (address, tag)
        staged = self._staged.get(slot)
        if staged is not None:
            return staged
        value = self._visible(address, tag)
        if value is None:
            raise MissingData(slot=slot_str(address, tag))
        promoted = clone_stored(value)
        self._staged[slot] = promoted
        return promoted

    def publish(self, address: Address, tag: StructTag, instance: StructValue) -> None:
        _check_slot(address, tag)
        if self.exists(address, tag):
            raise ResourceAlreadyExists(slot=slot_str(address, tag))
        _check_instance(tag, instance)
        self._staged[(address, tag)] = instance

    def remove(self, address: Address, tag: StructTag) -> StructValue:
        _check_slot(address, tag)
        slot = (address, tag)
        staged = slot in self._staged
        value = self._visible(address, tag)
        if value is None:
            raise MissingData(slot=slot_str(address, tag))
        self._staged[slot] = _DELETED
        # Instances owned by the snapshot are handed out as clones.
        return value if staged else clone_stored(value)

    def materialize(self) -> GlobalStore:
        """New GlobalStore with every staged change applied to a copy of the snapshot."""
        out = self._base.copy()
        for (addr, tag), value in self._staged.items():
            if out.exists(addr, tag):
                out.remove(addr, tag)
            if value is not None:
                out.publish(addr, tag, value)
        return out

    def pending_slots(self) -> Set[Slot]:
        """Slots with staged changes."""
        return set(self._staged)


__all__ = ["StoreJournal"]
