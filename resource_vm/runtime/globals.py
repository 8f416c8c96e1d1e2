"""
resource_vm.runtime.globals — the four gated global storage operations.

Each operation runs in the same order:

    1. Acquires check for the executing function  (MissingAcquires)
    2. Slot state check                             (MissingData / ResourceAlreadyExists)
    3. Borrow state check                           (ReferenceConflict / ReferenceStillBorrowed)
    4. The staged write in the journal

so a rejected operation never leaves a partial write behind.
"""

from __future__ import annotations

from ..errors import MissingData
from ..state.journal import StoreJournal
from ..state.store import slot_str
from ..types.module import FunctionDef
from ..types.values import Address, StructTag, StructValue
from .acquires import AcquiresChecker
from .borrows import BorrowTracker, Reference


class GlobalOps:
    def __init__(
        self, journal: StoreJournal, tracker: BorrowTracker, checker: AcquiresChecker
    ) -> None:
        self.journal = journal
        self.tracker = tracker
        self.checker = checker

    def exists(self, fn: FunctionDef, address: Address, tag: StructTag) -> bool:
        """Pure lookup. Never creates a reference and never conflicts with one."""
        self.checker.require(fn, tag, "exists")
        return self.journal.exists(address, tag)

    def publish(self, fn: FunctionDef, address: Address, tag: StructTag, instance: StructValue) -> None:
        self.checker.require(fn, tag, "publish")
        self.journal.publish(address, tag, instance)

    def remove(self, fn: FunctionDef, address: Address, tag: StructTag) -> StructValue:
        self.checker.require(fn, tag, "remove")
        if not self.journal.exists(address, tag):
            raise MissingData(slot=slot_str(address, tag))
        self.tracker.check_removable((address, tag))
        return self.journal.remove(address, tag)

    def borrow(
        self, fn: FunctionDef, address: Address, tag: StructTag, *, mutable: bool = True
    ) -> Reference:
        self.checker.require(fn, tag, "borrow")
        if not self.journal.exists(address, tag):
            raise MissingData(slot=slot_str(address, tag))
        root = self.journal.get_for_write(address, tag) if mutable else self.journal.get(address, tag)
        return self.tracker.borrow_slot((address, tag), root, mutable=mutable)  # type: ignore[arg-type]


__all__ = ["GlobalOps"]
