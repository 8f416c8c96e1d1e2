"""
resource_vm.runtime.borrows — Reference/Borrow Tracker.

Purpose
-------
Issue and retire scoped handles into stored resource instances (or one of
their fields) and enforce the single-mutable-reference rule per storage slot.

Model
-----
A *loan* is one borrow. Loans form a tree per slot:

    slot borrow (root, path=())
     └─ projection .field          (path=("field",))
         └─ projection .field.sub  (path=("field", "sub"))

A :class:`Reference` is a value the program holds. Several references may
name the same loan (a copied local, a frozen alias); they are one borrow for
conflict and liveness purposes.

Rules
-----
- Slot borrow: rejected (ReferenceConflict) if the slot has a live mutable
  loan, or if a mutable borrow is requested while any loan on it is live.
- Projection: the parent stays live but is inactive for direct mutation while
  any child is live. Two live projections of the same field conflict unless
  both are read-only.
- Release: retires the loan and its live ancestors. A retired ancestor ends
  its whole subtree, so the slot is free afterwards. Releasing a retired
  reference is a no-op; any other use of it is DanglingReference.
- Frames: every loan records the frame that issued it. `frame()` is a scope
  guard: on abort it retires the frame's loans and re-raises; on normal exit a
  still-live loan the frame issued is ReferenceLeak.

Existence checks never go through this module.
"""

from __future__ import annotations

import itertools
import logging
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Any, Dict, Iterator, List, Optional, Set, Tuple

from ..errors import (DanglingReference, InvalidProgram, ReferenceConflict,
                      ReferenceLeak, ReferenceStillBorrowed, UnusedResource)
from ..state.store import Slot, slot_str
from ..types.values import StructTag, StructValue, copy_value, is_resource_value

log = logging.getLogger(__name__)


@dataclass(eq=False)
class Loan:
    id: int
    slot: Slot
    path: Tuple[str, ...]
    mutable: bool
    frame_id: int
    root: StructValue
    parent: Optional["Loan"] = None
    children: List["Loan"] = field(default_factory=list)
    live: bool = True

    @property
    def slot_label(self) -> str:
        return slot_str(*self.slot) + "".join("." + p for p in self.path)

    def live_children(self) -> List["Loan"]:
        return [c for c in self.children if c.live]

    def top(self) -> "Loan":
        node = self
        while node.parent is not None:
            node = node.parent
        return node

    def container(self) -> Tuple[StructValue, Optional[str]]:
        """(struct holding the target, field name) — field is None for the whole instance."""
        if not self.path:
            return self.root, None
        node: Any = self.root
        for name in self.path[:-1]:
            node = node.fields[name]
        return node, self.path[-1]

    def target(self) -> Any:
        holder, name = self.container()
        return holder if name is None else holder.fields[name]


@dataclass(frozen=True, eq=False)
class Reference:
    """A program-held handle onto a loan. Copies are aliases of the same loan."""

    loan: Loan
    mutable: bool

    @property
    def live(self) -> bool:
        return self.loan.live

    @property
    def slot(self) -> Slot:
        return self.loan.slot

    def __repr__(self) -> str:
        kind = "&mut" if self.mutable else "&"
        state = "" if self.live else " (released)"
        return f"<{kind} {self.loan.slot_label}{state}>"


class BorrowTracker:
    """
    Per-execution borrow bookkeeping. Not thread-safe; one execution owns one tracker.
    """

    def __init__(self) -> None:
        self._ids = itertools.count(1)
        self._frame_ids = itertools.count(1)
        self._slots: Dict[Slot, List[Loan]] = {}
        self._frames: List[int] = []
        self._frame_loans: Dict[int, List[Loan]] = {}

    # ------------------------------------------------------------------ #
    # Frames
    # ------------------------------------------------------------------ #

    @property
    def current_frame(self) -> int:
        return self._frames[-1] if self._frames else 0

    @contextmanager
    def frame(self, name: str = "?") -> Iterator[int]:
        """
        Scope guard for one call frame.

            with tracker.frame("inc") as fid:
                ...   # borrows issued here belong to fid
        """
        fid = next(self._frame_ids)
        self._frames.append(fid)
        self._frame_loans[fid] = []
        try:
            try:
                yield fid
            except BaseException:
                self._retire_frame(fid)
                raise
            leaked = [ln for ln in self._frame_loans[fid] if ln.live]
            if leaked:
                self._retire_frame(fid)
                raise ReferenceLeak(
                    function=name,
                    live=len(leaked),
                    data={"slots": sorted({ln.slot_label for ln in leaked})},
                )
        finally:
            self._frames.pop()
            self._frame_loans.pop(fid, None)

    def _retire_frame(self, fid: int) -> None:
        for ln in self._frame_loans.get(fid, []):
            if ln.live:
                self._retire_tree(ln.top())

    # ------------------------------------------------------------------ #
    # Issue
    # ------------------------------------------------------------------ #

    def _live_on(self, slot: Slot) -> List[Loan]:
        return [ln for ln in self._slots.get(slot, []) if ln.live]

    def borrow_slot(self, slot: Slot, root: StructValue, *, mutable: bool) -> Reference:
        """Issue a reference to a whole stored instance."""
        live = self._live_on(slot)
        if any(ln.mutable for ln in live):
            raise ReferenceConflict("slot already has a live mutable reference", slot=slot_str(*slot))
        if mutable and live:
            raise ReferenceConflict("slot already has a live reference", slot=slot_str(*slot))
        loan = Loan(
            id=next(self._ids),
            slot=slot,
            path=(),
            mutable=mutable,
            frame_id=self.current_frame,
            root=root,
        )
        self._slots.setdefault(slot, []).append(loan)
        self._track(loan)
        log.debug("borrow #%d %s mutable=%s", loan.id, loan.slot_label, mutable)
        return Reference(loan=loan, mutable=mutable)

    def project(self, ref: Reference, field_name: str, *, mutable: bool) -> Reference:
        """Issue a narrower reference to one field of `ref`'s target."""
        self._require_live(ref)
        if mutable and not ref.mutable:
            raise InvalidProgram("mutable field borrow through a read-only reference")
        target = ref.loan.target()
        if not isinstance(target, StructValue) or field_name not in target.fields:
            raise InvalidProgram(f"no field {field_name!r} on borrowed value")
        parent = ref.loan
        for child in parent.live_children():
            if child.path[-1] == field_name and (mutable or child.mutable):
                raise ReferenceConflict("overlapping field reference", slot=child.slot_label)
        loan = Loan(
            id=next(self._ids),
            slot=parent.slot,
            path=parent.path + (field_name,),
            mutable=mutable,
            frame_id=self.current_frame,
            root=parent.root,
            parent=parent,
        )
        parent.children.append(loan)
        self._track(loan)
        log.debug("project #%d -> #%d %s", parent.id, loan.id, loan.slot_label)
        return Reference(loan=loan, mutable=mutable)

    def freeze(self, ref: Reference) -> Reference:
        """Read-only alias of a mutable reference (same borrow)."""
        self._require_live(ref)
        if not ref.mutable:
            raise InvalidProgram("FREEZE_REF expects a mutable reference")
        return Reference(loan=ref.loan, mutable=False)

    def _track(self, loan: Loan) -> None:
        fid = loan.frame_id
        if fid in self._frame_loans:
            self._frame_loans[fid].append(loan)

    # ------------------------------------------------------------------ #
    # Access
    # ------------------------------------------------------------------ #

    def _require_live(self, ref: Any) -> None:
        if not isinstance(ref, Reference):
            raise InvalidProgram(f"expected a reference, got {type(ref).__name__}")
        if not ref.live:
            raise DanglingReference(slot=ref.loan.slot_label)

    def read(self, ref: Reference) -> Any:
        """Copy of the referenced value; resources cannot be read out by value."""
        self._require_live(ref)
        return copy_value(ref.loan.target())

    def write(self, ref: Reference, value: Any) -> None:
        self._require_live(ref)
        if not ref.mutable:
            raise InvalidProgram("write through a read-only reference")
        if isinstance(value, Reference):
            raise InvalidProgram("references cannot be stored")
        loan = ref.loan
        if loan.live_children():
            raise ReferenceConflict("reference is inactive while a projection is live", slot=loan.slot_label)
        holder, name = loan.container()
        old = holder if name is None else holder.fields[name]
        if is_resource_value(old):
            raise UnusedResource("write would discard a resource", type_tag=str(getattr(old, "tag", "")))
        if name is None:
            raise InvalidProgram("cannot overwrite a whole stored instance")
        if is_resource_value(value):
            raise InvalidProgram("WRITE_REF cannot store a resource", data={"type_tag": str(value.tag)})
        holder.fields[name] = value

    # ------------------------------------------------------------------ #
    # Release & queries
    # ------------------------------------------------------------------ #

    def release(self, ref: Reference) -> None:
        """Retire `ref`'s borrow and its live ancestors. Idempotent."""
        if not isinstance(ref, Reference):
            raise InvalidProgram(f"expected a reference, got {type(ref).__name__}")
        if not ref.live:
            return
        self._retire_tree(ref.loan.top())

    def _retire_tree(self, loan: Loan) -> None:
        stack = [loan]
        while stack:
            node = stack.pop()
            if node.live:
                node.live = False
                log.debug("release #%d %s", node.id, node.slot_label)
            stack.extend(node.children)
        if loan.parent is None:
            remaining = [ln for ln in self._slots.get(loan.slot, []) if ln.live]
            if remaining:
                self._slots[loan.slot] = remaining
            else:
                self._slots.pop(loan.slot, None)

    def is_borrowed(self, slot: Slot) -> bool:
        return bool(self._live_on(slot))

    def check_removable(self, slot: Slot) -> None:
        if self.is_borrowed(slot):
            raise ReferenceStillBorrowed(slot=slot_str(*slot))

    def live_types(self) -> Set[StructTag]:
        """Resource types with at least one live borrow anywhere on the call stack."""
        return {slot[1] for slot, loans in self._slots.items() if any(ln.live for ln in loans)}

    def live_count(self) -> int:
        return sum(1 for loans in self._slots.values() for ln in loans if ln.live)

    def release_all(self) -> None:
        for loans in list(self._slots.values()):
            for ln in loans:
                if ln.live:
                    self._retire_tree(ln)


__all__ = ["Loan", "Reference", "BorrowTracker"]
