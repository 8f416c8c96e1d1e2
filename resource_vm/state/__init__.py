"""
resource_vm.state — the Global Resource Store and its all-or-nothing journal.
"""

from .journal import StoreJournal
from .store import GlobalStore, Slot, slot_str

__all__ = ["GlobalStore", "StoreJournal", "Slot", "slot_str"]
