"""
resource_vm.runtime — borrow tracking, acquires checks, linear locals and the interpreter.
"""

from .acquires import AcquiresChecker
from .borrows import BorrowTracker, Loan, Reference
from .engine import Interpreter
from .executor import execute
from .globals import GlobalOps
from .linear import LinearLocals, LocalState, destructure

__all__ = [
    "AcquiresChecker",
    "BorrowTracker",
    "Loan",
    "Reference",
    "GlobalOps",
    "LinearLocals",
    "LocalState",
    "destructure",
    "Interpreter",
    "execute",
]
