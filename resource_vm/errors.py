"""
resource_vm.errors — typed aborts raised by the resource runtime.

Every failure inside one execution is an *abort*: it ends the execution, the
entry point discards all staged storage writes, and the caller receives the
stable machine code below. Nothing in the core catches and recovers from these.

Hierarchy
---------
VmAbort (base)
 ├─ MissingData             : borrow/remove on an empty storage slot
 ├─ ResourceAlreadyExists   : publish into an occupied slot
 ├─ MissingAcquires         : storage access on a type outside the AcquiresSet
 ├─ ReferenceConflict       : new borrow while a conflicting borrow is live
 ├─ ReferenceStillBorrowed  : remove while the slot is borrowed
 ├─ ReferenceLeak           : frame returns while holding a borrow it issued
 ├─ DanglingReference       : access through a retired reference
 ├─ UseAfterMove            : read/move of a consumed local
 ├─ UninitializedLocal      : read/move of a never-initialized local
 ├─ CopyOfResource          : attempted duplication of a resource value
 ├─ UnusedResource          : resource value discarded without being consumed
 ├─ ArithmeticAbort         : u64 overflow/underflow/division by zero
 ├─ UserAbort               : explicit ABORT instruction (carries abort_code)
 ├─ CallDepthExceeded       : call nesting beyond the configured cap
 ├─ ExecutionLimit          : instruction count beyond the configured cap
 └─ InvalidProgram          : malformed bytecode or operand type mismatch

ModuleLoadError is *not* an abort: it is raised by the loader before anything
executes and derives from ValueError.

These classes avoid importing other resource_vm modules so they can be used
from the lowest layers (store, tracker) without cycles.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Optional


class ErrorCode(str, Enum):
    MISSING_DATA = "MISSING_DATA"
    RESOURCE_ALREADY_EXISTS = "RESOURCE_ALREADY_EXISTS"
    MISSING_ACQUIRES = "MISSING_ACQUIRES"
    REFERENCE_CONFLICT = "REFERENCE_CONFLICT"
    REFERENCE_STILL_BORROWED = "REFERENCE_STILL_BORROWED"
    REFERENCE_LEAK = "REFERENCE_LEAK"
    DANGLING_REFERENCE = "DANGLING_REFERENCE"
    USE_AFTER_MOVE = "USE_AFTER_MOVE"
    UNINITIALIZED_LOCAL = "UNINITIALIZED_LOCAL"
    COPY_OF_RESOURCE = "COPY_OF_RESOURCE"
    UNUSED_RESOURCE = "UNUSED_RESOURCE"
    ARITHMETIC_ERROR = "ARITHMETIC_ERROR"
    USER_ABORT = "USER_ABORT"
    CALL_DEPTH_EXCEEDED = "CALL_DEPTH_EXCEEDED"
    EXECUTION_LIMIT = "EXECUTION_LIMIT"
    INVALID_PROGRAM = "INVALID_PROGRAM"

    def __str__(self) -> str:  # pragma: no cover - trivial
        return self.value

    @classmethod
    def from_str(cls, s: str) -> "ErrorCode":
        """Parse a code leniently: 'missing_data', 'MissingData' and 'MISSING_DATA' all work."""
        if not s:
            raise ValueError("empty error code")
        norm = s.strip().replace("-", "_")
        if "_" not in norm and not norm.isupper():
            # CamelCase -> SNAKE_CASE
            norm = "".join("_" + c if c.isupper() and i else c for i, c in enumerate(norm))
        try:
            return cls(norm.upper())
        except ValueError:
            raise ValueError(f"unknown error code: {s!r}") from None


@dataclass
class VmAbort(Exception):
    """
    Base abort.

    Attributes:
        message: Human-readable explanation.
        code:    Stable ErrorCode.
        data:    Optional structured details (kept JSON-serializable).
    """

    message: str = "execution aborted"
    code: ErrorCode = ErrorCode.INVALID_PROGRAM
    data: Optional[Dict[str, Any]] = field(default=None)

    def __str__(self) -> str:  # pragma: no cover - trivial
        if self.data:
            return f"{self.code.value}: {self.message} ({self.data})"
        return f"{self.code.value}: {self.message}"

    def to_dict(self) -> Dict[str, Any]:
        """Serialize to a JSON-safe dict for outcomes/logs."""
        out: Dict[str, Any] = {"code": self.code.value, "message": self.message}
        if self.data is not None:
            out["data"] = self.data
        return out


def _ctx(data: Optional[Dict[str, Any]], **extra: Any) -> Optional[Dict[str, Any]]:
    d: Dict[str, Any] = {}
    if data:
        d.update(data)
    for k, v in extra.items():
        if v is not None:
            d.setdefault(k, v)
    return d or None


# ---------------------------------------------------------------------------
# Global storage
# ---------------------------------------------------------------------------


class MissingData(VmAbort):
    def __init__(
        self,
        message: str = "no resource at slot",
        *,
        slot: Optional[str] = None,
        data: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message=message, code=ErrorCode.MISSING_DATA, data=_ctx(data, slot=slot))


class ResourceAlreadyExists(VmAbort):
    def __init__(
        self,
        message: str = "resource already published at slot",
        *,
        slot: Optional[str] = None,
        data: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(
            message=message, code=ErrorCode.RESOURCE_ALREADY_EXISTS, data=_ctx(data, slot=slot)
        )


class MissingAcquires(VmAbort):
    """
    Storage access on a type the executing function did not declare.

    Raised before any state is touched.
    """

    def __init__(
        self,
        message: str = "resource type not in acquires set",
        *,
        function: Optional[str] = None,
        type_tag: Optional[str] = None,
        op: Optional[str] = None,
        data: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(
            message=message,
            code=ErrorCode.MISSING_ACQUIRES,
            data=_ctx(data, function=function, type=type_tag, op=op),
        )


# ---------------------------------------------------------------------------
# References
# ---------------------------------------------------------------------------


class ReferenceConflict(VmAbort):
    def __init__(
        self,
        message: str = "conflicting live reference",
        *,
        slot: Optional[str] = None,
        data: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message=message, code=ErrorCode.REFERENCE_CONFLICT, data=_ctx(data, slot=slot))


class ReferenceStillBorrowed(VmAbort):
    def __init__(
        self,
        message: str = "slot is still borrowed",
        *,
        slot: Optional[str] = None,
        data: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(
            message=message, code=ErrorCode.REFERENCE_STILL_BORROWED, data=_ctx(data, slot=slot)
        )


class ReferenceLeak(VmAbort):
    def __init__(
        self,
        message: str = "frame returned with a live reference",
        *,
        function: Optional[str] = None,
        live: Optional[int] = None,
        data: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(
            message=message,
            code=ErrorCode.REFERENCE_LEAK,
            data=_ctx(data, function=function, live=live),
        )


class DanglingReference(VmAbort):
    def __init__(
        self,
        message: str = "reference was already released",
        *,
        slot: Optional[str] = None,
        data: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message=message, code=ErrorCode.DANGLING_REFERENCE, data=_ctx(data, slot=slot))


# ---------------------------------------------------------------------------
# Linearity
# ---------------------------------------------------------------------------


class UseAfterMove(VmAbort):
    def __init__(
        self,
        message: str = "use of a moved value",
        *,
        local: Optional[int] = None,
        data: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message=message, code=ErrorCode.USE_AFTER_MOVE, data=_ctx(data, local=local))


class UninitializedLocal(VmAbort):
    def __init__(
        self,
        message: str = "use of an uninitialized local",
        *,
        local: Optional[int] = None,
        data: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(
            message=message, code=ErrorCode.UNINITIALIZED_LOCAL, data=_ctx(data, local=local)
        )


class CopyOfResource(VmAbort):
    def __init__(
        self,
        message: str = "resource values cannot be copied",
        *,
        type_tag: Optional[str] = None,
        data: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(
            message=message, code=ErrorCode.COPY_OF_RESOURCE, data=_ctx(data, type=type_tag)
        )


class UnusedResource(VmAbort):
    def __init__(
        self,
        message: str = "resource value was never consumed",
        *,
        type_tag: Optional[str] = None,
        local: Optional[int] = None,
        data: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(
            message=message,
            code=ErrorCode.UNUSED_RESOURCE,
            data=_ctx(data, type=type_tag, local=local),
        )


# ---------------------------------------------------------------------------
# Interpreter
# ---------------------------------------------------------------------------


class ArithmeticAbort(VmAbort):
    def __init__(self, message: str = "arithmetic error", *, op: Optional[str] = None):
        super().__init__(message=message, code=ErrorCode.ARITHMETIC_ERROR, data=_ctx(None, op=op))


class UserAbort(VmAbort):
    """Explicit ABORT instruction. `abort_code` is the u64 popped from the stack."""

    def __init__(self, abort_code: int, *, function: Optional[str] = None):
        super().__init__(
            message=f"aborted with code {abort_code}",
            code=ErrorCode.USER_ABORT,
            data=_ctx(None, abort_code=abort_code, function=function),
        )
        self.abort_code = abort_code


class CallDepthExceeded(VmAbort):
    def __init__(self, limit: int):
        super().__init__(
            message=f"call depth exceeded ({limit})",
            code=ErrorCode.CALL_DEPTH_EXCEEDED,
            data={"limit": limit},
        )


class ExecutionLimit(VmAbort):
    def __init__(self, limit: int):
        super().__init__(
            message=f"step limit exceeded ({limit})",
            code=ErrorCode.EXECUTION_LIMIT,
            data={"limit": limit},
        )


class InvalidProgram(VmAbort):
    def __init__(
        self,
        message: str = "invalid program",
        *,
        op: Optional[str] = None,
        pc: Optional[int] = None,
        data: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(
            message=message, code=ErrorCode.INVALID_PROGRAM, data=_ctx(data, op=op, pc=pc)
        )


# ---------------------------------------------------------------------------
# Loading
# ---------------------------------------------------------------------------


class ModuleLoadError(ValueError):
    """Raised when a module mapping fails validation."""


__all__ = [
    "ErrorCode",
    "VmAbort",
    "MissingData",
    "ResourceAlreadyExists",
    "MissingAcquires",
    "ReferenceConflict",
    "ReferenceStillBorrowed",
    "ReferenceLeak",
    "DanglingReference",
    "UseAfterMove",
    "UninitializedLocal",
    "CopyOfResource",
    "UnusedResource",
    "ArithmeticAbort",
    "UserAbort",
    "CallDepthExceeded",
    "ExecutionLimit",
    "InvalidProgram",
    "ModuleLoadError",
]
