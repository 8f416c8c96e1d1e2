"""
resource_vm.types.outcome — Success/Abort result of one execution.

Status models the *logical* outcome:
  - SUCCESS : the function returned normally; `mutated_store` holds the new state
  - ABORT   : some component aborted; nothing the execution staged persists

String forms:
  - str(Status.SUCCESS) -> "success"   (good for logs)
  - Status.SUCCESS.code -> "SUCCESS"   (good for protocols)
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING, Any, Dict, Optional, Tuple, Union

from ..errors import ErrorCode, VmAbort

if TYPE_CHECKING:  # pragma: no cover
    from ..state.store import GlobalStore


class Status(str, Enum):
    SUCCESS = "success"
    ABORT = "abort"

    @property
    def code(self) -> str:
        return self.value.upper()

    def __str__(self) -> str:  # pragma: no cover - trivial
        return self.value


@dataclass(frozen=True)
class Success:
    return_values: Tuple[Any, ...]
    mutated_store: "GlobalStore"
    steps: int = 0

    status = Status.SUCCESS

    @property
    def is_success(self) -> bool:
        return True


@dataclass(frozen=True)
class Abort:
    error_code: ErrorCode
    message: str = ""
    data: Dict[str, Any] = field(default_factory=dict)

    status = Status.ABORT

    @property
    def is_success(self) -> bool:
        return False

    @property
    def abort_code(self) -> Optional[int]:
        """Numeric code of an explicit ABORT instruction, else None."""
        if self.error_code is ErrorCode.USER_ABORT:
            return self.data.get("abort_code")
        return None

    @classmethod
    def from_error(cls, err: VmAbort) -> "Abort":
        return cls(error_code=err.code, message=err.message, data=dict(err.data or {}))

    def to_dict(self) -> Dict[str, Any]:
        out: Dict[str, Any] = {"status": str(self.status), "code": self.error_code.value}
        if self.message:
            out["message"] = self.message
        if self.data:
            out["data"] = dict(self.data)
        return out


Outcome = Union[Success, Abort]

__all__ = ["Status", "Success", "Abort", "Outcome"]
