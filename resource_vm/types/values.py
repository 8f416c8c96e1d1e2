"""
resource_vm.types.values — runtime values handled by the interpreter.

Value universe
--------------
- u64      : Python ``int`` in ``0..2**64-1`` (``bool`` is *not* a u64)
- bool     : Python ``bool``
- bytes    : Python ``bytes``
- address  : Python ``bytes`` of exactly ADDRESS_LENGTH bytes
- struct   : :class:`StructValue` (a *resource* instance when ``is_resource``)
- reference: :class:`resource_vm.runtime.borrows.Reference`

Addresses are raw bytes. Hex strings (with or without "0x") are accepted by
helpers and normalized to bytes.

Struct identity is nominal: a :class:`StructTag` names the declaring module and
the struct name. A ResourceType is the StructTag of a struct declared as a
resource; the alias :data:`ResourceType` exists for readability at call sites
that only ever deal with resources.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, Iterator, Tuple, Union

from ..config import ADDRESS_LENGTH, U64_MAX
from ..errors import CopyOfResource

Address = bytes
HexLike = Union[str, bytes, bytearray, memoryview]


# ----------------------------- address helpers ----------------------------- #


def _strip_0x(s: str) -> str:
    return s[2:] if s.startswith(("0x", "0X")) else s


def to_address(value: HexLike) -> Address:
    """
    Coerce `value` to a raw address.

    - If str, interpret as hex (with or without '0x'). Short or odd-length hex is
      left-padded with zeros (``"0x1"`` is the address ``00..01``).
    - If a bytes-like object, it must already be ADDRESS_LENGTH bytes.
    """
    if isinstance(value, (bytes, bytearray, memoryview)):
        b = bytes(value)
        if len(b) != ADDRESS_LENGTH:
            raise ValueError(f"address must be {ADDRESS_LENGTH} bytes, got {len(b)}")
        return b
    if isinstance(value, str):
        h = _strip_0x(value.strip())
        if len(h) % 2:
            h = "0" + h
        try:
            raw = bytes.fromhex(h)
        except ValueError as e:
            raise ValueError(f"invalid hex string: {value!r}") from e
        if len(raw) > ADDRESS_LENGTH:
            raise ValueError(f"address longer than {ADDRESS_LENGTH} bytes")
        return raw.rjust(ADDRESS_LENGTH, b"\x00")
    raise TypeError(f"cannot convert type {type(value).__name__} to address")


def to_hex(b: Union[bytes, bytearray, memoryview]) -> str:
    """Encode bytes as 0x-prefixed lowercase hex."""
    return "0x" + bytes(b).hex()


def is_address(value: Any) -> bool:
    return isinstance(value, bytes) and len(value) == ADDRESS_LENGTH


def is_u64(value: Any) -> bool:
    return isinstance(value, int) and not isinstance(value, bool) and 0 <= value <= U64_MAX


# ------------------------------ identifiers -------------------------------- #


@dataclass(frozen=True, order=True)
class ModuleId:
    address: Address
    name: str

    def __str__(self) -> str:
        return f"{to_hex(self.address)}::{self.name}"


@dataclass(frozen=True, order=True)
class StructTag:
    module: ModuleId
    name: str

    def __str__(self) -> str:
        return f"{self.module}::{self.name}"


ResourceType = StructTag


# --------------------------------- structs --------------------------------- #


@dataclass(eq=True)
class StructValue:
    """
    A struct instance: ordered field name → value.

    Resource instances are linear. The runtime moves them between locals, the
    operand stack and storage, but never duplicates them; `copy_value` refuses.
    """

    tag: StructTag
    fields: Dict[str, Any] = field(default_factory=dict)
    is_resource: bool = False

    def __iter__(self) -> Iterator[Tuple[str, Any]]:
        return iter(self.fields.items())

    def field_values(self) -> Tuple[Any, ...]:
        return tuple(self.fields.values())

    def __repr__(self) -> str:
        kind = "resource" if self.is_resource else "struct"
        body = ", ".join(f"{k}={v!r}" for k, v in self.fields.items())
        return f"<{kind} {self.tag.name} {{{body}}}>"


def is_resource_value(value: Any) -> bool:
    """True for resource instances and for structs that (transitively) hold one."""
    if not isinstance(value, StructValue):
        return False
    if value.is_resource:
        return True
    return any(is_resource_value(v) for v in value.fields.values())


def copy_value(value: Any) -> Any:
    """
    Copy a non-resource value.

    Scalars are immutable and returned as-is; plain structs are copied field by
    field. Raises CopyOfResource for anything linear.
    """
    if isinstance(value, StructValue):
        if is_resource_value(value):
            raise CopyOfResource(type_tag=str(value.tag))
        return StructValue(
            tag=value.tag,
            fields={k: copy_value(v) for k, v in value.fields.items()},
            is_resource=False,
        )
    return value


def clone_stored(value: Any) -> Any:
    """
    Structural clone used by the storage journal for copy-on-write.

    This is storage bookkeeping, not a program-visible copy: the original is
    discarded or left untouched in an older snapshot, so linearity holds.
    """
    if isinstance(value, StructValue):
        return StructValue(
            tag=value.tag,
            fields={k: clone_stored(v) for k, v in value.fields.items()},
            is_resource=value.is_resource,
        )
    return value


__all__ = [
    "Address",
    "HexLike",
    "to_address",
    "to_hex",
    "is_address",
    "is_u64",
    "ModuleId",
    "StructTag",
    "ResourceType",
    "StructValue",
    "is_resource_value",
    "copy_value",
    "clone_stored",
]
