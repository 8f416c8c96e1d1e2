"""
resource_vm.types.module — already-parsed module, struct and function definitions.

The core never parses program text. A loader (see resource_vm.loader) or a
test builds these dataclasses directly; the interpreter only reads them.

Type tags
---------
    u64 | bool | address | bytes | <StructName> | &<T> | &mut <T>

Struct names inside a module resolve against that module's own structs.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, FrozenSet, Iterable, Mapping, Optional, Sequence, Tuple

from .values import ModuleId, StructTag

PRIMITIVES = frozenset({"u64", "bool", "address", "bytes"})


@dataclass(frozen=True)
class TypeTag:
    """
    kind is one of 'u64', 'bool', 'address', 'bytes', 'struct', 'ref'.
    For 'struct', `struct` is the struct name. For 'ref', `inner` is the
    referenced type and `mutable` tells &mut from &.
    """

    kind: str
    struct: Optional[str] = None
    inner: Optional["TypeTag"] = None
    mutable: bool = False

    @classmethod
    def parse(cls, text: str) -> "TypeTag":
        s = text.strip()
        if s.startswith("&mut "):
            return cls(kind="ref", inner=cls.parse(s[5:]), mutable=True)
        if s.startswith("&"):
            return cls(kind="ref", inner=cls.parse(s[1:]), mutable=False)
        if s in PRIMITIVES:
            return cls(kind=s)
        if not s.isidentifier():
            raise ValueError(f"bad type tag: {text!r}")
        return cls(kind="struct", struct=s)

    @property
    def is_reference(self) -> bool:
        return self.kind == "ref"

    def __str__(self) -> str:
        if self.kind == "ref":
            return ("&mut " if self.mutable else "&") + str(self.inner)
        if self.kind == "struct":
            return str(self.struct)
        return self.kind


@dataclass(frozen=True)
class FieldDef:
    name: str
    type: TypeTag


@dataclass(frozen=True)
class StructDef:
    name: str
    fields: Tuple[FieldDef, ...]
    is_resource: bool = False

    @property
    def field_names(self) -> Tuple[str, ...]:
        return tuple(f.name for f in self.fields)


@dataclass(frozen=True)
class Instr:
    op: str
    args: Tuple[Any, ...] = ()

    def __str__(self) -> str:
        if not self.args:
            return self.op
        return f"{self.op} " + " ".join(repr(a) for a in self.args)


def instr(op: str, *args: Any) -> Instr:
    """Shorthand used by tests and the loader: instr("ST_LOC", 0)."""
    return Instr(op=op.upper(), args=tuple(args))


@dataclass(frozen=True)
class FunctionDef:
    """
    A function body plus its signature.

    Locals are indexed params-first: params occupy 0..len(params)-1 and the
    extra `locals` follow. `acquires` holds the StructTags this function may
    touch in global storage directly.
    """

    name: str
    params: Tuple[TypeTag, ...] = ()
    returns: Tuple[TypeTag, ...] = ()
    locals: Tuple[TypeTag, ...] = ()
    acquires: FrozenSet[StructTag] = frozenset()
    code: Tuple[Instr, ...] = ()
    is_public: bool = True

    @property
    def local_types(self) -> Tuple[TypeTag, ...]:
        return self.params + self.locals


@dataclass
class ModuleDef:
    id: ModuleId
    structs: Dict[str, StructDef] = field(default_factory=dict)
    functions: Dict[str, FunctionDef] = field(default_factory=dict)

    @property
    def name(self) -> str:
        return self.id.name

    def tag(self, struct_name: str) -> StructTag:
        return StructTag(module=self.id, name=struct_name)

    def struct(self, name: str) -> Optional[StructDef]:
        return self.structs.get(name)

    def function(self, name: str) -> Optional[FunctionDef]:
        return self.functions.get(name)

    def is_linear(self, t: TypeTag) -> bool:
        """True if a local of this type must be consumed exactly once."""
        if t.kind != "struct":
            return False
        sd = self.structs.get(t.struct or "")
        return bool(sd and sd.is_resource)

    def resource_types(self) -> FrozenSet[StructTag]:
        return frozenset(self.tag(n) for n, sd in self.structs.items() if sd.is_resource)


def make_function(
    module: ModuleDef,
    name: str,
    code: Iterable[Instr],
    *,
    params: Sequence[str] = (),
    returns: Sequence[str] = (),
    locals: Sequence[str] = (),
    acquires: Iterable[str] = (),
    is_public: bool = True,
) -> FunctionDef:
    """Build a FunctionDef from type strings and register it on `module`."""
    fn = FunctionDef(
        name=name,
        params=tuple(TypeTag.parse(p) for p in params),
        returns=tuple(TypeTag.parse(r) for r in returns),
        locals=tuple(TypeTag.parse(t) for t in locals),
        acquires=frozenset(module.tag(a) for a in acquires),
        code=tuple(code),
        is_public=is_public,
    )
    module.functions[name] = fn
    return fn


def make_struct(
    module: ModuleDef,
    name: str,
    fields: Mapping[str, str],
    *,
    resource: bool = False,
) -> StructDef:
    """Build a StructDef from an ordered field → type-string mapping and register it."""
    sd = StructDef(
        name=name,
        fields=tuple(FieldDef(n, TypeTag.parse(t)) for n, t in fields.items()),
        is_resource=resource,
    )
    module.structs[name] = sd
    return sd


__all__ = [
    "PRIMITIVES",
    "TypeTag",
    "FieldDef",
    "StructDef",
    "Instr",
    "instr",
    "FunctionDef",
    "ModuleDef",
    "make_function",
    "make_struct",
]
