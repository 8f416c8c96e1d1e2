"""
resource_vm.loader — build validated ModuleDefs from YAML/JSON module files.

The runtime core never parses program text. This adapter sits in front of it
and turns an already-structured mapping into the dataclasses of
resource_vm.types.module, rejecting anything the interpreter would trip over.

Module file shape
-----------------
    address: "0x1"
    name: Counter
    structs:
      Counter:
        resource: true
        fields: {i: u64}
    functions:
      get:
        params: [address]
        returns: [u64]
        locals: ["&Counter", "&u64"]
        acquires: [Counter]
        code:
          - [COPY_LOC, 0]
          - IMM_BORROW_GLOBAL Counter
          - {op: IMM_BORROW_FIELD, args: [i]}
          ...

Instructions may be written as "OP arg ..." strings, [op, arg, ...] lists or
{op, args} mappings. LD_CONST accepts ints (u64), "0x.." hex (bytes) and
"@0x.." (address).

A file may also hold several modules under a top-level `modules:` list; use
load_modules() for those.

Typical usage
-------------
    from resource_vm.loader import load_module
    counter = load_module("resource_vm/examples/counter/module.yaml")

Validation (all failures raise ModuleLoadError)
-----------------------------------------------
- struct field types resolve; no reference-typed fields
- a non-resource struct holds no resource fields; no struct contains itself
- acquires name resource structs of the same module
- every op is known and its operands are well formed
- local indices and jump targets are in range; same-module CALL targets exist
"""

from __future__ import annotations

import os
from pathlib import Path
from typing import Any, Dict, List, Mapping, Tuple, Union

import yaml

from .errors import ModuleLoadError
from .runtime.engine import JUMP_OPS, OPS, STRUCT_OPS
from .types.module import (FieldDef, FunctionDef, Instr, ModuleDef, StructDef,
                           TypeTag, instr)
from .types.values import ModuleId, is_u64, to_address

Source = Union[str, os.PathLike, Mapping[str, Any]]

LOCAL_OPS = ("COPY_LOC", "MOVE_LOC", "ST_LOC")
FIELD_OPS = ("MUT_BORROW_FIELD", "IMM_BORROW_FIELD")


# ---- public API --------------------------------------------------------------


def load_module(source: Source) -> ModuleDef:
    """Load exactly one module from a path, YAML/JSON text or a mapping."""
    data = _load_mapping(source)
    if "modules" in data:
        mods = _modules_list(data)
        if len(mods) != 1:
            raise ModuleLoadError(f"expected one module, found {len(mods)}")
        return build_module(mods[0])
    return build_module(data)


def load_modules(source: Source) -> Dict[str, ModuleDef]:
    """Load every module in a source; returns name → ModuleDef (for CALL linking)."""
    data = _load_mapping(source)
    mods = _modules_list(data) if "modules" in data else [data]
    out: Dict[str, ModuleDef] = {}
    for m in mods:
        module = build_module(m)
        if module.name in out:
            raise ModuleLoadError(f"duplicate module {module.name!r}")
        out[module.name] = module
    return out


def build_module(data: Mapping[str, Any]) -> ModuleDef:
    """Validate one module mapping and build its ModuleDef."""
    if not isinstance(data, Mapping):
        raise ModuleLoadError(f"module must be a mapping (got {type(data).__name__})")
    name = data.get("name")
    if not isinstance(name, str) or not name.isidentifier():
        raise ModuleLoadError(f"bad module name: {name!r}")
    raw_addr = data.get("address", "0x0")
    try:
        # Unquoted 0x.. scalars arrive from YAML as ints.
        if isinstance(raw_addr, int) and not isinstance(raw_addr, bool):
            address = to_address(f"{raw_addr:x}")
        else:
            address = to_address(str(raw_addr))
    except ValueError as e:
        raise ModuleLoadError(f"module {name}: {e}") from e

    module = ModuleDef(id=ModuleId(address=address, name=name))
    for sname, sdata in _mapping(data.get("structs"), f"{name}.structs").items():
        module.structs[sname] = _build_struct(sname, sdata)
    _check_structs(module)
    for fname, fdata in _mapping(data.get("functions"), f"{name}.functions").items():
        module.functions[fname] = _build_function(module, fname, fdata)
    for fn in module.functions.values():
        _check_code(module, fn)
    return module


# ---- internal: files ----------------------------------------------------------


def _load_mapping(source: Source) -> Mapping[str, Any]:
    if isinstance(source, Mapping):
        return source
    if isinstance(source, os.PathLike) or (isinstance(source, str) and "\n" not in source and Path(source).exists()):
        path = Path(source)
        try:
            text = path.read_text(encoding="utf-8")
        except OSError as e:
            raise ModuleLoadError(f"cannot read module file {path}: {e}") from e
    else:
        text = str(source)
    try:
        loaded = yaml.safe_load(text)
    except yaml.YAMLError as e:
        raise ModuleLoadError(f"failed to parse module source: {e}") from e
    if not isinstance(loaded, Mapping):
        raise ModuleLoadError(f"top-level document must be a mapping (got {type(loaded).__name__})")
    return loaded


def _modules_list(data: Mapping[str, Any]) -> List[Mapping[str, Any]]:
    mods = data["modules"]
    if not isinstance(mods, list):
        raise ModuleLoadError("'modules' must be a list")
    return mods


def _mapping(value: Any, where: str) -> Mapping[str, Any]:
    if value is None:
        return {}
    if not isinstance(value, Mapping):
        raise ModuleLoadError(f"{where} must be a mapping")
    return value


def _list(value: Any, where: str) -> List[Any]:
    if value is None:
        return []
    if not isinstance(value, list):
        raise ModuleLoadError(f"{where} must be a list")
    return value


def _type(text: Any, where: str) -> TypeTag:
    if not isinstance(text, str):
        raise ModuleLoadError(f"{where}: type must be a string, got {text!r}")
    try:
        return TypeTag.parse(text)
    except ValueError as e:
        raise ModuleLoadError(f"{where}: {e}") from e


# ---- internal: structs --------------------------------------------------------


def _build_struct(name: str, data: Any) -> StructDef:
    if not isinstance(name, str) or not name.isidentifier():
        raise ModuleLoadError(f"bad struct name: {name!r}")
    data = _mapping(data, f"struct {name}")
    fields = tuple(
        FieldDef(fname, _type(ftype, f"{name}.{fname}"))
        for fname, ftype in _mapping(data.get("fields"), f"{name}.fields").items()
    )
    return StructDef(name=name, fields=fields, is_resource=bool(data.get("resource", False)))


def _resolve(module: ModuleDef, t: TypeTag, where: str) -> None:
    if t.kind == "ref":
        _resolve(module, t.inner, where)  # type: ignore[arg-type]
    elif t.kind == "struct" and t.struct not in module.structs:
        raise ModuleLoadError(f"{where}: unknown struct {t.struct!r}")


def _check_structs(module: ModuleDef) -> None:
    for sd in module.structs.values():
        for fd in sd.fields:
            where = f"{sd.name}.{fd.name}"
            if fd.type.is_reference:
                raise ModuleLoadError(f"{where}: struct fields cannot hold references")
            _resolve(module, fd.type, where)
            if not sd.is_resource and module.is_linear(fd.type):
                raise ModuleLoadError(f"{where}: non-resource struct cannot hold resource {fd.type}")

    # Ownership must be a tree: no struct may contain itself.
    def visit(name: str, path: Tuple[str, ...]) -> None:
        if name in path:
            raise ModuleLoadError(f"recursive struct: {' -> '.join(path + (name,))}")
        for fd in module.structs[name].fields:
            if fd.type.kind == "struct":
                visit(fd.type.struct, path + (name,))  # type: ignore[arg-type]

    for name in module.structs:
        visit(name, ())


# ---- internal: functions ------------------------------------------------------


def _build_function(module: ModuleDef, name: str, data: Any) -> FunctionDef:
    data = _mapping(data, f"function {name}")
    where = f"{module.name}::{name}"

    def types(key: str) -> Tuple[TypeTag, ...]:
        out = tuple(_type(t, f"{where}.{key}") for t in _list(data.get(key), f"{where}.{key}"))
        for t in out:
            _resolve(module, t, f"{where}.{key}")
        return out

    acquires = []
    for a in _list(data.get("acquires"), f"{where}.acquires"):
        sd = module.structs.get(a) if isinstance(a, str) else None
        if sd is None:
            raise ModuleLoadError(f"{where}: acquires unknown struct {a!r}")
        if not sd.is_resource:
            raise ModuleLoadError(f"{where}: acquires non-resource struct {a!r}")
        acquires.append(module.tag(a))

    return FunctionDef(
        name=name,
        params=types("params"),
        returns=types("returns"),
        locals=types("locals"),
        acquires=frozenset(acquires),
        code=tuple(_parse_instr(x, where) for x in _list(data.get("code"), f"{where}.code")),
        is_public=bool(data.get("public", True)),
    )


def _scalar(token: str) -> Any:
    try:
        return int(token, 10)
    except ValueError:
        return token


def _parse_instr(raw: Any, where: str) -> Instr:
    if isinstance(raw, str):
        parts = raw.split()
        if not parts:
            raise ModuleLoadError(f"{where}: empty instruction")
        op, args = parts[0], [_scalar(p) for p in parts[1:]]
    elif isinstance(raw, list) and raw and isinstance(raw[0], str):
        op, args = raw[0], list(raw[1:])
    elif isinstance(raw, Mapping) and isinstance(raw.get("op"), str):
        op, args = raw["op"], _list(raw.get("args"), f"{where}: args")
    else:
        raise ModuleLoadError(f"{where}: bad instruction {raw!r}")
    op = op.upper()
    if op == "LD_CONST":
        args = [_const(a, where) for a in args]
    return instr(op, *args)


def _const(value: Any, where: str) -> Any:
    if is_u64(value) or isinstance(value, bytes):
        return value
    if isinstance(value, str):
        try:
            if value.startswith("@"):
                return to_address(value[1:])
            if value.startswith(("0x", "0X")):
                return bytes.fromhex(value[2:])
        except ValueError as e:
            raise ModuleLoadError(f"{where}: bad constant {value!r}: {e}") from e
    raise ModuleLoadError(f"{where}: bad constant {value!r}")


def _one(ins: Instr, typ: type, where: str) -> Any:
    if len(ins.args) != 1 or not isinstance(ins.args[0], typ) or isinstance(ins.args[0], bool):
        raise ModuleLoadError(f"{where}: {ins.op} expects one {typ.__name__} operand")
    return ins.args[0]


def _check_code(module: ModuleDef, fn: FunctionDef) -> None:
    n_locals = len(fn.local_types)
    for pc, ins in enumerate(fn.code):
        where = f"{module.name}::{fn.name}@{pc}"
        op = ins.op
        if op not in OPS:
            raise ModuleLoadError(f"{where}: unknown op {op!r}")
        if op in LOCAL_OPS:
            idx = _one(ins, int, where)
            if not 0 <= idx < n_locals:
                raise ModuleLoadError(f"{where}: local {idx} out of range ({n_locals} locals)")
        elif op in STRUCT_OPS:
            if _one(ins, str, where) not in module.structs:
                raise ModuleLoadError(f"{where}: unknown struct {ins.args[0]!r}")
        elif op in FIELD_OPS:
            _one(ins, str, where)
        elif op in JUMP_OPS:
            target = _one(ins, int, where)
            if not 0 <= target <= len(fn.code):
                raise ModuleLoadError(f"{where}: jump target {target} out of range")
        elif op == "CALL":
            target = _one(ins, str, where)
            if "::" not in target and target not in module.functions:
                raise ModuleLoadError(f"{where}: unknown function {target!r}")
        elif op == "LD_CONST":
            if len(ins.args) != 1:
                raise ModuleLoadError(f"{where}: LD_CONST expects one operand")
        elif ins.args:
            raise ModuleLoadError(f"{where}: {op} takes no operands")


__all__ = ["load_module", "load_modules", "build_module"]
