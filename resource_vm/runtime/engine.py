"""
resource_vm.runtime.engine — interpreter for already-parsed function bodies.

Design goals
------------
- Deterministic execution: no I/O, no time, no randomness.
- Every storage touch goes through GlobalOps, so acquires, slot state and
  borrow state are checked in one place and in one order.
- Every local goes through LinearLocals, so resource values are moved exactly
  once and never copied.
- Strict parsing: accepts `Instr` objects or plain dicts `{"op", "args"}`.

Execution model
---------------
One :class:`Frame` per call: its own locals, operand stack and pc. A CALL
recurses into :meth:`Interpreter.invoke`, which opens a borrow scope with
``tracker.frame(...)``. On normal return the scope reports leaked borrows; on
any abort it retires them and the abort propagates to the entry point, which
discards every staged write.

Control flow uses absolute offsets into the function's code. Falling off the
end is an implicit RET.

Caps (see resource_vm.config):
    step_limit       total instructions across all frames  -> ExecutionLimit
    max_call_depth   nested frames                         -> CallDepthExceeded
    max_stack_depth  operand stack entries per frame       -> InvalidProgram
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, List, Mapping, Sequence, Tuple, cast

from ..config import U64_MAX, VMConfig
from ..errors import (ArithmeticAbort, CallDepthExceeded, ExecutionLimit,
                      InvalidProgram, UnusedResource, UserAbort, VmAbort)
from ..types.module import FunctionDef, ModuleDef, StructDef, TypeTag
from ..types.values import (Address, StructTag, StructValue, is_address,
                            is_resource_value, is_u64)
from .borrows import Reference
from .globals import GlobalOps
from .linear import LinearLocals, destructure

log = logging.getLogger(__name__)

ARITH_OPS = ("ADD", "SUB", "MUL", "DIV", "MOD")
CMP_OPS = ("LT", "GT", "LE", "GE")
JUMP_OPS = ("BRANCH", "BR_TRUE", "BR_FALSE")

# Ops taking a struct name operand.
STRUCT_OPS = (
    "PACK",
    "UNPACK",
    "EXISTS",
    "MUT_BORROW_GLOBAL",
    "IMM_BORROW_GLOBAL",
    "MOVE_FROM",
    "MOVE_TO_SENDER",
    "MOVE_TO",
)

OPS = frozenset(
    (
        "LD_CONST", "LD_TRUE", "LD_FALSE", "GET_TXN_SENDER",
        "COPY_LOC", "MOVE_LOC", "ST_LOC", "POP",
        "MUT_BORROW_FIELD", "IMM_BORROW_FIELD", "FREEZE_REF",
        "READ_REF", "WRITE_REF", "RELEASE_REF",
        "CALL", "RET", "EQ", "NEQ", "AND", "OR", "NOT", "ABORT", "NOP",
    )
    + STRUCT_OPS
    + ARITH_OPS
    + CMP_OPS
    + JUMP_OPS
)


# ------------------------------- utilities -------------------------------- #


def _read_op(ins: Any) -> Tuple[str, Tuple[Any, ...]]:
    """Extract (op, args) from either a dict or an Instr-like object."""
    if isinstance(ins, Mapping):
        op = ins.get("op")
        args = ins.get("args", ())
    else:
        op = getattr(ins, "op", None)
        args = getattr(ins, "args", ())
    if not isinstance(op, str):
        raise InvalidProgram(f"bad instruction form: {ins!r}")
    if args is None:
        args = ()
    if not isinstance(args, (list, tuple)):
        raise InvalidProgram("instruction 'args' must be list/tuple", op=op)
    return op.upper(), tuple(args)


def _arg(op: str, args: Tuple[Any, ...], typ: type) -> Any:
    if len(args) != 1 or not isinstance(args[0], typ) or isinstance(args[0], bool):
        raise InvalidProgram(f"{op} expects one {typ.__name__} operand", op=op)
    return args[0]


def conforms(value: Any, t: TypeTag, module: ModuleDef) -> bool:
    """True if `value` is a legal inhabitant of `t` (struct names resolve in `module`)."""
    kind = t.kind
    if kind == "u64":
        return is_u64(value)
    if kind == "bool":
        return isinstance(value, bool)
    if kind == "address":
        return is_address(value)
    if kind == "bytes":
        return isinstance(value, bytes)
    if kind == "struct":
        return isinstance(value, StructValue) and value.tag == module.tag(cast(str, t.struct))
    if kind == "ref":
        return isinstance(value, Reference) and (value.mutable or not t.mutable)
    return False


def _u64(value: Any, op: str) -> int:
    if not is_u64(value):
        raise InvalidProgram(f"{op} expects u64 operands", op=op)
    return value


def _bool(value: Any, op: str) -> bool:
    if not isinstance(value, bool):
        raise InvalidProgram(f"{op} expects a bool operand", op=op)
    return value


def _address(value: Any, op: str) -> Address:
    if not is_address(value):
        raise InvalidProgram(f"{op} expects an address operand", op=op)
    return value


def arith(op: str, a: int, b: int) -> int:
    """Checked u64 arithmetic."""
    if op == "ADD":
        r = a + b
    elif op == "SUB":
        r = a - b
    elif op == "MUL":
        r = a * b
    elif b == 0:
        raise ArithmeticAbort("division by zero", op=op)
    elif op == "DIV":
        r = a // b
    else:
        r = a % b
    if r < 0:
        raise ArithmeticAbort("u64 underflow", op=op)
    if r > U64_MAX:
        raise ArithmeticAbort("u64 overflow", op=op)
    return r


# ------------------------------- frames ----------------------------------- #


@dataclass
class Frame:
    module: ModuleDef
    function: FunctionDef
    locals: LinearLocals
    max_stack: int
    stack: List[Any] = field(default_factory=list)
    pc: int = 0

    def push(self, value: Any) -> None:
        if len(self.stack) >= self.max_stack:
            raise InvalidProgram(f"operand stack overflow ({self.max_stack})")
        self.stack.append(value)

    def pop(self, op: str) -> Any:
        if not self.stack:
            raise InvalidProgram("operand stack underflow", op=op)
        return self.stack.pop()

    def pop_n(self, n: int, op: str) -> List[Any]:
        """Pop n values, returned in push order."""
        if len(self.stack) < n:
            raise InvalidProgram("operand stack underflow", op=op)
        if n == 0:
            return []
        out = self.stack[-n:]
        del self.stack[-n:]
        return out

    def struct(self, op: str, args: Tuple[Any, ...]) -> Tuple[StructDef, StructTag]:
        name = _arg(op, args, str)
        sd = self.module.struct(name)
        if sd is None:
            raise InvalidProgram(f"unknown struct {name!r} in module {self.module.name}", op=op)
        return sd, self.module.tag(name)


def new_locals(module: ModuleDef, fn: FunctionDef) -> LinearLocals:
    types = fn.local_types
    return LinearLocals(
        [module.is_linear(t) for t in types],
        labels=[f"{i}:{t}" for i, t in enumerate(types)],
    )


# ------------------------------ interpreter ------------------------------- #


class Interpreter:
    """
    Runs one execution. Not reusable across executions: it owns the step
    counter and shares one GlobalOps (journal + tracker + checker).
    """

    def __init__(
        self,
        ops: GlobalOps,
        *,
        sender: Address,
        modules: Mapping[str, ModuleDef],
        config: VMConfig,
    ) -> None:
        self.ops = ops
        self.tracker = ops.tracker
        self.checker = ops.checker
        self.sender = sender
        self.modules = dict(modules)
        self.config = config
        self.steps = 0
        self.depth = 0

    # ---------- calls ---------- #

    def resolve(self, module: ModuleDef, name: str) -> Tuple[ModuleDef, FunctionDef]:
        """Resolve `fn` in `module` or `Module::fn` among linked modules."""
        if "::" in name:
            mod_name, _, fn_name = name.rpartition("::")
            target = self.modules.get(mod_name)
            if target is None:
                raise InvalidProgram(f"unknown module {mod_name!r}", op="CALL")
        else:
            target, fn_name = module, name
        fn = target.function(fn_name)
        if fn is None:
            raise InvalidProgram(f"unknown function {name!r}", op="CALL")
        if target is not module and not fn.is_public:
            raise InvalidProgram(f"{name} is not public", op="CALL")
        return target, fn

    def referent_type(self, ref: Reference) -> Tuple[TypeTag, ModuleDef]:
        """Declared type of the value `ref` points at, with the module its struct names resolve in."""
        tag = ref.slot[1]
        owner = next((m for m in self.modules.values() if m.id == tag.module), None)
        if owner is None:
            raise InvalidProgram(f"no linked module declares {tag}")
        t = TypeTag(kind="struct", struct=tag.name)
        for name in ref.loan.path:
            sd = owner.struct(cast(str, t.struct))
            fd = next((f for f in sd.fields if f.name == name), None) if sd else None
            if fd is None:
                raise InvalidProgram(f"no field {name!r} on {t}")
            t = fd.type
        return t, owner

    def invoke(self, module: ModuleDef, fn: FunctionDef, args: Sequence[Any]) -> Tuple[Any, ...]:
        """Run `fn` to completion in a fresh frame and return its results."""
        if len(args) != len(fn.params):
            raise InvalidProgram(
                f"{fn.name} expects {len(fn.params)} argument(s), got {len(args)}"
            )
        for i, (value, t) in enumerate(zip(args, fn.params)):
            if not conforms(value, t, module):
                raise InvalidProgram(f"argument {i} of {fn.name} is not a {t}")
        if self.depth >= self.config.max_call_depth:
            raise CallDepthExceeded(self.config.max_call_depth)

        self.depth += 1
        log.debug("call %s depth=%d", fn.name, self.depth)
        try:
            with self.tracker.frame(fn.name):
                frame = Frame(module, fn, new_locals(module, fn), self.config.max_stack_depth)
                for i, value in enumerate(args):
                    frame.locals.store(i, value)
                return self._run(frame)
        finally:
            self.depth -= 1

    # ---------- main loop ---------- #

    def _run(self, frame: Frame) -> Tuple[Any, ...]:
        code = frame.function.code
        while frame.pc < len(code):
            if self.steps >= self.config.step_limit:
                raise ExecutionLimit(self.config.step_limit)
            self.steps += 1
            pc = frame.pc
            try:
                op, args = _read_op(code[pc])
                frame.pc = pc + 1
                if op == "RET":
                    return self._ret(frame)
                self._step(frame, op, args)
            except VmAbort as e:
                e.data = dict(e.data or {})
                e.data.setdefault("function", frame.function.name)
                e.data.setdefault("pc", pc)
                raise
        return self._ret(frame)

    def _ret(self, frame: Frame) -> Tuple[Any, ...]:
        fn = frame.function
        results = frame.pop_n(len(fn.returns), "RET")
        for i, (value, t) in enumerate(zip(results, fn.returns)):
            if not conforms(value, t, frame.module):
                raise InvalidProgram(f"return value {i} of {fn.name} is not a {t}", op="RET")
        for leftover in frame.stack:
            if is_resource_value(leftover):
                raise UnusedResource(
                    "resource left on the operand stack at return",
                    type_tag=str(leftover.tag),
                )
        frame.stack.clear()
        frame.locals.check_exit()
        return tuple(results)

    def _step(self, frame: Frame, op: str, args: Tuple[Any, ...]) -> None:
        fn = frame.function

        # Constants
        if op == "NOP":
            return
        if op == "LD_CONST":
            if len(args) != 1:
                raise InvalidProgram("LD_CONST expects one operand", op=op)
            value = args[0]
            if not (is_u64(value) or isinstance(value, bytes)):
                raise InvalidProgram(f"bad constant {value!r}", op=op)
            frame.push(value)
            return
        if op in ("LD_TRUE", "LD_FALSE"):
            frame.push(op == "LD_TRUE")
            return
        if op == "GET_TXN_SENDER":
            frame.push(self.sender)
            return

        # Locals
        if op == "COPY_LOC":
            frame.push(frame.locals.copy(_arg(op, args, int)))
            return
        if op == "MOVE_LOC":
            frame.push(frame.locals.move(_arg(op, args, int)))
            return
        if op == "ST_LOC":
            idx = _arg(op, args, int)
            value = frame.pop(op)
            types = fn.local_types
            if 0 <= idx < len(types) and not conforms(value, types[idx], frame.module):
                raise InvalidProgram(f"local {idx} expects a {types[idx]}", op=op)
            frame.locals.store(idx, value)
            return
        if op == "POP":
            value = frame.pop(op)
            if isinstance(value, Reference):
                self.tracker.release(value)
            elif is_resource_value(value):
                raise UnusedResource("POP discards a resource", type_tag=str(value.tag))
            return

        # Structs
        if op == "PACK":
            sd, tag = frame.struct(op, args)
            values = frame.pop_n(len(sd.fields), op)
            for fd, v in zip(sd.fields, values):
                if not conforms(v, fd.type, frame.module):
                    raise InvalidProgram(f"field {sd.name}.{fd.name} expects a {fd.type}", op=op)
            frame.push(StructValue(tag=tag, fields=dict(zip(sd.field_names, values)), is_resource=sd.is_resource))
            return
        if op == "UNPACK":
            sd, tag = frame.struct(op, args)
            for v in destructure(frame.pop(op), sd, tag):
                frame.push(v)
            return

        # Global storage
        if op == "EXISTS":
            _, tag = frame.struct(op, args)
            addr = _address(frame.pop(op), op)
            frame.push(self.ops.exists(fn, addr, tag))
            return
        if op in ("MUT_BORROW_GLOBAL", "IMM_BORROW_GLOBAL"):
            _, tag = frame.struct(op, args)
            addr = _address(frame.pop(op), op)
            frame.push(self.ops.borrow(fn, addr, tag, mutable=op.startswith("MUT")))
            return
        if op == "MOVE_FROM":
            _, tag = frame.struct(op, args)
            addr = _address(frame.pop(op), op)
            frame.push(self.ops.remove(fn, addr, tag))
            return
        if op == "MOVE_TO_SENDER":
            _, tag = frame.struct(op, args)
            self.ops.publish(fn, self.sender, tag, frame.pop(op))
            return
        if op == "MOVE_TO":
            _, tag = frame.struct(op, args)
            instance = frame.pop(op)
            addr = _address(frame.pop(op), op)
            self.ops.publish(fn, addr, tag, instance)
            return

        # References
        if op in ("MUT_BORROW_FIELD", "IMM_BORROW_FIELD"):
            name = _arg(op, args, str)
            ref = frame.pop(op)
            frame.push(self.tracker.project(ref, name, mutable=op.startswith("MUT")))
            return
        if op == "FREEZE_REF":
            frame.push(self.tracker.freeze(frame.pop(op)))
            return
        if op == "READ_REF":
            frame.push(self.tracker.read(frame.pop(op)))
            return
        if op == "WRITE_REF":
            ref = frame.pop(op)
            value = frame.pop(op)
            if isinstance(ref, Reference) and ref.live:
                t, owner = self.referent_type(ref)
                if not isinstance(value, Reference) and not conforms(value, t, owner):
                    raise InvalidProgram(f"WRITE_REF target expects a {t}", op=op)
            self.tracker.write(ref, value)
            return
        if op == "RELEASE_REF":
            self.tracker.release(frame.pop(op))
            return

        # Calls
        if op == "CALL":
            target, callee = self.resolve(frame.module, _arg(op, args, str))
            call_args = frame.pop_n(len(callee.params), op)
            self.checker.check_call(callee, self.tracker.live_types())
            for value in self.invoke(target, callee, call_args):
                frame.push(value)
            return

        # Control flow
        if op in JUMP_OPS:
            target_pc = _arg(op, args, int)
            if not 0 <= target_pc <= len(fn.code):
                raise InvalidProgram(f"jump target {target_pc} out of range", op=op)
            if op == "BRANCH" or _bool(frame.pop(op), op) is (op == "BR_TRUE"):
                frame.pc = target_pc
            return
        if op == "ABORT":
            raise UserAbort(_u64(frame.pop(op), op), function=fn.name)

        # Arithmetic, comparison, logic
        if op in ARITH_OPS:
            b = _u64(frame.pop(op), op)
            a = _u64(frame.pop(op), op)
            frame.push(arith(op, a, b))
            return
        if op in CMP_OPS:
            b = _u64(frame.pop(op), op)
            a = _u64(frame.pop(op), op)
            frame.push({"LT": a < b, "GT": a > b, "LE": a <= b, "GE": a >= b}[op])
            return
        if op in ("EQ", "NEQ"):
            b = self._comparable(frame.pop(op), op)
            a = self._comparable(frame.pop(op), op)
            frame.push((a == b) is (op == "EQ"))
            return
        if op in ("AND", "OR"):
            b = _bool(frame.pop(op), op)
            a = _bool(frame.pop(op), op)
            frame.push((a and b) if op == "AND" else (a or b))
            return
        if op == "NOT":
            frame.push(not _bool(frame.pop(op), op))
            return

        raise InvalidProgram(f"unknown op {op!r}", op=op)

    def _comparable(self, value: Any, op: str) -> Any:
        # References compare by the value they point at.
        if isinstance(value, Reference):
            value = self.tracker.read(value)
        if is_resource_value(value):
            raise InvalidProgram("equality is not defined on resources", op=op)
        return value


__all__ = ["Interpreter", "Frame", "OPS", "STRUCT_OPS", "JUMP_OPS", "conforms", "arith"]
