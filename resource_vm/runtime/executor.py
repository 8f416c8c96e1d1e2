"""
resource_vm.runtime.executor — Execution Entry Point.

    execute(function, declaring_module, caller_address, arguments, store_snapshot)
        -> Success(return_values, mutated_store) | Abort(error_code)

Responsibilities
- Wire one execution together: a StoreJournal over the snapshot, a fresh
  BorrowTracker, an AcquiresChecker and the interpreter.
- All-or-nothing: on success the journal is materialized into a *new*
  GlobalStore; on any abort the journal is dropped. The snapshot passed in is
  never mutated either way.
- Map every VmAbort to an Abort outcome. Anything that is not a VmAbort is a
  bug in the runtime and propagates.

Design notes
- This module does no parsing, signature verification or gas accounting.
  Modules arrive already built (see resource_vm.loader).
- Linked modules for cross-module CALLs are passed by name via `modules=`;
  the declaring module is always linked.
"""

from __future__ import annotations

import logging
from typing import Any, Iterable, Mapping, Optional, Sequence, Union

from ..config import VMConfig, load_config
from ..errors import InvalidProgram, VmAbort
from ..state.journal import StoreJournal
from ..state.store import GlobalStore
from ..types.module import FunctionDef, ModuleDef
from ..types.outcome import Abort, Outcome, Success
from ..types.values import HexLike, to_address
from .acquires import AcquiresChecker
from .borrows import BorrowTracker
from .engine import Interpreter
from .globals import GlobalOps

log = logging.getLogger(__name__)


def _link(declaring: ModuleDef, modules: Union[None, Mapping[str, ModuleDef], Iterable[ModuleDef]]) -> dict:
    linked = {}
    if isinstance(modules, Mapping):
        linked.update(modules)
    elif modules is not None:
        linked.update((m.name, m) for m in modules)
    linked[declaring.name] = declaring
    return linked


def execute(
    function: Union[str, FunctionDef],
    declaring_module: ModuleDef,
    caller_address: HexLike,
    arguments: Sequence[Any],
    store_snapshot: GlobalStore,
    *,
    modules: Union[None, Mapping[str, ModuleDef], Iterable[ModuleDef]] = None,
    config: Optional[VMConfig] = None,
) -> Outcome:
    """
    Run one function to completion against a snapshot of global storage.

    Args:
        function: FunctionDef, or the name of a function in `declaring_module`.
        declaring_module: Module whose structs and functions the call resolves against.
        caller_address: Transaction sender (bytes or hex); GET_TXN_SENDER and
            MOVE_TO_SENDER use it.
        arguments: Parameter values in declaration order.
        store_snapshot: Storage as seen at the start. Not mutated.
        modules: Other modules reachable through `Module::fn` calls.
        config: Caps and flags; defaults to load_config().

    Returns:
        Success(return_values, mutated_store, steps) or Abort(error_code, message, data).
    """
    cfg = config or load_config()
    fn_name = function.name if isinstance(function, FunctionDef) else str(function)
    log.debug("execute %s::%s args=%d", declaring_module.name, fn_name, len(arguments))

    journal = StoreJournal(store_snapshot)
    tracker = BorrowTracker()
    checker = AcquiresChecker(strict_calls=cfg.strict_call_acquires)
    interp = None
    try:
        try:
            sender = to_address(caller_address)
        except (TypeError, ValueError) as e:
            raise InvalidProgram(f"bad caller address: {e}") from None
        fn = function if isinstance(function, FunctionDef) else declaring_module.function(fn_name)
        if fn is None:
            raise InvalidProgram(f"unknown function {fn_name!r} in module {declaring_module.name}")

        interp = Interpreter(
            GlobalOps(journal, tracker, checker),
            sender=sender,
            modules=_link(declaring_module, modules),
            config=cfg,
        )
        results = interp.invoke(declaring_module, fn, list(arguments))
    except VmAbort as e:
        tracker.release_all()
        log.info("execute %s::%s aborted: %s", declaring_module.name, fn_name, e)
        return Abort.from_error(e)

    out = journal.materialize()
    log.debug(
        "execute %s::%s ok steps=%d returns=%d slots_changed=%d",
        declaring_module.name,
        fn_name,
        interp.steps,
        len(results),
        len(journal.pending_slots()),
    )
    return Success(return_values=results, mutated_store=out, steps=interp.steps)


__all__ = ["execute"]
