#!/usr/bin/env python3
"""
resource-vm run

Run one function of a module against a store snapshot.

Examples:
  python -m resource_vm.cli.run --module resource_vm/examples/counter/module.yaml \\
      --function publish --sender 0xa11ce --args '[0]' --out store.cbor
  python -m resource_vm.cli.run --module resource_vm/examples/counter/module.yaml \\
      --function increment --sender 0xa11ce --store store.cbor --out store.cbor
  python -m resource_vm.cli.run --module resource_vm/examples/counter/module.yaml \\
      --function get --sender 0xa11ce --args '["0xa11ce"]' --store store.cbor --json

Arguments (--args) are a JSON array coerced by parameter type: u64 takes ints
(or decimal / 0x strings), bool takes true/false, address and bytes take 0x
hex strings.

With several --module flags (or a file with a `modules:` list) every module is
linked and --function takes the `Module::fn` form.

Exit codes:
  0 success, 1 abort, 2 usage or load error.
"""
from __future__ import annotations

import argparse
import json
import logging
import sys
from pathlib import Path
from typing import Any, Dict, List, Sequence, Tuple

from ..config import load_config
from ..encoding import outcome_to_dict, store_from_cbor, store_to_cbor, value_to_json
from ..errors import ModuleLoadError
from ..loader import load_modules
from ..runtime.executor import execute
from ..state.store import GlobalStore
from ..types.module import FunctionDef, ModuleDef, TypeTag
from ..types.outcome import Success
from ..types.values import to_address

EXIT_OK = 0
EXIT_ABORT = 1
EXIT_USAGE = 2

# ---------------------- small utils ---------------------- #


def eprint(*a: Any, **k: Any) -> None:
    print(*a, file=sys.stderr, **k)


class UsageError(Exception):
    pass


def _parse_args_json(s: str | None) -> List[Any]:
    if not s or not s.strip():
        return []
    try:
        val = json.loads(s)
    except json.JSONDecodeError as e:
        raise UsageError(f"--args is not valid JSON: {e}") from e
    if not isinstance(val, list):
        raise UsageError("--args must be a JSON array, e.g. --args '[1, \"0xa11ce\"]'")
    return val


def coerce_arg(value: Any, t: TypeTag) -> Any:
    """Turn one JSON value into a runtime value of type `t`."""
    try:
        if t.kind == "u64":
            if isinstance(value, str):
                return int(value, 0)
            if isinstance(value, int) and not isinstance(value, bool):
                return value
        elif t.kind == "bool" and isinstance(value, bool):
            return value
        elif t.kind == "address" and isinstance(value, str):
            return to_address(value)
        elif t.kind == "bytes" and isinstance(value, str):
            h = value[2:] if value.startswith(("0x", "0X")) else value
            return bytes.fromhex(h)
    except ValueError as e:
        raise UsageError(f"bad {t} argument {value!r}: {e}") from e
    raise UsageError(f"cannot pass {value!r} as {t} from the command line")


def _pick(modules: Dict[str, ModuleDef], name: str) -> Tuple[ModuleDef, FunctionDef]:
    if "::" in name:
        mod_name, _, fn_name = name.rpartition("::")
        module = modules.get(mod_name)
        if module is None:
            raise UsageError(f"unknown module {mod_name!r}")
    elif len(modules) == 1:
        module, fn_name = next(iter(modules.values())), name
    else:
        raise UsageError("several modules loaded; use --function Module::fn")
    fn = module.function(fn_name)
    if fn is None:
        raise UsageError(f"unknown function {name!r}")
    return module, fn


def _load_store(path: str | None) -> GlobalStore:
    if not path:
        return GlobalStore()
    try:
        return store_from_cbor(Path(path).read_bytes())
    except (OSError, ValueError, TypeError) as e:
        raise UsageError(f"cannot load store {path}: {e}") from e


# ---------------------- CLI ---------------------- #


def parse_args(argv: Sequence[str]) -> argparse.Namespace:
    p = argparse.ArgumentParser(prog="resource-vm-run", description="Run one function against a resource store.")
    p.add_argument("--module", "-m", action="append", required=True, help="Module YAML/JSON file (repeatable)")
    p.add_argument("--function", "-f", required=True, help="Function name, or Module::fn")
    p.add_argument("--sender", "-s", required=True, help="Caller address (0x hex)")
    p.add_argument("--args", help="JSON array of arguments, e.g. --args '[1, \"0xa11ce\"]'")
    p.add_argument("--store", help="Input store snapshot (CBOR); empty store if omitted")
    p.add_argument("--out", help="Write the mutated store (CBOR) here on success")
    p.add_argument("--json", action="store_true", help="Print the outcome as JSON")
    p.add_argument("--log-level", default=None, help="Logging level (default: RESOURCE_VM_LOG_LEVEL or WARNING)")
    return p.parse_args(list(argv))


def main(argv: Sequence[str] | None = None) -> int:
    args = parse_args(sys.argv[1:] if argv is None else argv)
    level = (args.log_level or load_config().log_level).upper()
    if not isinstance(logging.getLevelName(level), int):
        eprint(f"[resource-vm-run] unknown log level {args.log_level!r}")
        return EXIT_USAGE
    logging.basicConfig(
        level=level,
        format="%(levelname)s %(name)s: %(message)s",
    )

    try:
        modules: Dict[str, ModuleDef] = {}
        for path in args.module:
            for name, module in load_modules(path).items():
                if name in modules:
                    raise UsageError(f"module {name!r} loaded twice")
                modules[name] = module
        module, fn = _pick(modules, args.function)
        raw = _parse_args_json(args.args)
        if len(raw) != len(fn.params):
            raise UsageError(f"{fn.name} expects {len(fn.params)} argument(s), got {len(raw)}")
        call_args = [coerce_arg(v, t) for v, t in zip(raw, fn.params)]
        sender = to_address(args.sender)
        store = _load_store(args.store)
    except (ModuleLoadError, UsageError, ValueError, TypeError) as e:
        eprint(f"[resource-vm-run] {e}")
        return EXIT_USAGE

    outcome = execute(fn, module, sender, call_args, store, modules=modules)

    if isinstance(outcome, Success) and args.out:
        Path(args.out).write_bytes(store_to_cbor(outcome.mutated_store))

    if args.json:
        print(json.dumps(outcome_to_dict(outcome), indent=2, sort_keys=True))
    elif isinstance(outcome, Success):
        print("SUCCESS")
        for v in outcome.return_values:
            print(f"  {value_to_json(v)}")
    else:
        print(f"ABORT {outcome.error_code.value}: {outcome.message}")
    return EXIT_OK if isinstance(outcome, Success) else EXIT_ABORT


if __name__ == "__main__":
    raise SystemExit(main())
