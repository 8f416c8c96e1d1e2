#!/usr/bin/env python3
"""
resource-vm inspect

Print the contents and state root of a CBOR store snapshot.

Examples:
  python -m resource_vm.cli.inspect_store --store store.cbor
  python -m resource_vm.cli.inspect_store --store store.cbor --format json
"""
from __future__ import annotations

import argparse
import json
import sys
from pathlib import Path
from typing import Any, Dict, Sequence

from ..encoding import store_from_cbor, store_root, store_to_json
from ..types.values import to_hex


def parse_args(argv: Sequence[str]) -> argparse.Namespace:
    p = argparse.ArgumentParser(prog="resource-vm-inspect", description="Inspect a resource store snapshot.")
    p.add_argument("--store", required=True, help="Store snapshot (CBOR)")
    p.add_argument("--format", choices=("text", "json"), default="text", help="Output format (default: text)")
    return p.parse_args(list(argv))


def main(argv: Sequence[str] | None = None) -> int:
    args = parse_args(sys.argv[1:] if argv is None else argv)
    try:
        store = store_from_cbor(Path(args.store).read_bytes())
    except (OSError, ValueError, TypeError) as e:
        print(f"[resource-vm-inspect] cannot load store {args.store}: {e}", file=sys.stderr)
        return 2

    report: Dict[str, Any] = {
        "root": to_hex(store_root(store)),
        "resources": len(store),
        "accounts": store_to_json(store),
    }
    if args.format == "json":
        print(json.dumps(report, indent=2, sort_keys=True))
        return 0

    print(f"root:      {report['root']}")
    print(f"resources: {report['resources']}")
    for addr, resources in report["accounts"].items():
        print(addr)
        for tag, inst in resources.items():
            print(f"  {tag}: {inst['fields']}")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
