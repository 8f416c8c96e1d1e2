"""
resource_vm.cli
---------------

Command-line entrypoints for the resource runtime developer tools.

  - `resource-vm-run`      -> resource_vm.cli.run:main
  - `resource-vm-inspect`  -> resource_vm.cli.inspect_store:main

CLI modules are lazy-loaded via `resolve_entrypoint`.
"""

from __future__ import annotations

from importlib import import_module
from typing import Callable, Dict

ENTRYPOINTS: Dict[str, str] = {
    "run": "resource_vm.cli.run:main",
    "inspect": "resource_vm.cli.inspect_store:main",
}


def resolve_entrypoint(name: str) -> Callable[[], int]:
    """
    Resolve a CLI name to its `main()` callable without importing all submodules.

    Raises KeyError for an unknown name.
    """
    target = ENTRYPOINTS[name]
    module_path, _, attr = target.partition(":")
    main_fn = getattr(import_module(module_path), attr)
    if not callable(main_fn):
        raise AttributeError(f"Entrypoint {target!r} is not callable")
    return main_fn  # type: ignore[return-value]


__all__ = ["ENTRYPOINTS", "resolve_entrypoint"]
