"""
resource_vm — resource-ownership and global-storage runtime.

This module exposes a small, stable façade over the runtime so downstream
tools can rely on a consistent API:

- __version__: semantic version (optionally with a git describe suffix)
- execute(function, declaring_module, caller_address, arguments, store_snapshot,
          *, modules=None, config=None) -> Success | Abort
    Run one function to completion against a snapshot; all-or-nothing.
- load_module(source) -> ModuleDef / load_modules(source) -> {name: ModuleDef}
    Build validated modules from YAML/JSON files, text or mappings.

Heavy imports are lazy so `import resource_vm` stays cheap (and free of the
YAML dependency) until a function is actually used.
"""

from __future__ import annotations

import importlib
from typing import Any, Dict

from .version import __version__


def version() -> str:
    """Return the resource_vm semantic version string."""
    return __version__


def execute(*args: Any, **kwargs: Any) -> Any:
    """See resource_vm.runtime.executor.execute."""
    executor = importlib.import_module(".runtime.executor", __name__)
    return executor.execute(*args, **kwargs)


def load_module(source: Any) -> Any:
    """See resource_vm.loader.load_module."""
    loader = importlib.import_module(".loader", __name__)
    return loader.load_module(source)


def load_modules(source: Any) -> Dict[str, Any]:
    """See resource_vm.loader.load_modules."""
    loader = importlib.import_module(".loader", __name__)
    return loader.load_modules(source)


__all__ = ["__version__", "version", "execute", "load_module", "load_modules"]
