"""resource_vm.version — package version.

Resolution order:
  1) RESOURCE_VM_VERSION from the environment (used verbatim)
  2) version of the installed 'resource-vm' distribution
  3) BASE_VERSION + '+dev' for source checkouts
"""

from __future__ import annotations

import os
from functools import lru_cache
from importlib import metadata as importlib_metadata
from typing import Optional

# Bump on changes that alter outcomes (abort codes, store encoding).
BASE_VERSION = "0.1.0"

DIST_NAME = "resource-vm"


def _installed_version() -> Optional[str]:
    try:
        return importlib_metadata.version(DIST_NAME) or None
    except importlib_metadata.PackageNotFoundError:
        return None


@lru_cache(maxsize=1)
def compute_version() -> str:
    return os.getenv("RESOURCE_VM_VERSION") or _installed_version() or f"{BASE_VERSION}+dev"


__version__ = compute_version()

__all__ = ["__version__", "BASE_VERSION", "compute_version"]
