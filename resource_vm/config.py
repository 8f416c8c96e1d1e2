"""
resource_vm.config — execution caps and feature flags.

This module centralizes configuration for the resource runtime. It has NO
third-party deps and is safe to import very early.

Configuration precedence:
  1) Environment variables (RESOURCE_VM_*)
  2) Hardcoded safe defaults below

Key env vars (case-insensitive where boolean):
  - RESOURCE_VM_MAX_CALL_DEPTH        (int)    default: 64
  - RESOURCE_VM_STEP_LIMIT            (int)    default: 1_000_000
  - RESOURCE_VM_MAX_STACK             (int)    default: 1024
  - RESOURCE_VM_STRICT_CALL_ACQUIRES  (bool)   default: true
  - RESOURCE_VM_LOG_LEVEL             (str)    default: WARNING

Usage:
    from resource_vm.config import load_config
    CFG = load_config()
    if CFG.strict_call_acquires: ...
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, replace
from functools import lru_cache
from typing import Any, Dict

# Width of the only integer type (u64).
NUMERIC_BIT_WIDTH = 64
U64_MAX = (1 << NUMERIC_BIT_WIDTH) - 1

# Raw address width in bytes.
ADDRESS_LENGTH = 32


# ----------------------------- helpers ---------------------------------------


def _env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    val = raw.strip().lower()
    return val in ("1", "true", "t", "yes", "y", "on")


def _env_int(name: str, default: int, *, min_v: int, max_v: int) -> int:
    raw = os.getenv(name)
    if raw is None:
        return default
    try:
        v = int(raw, 0)
    except ValueError:
        return default
    if v < min_v:
        return min_v
    if v > max_v:
        return max_v
    return v


def _env_level(name: str, default: str) -> str:
    raw = (os.getenv(name) or "").strip().upper()
    if raw and isinstance(logging.getLevelName(raw), int):
        return raw
    return default


# ------------------------------- config --------------------------------------


@dataclass(frozen=True)
class VMConfig:
    max_call_depth: int
    step_limit: int
    max_stack_depth: int

    # Reject a CALL whose callee acquires a type the call stack still holds a
    # live reference into.
    strict_call_acquires: bool

    log_level: str

    def with_overrides(self, **kw: Any) -> "VMConfig":
        """Return a copy with the given fields replaced."""
        return replace(self, **kw)

    def as_dict(self) -> Dict[str, Any]:
        return {
            "max_call_depth": self.max_call_depth,
            "step_limit": self.step_limit,
            "max_stack_depth": self.max_stack_depth,
            "strict_call_acquires": self.strict_call_acquires,
            "log_level": self.log_level,
        }


@lru_cache(maxsize=1)
def load_config() -> VMConfig:
    """Read RESOURCE_VM_* once and cache the result (tests call cache_clear())."""
    return VMConfig(
        max_call_depth=_env_int("RESOURCE_VM_MAX_CALL_DEPTH", 64, min_v=1, max_v=1024),
        step_limit=_env_int("RESOURCE_VM_STEP_LIMIT", 1_000_000, min_v=1_000, max_v=50_000_000),
        max_stack_depth=_env_int("RESOURCE_VM_MAX_STACK", 1024, min_v=16, max_v=65_536),
        strict_call_acquires=_env_bool("RESOURCE_VM_STRICT_CALL_ACQUIRES", True),
        log_level=_env_level("RESOURCE_VM_LOG_LEVEL", "WARNING"),
    )


# Import-time snapshot. Code that must see environment changes calls load_config().
CFG: VMConfig = load_config()

__all__ = ["VMConfig", "load_config", "CFG", "NUMERIC_BIT_WIDTH", "U64_MAX", "ADDRESS_LENGTH"]
