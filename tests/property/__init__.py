# -*- coding: utf-8 -*-
"""
Hypothesis profiles for the resource store property tests.

The active profile comes from HYPOTHESIS_PROFILE, else "ci" when the CI env var
is truthy, else "dev". Per-test @settings(max_examples=...) still applies on
top of the profile.
"""
from __future__ import annotations

import os
from typing import Final

from hypothesis import HealthCheck, Verbosity, settings

settings.register_profile(
    "dev",
    settings(deadline=None, suppress_health_check=(HealthCheck.too_slow,)),
)
settings.register_profile(
    "ci",
    settings(
        deadline=None,
        suppress_health_check=(HealthCheck.too_slow,),
        verbosity=Verbosity.verbose,
        derandomize=True,
    ),
)
settings.register_profile("fast", settings(max_examples=25, deadline=None))


def _env_truthy(name: str) -> bool:
    return (os.getenv(name) or "").lower() not in ("", "0", "false", "no", "off")


ACTIVE_PROFILE: Final[str] = os.getenv("HYPOTHESIS_PROFILE") or ("ci" if _env_truthy("CI") else "dev")
settings.load_profile(ACTIVE_PROFILE)

__all__ = ["ACTIVE_PROFILE"]
