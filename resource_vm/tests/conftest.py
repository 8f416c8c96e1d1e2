from __future__ import annotations

import pytest

from resource_vm.loader import load_module
from resource_vm.types.module import ModuleDef

from .helpers import EXAMPLES, new_module


@pytest.fixture
def module() -> ModuleDef:
    return new_module()


@pytest.fixture(scope="session")
def counter() -> ModuleDef:
    return load_module(EXAMPLES / "counter" / "module.yaml")


@pytest.fixture(scope="session")
def coin() -> ModuleDef:
    return load_module(EXAMPLES / "coin" / "module.yaml")
