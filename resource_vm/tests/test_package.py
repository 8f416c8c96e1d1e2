from __future__ import annotations

import importlib

import resource_vm
from resource_vm.state.store import GlobalStore
from resource_vm.types.outcome import Success

from .helpers import ALICE, EXAMPLES

# the package-level version() function shadows the submodule attribute
version_mod = importlib.import_module("resource_vm.version")


def test_version_string():
    assert resource_vm.version() == resource_vm.__version__
    assert resource_vm.__version__


def test_version_env_override(monkeypatch):
    monkeypatch.setenv("RESOURCE_VM_VERSION", "9.9.9")
    version_mod.compute_version.cache_clear()
    try:
        assert version_mod.compute_version() == "9.9.9"
    finally:
        version_mod.compute_version.cache_clear()


def test_facade_runs_an_example():
    mods = resource_vm.load_modules(EXAMPLES / "counter" / "module.yaml")
    counter = resource_vm.load_module(EXAMPLES / "counter" / "module.yaml")
    assert set(mods) == {"Counter"}
    out = resource_vm.execute("publish", counter, ALICE, [3], GlobalStore())
    assert isinstance(out, Success)
    assert out.mutated_store.get(ALICE, counter.tag("Counter")).fields == {"i": 3}
