from __future__ import annotations

import json

import pytest

from resource_vm.cli import ENTRYPOINTS, resolve_entrypoint
from resource_vm.cli import inspect_store as inspect_cli
from resource_vm.cli import run as run_cli
from resource_vm.types.module import TypeTag

from .helpers import EXAMPLES

COUNTER = str(EXAMPLES / "counter" / "module.yaml")
COIN = str(EXAMPLES / "coin" / "module.yaml")


def _run(*argv: str) -> int:
    return run_cli.main(list(argv))


def test_publish_then_get(tmp_path, capsys):
    store = tmp_path / "store.cbor"
    rc = _run("-m", COUNTER, "-f", "publish", "-s", "0xa11ce", "--args", "[5]", "--out", str(store))
    assert rc == run_cli.EXIT_OK
    assert store.exists()
    assert "SUCCESS" in capsys.readouterr().out

    rc = _run("-m", COUNTER, "-f", "get", "-s", "0xb0b", "--args", '["0xa11ce"]', "--store", str(store), "--json")
    assert rc == run_cli.EXIT_OK
    doc = json.loads(capsys.readouterr().out)
    assert doc["status"] == "success"
    assert doc["returns"] == [5]
    assert len(doc["storeRoot"]) == 66


def test_abort_exit_code(tmp_path, capsys):
    rc = _run("-m", COUNTER, "-f", "get", "-s", "0xa11ce", "--args", '["0xa11ce"]', "--out", str(tmp_path / "x"))
    assert rc == run_cli.EXIT_ABORT
    assert "ABORT MISSING_DATA" in capsys.readouterr().out
    # nothing is written for an aborted run
    assert not (tmp_path / "x").exists()


def test_linked_modules_need_qualified_names(tmp_path, capsys):
    rc = _run("-m", COUNTER, "-m", COIN, "-f", "Coin::mint", "-s", "0xa11ce", "--args", "[3]", "--json")
    assert rc == run_cli.EXIT_OK
    doc = json.loads(capsys.readouterr().out)
    assert doc["returns"][0]["fields"] == {"value": 3}
    assert doc["returns"][0]["resource"] is True

    assert _run("-m", COUNTER, "-m", COIN, "-f", "mint", "-s", "0xa11ce", "--args", "[3]") == run_cli.EXIT_USAGE


@pytest.mark.parametrize(
    "extra",
    [
        ["-f", "publish", "-s", "0xa11ce"],                        # wrong arg count
        ["-f", "publish", "-s", "0xa11ce", "--args", "{}"],        # not an array
        ["-f", "publish", "-s", "0xa11ce", "--args", "[true]"],    # wrong type
        ["-f", "nope", "-s", "0xa11ce"],                           # unknown function
        ["-f", "remove", "-s", "not-hex"],                         # bad sender
        ["-f", "remove", "-s", "0x1", "--store", "/nonexistent"],  # unreadable store
        ["-f", "remove", "-s", "0x1", "--log-level", "chatty"],    # bad level
    ],
)
def test_usage_errors(extra, capsys):
    assert _run("-m", COUNTER, *extra) == run_cli.EXIT_USAGE
    assert "[resource-vm-run]" in capsys.readouterr().err


def test_bad_module_file(tmp_path, capsys):
    bad = tmp_path / "bad.yaml"
    bad.write_text("name: X\nfunctions:\n  f:\n    code: [FROB]\n")
    assert _run("-m", str(bad), "-f", "f", "-s", "0x1") == run_cli.EXIT_USAGE
    assert "unknown op" in capsys.readouterr().err


def test_coerce_arg():
    assert run_cli.coerce_arg("0x10", TypeTag.parse("u64")) == 16
    assert run_cli.coerce_arg(7, TypeTag.parse("u64")) == 7
    assert run_cli.coerce_arg(False, TypeTag.parse("bool")) is False
    assert run_cli.coerce_arg("0xbeef", TypeTag.parse("bytes")) == b"\xbe\xef"
    assert len(run_cli.coerce_arg("0x1", TypeTag.parse("address"))) == 32
    with pytest.raises(run_cli.UsageError):
        run_cli.coerce_arg(True, TypeTag.parse("u64"))
    with pytest.raises(run_cli.UsageError):
        run_cli.coerce_arg({"v": 1}, TypeTag.parse("R"))


def test_inspect_store(tmp_path, capsys):
    store = tmp_path / "store.cbor"
    assert _run("-m", COUNTER, "-f", "publish", "-s", "0xa11ce", "--args", "[9]", "--out", str(store)) == 0
    capsys.readouterr()

    assert inspect_cli.main(["--store", str(store), "--format", "json"]) == 0
    report = json.loads(capsys.readouterr().out)
    assert report["resources"] == 1
    (account,) = report["accounts"].values()
    (inst,) = account.values()
    assert inst["fields"] == {"i": 9}

    assert inspect_cli.main(["--store", str(store)]) == 0
    out = capsys.readouterr().out
    assert out.startswith("root:")
    assert "{'i': 9}" in out

    junk = tmp_path / "junk.cbor"
    junk.write_bytes(b"\xa0")  # an empty CBOR map, not an array
    assert inspect_cli.main(["--store", str(junk)]) == 2


def test_entrypoints_resolve():
    assert set(ENTRYPOINTS) == {"run", "inspect"}
    assert resolve_entrypoint("run") is run_cli.main
    assert resolve_entrypoint("inspect") is inspect_cli.main
    with pytest.raises(KeyError):
        resolve_entrypoint("nope")
