from __future__ import annotations

import cbor2
import pytest

from resource_vm.encoding import (outcome_to_dict, store_from_cbor, store_root,
                                  store_to_cbor, store_to_json, value_to_json)
from resource_vm.errors import MissingData
from resource_vm.state.store import GlobalStore
from resource_vm.types.outcome import Abort, Success
from resource_vm.types.values import StructValue

from .helpers import ALICE, BOB, r_value, store_with


def _balance(coin, v: int) -> StructValue:
    inner = StructValue(coin.tag("Coin"), {"value": v}, is_resource=True)
    return StructValue(coin.tag("Balance"), {"coin": inner}, is_resource=True)


def test_nested_store_roundtrip(coin):
    store = GlobalStore()
    store.publish(ALICE, coin.tag("Balance"), _balance(coin, 12))
    store.publish(BOB, coin.tag("Balance"), _balance(coin, 0))
    back = store_from_cbor(store_to_cbor(store))
    assert back.get(ALICE, coin.tag("Balance")).fields["coin"].fields == {"value": 12}
    assert back.get(ALICE, coin.tag("Balance")).fields["coin"].is_resource
    assert store_root(back) == store_root(store)


def test_encoding_ignores_insertion_order(module):
    a = store_with(module, (ALICE, 1), (BOB, 2))
    b = store_with(module, (BOB, 2), (ALICE, 1))
    assert store_to_cbor(a) == store_to_cbor(b)
    assert store_root(a) == store_root(b)
    assert len(store_root(a)) == 32


def test_root_tracks_contents(module):
    base = store_root(store_with(module, (ALICE, 1)))
    assert store_root(store_with(module, (ALICE, 2))) != base
    assert store_root(store_with(module, (BOB, 1))) != base
    assert store_root(GlobalStore()) != base


def test_rejects_malformed_input():
    with pytest.raises(TypeError):
        store_from_cbor("not bytes")  # type: ignore[arg-type]
    with pytest.raises(ValueError):
        store_from_cbor(cbor2.dumps({"address": b"\x00" * 32}))
    with pytest.raises(ValueError):
        store_from_cbor(cbor2.dumps([{"address": b"\x01"}]))
    with pytest.raises(ValueError):
        store_from_cbor(cbor2.dumps([{"address": b"\x00" * 32, "resources": [{"name": "R"}]}]))


def test_json_views(module):
    assert value_to_json(b"\x01\x02") == "0x0102"
    assert value_to_json(r_value(module, 3)) == {"type": str(module.tag("R")), "resource": True, "fields": {"v": 3}}
    view = store_to_json(store_with(module, (ALICE, 3)))
    assert list(view) == ["0x" + ALICE.hex()]


def test_outcome_to_dict(module):
    store = store_with(module, (ALICE, 1))
    ok = outcome_to_dict(Success(return_values=(1, True, r_value(module, 2)), mutated_store=store, steps=9))
    assert ok["status"] == "success"
    assert ok["returns"][:2] == [1, True]
    assert ok["returns"][2]["fields"] == {"v": 2}
    assert ok["steps"] == 9
    assert ok["storeRoot"] == "0x" + store_root(store).hex()

    bad = outcome_to_dict(Abort.from_error(MissingData(slot="s")))
    assert bad == {"status": "abort", "code": "MISSING_DATA", "message": "no resource at slot", "data": {"slot": "s"}}

    with pytest.raises(TypeError):
        outcome_to_dict("nope")  # type: ignore[arg-type]
