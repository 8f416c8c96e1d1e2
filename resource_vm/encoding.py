"""
resource_vm.encoding — deterministic CBOR encoding for store snapshots and outcomes.

Wire shape
----------

  Store = [ Account ]                     ; sorted by address bytes
  Account = {
    address:   bytes,                     ; ADDRESS_LENGTH bytes
    resources: [ Struct ],                ; sorted by (module address, module name, name)
  }
  Struct = {
    module:   { address: bytes, name: tstr },
    name:     tstr,
    resource: bool,
    fields:   [ [tstr, Value] ],          ; declaration order (a list, not a map)
  }
  Value = uint | bool | bytes | Struct

Maps are encoded canonically (cbor2 `canonical=True`) so equal stores always
produce identical bytes, and `store_root` is stable across runs.

Public API
----------
- store_to_cbor(store) -> bytes
- store_from_cbor(data) -> GlobalStore
- store_root(store) -> bytes               (sha3_256 of the canonical encoding)
- value_to_json(value) / outcome_to_dict(outcome)   (JSON-friendly views)
"""

from __future__ import annotations

import hashlib
from typing import Any, Dict, List, Mapping

import cbor2

from .state.store import GlobalStore
from .types.outcome import Abort, Outcome, Success
from .types.values import (ModuleId, StructTag, StructValue, is_address,
                           is_u64, to_hex)

# ------------------------------ Helpers -------------------------------------


def _tag_to_obj(tag: StructTag) -> Dict[str, Any]:
    return {"module": {"address": tag.module.address, "name": tag.module.name}, "name": tag.name}


def _obj_to_tag(obj: Mapping[str, Any]) -> StructTag:
    try:
        mod = obj["module"]
        return StructTag(module=ModuleId(address=bytes(mod["address"]), name=str(mod["name"])), name=str(obj["name"]))
    except (KeyError, TypeError) as e:
        raise ValueError(f"bad struct tag: {e}") from None


def _value_to_obj(value: Any) -> Any:
    if isinstance(value, StructValue):
        obj = _tag_to_obj(value.tag)
        obj["resource"] = value.is_resource
        obj["fields"] = [[k, _value_to_obj(v)] for k, v in value.fields.items()]
        return obj
    if isinstance(value, bool) or is_u64(value) or isinstance(value, bytes):
        return value
    raise TypeError(f"cannot encode {type(value).__name__} in a store")


def _obj_to_value(obj: Any) -> Any:
    if isinstance(obj, Mapping):
        fields = obj.get("fields", [])
        if not isinstance(fields, list):
            raise ValueError("struct fields must be a list of pairs")
        return StructValue(
            tag=_obj_to_tag(obj),
            fields={str(k): _obj_to_value(v) for k, v in fields},
            is_resource=bool(obj.get("resource", False)),
        )
    if isinstance(obj, bool) or is_u64(obj) or isinstance(obj, bytes):
        return obj
    raise ValueError(f"unexpected value in store encoding: {obj!r}")


# ------------------------------ Public API ----------------------------------


def store_to_obj(store: GlobalStore) -> List[Dict[str, Any]]:
    accounts: List[Dict[str, Any]] = []
    for addr in sorted(store.addresses()):
        resources = store.resources_at(addr)
        accounts.append(
            {
                "address": addr,
                "resources": [_value_to_obj(resources[tag]) for tag in sorted(resources)],
            }
        )
    return accounts


def store_to_cbor(store: GlobalStore) -> bytes:
    """Serialize a GlobalStore to canonical CBOR bytes."""
    return cbor2.dumps(store_to_obj(store), canonical=True)


def store_from_cbor(data: bytes) -> GlobalStore:
    """Decode CBOR bytes into a new GlobalStore, validating shapes."""
    if not isinstance(data, (bytes, bytearray, memoryview)):
        raise TypeError("store_from_cbor expects a bytes-like object")
    obj = cbor2.loads(bytes(data))
    if not isinstance(obj, list):
        raise ValueError("store CBOR must decode to an array")
    store = GlobalStore()
    for account in obj:
        if not isinstance(account, Mapping) or not is_address(account.get("address")):
            raise ValueError("store account must be a map with a 32-byte address")
        for res in account.get("resources", []):
            inst = _obj_to_value(res)
            store.publish(account["address"], inst.tag, inst)
    return store


def store_root(store: GlobalStore) -> bytes:
    """32-byte commitment to a store's contents."""
    return hashlib.sha3_256(store_to_cbor(store)).digest()


def value_to_json(value: Any) -> Any:
    if isinstance(value, StructValue):
        return {
            "type": str(value.tag),
            "resource": value.is_resource,
            "fields": {k: value_to_json(v) for k, v in value.fields.items()},
        }
    if isinstance(value, bytes):
        return to_hex(value)
    return value


def store_to_json(store: GlobalStore) -> Dict[str, Any]:
    return {
        to_hex(addr): {str(tag): value_to_json(inst) for tag, inst in sorted(store.resources_at(addr).items())}
        for addr in sorted(store.addresses())
    }


def outcome_to_dict(outcome: Outcome) -> Dict[str, Any]:
    """JSON-friendly view of an Outcome (CLI output, logs, RPC)."""
    if isinstance(outcome, Success):
        return {
            "status": str(outcome.status),
            "returns": [value_to_json(v) for v in outcome.return_values],
            "steps": outcome.steps,
            "storeRoot": to_hex(store_root(outcome.mutated_store)),
        }
    if isinstance(outcome, Abort):
        return outcome.to_dict()
    raise TypeError(f"not an outcome: {type(outcome).__name__}")


__all__ = [
    "store_to_obj",
    "store_to_cbor",
    "store_from_cbor",
    "store_root",
    "value_to_json",
    "store_to_json",
    "outcome_to_dict",
]
