"""
Hash Ledger — stable content hashes of reconcile inputs and drift detection.

A hash is sha256 over a canonical JSON form of the input mapping, so equal
mappings hash identically whatever their insertion order.
"""

import base64
import hashlib
import json
from typing import Any, Dict, Mapping, Tuple


def _encode(value: Any) -> Any:
    if isinstance(value, (bytes, bytearray)):
        return base64.b64encode(bytes(value)).decode("ascii")
    if hasattr(value, "model_dump"):
        return value.model_dump(mode="json")
    return str(value)


def compute_stable_hash(values: Mapping[str, Any]) -> str:
    """Hex sha256 of the canonical serialization of `values`."""
    payload = json.dumps(
        dict(values), sort_keys=True, separators=(",", ":"), default=_encode
    ).encode()
    return hashlib.sha256(payload).hexdigest()


def record_and_detect_change(
    previous: Mapping[str, str], key: str, new_hash: str
) -> Tuple[Dict[str, str], bool]:
    """
    Record `new_hash` under `key`.

    Returns the updated mapping (a copy) and whether the key was absent or
    held a different value. A changed hash must be persisted before anything
    is built from the inputs it covers.
    """
    updated = dict(previous)
    changed = updated.get(key) != new_hash
    if changed:
        updated[key] = new_hash
    return updated, changed
