"""
Deterministic hashing and signing utilities.

Every hash or signature in the inventory kernel is computed over canonical
JSON: sorted keys, no whitespace, Decimals in plain fixed-point notation
without trailing zeros, UUIDs and datetimes as strings.  Two logically equal
payloads always produce the same bytes.
"""

import hashlib
import hmac
import json
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Any
from uuid import UUID

SIGNATURE_ALGORITHM = "sha256"


def decimal_to_str(value: Decimal) -> str:
    """Plain notation, no exponent, no trailing zeros ("100.500000000" -> "100.5")."""
    text = format(value.normalize(), "f")
    return "0" if text in ("-0", "0") else text


def _json_serializer(obj: Any) -> Any:
    """
    Custom JSON serializer for types not natively supported.

    Raises:
        TypeError: If object type is not supported.
    """
    if isinstance(obj, Decimal):
        return decimal_to_str(obj)
    if isinstance(obj, datetime):
        return obj.isoformat()
    if isinstance(obj, date):
        return obj.isoformat()
    if isinstance(obj, UUID):
        return str(obj)
    if isinstance(obj, Enum):
        return obj.value
    if isinstance(obj, bytes):
        return obj.hex()
    if isinstance(obj, (set, frozenset)):
        return sorted(obj, key=str)

    raise TypeError(f"Object of type {type(obj).__name__} is not JSON serializable")


def canonicalize_json(data: Any) -> str:
    """Convert data to its canonical JSON string."""
    return json.dumps(
        data,
        sort_keys=True,
        separators=(",", ":"),
        default=_json_serializer,
    )


def to_json_compatible(data: Any) -> Any:
    """Round-trip through canonical JSON so the result holds only JSON types."""
    if data is None:
        return None
    return json.loads(canonicalize_json(data))


def hash_payload(payload: dict | None) -> str:
    """Hex-encoded SHA-256 of the canonical JSON of ``payload``."""
    canonical = canonicalize_json(payload or {})
    return hashlib.sha256(canonical.encode("utf-8")).hexdigest()


def hash_audit_event(
    entity_type: str,
    entity_id: str,
    action: str,
    payload_hash: str,
    prev_hash: str | None,
) -> str:
    """
    Compute hash for an audit record.

    The hash includes all key fields plus the previous record's hash,
    creating a tamper-evident chain.
    """
    components = [
        entity_type,
        str(entity_id),
        action,
        payload_hash,
        prev_hash or "GENESIS",
    ]
    data = "|".join(components)
    return hashlib.sha256(data.encode("utf-8")).hexdigest()


def sign_body(body: bytes, secret: str) -> str:
    """Hex HMAC-SHA256 of ``body`` keyed with ``secret``."""
    return hmac.new(secret.encode("utf-8"), body, hashlib.sha256).hexdigest()


def verify_signature(body: bytes, secret: str, signature: str) -> bool:
    """Constant-time check of a received signature against ``body``."""
    expected = sign_body(body, secret)
    return hmac.compare_digest(expected, signature)
