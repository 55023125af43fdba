"""Utility modules for the inventory kernel."""

from inventory_kernel.utils.hashing import (
    canonicalize_json,
    hash_audit_event,
    hash_payload,
    sign_body,
    verify_signature,
)

__all__ = [
    "canonicalize_json",
    "hash_audit_event",
    "hash_payload",
    "sign_body",
    "verify_signature",
]
