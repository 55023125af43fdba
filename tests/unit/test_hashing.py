"""Canonical JSON, audit hashing and webhook signatures."""

import hmac
import hashlib
from datetime import datetime, timezone
from decimal import Decimal
from uuid import UUID

import pytest
from hypothesis import given
from hypothesis import strategies as st

from inventory_kernel.domain.types import MovementType
from inventory_kernel.utils.hashing import (
    canonicalize_json,
    decimal_to_str,
    hash_audit_event,
    hash_payload,
    sign_body,
    to_json_compatible,
    verify_signature,
)


class TestDecimalRendering:
    @pytest.mark.parametrize(
        "value, expected",
        [
            (Decimal("100.500000000"), "100.5"),
            (Decimal("1E+2"), "100"),
            (Decimal("0E-9"), "0"),
            (Decimal("-0"), "0"),
            (Decimal("-2.50"), "-2.5"),
            (Decimal("0.000000001"), "0.000000001"),
        ],
    )
    def test_plain_notation_without_trailing_zeros(self, value, expected):
        assert decimal_to_str(value) == expected

    @given(st.decimals(allow_nan=False, allow_infinity=False, places=9, min_value=-10**12, max_value=10**12))
    def test_rendering_preserves_value(self, value):
        assert Decimal(decimal_to_str(value)) == value


class TestCanonicalJson:
    def test_key_order_and_whitespace_are_fixed(self):
        assert canonicalize_json({"b": 1, "a": [2, 3]}) == '{"a":[2,3],"b":1}'

    def test_domain_types_render_as_strings(self):
        data = {
            "id": UUID("00000000-0000-0000-0000-000000000001"),
            "qty": Decimal("5.000"),
            "at": datetime(2026, 1, 1, tzinfo=timezone.utc),
            "kind": MovementType.SALE,
        }
        assert to_json_compatible(data) == {
            "id": "00000000-0000-0000-0000-000000000001",
            "qty": "5",
            "at": "2026-01-01T00:00:00+00:00",
            "kind": "sale",
        }

    def test_unknown_types_are_rejected(self):
        with pytest.raises(TypeError):
            canonicalize_json({"x": object()})

    def test_equal_decimals_hash_equally(self):
        assert hash_payload({"q": Decimal("1.0")}) == hash_payload({"q": Decimal("1.000000000")})

    def test_none_payload_hashes_like_empty(self):
        assert hash_payload(None) == hash_payload({})


class TestAuditHash:
    def test_first_record_chains_from_genesis(self):
        expected = hashlib.sha256(b"StockLevel|e1|stock_sold|abc|GENESIS").hexdigest()
        assert hash_audit_event("StockLevel", "e1", "stock_sold", "abc", None) == expected

    def test_every_component_matters(self):
        base = hash_audit_event("StockLevel", "e1", "stock_sold", "abc", "prev")
        assert base != hash_audit_event("StockLevel", "e2", "stock_sold", "abc", "prev")
        assert base != hash_audit_event("StockLevel", "e1", "stock_received", "abc", "prev")
        assert base != hash_audit_event("StockLevel", "e1", "stock_sold", "abd", "prev")
        assert base != hash_audit_event("StockLevel", "e1", "stock_sold", "abc", "other")


class TestSignatures:
    def test_matches_plain_hmac_sha256(self):
        body = b'{"eventType":"stock_out"}'
        assert sign_body(body, "secret") == hmac.new(b"secret", body, hashlib.sha256).hexdigest()

    def test_verification(self):
        body = b"payload"
        signature = sign_body(body, "k1")
        assert verify_signature(body, "k1", signature)
        assert not verify_signature(body, "k2", signature)
        assert not verify_signature(b"payload!", "k1", signature)
        assert not verify_signature(body, "k1", signature.upper())
