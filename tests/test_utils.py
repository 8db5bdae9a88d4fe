"""Unit tests for veritas_agent.utils - address validation, curve test, parsing."""

from __future__ import annotations

from datetime import datetime, timezone

from veritas_agent.utils import (
    b58decode_pubkey,
    b58encode,
    is_on_ed25519_curve,
    is_valid_address,
    parse_datetime,
    safe_float,
)

# Compressed ed25519 base point: a known on-curve encoding
BASE_POINT = bytes.fromhex("58" + "66" * 31)
# y >= p can never decode to a point
OFF_CURVE = b"\xff" * 32


# ===================================================================
# Base58 / addresses
# ===================================================================

class TestAddresses:

    def test_known_mints_are_valid(self):
        assert is_valid_address("DezXAZ8z7PnrnRJjz3wXBoRgixCa6xjnB7YaB1pPB263")
        assert is_valid_address("So11111111111111111111111111111111111111112")
        assert is_valid_address("11111111111111111111111111111111")

    def test_rejects_bad_alphabet_and_length(self):
        assert not is_valid_address("not-a-mint")
        assert not is_valid_address("0OIl" * 10)
        assert not is_valid_address("")
        assert not is_valid_address(None)

    def test_rejects_wrong_byte_length(self):
        # 32+ base58 chars that decode to fewer than 32 bytes
        assert b58decode_pubkey("2" * 32) is None
        assert not is_valid_address("2" * 32)

    def test_system_program_decodes_to_zero_bytes(self):
        assert b58decode_pubkey("11111111111111111111111111111111") == b"\x00" * 32

    def test_encode_matches_decode(self):
        for raw in (BASE_POINT, OFF_CURVE, b"\x00" * 32):
            assert b58decode_pubkey(b58encode(raw)) == raw


# ===================================================================
# Ed25519 curve
# ===================================================================

class TestEd25519Curve:

    def test_base_point_is_on_curve(self):
        assert is_on_ed25519_curve(BASE_POINT)

    def test_non_canonical_y_is_off_curve(self):
        assert not is_on_ed25519_curve(OFF_CURVE)

    def test_wrong_length(self):
        assert not is_on_ed25519_curve(b"\x01" * 31)


# ===================================================================
# parse_datetime / safe_float
# ===================================================================

class TestParseDatetime:

    def test_none(self):
        assert parse_datetime(None) is None

    def test_aware_passthrough(self):
        dt = datetime(2024, 1, 15, 12, 0, tzinfo=timezone.utc)
        assert parse_datetime(dt) is dt

    def test_naive_gets_utc(self):
        assert parse_datetime(datetime(2024, 1, 15)).tzinfo == timezone.utc

    def test_iso_z_suffix(self):
        result = parse_datetime("2024-06-01T10:30:00Z")
        assert result == datetime(2024, 6, 1, 10, 30, tzinfo=timezone.utc)

    def test_epoch_seconds(self):
        assert parse_datetime(0) == datetime(1970, 1, 1, tzinfo=timezone.utc)

    def test_garbage(self):
        assert parse_datetime("yesterday") is None
        assert parse_datetime(True) is None
        assert parse_datetime([1]) is None


class TestSafeFloat:

    def test_values(self):
        assert safe_float("1.5") == 1.5
        assert safe_float(3) == 3.0
        assert safe_float(None) is None
        assert safe_float("abc") is None
