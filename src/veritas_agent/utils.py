"""
Shared helpers for the Veritas investigator.

- ``b58decode_pubkey`` / ``b58encode`` / ``is_valid_address`` - Solana address validation
  without pulling in ``solders``
- ``is_on_ed25519_curve`` - curve membership test; program-derived addresses
  (pool vaults, bonding curves) are *off* the curve
- ``parse_datetime`` - tolerant timestamp parsing for provider payloads
"""

from __future__ import annotations

import re
from datetime import datetime, timezone
from typing import Optional

_BASE58_RE = re.compile(r"^[1-9A-HJ-NP-Za-km-z]{32,44}$")
_B58_ALPHA = "123456789ABCDEFGHJKLMNPQRSTUVWXYZabcdefghijkmnopqrstuvwxyz"
_B58_MAP = {c: i for i, c in enumerate(_B58_ALPHA)}

_ED25519_P = 2**255 - 19
_ED25519_D = (-121665 * pow(121666, _ED25519_P - 2, _ED25519_P)) % _ED25519_P


# ---------------------------------------------------------------------------
# Base58 public keys
# ---------------------------------------------------------------------------

def b58decode_pubkey(address: str) -> Optional[bytes]:
    """Decode a base58 Solana public key; ``None`` unless it is exactly 32 bytes."""
    if not address or not _BASE58_RE.match(address):
        return None
    n = 0
    for c in address:
        n = n * 58 + _B58_MAP[c]
    leading_zeros = len(address) - len(address.lstrip("1"))
    body = n.to_bytes((n.bit_length() + 7) // 8, "big") if n else b""
    raw = b"\x00" * leading_zeros + body
    return raw if len(raw) == 32 else None


def b58encode(raw: bytes) -> str:
    """Encode bytes to base58 (Bitcoin / Solana alphabet)."""
    n = int.from_bytes(raw, "big")
    out: list[str] = []
    while n:
        n, r = divmod(n, 58)
        out.append(_B58_ALPHA[r])
    for byte in raw:
        if byte:
            break
        out.append(_B58_ALPHA[0])
    return "".join(reversed(out))


def is_valid_address(address: Optional[str]) -> bool:
    return b58decode_pubkey(address or "") is not None


# ---------------------------------------------------------------------------
# Ed25519 curve membership
# ---------------------------------------------------------------------------

def is_on_ed25519_curve(point: bytes) -> bool:
    """Return True if *point* (32 bytes, little-endian) decompresses to a valid
    Ed25519 point.  Wallet keys are on the curve; PDAs are not."""
    if len(point) != 32:
        return False
    y_int = int.from_bytes(point, "little")
    sign = y_int >> 255
    y = y_int & ((1 << 255) - 1)
    if y >= _ED25519_P:
        return False
    y2 = (y * y) % _ED25519_P
    u = (y2 - 1) % _ED25519_P
    v = (_ED25519_D * y2 + 1) % _ED25519_P
    x2 = (u * pow(v, _ED25519_P - 2, _ED25519_P)) % _ED25519_P
    if x2 == 0:
        return sign == 0
    x = pow(x2, (_ED25519_P + 3) // 8, _ED25519_P)
    if (x * x) % _ED25519_P != x2:
        x = (x * pow(2, (_ED25519_P - 1) // 4, _ED25519_P)) % _ED25519_P
    return (x * x) % _ED25519_P == x2


# ---------------------------------------------------------------------------
# Datetimes
# ---------------------------------------------------------------------------

def parse_datetime(value: object) -> Optional[datetime]:
    """Convert a value to a timezone-aware ``datetime`` (UTC).

    Accepts ``None``, ``datetime`` (naive ones are assumed UTC), ISO strings
    (with ``Z`` or an offset), and Unix epoch seconds.  Anything else gives
    ``None``.
    """
    if value is None:
        return None
    if isinstance(value, datetime):
        return value if value.tzinfo else value.replace(tzinfo=timezone.utc)
    if isinstance(value, str):
        try:
            cleaned = value[:-1] + "+00:00" if value.endswith("Z") else value
            dt = datetime.fromisoformat(cleaned)
        except (ValueError, TypeError):
            return None
        return dt if dt.tzinfo else dt.replace(tzinfo=timezone.utc)
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        try:
            return datetime.fromtimestamp(float(value), tz=timezone.utc)
        except (ValueError, OSError, OverflowError):
            return None
    return None


def safe_float(val: object) -> Optional[float]:
    """Try to cast *val* to float, returning ``None`` on failure."""
    if val is None:
        return None
    try:
        return float(val)  # type: ignore[arg-type]
    except (TypeError, ValueError):
        return None
