"""
Deterministic JSON serialization (RFC 8785, JCS) and hashing.

Decision-log hashes are published on-chain and re-computed by third
parties, so the serialized form must not depend on dict insertion order,
whitespace or float formatting quirks.
"""

import hashlib
import math
from decimal import Decimal
from typing import Any

_ESCAPES = {
    '"': '\\"',
    "\\": "\\\\",
    "\b": "\\b",
    "\t": "\\t",
    "\n": "\\n",
    "\f": "\\f",
    "\r": "\\r",
}


def canonicalize(value: Any) -> str:
    """
    Serialize a JSON-compatible value to its canonical string form.

    Object keys are ordered by UTF-16 code units, no insignificant whitespace
    is emitted, and numbers use the shortest ECMAScript representation.

    Args:
        value: None, bool, int, float, str, list/tuple or dict with str keys

    Returns:
        Canonical JSON string

    Raises:
        TypeError: If the value contains a non-JSON type
        ValueError: If the value contains NaN or Infinity
    """
    if value is None:
        return "null"
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, str):
        return _quote(value)
    if isinstance(value, int):
        return str(value)
    if isinstance(value, float):
        return _format_float(value)
    if isinstance(value, dict):
        for key in value:
            if not isinstance(key, str):
                raise TypeError(f"Object keys must be strings, got {type(key).__name__}")
        keys = sorted(value, key=lambda k: k.encode("utf-16-be"))
        return "{" + ",".join(f"{_quote(k)}:{canonicalize(value[k])}" for k in keys) + "}"
    if isinstance(value, (list, tuple)):
        return "[" + ",".join(canonicalize(item) for item in value) + "]"
    raise TypeError(f"Cannot canonicalize type: {type(value).__name__}")


def _quote(s: str) -> str:
    out = ['"']
    for char in s:
        if char in _ESCAPES:
            out.append(_ESCAPES[char])
        elif ord(char) < 0x20:
            out.append(f"\\u{ord(char):04x}")
        else:
            out.append(char)
    out.append('"')
    return "".join(out)


def _format_float(n: float) -> str:
    if math.isnan(n) or math.isinf(n):
        raise ValueError(f"Cannot canonicalize {n}: not valid JSON")
    if n == 0.0:
        return "0"
    if n.is_integer() and abs(n) < 1e21:
        return str(int(n))

    shortest = repr(n)
    if 1e-6 <= abs(n) < 1e21:
        if "e" in shortest:
            return format(Decimal(shortest), "f")
        return shortest

    # repr() always uses exponent notation outside [1e-4, 1e16)
    mantissa, _, exponent = shortest.partition("e")
    if mantissa.endswith(".0"):
        mantissa = mantissa[:-2]
    exp = int(exponent)
    return f"{mantissa}e{'+' if exp > 0 else '-'}{abs(exp)}"


def sha256_hex(text: str) -> str:
    """SHA-256 of the UTF-8 encoding of ``text`` as 64 lowercase hex chars."""
    return hashlib.sha256(text.encode("utf-8")).hexdigest()


def canonical_hash(value: Any) -> str:
    """Hash the canonical serialization of ``value``."""
    return sha256_hex(canonicalize(value))


__all__ = ["canonicalize", "sha256_hex", "canonical_hash"]
