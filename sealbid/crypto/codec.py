"""
Fixed-width integer encoding for values that cross the ledger boundary.

Wire format for 128-bit values (handles, decrypted plaintexts):

    low 64 bits (8 bytes, little-endian) | high 64 bits (8 bytes, little-endian)

The ledger's attestation verifier hashes exactly these 16 bytes, so the
layout must be reproduced byte for byte.
"""

import struct
from typing import Tuple

U64_MAX = 2**64 - 1
U128_MAX = 2**128 - 1
I64_MIN = -(2**63)
I64_MAX = 2**63 - 1

U128_SIZE = 16


def split_u128(value: int) -> Tuple[int, int]:
    """Split a u128 into (low, high) 64-bit words."""
    if not isinstance(value, int) or isinstance(value, bool):
        raise TypeError(f"u128 value must be int, got {type(value).__name__}")
    if value < 0 or value > U128_MAX:
        raise ValueError(f"u128 value out of range: {value}")
    return value & U64_MAX, value >> 64


def encode_u128(value: int) -> bytes:
    """Encode a u128 as two little-endian 64-bit words, low word first."""
    low, high = split_u128(value)
    return struct.pack("<QQ", low, high)


def decode_u128(data: bytes) -> int:
    """Inverse of encode_u128."""
    if len(data) != U128_SIZE:
        raise ValueError(f"u128 encoding must be {U128_SIZE} bytes, got {len(data)}")
    low, high = struct.unpack("<QQ", data)
    return (high << 64) | low


def encode_u64(value: int) -> bytes:
    """Little-endian u64 (auction ids in address seeds)."""
    if value < 0 or value > U64_MAX:
        raise ValueError(f"u64 value out of range: {value}")
    return struct.pack("<Q", value)


def decode_u64(data: bytes) -> int:
    if len(data) != 8:
        raise ValueError(f"u64 encoding must be 8 bytes, got {len(data)}")
    return struct.unpack("<Q", data)[0]


def format_handle(handle: int) -> str:
    """Abbreviate a handle for display: first and last six digits."""
    text = str(handle)
    if len(text) <= 12:
        return text
    return f"{text[:6]}...{text[-6:]}"


def format_amount(amount: int, decimals: int = 9) -> str:
    """Render integer minor units as a decimal string, e.g. 1500000000 -> '1.5'."""
    if decimals <= 0:
        return str(amount)
    whole, frac = divmod(amount, 10**decimals)
    if not frac:
        return str(whole)
    return f"{whole}.{str(frac).rjust(decimals, '0').rstrip('0')}"


__all__ = [
    "U64_MAX",
    "U128_MAX",
    "I64_MIN",
    "I64_MAX",
    "U128_SIZE",
    "split_u128",
    "encode_u128",
    "decode_u128",
    "encode_u64",
    "decode_u64",
    "format_handle",
    "format_amount",
]
