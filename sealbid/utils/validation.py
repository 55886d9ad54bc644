"""
Input Validation - sanitization of values entering the coordinator.

Covers:
- Bounded text (title/description), truncated rather than rejected
- Integer ranges (u64 amounts, i64 durations/timestamps)
- Byte-string shapes (addresses, ciphertexts)

Validators return (is_valid, error_message); callers decide which error
type to raise.
"""

from typing import Any, Optional, Tuple

from sealbid.crypto import ADDRESS_SIZE
from sealbid.crypto.codec import I64_MAX, I64_MIN, U64_MAX

MAX_CIPHERTEXT_SIZE = 1024


def truncate_text(value: str, max_bytes: int) -> str:
    """
    Cut text to at most `max_bytes` of UTF-8 without splitting a character.

    The ledger stores titles and descriptions as fixed-size byte arrays, so
    the cap is in encoded bytes, not characters.
    """
    encoded = value.encode("utf-8")
    if len(encoded) <= max_bytes:
        return value
    return encoded[:max_bytes].decode("utf-8", errors="ignore")


def validate_bytes(
    data: Any,
    name: str,
    expected_length: Optional[int] = None,
    max_length: Optional[int] = None,
) -> Tuple[bool, str]:
    """
    Validate bytes input.

    Args:
        data: Data to validate
        name: Field name for error messages
        expected_length: Exact expected length
        max_length: Maximum allowed length

    Returns:
        (is_valid, error_message)
    """
    if not isinstance(data, (bytes, bytearray)):
        return False, f"{name} must be bytes, got {type(data).__name__}"

    if expected_length is not None and len(data) != expected_length:
        return False, f"{name} must be {expected_length} bytes, got {len(data)}"

    if max_length is not None and len(data) > max_length:
        return False, f"{name} exceeds max length {max_length}, got {len(data)}"

    return True, ""


def validate_address(address: Any, name: str = "address") -> Tuple[bool, str]:
    """Validate a 20-byte identity or record address."""
    return validate_bytes(address, name, expected_length=ADDRESS_SIZE)


def validate_ciphertext(ciphertext: Any) -> Tuple[bool, str]:
    valid, err = validate_bytes(ciphertext, "ciphertext", max_length=MAX_CIPHERTEXT_SIZE)
    if valid and not ciphertext:
        return False, "ciphertext is empty"
    return valid, err


def validate_integer(value: Any, name: str, min_val: int, max_val: int) -> Tuple[bool, str]:
    """
    Validate integer within bounds.

    Floats and bools are rejected: amounts are integer minor units only.
    """
    if isinstance(value, bool) or not isinstance(value, int):
        return False, f"{name} must be int, got {type(value).__name__}"

    if value < min_val:
        return False, f"{name} must be >= {min_val}, got {value}"

    if value > max_val:
        return False, f"{name} must be <= {max_val}, got {value}"

    return True, ""


def validate_amount(amount: Any, name: str = "amount") -> Tuple[bool, str]:
    """Validate a u64 minor-unit amount."""
    return validate_integer(amount, name, 0, U64_MAX)


def validate_i64(value: Any, name: str) -> Tuple[bool, str]:
    return validate_integer(value, name, I64_MIN, I64_MAX)


def validate_duration(duration: Any, min_duration: int, max_duration: int) -> Tuple[bool, str]:
    """Validate an auction duration against configured bounds."""
    valid, err = validate_i64(duration, "duration")
    if not valid:
        return valid, err
    if duration < min_duration:
        return False, f"duration {duration}s is below the minimum {min_duration}s"
    if duration > max_duration:
        return False, f"duration {duration}s exceeds the maximum {max_duration}s"
    return True, ""


__all__ = [
    "MAX_CIPHERTEXT_SIZE",
    "truncate_text",
    "validate_bytes",
    "validate_address",
    "validate_ciphertext",
    "validate_integer",
    "validate_amount",
    "validate_i64",
    "validate_duration",
]
