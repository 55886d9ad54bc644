"""
Cryptographic primitives for Sealbid.

This module provides:
- Hashing functions (SHA-256, Keccak-256)
- Key generation and management
- Digital signatures (ECDSA on secp256k1) with public key recovery

Design Notes:
-------------
Signing identities are secp256k1 keypairs. An identity's address is the
last 20 bytes of Keccak-256 over the uncompressed public key, the same
convention used for derived record addresses (see derivation.py), so every
account in the system shares one 20-byte address space.

Signatures are 64 bytes (r || s) without a recovery byte. Recovery tries
both candidate keys, which is how the ledger and the encryption service
authenticate a caller from a signature alone.
"""

import hashlib
import secrets
from dataclasses import dataclass
from typing import Optional

from Crypto.Hash import keccak
from py_ecc.secp256k1 import secp256k1


# =============================================================================
# Constants
# =============================================================================

# secp256k1 curve order (number of points on the curve)
SECP256K1_ORDER = 0xFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFEBAAEDCE6AF48A03BBFD25E8CD0364141

ADDRESS_SIZE = 20


# =============================================================================
# Hashing
# =============================================================================


def sha256(data: bytes) -> bytes:
    """
    Compute SHA-256 hash.

    Used for: transaction digests, message hashes before signing.
    """
    return hashlib.sha256(data).digest()


def keccak256(data: bytes) -> bytes:
    """
    Compute Keccak-256 hash (Ethereum-style).

    Used for: identity addresses, derived record addresses, decrypt challenges.
    """
    k = keccak.new(digest_bits=256)
    k.update(data)
    return k.digest()


# =============================================================================
# Key Generation
# =============================================================================


def address_from_public_key(public_key: bytes) -> bytes:
    """Last 20 bytes of keccak256(public_key)."""
    return keccak256(public_key)[-ADDRESS_SIZE:]


@dataclass
class KeyPair:
    """
    An ECDSA keypair on secp256k1.

    Attributes:
        private_key: 32-byte secret key (integer in [1, order-1])
        public_key: 64-byte uncompressed public key (x || y coordinates)
    """
    private_key: bytes  # 32 bytes
    public_key: bytes   # 64 bytes (uncompressed, no 0x04 prefix)

    @property
    def address(self) -> bytes:
        """20-byte account address derived from the public key."""
        return address_from_public_key(self.public_key)


def private_key_to_public_key(private_key: bytes) -> bytes:
    """
    Derive public key from private key.

    Args:
        private_key: 32-byte private key

    Returns:
        64-byte uncompressed public key
    """
    if len(private_key) != 32:
        raise ValueError("Private key must be 32 bytes")

    public_key_point = secp256k1.privtopub(private_key)
    x_bytes = public_key_point[0].to_bytes(32, byteorder="big")
    y_bytes = public_key_point[1].to_bytes(32, byteorder="big")
    return x_bytes + y_bytes


def generate_keypair() -> KeyPair:
    """
    Generate a new random keypair.

    Uses cryptographically secure random number generator.
    """
    private_key_int = secrets.randbelow(SECP256K1_ORDER - 1) + 1
    private_key = private_key_int.to_bytes(32, byteorder="big")
    return KeyPair(private_key=private_key, public_key=private_key_to_public_key(private_key))


def keypair_from_private_key(private_key: bytes) -> KeyPair:
    """Rebuild a keypair from a stored 32-byte private key."""
    return KeyPair(private_key=private_key, public_key=private_key_to_public_key(private_key))


# =============================================================================
# Digital Signatures (ECDSA)
# =============================================================================


def sign(message_hash: bytes, private_key: bytes) -> bytes:
    """
    Sign a message hash using ECDSA on secp256k1.

    Args:
        message_hash: 32-byte hash of the message to sign
        private_key: 32-byte private key

    Returns:
        64-byte signature (r || s, each 32 bytes)
    """
    if len(message_hash) != 32:
        raise ValueError("Message hash must be 32 bytes")
    if len(private_key) != 32:
        raise ValueError("Private key must be 32 bytes")

    _v, r, s = secp256k1.ecdsa_raw_sign(message_hash, private_key)

    # Low-s normalization (EIP-2); recovery below tries both parities
    if s > SECP256K1_ORDER // 2:
        s = SECP256K1_ORDER - s

    return r.to_bytes(32, byteorder="big") + s.to_bytes(32, byteorder="big")


def recover_public_key(message_hash: bytes, signature: bytes, recovery_id: int) -> Optional[bytes]:
    """
    Recover public key from signature.

    Args:
        message_hash: 32-byte hash
        signature: 64-byte signature (r || s)
        recovery_id: 0 or 1 (which of two possible public keys)

    Returns:
        64-byte public key, or None if recovery fails
    """
    if len(message_hash) != 32 or len(signature) != 64:
        return None

    r = int.from_bytes(signature[:32], byteorder="big")
    s = int.from_bytes(signature[32:], byteorder="big")
    if not (1 <= r < SECP256K1_ORDER and 1 <= s < SECP256K1_ORDER):
        return None

    try:
        recovered = secp256k1.ecdsa_raw_recover(message_hash, (27 + recovery_id, r, s))
    except (ValueError, ZeroDivisionError):
        return None
    if not recovered:
        return None

    return recovered[0].to_bytes(32, byteorder="big") + recovered[1].to_bytes(32, byteorder="big")


def verify(message_hash: bytes, signature: bytes, public_key: bytes) -> bool:
    """
    Verify an ECDSA signature.

    Args:
        message_hash: 32-byte hash of the signed message
        signature: 64-byte signature (r || s)
        public_key: 64-byte public key (x || y)

    Returns:
        True if signature is valid, False otherwise
    """
    if len(message_hash) != 32 or len(signature) != 64 or len(public_key) != 64:
        return False

    for recovery_id in (0, 1):
        if recover_public_key(message_hash, signature, recovery_id) == public_key:
            return True
    return False


def recover_signer_address(message_hash: bytes, signature: bytes, expected: bytes) -> bool:
    """
    Check that a signature was produced by the holder of `expected` address.

    Only the address is known to the verifier, so both recovery candidates
    are tried and compared after address derivation.
    """
    for recovery_id in (0, 1):
        public_key = recover_public_key(message_hash, signature, recovery_id)
        if public_key is not None and address_from_public_key(public_key) == expected:
            return True
    return False


# =============================================================================
# Utility Functions
# =============================================================================


def bytes_to_hex(data: bytes) -> str:
    """Convert bytes to hex string with 0x prefix."""
    return "0x" + data.hex()


def hex_to_bytes(hex_str: str) -> bytes:
    """Convert hex string (with or without 0x prefix) to bytes."""
    if hex_str.startswith("0x") or hex_str.startswith("0X"):
        hex_str = hex_str[2:]
    return bytes.fromhex(hex_str)


def short_hex(data: bytes, length: int = 8) -> str:
    """Abbreviated hex for log lines."""
    return data.hex()[:length]


def is_valid_address(address: str) -> bool:
    """Check if string is a valid address format."""
    if not address.startswith("0x"):
        return False
    if len(address) != 2 + 2 * ADDRESS_SIZE:
        return False
    try:
        int(address, 16)
        return True
    except ValueError:
        return False
