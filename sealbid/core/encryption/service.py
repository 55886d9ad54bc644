"""
Encryption service interface.

The service turns plaintext amounts into ciphertexts the ledger registers
as opaque handles, and, for an identity holding decrypt permission, turns a
handle back into a plaintext together with an attestation the ledger can
verify.

Attestation message (what the service key signs):

    sha256("sealbid/attested-decrypt" || handle_le128 || plaintext_le128 || address)

Decrypt challenge (what the requesting identity signs to prove it holds the
address it claims):

    keccak256("sealbid/decrypt-challenge" || handle_le128 || address)
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Dict, List

from sealbid.core.identity import SignFn
from sealbid.crypto import bytes_to_hex, hex_to_bytes, keccak256, sha256
from sealbid.crypto.codec import encode_u128

ATTESTATION_DOMAIN = b"sealbid/attested-decrypt"
CHALLENGE_DOMAIN = b"sealbid/decrypt-challenge"


class EncryptionServiceError(Exception):
    """Raised by service implementations when an operation cannot complete."""


def attestation_digest(handle_bytes: bytes, plaintext_bytes: bytes, address: bytes) -> bytes:
    return sha256(ATTESTATION_DOMAIN + handle_bytes + plaintext_bytes + address)


def decrypt_challenge(handle: int, address: bytes) -> bytes:
    return keccak256(CHALLENGE_DOMAIN + encode_u128(handle) + address)


@dataclass(frozen=True)
class Attestation:
    """
    Service signature binding a handle to its plaintext for one identity.

    Attributes:
        handle: 16-byte little-endian handle
        plaintext: 16-byte little-endian plaintext
        address: Identity the decryption was performed for
        signature: 64-byte ECDSA signature over attestation_digest(...)
        attestor: 64-byte public key of the signing service key
    """
    handle: bytes
    plaintext: bytes
    address: bytes
    signature: bytes
    attestor: bytes

    def digest(self) -> bytes:
        return attestation_digest(self.handle, self.plaintext, self.address)

    def to_dict(self) -> Dict[str, str]:
        return {
            "handle": bytes_to_hex(self.handle),
            "plaintext": bytes_to_hex(self.plaintext),
            "address": bytes_to_hex(self.address),
            "signature": bytes_to_hex(self.signature),
            "attestor": bytes_to_hex(self.attestor),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Attestation":
        return cls(
            handle=hex_to_bytes(data["handle"]),
            plaintext=hex_to_bytes(data["plaintext"]),
            address=hex_to_bytes(data["address"]),
            signature=hex_to_bytes(data["signature"]),
            attestor=hex_to_bytes(data["attestor"]),
        )


@dataclass(frozen=True)
class DecryptionResult:
    """Plaintext, the handle it belongs to, and the proof material."""
    plaintext: int
    handle: int
    proof: List[Attestation] = field(default_factory=list)


class EncryptionService(ABC):
    """Client-facing surface of the encryption/attestation service."""

    @abstractmethod
    async def encrypt(self, amount: int) -> bytes:
        """Encrypt an amount into a ciphertext the ledger can register."""

    @abstractmethod
    async def decrypt_with_proof(
        self,
        handle: int,
        address: bytes,
        sign_fn: SignFn,
    ) -> DecryptionResult:
        """
        Decrypt `handle` for `address`.

        The service challenges the caller through `sign_fn` and only answers
        if the recovered address holds decrypt permission for the handle.

        Raises:
            EncryptionServiceError: unknown handle, bad signature, no permission
        """


__all__ = [
    "EncryptionServiceError",
    "EncryptionService",
    "Attestation",
    "DecryptionResult",
    "attestation_digest",
    "decrypt_challenge",
]
