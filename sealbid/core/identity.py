"""
Signing identity - the caller's key, passed explicitly to every action.

There is no ambient wallet: each coordinator call takes the identity that
authorizes it. Signing is async because a real wallet prompts its user and
may take arbitrarily long; callers bound it with the configured
signature timeout.
"""

from typing import Awaitable, Callable, Optional

from sealbid.crypto import (
    KeyPair,
    generate_keypair,
    keypair_from_private_key,
    recover_signer_address,
    sha256,
    sign,
)

# Wallet-style message signer: message bytes in, 64-byte signature out
SignFn = Callable[[bytes], Awaitable[bytes]]

# Null identity sentinel (default leader/winner before one is known)
NULL_IDENTITY = bytes(20)


class SigningIdentity:
    """
    A secp256k1 key acting as a wallet.

    Attributes:
        address: 20-byte account address
        label: Optional human-readable name for logs
    """

    def __init__(self, keypair: KeyPair, label: Optional[str] = None):
        self._keypair = keypair
        self.label = label

    @classmethod
    def generate(cls, label: Optional[str] = None) -> "SigningIdentity":
        return cls(generate_keypair(), label=label)

    @classmethod
    def from_private_key(cls, private_key: bytes, label: Optional[str] = None) -> "SigningIdentity":
        return cls(keypair_from_private_key(private_key), label=label)

    @property
    def address(self) -> bytes:
        return self._keypair.address

    @property
    def public_key(self) -> bytes:
        return self._keypair.public_key

    async def sign_message(self, message: bytes) -> bytes:
        """Sign sha256(message)."""
        return sign(sha256(message), self._keypair.private_key)

    def __repr__(self) -> str:
        name = f"{self.label} " if self.label else ""
        return f"<SigningIdentity {name}0x{self.address.hex()}>"


def signed_by(message: bytes, signature: bytes, address: bytes) -> bool:
    """True if `signature` over `message` was produced by `address`."""
    return recover_signer_address(sha256(message), signature, address)


__all__ = ["SignFn", "NULL_IDENTITY", "SigningIdentity", "signed_by"]
