"""
Deterministic address derivation.

Records on the ledger live at addresses computed from fixed seeds rather than
random allocation:

    auction    = derive(program,            ["auction", seller, auction_id_le64])
    bid        = derive(program,            ["bid", auction, bidder])
    allowance  = derive(encryption_program, [handle_le128, allowed_address])

Each seed is length-prefixed before hashing, so no two distinct seed tuples
share a preimage. The owning program id is hashed in as well; the same seeds
under different programs give unrelated addresses.
"""

from dataclasses import dataclass
from typing import Sequence

from sealbid.crypto import ADDRESS_SIZE, keccak256
from sealbid.crypto.codec import encode_u128, encode_u64

AUCTION_SEED = b"auction"
BID_SEED = b"bid"

MAX_SEED_LENGTH = 32
MAX_SEEDS = 16

DERIVATION_DOMAIN = b"sealbid/derived-address"


def derive_address(program_id: bytes, seeds: Sequence[bytes]) -> bytes:
    """
    Derive a 20-byte address from an ordered list of seeds.

    Args:
        program_id: Address of the program that owns the derived record
        seeds: Ordered byte sequences, each at most 32 bytes

    Returns:
        20-byte address
    """
    if len(seeds) > MAX_SEEDS:
        raise ValueError(f"At most {MAX_SEEDS} seeds allowed, got {len(seeds)}")

    preimage = bytearray(DERIVATION_DOMAIN)
    preimage += program_id
    for seed in seeds:
        if len(seed) > MAX_SEED_LENGTH:
            raise ValueError(f"Seed exceeds {MAX_SEED_LENGTH} bytes: {len(seed)}")
        preimage.append(len(seed))
        preimage += seed

    return keccak256(bytes(preimage))[-ADDRESS_SIZE:]


@dataclass(frozen=True)
class AddressDeriver:
    """
    Seeds-to-address mapping bound to the auction and encryption programs.

    Stateless apart from the two program ids it is configured with.
    """
    program_id: bytes
    encryption_program_id: bytes

    def auction_address(self, seller: bytes, auction_id: int) -> bytes:
        return derive_address(self.program_id, [AUCTION_SEED, seller, encode_u64(auction_id)])

    def bid_address(self, auction: bytes, bidder: bytes) -> bytes:
        return derive_address(self.program_id, [BID_SEED, auction, bidder])

    def allowance_address(self, handle: int, allowed: bytes) -> bytes:
        """Address of the decrypt permission for (handle, allowed identity)."""
        return derive_address(self.encryption_program_id, [encode_u128(handle), allowed])


__all__ = [
    "AUCTION_SEED",
    "BID_SEED",
    "MAX_SEED_LENGTH",
    "MAX_SEEDS",
    "derive_address",
    "AddressDeriver",
]
