"""
Settlement - the declared winner reveals their bid and pays.

Steps, each a suspension point, in this order:

    1. Re-read the auction; take highest_bid_handle
    2. Decrypt the handle with proof, authenticated by the winner's identity
    3. Encode handle and plaintext as 16-byte little-endian u128 values
    4. Submit settleAuction with both encodings and the proof
    5. Re-read; the ledger has moved funds and recorded winning_amount

The coordinator does no arithmetic on the amount. The ledger accepts or
rejects on the attestation alone.
"""

from dataclasses import dataclass
from typing import Optional

from sealbid.core.auction.models import Auction
from sealbid.core.auction.state_machine import AuctionStateMachine
from sealbid.core.config import SealbidConfig
from sealbid.core.encryption.gateway import EncryptionGateway
from sealbid.core.errors import EncryptionFailure
from sealbid.core.identity import SigningIdentity
from sealbid.core.ledger.repository import AuctionRepository
from sealbid.crypto import short_hex
from sealbid.crypto.codec import encode_u128, format_handle
from sealbid.utils.logger import auction_logger

ACTION = "settleAuction"


@dataclass(frozen=True)
class SettlementReceipt:
    """What was submitted and the auction as re-read afterwards."""
    auction: Auction
    winner: bytes
    winning_amount: int
    handle: bytes
    plaintext: bytes


class SettlementCoordinator:

    def __init__(
        self,
        repository: AuctionRepository,
        gateway: EncryptionGateway,
        config: SealbidConfig,
        state_machine: Optional[AuctionStateMachine] = None,
    ):
        self.repository = repository
        self.gateway = gateway
        self.config = config
        self.state_machine = state_machine or AuctionStateMachine()

    async def settle(self, auction_address: bytes, identity: SigningIdentity) -> SettlementReceipt:
        """
        Reveal and settle as the winner.

        Raises:
            StateViolation: auction is not WinnerDetermined
            AuthorizationError: `identity` is not the winner
            EncryptionFailure: decryption or proof failed
        """
        log = auction_logger("settlement", auction_address)
        auction = await self.repository.fetch_auction(auction_address)
        self.state_machine.check_settle(auction, identity.address)

        handle = auction.highest_bid_handle
        log.debug(f"Requesting decryption of {format_handle(handle)} for {short_hex(identity.address)}")
        result = await self.gateway.decrypt_with_proof(handle, identity)

        try:
            handle_bytes = encode_u128(result.handle)
            plaintext_bytes = encode_u128(result.plaintext)
        except (TypeError, ValueError) as exc:
            raise EncryptionFailure(ACTION, f"decrypted values do not fit u128: {exc}") from exc

        await self.repository.settle_auction(identity, auction, handle_bytes, plaintext_bytes, result.proof)

        final = await self.repository.fetch_auction(auction_address)
        log.info(f"Settled: {short_hex(identity.address)} paid {final.winning_amount}")
        return SettlementReceipt(
            auction=final,
            winner=identity.address,
            winning_amount=final.winning_amount,
            handle=handle_bytes,
            plaintext=plaintext_bytes,
        )


__all__ = ["SettlementCoordinator", "SettlementReceipt"]
