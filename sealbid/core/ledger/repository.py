"""
Auction repository - typed reads and signed writes against a LedgerClient.

Every write goes through one path:

    1. Build a Transaction for one instruction
    2. Have the caller's identity sign it        (bounded: signature_timeout)
    3. Submit it                                 (bounded: submit_timeout)
    4. Translate program rejections into the coordinator error taxonomy

The repository holds no auction state of its own. Callers that need a
record after a write re-read it.
"""

from typing import Any, Dict, List, Optional

from sealbid.core.auction.models import Auction, AuctionState, Bid
from sealbid.core.config import SealbidConfig
from sealbid.core.encryption.service import Attestation
from sealbid.core.errors import (
    AlreadyProcessed,
    AuthorizationError,
    EncryptionFailure,
    InvalidInput,
    NetworkOrLedgerError,
    RecordNotFound,
    SealbidError,
    StaleState,
    StateViolation,
)
from sealbid.core.identity import SigningIdentity
from sealbid.core.ledger.base import (
    InstructionError,
    LedgerClient,
    ProgramError,
    TransactionReceipt,
)
from sealbid.core.ledger.transaction import Transaction, encode_arg
from sealbid.crypto import short_hex
from sealbid.utils.logger import get_logger
from sealbid.utils.timeouts import bounded

logger = get_logger("repository")


# =============================================================================
# Error Translation
# =============================================================================

_STATE_CODES = frozenset({
    ProgramError.AUCTION_NOT_STARTED,
    ProgramError.BIDDING_NOT_ENDED,
    ProgramError.BIDDING_ENDED,
    ProgramError.AUCTION_NOT_OPEN,
    ProgramError.AUCTION_NOT_CLOSED,
    ProgramError.WINNER_NOT_DETERMINED,
    ProgramError.AUCTION_ALREADY_SETTLED,
    ProgramError.AUCTION_CANCELLED,
    ProgramError.NO_BIDS_PLACED,
    ProgramError.BIDS_NOT_PROCESSED,
    ProgramError.WINNER_NOT_SET,
})

_AUTH_CODES = frozenset({
    ProgramError.NOT_SELLER,
    ProgramError.NOT_WINNER,
    ProgramError.SELLER_CANNOT_BID,
    ProgramError.INVALID_SIGNATURE,
})

_STALE_CODES = frozenset({
    ProgramError.LEADER_MISMATCH,
    ProgramError.ALLOWANCE_MISMATCH,
    ProgramError.HANDLE_MISMATCH,
})

_ENCRYPTION_CODES = frozenset({
    ProgramError.INVALID_BID_CIPHERTEXT,
    ProgramError.ENCRYPTION_FAILED,
    ProgramError.COMPARISON_FAILED,
    ProgramError.ATTESTATION_VERIFICATION_FAILED,
    ProgramError.INVALID_DECRYPTION_PROOF,
})

_INPUT_CODES = frozenset({
    ProgramError.DURATION_TOO_SHORT,
    ProgramError.DURATION_TOO_LONG,
    ProgramError.TITLE_TOO_LONG,
    ProgramError.DESCRIPTION_TOO_LONG,
    ProgramError.INVALID_RESERVE_PRICE,
    ProgramError.BID_AUCTION_MISMATCH,
    ProgramError.ACCOUNT_ALREADY_EXISTS,
})


def translate_instruction_error(
    action: str,
    error: InstructionError,
    state: Optional[AuctionState] = None,
) -> SealbidError:
    """
    Map a program rejection to the error a caller should see.

    Args:
        action: Instruction name, used as the error's action
        error: The rejection
        state: Last known auction state, for StateViolation messages
    """
    code = error.code
    detail = f"ledger rejected with {code.name}: {error.message}"

    if code in _STATE_CODES:
        return StateViolation(action, state if state is not None else "unknown", detail)
    if code in _AUTH_CODES:
        return AuthorizationError(action, detail)
    if code is ProgramError.BID_ALREADY_PROCESSED:
        return AlreadyProcessed(action, error.account or b"")
    if code in _STALE_CODES:
        return StaleState(action, detail)
    if code in _ENCRYPTION_CODES:
        return EncryptionFailure(action, detail)
    if code in _INPUT_CODES:
        return InvalidInput(action, detail)
    if code is ProgramError.ACCOUNT_NOT_FOUND:
        return RecordNotFound(action, error.message, error.account or b"")
    return NetworkOrLedgerError(action, detail)


# =============================================================================
# Repository
# =============================================================================


class AuctionRepository:
    """
    Reads auction/bid records and submits signed instructions.

    Attributes:
        client: The ledger runtime
        config: Timeouts applied to signing and submission
    """

    def __init__(self, client: LedgerClient, config: SealbidConfig):
        self.client = client
        self.config = config

    # =========================================================================
    # Reads
    # =========================================================================

    async def ledger_time(self) -> int:
        return await self._read("getTime", self.client.get_time())

    async def fetch_auction(self, address: bytes) -> Auction:
        """
        Read an auction record.

        Raises:
            RecordNotFound: no auction at `address`
        """
        auction = await self._read("fetchAuction", self.client.get_auction(address))
        if auction is None:
            raise RecordNotFound("fetchAuction", "auction", address)
        return auction

    async def fetch_bid(self, address: bytes) -> Bid:
        bid = await self._read("fetchBid", self.client.get_bid(address))
        if bid is None:
            raise RecordNotFound("fetchBid", "bid", address)
        return bid

    async def fetch_bids(self, auction: bytes) -> List[Bid]:
        bids = await self._read("fetchBids", self.client.get_bids(auction=auction))
        return sorted(bids, key=lambda bid: bid.address)

    async def fetch_unprocessed_bids(self, auction: bytes) -> List[Bid]:
        """Unprocessed bids of an auction, in address order."""
        bids = await self._read(
            "fetchBids",
            self.client.get_bids(auction=auction, processed=False),
        )
        return sorted(bids, key=lambda bid: bid.address)

    async def list_auctions(
        self,
        seller: Optional[bytes] = None,
        state: Optional[AuctionState] = None,
    ) -> List[Auction]:
        auctions = await self._read("listAuctions", self.client.get_auctions(seller=seller, state=state))
        return sorted(auctions, key=lambda auction: (auction.start_time, auction.address))

    async def list_bids(
        self,
        auction: Optional[bytes] = None,
        bidder: Optional[bytes] = None,
    ) -> List[Bid]:
        bids = await self._read("listBids", self.client.get_bids(auction=auction, bidder=bidder))
        return sorted(bids, key=lambda bid: (bid.created_at, bid.address))

    # =========================================================================
    # Writes
    # =========================================================================

    async def create_auction(
        self,
        identity: SigningIdentity,
        auction_id: int,
        title: str,
        description: str,
        reserve_price: int,
        duration: int,
        item_reference: Optional[bytes] = None,
    ) -> bytes:
        """Submit createAuction; returns the new auction's address."""
        args = {
            "auction_id": auction_id,
            "title": title,
            "description": description,
            "reserve_price": reserve_price,
            "duration": duration,
        }
        if item_reference is not None:
            args["item_reference"] = item_reference
        receipt = await self._submit("createAuction", args, identity)
        return receipt.created

    async def place_bid(self, identity: SigningIdentity, auction: Auction, ciphertext: bytes) -> bytes:
        """Submit placeBid; returns the bid record's address."""
        receipt = await self._submit(
            "placeBid",
            {"auction": auction.address, "ciphertext": ciphertext},
            identity,
            auction=auction,
        )
        return receipt.created

    async def close_bidding(self, identity: SigningIdentity, auction: Auction) -> TransactionReceipt:
        return await self._submit(
            "closeBidding",
            {"auction": auction.address},
            identity,
            auction=auction,
        )

    async def determine_winner(self, identity: SigningIdentity, auction: Auction, bid: Bid) -> TransactionReceipt:
        return await self._submit(
            "determineWinner",
            {"auction": auction.address, "bid": bid.address},
            identity,
            auction=auction,
        )

    async def finalize_winner(
        self,
        identity: SigningIdentity,
        auction: Auction,
        allowance: bytes,
        leader: bytes,
    ) -> TransactionReceipt:
        return await self._submit(
            "finalizeWinner",
            {"auction": auction.address, "allowance": allowance, "leader": leader},
            identity,
            auction=auction,
        )

    async def settle_auction(
        self,
        identity: SigningIdentity,
        auction: Auction,
        handle: bytes,
        plaintext: bytes,
        proof: List[Attestation],
    ) -> TransactionReceipt:
        return await self._submit(
            "settleAuction",
            {
                "auction": auction.address,
                "handle": handle,
                "plaintext": plaintext,
                "proof": list(proof),
            },
            identity,
            auction=auction,
        )

    async def cancel_auction(
        self,
        identity: SigningIdentity,
        auction: Auction,
        reason: str = "",
    ) -> TransactionReceipt:
        return await self._submit(
            "cancelAuction",
            {"auction": auction.address, "reason": reason},
            identity,
            auction=auction,
        )

    # =========================================================================
    # Internals
    # =========================================================================

    async def _read(self, action: str, awaitable):
        try:
            return await bounded(awaitable, self.config.submit_timeout, action)
        except (ConnectionError, OSError) as exc:
            raise NetworkOrLedgerError(action, f"ledger unreachable: {exc}") from exc

    async def _submit(
        self,
        instruction: str,
        args: Dict[str, Any],
        identity: SigningIdentity,
        auction: Optional[Auction] = None,
    ) -> TransactionReceipt:
        transaction = Transaction(
            instruction=instruction,
            args=encode_arg(args),
            signer=identity.address,
        )

        transaction.signature = await bounded(
            identity.sign_message(transaction.signing_payload()),
            self.config.signature_timeout,
            f"{instruction} (signature)",
        )

        try:
            receipt = await bounded(
                self.client.submit(transaction),
                self.config.submit_timeout,
                instruction,
            )
        except InstructionError as exc:
            state = await self._state_after_rejection(auction, exc)
            error = translate_instruction_error(instruction, exc, state)
            logger.info(f"{instruction} by {short_hex(identity.address)} rejected: {exc}")
            raise error from exc
        except (ConnectionError, OSError) as exc:
            raise NetworkOrLedgerError(instruction, f"ledger unreachable: {exc}") from exc

        logger.debug(f"{instruction} committed at slot {receipt.slot} ({transaction.digest().hex()[:16]})")
        return receipt

    async def _state_after_rejection(
        self,
        auction: Optional[Auction],
        error: InstructionError,
    ) -> Optional[AuctionState]:
        """
        State to report for a rejected instruction.

        State rejections re-read the auction, since another caller may have
        moved it after our read. Falls back to the cached state when the
        re-read itself fails.
        """
        if auction is None:
            return None
        if error.code not in _STATE_CODES:
            return auction.state
        try:
            current = await self.fetch_auction(auction.address)
        except SealbidError as exc:
            logger.debug(f"Re-read of {short_hex(auction.address)} after rejection failed: {exc}")
            return auction.state
        return current.state


__all__ = ["AuctionRepository", "translate_instruction_error"]
