"""
In-memory ledger - reference implementation of the auction program.

Conceptual Background:
---------------------
The coordinator treats the ledger as an external, authoritative runtime.
This implementation plays that role in-process for tests, the CLI demo and
local development. It mirrors the program's rules:

1. Every transaction carries one instruction signed by one identity; the
   signer is recovered from the signature before anything else runs.
2. Each instruction validates all of its preconditions, then commits all
   of its effects. Nothing awaits between validation and commit, so an
   instruction is atomic with respect to every other caller on the loop.
3. Rejections raise InstructionError with a ProgramError code.

Encrypted arithmetic (ciphertext registration, comparison, selection,
permission grants) is delegated to a LocalEncryptionService, the way the
on-chain program calls into the confidential compute program.

Balances:
--------
Minor-unit balances per address support settlement. `fund()` credits an
address out of thin air (test/demo faucet).
"""

import asyncio
import time
from typing import Any, Callable, Dict, List, Optional, Set

from sealbid.core.auction.models import Auction, AuctionState, Bid
from sealbid.core.config import SealbidConfig
from sealbid.core.encryption.local import LocalEncryptionService
from sealbid.core.encryption.service import Attestation, EncryptionServiceError
from sealbid.core.identity import NULL_IDENTITY, signed_by
from sealbid.core.ledger.base import (
    InstructionError,
    LedgerClient,
    LedgerEvent,
    ProgramError,
    TransactionReceipt,
)
from sealbid.core.ledger.transaction import Transaction, decode_bytes_arg
from sealbid.crypto import bytes_to_hex, short_hex, verify
from sealbid.crypto.codec import U64_MAX, decode_u128, encode_u128, format_handle
from sealbid.crypto.derivation import AddressDeriver
from sealbid.utils.logger import get_logger

logger = get_logger("ledger")


class InMemoryLedger(LedgerClient):
    """
    Authoritative auction program state held in memory.

    Attributes:
        auctions: Auction records by address
        bids: Bid records by address
        balances: Minor-unit balance per address
        events: Every event emitted, in commit order
        slot: Number of committed transactions
    """

    def __init__(
        self,
        encryption: LocalEncryptionService,
        config: Optional[SealbidConfig] = None,
        clock: Optional[Callable[[], int]] = None,
        latency: float = 0.0,
        trusted_attestors: Optional[Set[bytes]] = None,
    ):
        """
        Args:
            encryption: Service performing encrypted operations
            config: Limits and program ids (defaults if None)
            clock: Returns Unix seconds; defaults to wall clock
            latency: Simulated delay before each read and submit
            trusted_attestors: Public keys accepted on settlement proofs;
                defaults to the encryption service's attestor
        """
        self.encryption = encryption
        self.config = config or SealbidConfig()
        self.clock = clock or (lambda: int(time.time()))
        self.latency = latency
        self.trusted_attestors = trusted_attestors or {encryption.public_key}
        self.deriver = AddressDeriver(
            self.config.program_id_bytes,
            self.config.encryption_program_id_bytes,
        )

        self.auctions: Dict[bytes, Auction] = {}
        self.bids: Dict[bytes, Bid] = {}
        self.balances: Dict[bytes, int] = {}
        self.events: List[LedgerEvent] = []
        self.slot = 0

        self._handlers: Dict[str, Callable[[bytes, Dict[str, Any], int], TransactionReceipt]] = {
            "createAuction": self._create_auction,
            "placeBid": self._place_bid,
            "closeBidding": self._close_bidding,
            "determineWinner": self._determine_winner,
            "finalizeWinner": self._finalize_winner,
            "settleAuction": self._settle_auction,
            "cancelAuction": self._cancel_auction,
        }

    # =========================================================================
    # Balances
    # =========================================================================

    def fund(self, address: bytes, amount: int) -> None:
        """Credit `amount` minor units to `address`."""
        self.balances[address] = self.balances.get(address, 0) + amount

    def balance_of(self, address: bytes) -> int:
        return self.balances.get(address, 0)

    # =========================================================================
    # Reads
    # =========================================================================

    async def get_time(self) -> int:
        return self.clock()

    async def get_auction(self, address: bytes) -> Optional[Auction]:
        await self._delay()
        return self.auctions.get(address)

    async def get_bid(self, address: bytes) -> Optional[Bid]:
        await self._delay()
        return self.bids.get(address)

    async def get_auctions(
        self,
        seller: Optional[bytes] = None,
        state: Optional[AuctionState] = None,
    ) -> List[Auction]:
        await self._delay()
        return [
            auction for auction in self.auctions.values()
            if (seller is None or auction.seller == seller)
            and (state is None or auction.state is state)
        ]

    async def get_bids(
        self,
        auction: Optional[bytes] = None,
        bidder: Optional[bytes] = None,
        processed: Optional[bool] = None,
    ) -> List[Bid]:
        await self._delay()
        return [
            bid for bid in self.bids.values()
            if (auction is None or bid.auction == auction)
            and (bidder is None or bid.bidder == bidder)
            and (processed is None or bid.processed == processed)
        ]

    # =========================================================================
    # Submission
    # =========================================================================

    async def submit(self, transaction: Transaction) -> TransactionReceipt:
        await self._delay()

        # Everything below runs without suspending: one atomic instruction
        if not signed_by(transaction.signing_payload(), transaction.signature, transaction.signer):
            raise InstructionError(ProgramError.INVALID_SIGNATURE, "signature does not match signer")

        handler = self._handlers.get(transaction.instruction)
        if handler is None:
            raise InstructionError(ProgramError.UNKNOWN_INSTRUCTION, transaction.instruction)

        try:
            receipt = handler(transaction.signer, transaction.args, self.clock())
        except EncryptionServiceError as exc:
            raise InstructionError(ProgramError.ENCRYPTION_FAILED, str(exc)) from exc
        except (KeyError, ValueError) as exc:
            raise InstructionError(ProgramError.UNKNOWN_INSTRUCTION, f"malformed arguments: {exc}") from exc

        self.slot += 1
        self.events.extend(receipt.events)
        return receipt

    def _receipt(self, instruction: str, events: List[LedgerEvent], created: Optional[bytes] = None) -> TransactionReceipt:
        return TransactionReceipt(
            instruction=instruction,
            digest=self.slot.to_bytes(8, "big"),
            slot=self.slot + 1,
            events=events,
            created=created,
        )

    def _load_auction(self, args: Dict[str, Any]) -> Auction:
        address = decode_bytes_arg(args, "auction")
        auction = self.auctions.get(address)
        if auction is None:
            raise InstructionError(ProgramError.ACCOUNT_NOT_FOUND, "auction", account=address)
        return auction

    # =========================================================================
    # Instructions
    # =========================================================================

    def _create_auction(self, signer: bytes, args: Dict[str, Any], now: int) -> TransactionReceipt:
        auction_id = int(args["auction_id"])
        title = str(args["title"])
        description = str(args["description"])
        reserve_price = int(args["reserve_price"])
        duration = int(args["duration"])
        item_reference = decode_bytes_arg(args, "item_reference") if args.get("item_reference") else None

        if len(title.encode("utf-8")) > self.config.max_title_length:
            raise InstructionError(ProgramError.TITLE_TOO_LONG)
        if len(description.encode("utf-8")) > self.config.max_description_length:
            raise InstructionError(ProgramError.DESCRIPTION_TOO_LONG)
        if duration < self.config.min_auction_duration:
            raise InstructionError(ProgramError.DURATION_TOO_SHORT)
        if duration > self.config.max_auction_duration:
            raise InstructionError(ProgramError.DURATION_TOO_LONG)
        if reserve_price <= 0 or reserve_price > U64_MAX:
            raise InstructionError(ProgramError.INVALID_RESERVE_PRICE)
        if not 0 <= auction_id <= U64_MAX:
            raise InstructionError(ProgramError.UNKNOWN_INSTRUCTION, "auction_id out of u64 range")

        address = self.deriver.auction_address(signer, auction_id)
        if address in self.auctions:
            raise InstructionError(ProgramError.ACCOUNT_ALREADY_EXISTS, "auction", account=address)

        auction = Auction(
            address=address,
            seller=signer,
            auction_id=auction_id,
            title=title,
            description=description,
            reserve_price=reserve_price,
            start_time=now,
            end_time=now + duration,
            item_reference=item_reference,
        )
        self.auctions[address] = auction

        logger.info(f"Auction created: {short_hex(address)} reserve={reserve_price} ends={auction.end_time}")
        event = LedgerEvent("AuctionCreated", address, now, {
            "seller": bytes_to_hex(signer),
            "title": title,
            "reserve_price": reserve_price,
            "start_time": auction.start_time,
            "end_time": auction.end_time,
        })
        return self._receipt("createAuction", [event], created=address)

    def _place_bid(self, signer: bytes, args: Dict[str, Any], now: int) -> TransactionReceipt:
        auction = self._load_auction(args)
        ciphertext = decode_bytes_arg(args, "ciphertext")

        if auction.state is not AuctionState.OPEN:
            raise InstructionError(ProgramError.AUCTION_NOT_OPEN, account=auction.address)
        if signer == auction.seller:
            raise InstructionError(ProgramError.SELLER_CANNOT_BID, account=auction.address)
        if now < auction.start_time:
            raise InstructionError(ProgramError.AUCTION_NOT_STARTED, account=auction.address)
        if now >= auction.end_time:
            raise InstructionError(ProgramError.BIDDING_ENDED, account=auction.address)

        try:
            handle = self.encryption.register_ciphertext(ciphertext, owner=signer)
        except EncryptionServiceError as exc:
            raise InstructionError(ProgramError.INVALID_BID_CIPHERTEXT, str(exc)) from exc

        bid_address = self.deriver.bid_address(auction.address, signer)
        existing = self.bids.get(bid_address)

        if existing is None:
            bid = Bid(
                address=bid_address,
                auction=auction.address,
                bidder=signer,
                encrypted_amount=handle,
                created_at=now,
                updated_at=now,
            )
            auction = auction.evolve(bid_count=auction.bid_count + 1)
            event = LedgerEvent("BidPlaced", auction.address, now, {
                "bidder": bytes_to_hex(signer),
                "bid_number": auction.bid_count,
            })
            logger.info(f"Bid #{auction.bid_count} placed on {short_hex(auction.address)} by {short_hex(signer)}")
        else:
            # Re-bid replaces the handle in place; bid_count is unchanged
            bid = existing.evolve(encrypted_amount=handle, updated_at=now, processed=False)
            event = LedgerEvent("BidUpdated", auction.address, now, {"bidder": bytes_to_hex(signer)})
            logger.info(f"Bid updated on {short_hex(auction.address)} by {short_hex(signer)}")

        self.bids[bid_address] = bid
        self.auctions[auction.address] = auction
        return self._receipt("placeBid", [event], created=bid_address)

    def _close_bidding(self, signer: bytes, args: Dict[str, Any], now: int) -> TransactionReceipt:
        auction = self._load_auction(args)

        if auction.state is not AuctionState.OPEN:
            raise InstructionError(ProgramError.AUCTION_NOT_OPEN, account=auction.address)
        if now < auction.end_time:
            raise InstructionError(ProgramError.BIDDING_NOT_ENDED, account=auction.address)

        new_state = AuctionState.CLOSED if auction.bid_count > 0 else AuctionState.CANCELLED
        self.auctions[auction.address] = auction.evolve(state=new_state)

        logger.info(f"Bidding closed on {short_hex(auction.address)}: {auction.bid_count} bids -> {new_state.value}")
        event = LedgerEvent("BiddingClosed", auction.address, now, {"total_bids": auction.bid_count})
        return self._receipt("closeBidding", [event])

    def _determine_winner(self, signer: bytes, args: Dict[str, Any], now: int) -> TransactionReceipt:
        auction = self._load_auction(args)
        bid_address = decode_bytes_arg(args, "bid")
        bid = self.bids.get(bid_address)

        if auction.state is not AuctionState.CLOSED:
            raise InstructionError(ProgramError.AUCTION_NOT_CLOSED, account=auction.address)
        if bid is None:
            raise InstructionError(ProgramError.ACCOUNT_NOT_FOUND, "bid", account=bid_address)
        if bid.auction != auction.address:
            raise InstructionError(ProgramError.BID_AUCTION_MISMATCH, account=bid_address)
        if bid.processed:
            raise InstructionError(ProgramError.BID_ALREADY_PROCESSED, account=bid_address)

        if auction.highest_bid_handle == 0:
            # First comparison seeds the leader
            highest, leader = bid.encrypted_amount, bid.bidder
        else:
            try:
                is_ge = self.encryption.ge(bid.encrypted_amount, auction.highest_bid_handle)
                highest = self.encryption.select(is_ge, bid.encrypted_amount, auction.highest_bid_handle)
            except EncryptionServiceError as exc:
                raise InstructionError(ProgramError.COMPARISON_FAILED, str(exc)) from exc
            leader = bid.bidder if highest != auction.highest_bid_handle else auction.current_leader

        auction = auction.evolve(
            highest_bid_handle=highest,
            current_leader=leader,
            bids_processed=auction.bids_processed + 1,
        )
        self.bids[bid_address] = bid.evolve(processed=True)
        self.auctions[auction.address] = auction

        logger.info(
            f"Bid processed on {short_hex(auction.address)}: "
            f"{auction.bids_processed}/{auction.bid_count}"
        )
        event = LedgerEvent("BidProcessed", auction.address, now, {
            "bidder": bytes_to_hex(bid.bidder),
            "bids_processed": auction.bids_processed,
        })
        return self._receipt("determineWinner", [event])

    def _finalize_winner(self, signer: bytes, args: Dict[str, Any], now: int) -> TransactionReceipt:
        auction = self._load_auction(args)
        allowance = decode_bytes_arg(args, "allowance")
        leader = decode_bytes_arg(args, "leader")

        if auction.state is not AuctionState.CLOSED:
            raise InstructionError(ProgramError.AUCTION_NOT_CLOSED, account=auction.address)
        if not auction.all_bids_processed:
            raise InstructionError(ProgramError.BIDS_NOT_PROCESSED, account=auction.address)
        if auction.current_leader == NULL_IDENTITY:
            raise InstructionError(ProgramError.WINNER_NOT_SET, account=auction.address)
        if leader != auction.current_leader:
            raise InstructionError(
                ProgramError.LEADER_MISMATCH,
                f"named 0x{leader.hex()}, current 0x{auction.current_leader.hex()}",
                account=auction.address,
            )
        expected = self.deriver.allowance_address(auction.highest_bid_handle, leader)
        if allowance != expected:
            raise InstructionError(ProgramError.ALLOWANCE_MISMATCH, account=allowance)

        self.encryption.allow(auction.highest_bid_handle, leader)
        self.auctions[auction.address] = auction.evolve(
            winner=leader,
            state=AuctionState.WINNER_DETERMINED,
        )

        logger.info(
            f"Winner determined on {short_hex(auction.address)}: {short_hex(leader)}, "
            f"decrypt granted for {format_handle(auction.highest_bid_handle)}"
        )
        event = LedgerEvent("WinnerDetermined", auction.address, now, {"winner": bytes_to_hex(leader)})
        return self._receipt("finalizeWinner", [event])

    def _settle_auction(self, signer: bytes, args: Dict[str, Any], now: int) -> TransactionReceipt:
        auction = self._load_auction(args)
        handle_bytes = decode_bytes_arg(args, "handle")
        plaintext_bytes = decode_bytes_arg(args, "plaintext")
        proof = [Attestation.from_dict(item) for item in args.get("proof", [])]

        if auction.state is not AuctionState.WINNER_DETERMINED:
            raise InstructionError(ProgramError.WINNER_NOT_DETERMINED, account=auction.address)
        if signer != auction.winner:
            raise InstructionError(ProgramError.NOT_WINNER, account=auction.address)
        if len(handle_bytes) != 16 or len(plaintext_bytes) != 16:
            raise InstructionError(ProgramError.INVALID_DECRYPTION_PROOF, "handle and plaintext must be 16 bytes")
        if handle_bytes != encode_u128(auction.highest_bid_handle):
            raise InstructionError(ProgramError.HANDLE_MISMATCH, account=auction.address)

        matching = [
            item for item in proof
            if item.handle == handle_bytes
            and item.plaintext == plaintext_bytes
            and item.address == signer
        ]
        if len(matching) != 1:
            raise InstructionError(ProgramError.ATTESTATION_VERIFICATION_FAILED, "expected exactly one matching attestation")
        attestation = matching[0]
        if attestation.attestor not in self.trusted_attestors:
            raise InstructionError(ProgramError.ATTESTATION_VERIFICATION_FAILED, "untrusted attestor")
        if not verify(attestation.digest(), attestation.signature, attestation.attestor):
            raise InstructionError(ProgramError.ATTESTATION_VERIFICATION_FAILED, "bad attestation signature")

        winning_amount = decode_u128(plaintext_bytes)
        if winning_amount > U64_MAX or winning_amount < auction.reserve_price:
            raise InstructionError(ProgramError.INVALID_DECRYPTION_PROOF, "amount outside [reserve, u64]")
        if self.balance_of(signer) < winning_amount:
            raise InstructionError(ProgramError.INSUFFICIENT_FUNDS, account=signer)

        self.balances[signer] = self.balance_of(signer) - winning_amount
        self.balances[auction.seller] = self.balance_of(auction.seller) + winning_amount
        self.auctions[auction.address] = auction.evolve(
            winning_amount=winning_amount,
            state=AuctionState.SETTLED,
        )

        logger.info(f"Auction settled: {short_hex(auction.address)} winner={short_hex(signer)} amount={winning_amount}")
        event = LedgerEvent("AuctionSettled", auction.address, now, {
            "winner": bytes_to_hex(signer),
            "winning_amount": winning_amount,
        })
        return self._receipt("settleAuction", [event])

    def _cancel_auction(self, signer: bytes, args: Dict[str, Any], now: int) -> TransactionReceipt:
        auction = self._load_auction(args)
        reason = str(args.get("reason", ""))

        if signer != auction.seller:
            raise InstructionError(ProgramError.NOT_SELLER, account=auction.address)
        if auction.state is AuctionState.CANCELLED:
            raise InstructionError(ProgramError.AUCTION_CANCELLED, account=auction.address)
        if auction.state is not AuctionState.OPEN:
            raise InstructionError(ProgramError.AUCTION_ALREADY_SETTLED, account=auction.address)
        if auction.bid_count > 0 and now < auction.end_time:
            raise InstructionError(ProgramError.BIDDING_NOT_ENDED, account=auction.address)

        self.auctions[auction.address] = auction.evolve(state=AuctionState.CANCELLED)

        logger.info(f"Auction cancelled: {short_hex(auction.address)} ({reason})")
        event = LedgerEvent("AuctionCancelled", auction.address, now, {
            "seller": bytes_to_hex(signer),
            "reason": reason,
        })
        return self._receipt("cancelAuction", [event])

    # =========================================================================
    # Internals
    # =========================================================================

    async def _delay(self) -> None:
        if self.latency:
            await asyncio.sleep(self.latency)


__all__ = ["InMemoryLedger"]
