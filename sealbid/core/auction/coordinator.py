"""
Auction Coordinator - one entry point for every lifecycle action.

Wires the repository, encryption gateway, state machine and the three
protocol coordinators together. Every method:

    1. re-reads the authoritative record
    2. runs the state machine guard for the caller
    3. submits through the repository (signed by the identity passed in)
    4. re-reads and returns the updated record

There is no background polling. Callers pull a fresh view with refresh()
between actions.
"""

import time
from typing import AsyncIterator, Callable, List, Optional

from sealbid.core.auction.finalization import FinalizationCoordinator, FinalizationResult
from sealbid.core.auction.models import Action, Auction, AuctionSnapshot, AuctionState, Bid
from sealbid.core.auction.processor import BidProcessor, BidStep, ProcessingReport
from sealbid.core.auction.settlement import SettlementCoordinator, SettlementReceipt
from sealbid.core.auction.state_machine import AuctionStateMachine
from sealbid.core.config import SealbidConfig
from sealbid.core.encryption.gateway import EncryptionGateway
from sealbid.core.encryption.service import EncryptionService
from sealbid.core.errors import InvalidInput
from sealbid.core.identity import SigningIdentity
from sealbid.core.ledger.base import LedgerClient
from sealbid.core.ledger.repository import AuctionRepository
from sealbid.crypto import short_hex
from sealbid.crypto.codec import U64_MAX
from sealbid.crypto.derivation import AddressDeriver
from sealbid.utils.logger import get_logger
from sealbid.utils.validation import (
    truncate_text,
    validate_address,
    validate_amount,
    validate_ciphertext,
    validate_duration,
    validate_integer,
)

logger = get_logger("coordinator")


class AuctionCoordinator:
    """
    Client-side coordinator for sealed-bid auctions.

    Attributes:
        config: Limits and timeouts
        repository: Ledger reads and signed submissions
        gateway: Encryption service facade
        deriver: Address derivation bound to the configured programs
        state_machine: Guard evaluation
        processor: Sequential bid comparison
        finalizer: Winner finalization
        settler: Reveal and payment
    """

    def __init__(
        self,
        ledger: LedgerClient,
        encryption_service: EncryptionService,
        config: Optional[SealbidConfig] = None,
        clock: Optional[Callable[[], int]] = None,
    ):
        """
        Args:
            ledger: Ledger runtime client
            encryption_service: Encryption/attestation service
            config: Coordinator configuration (defaults if None)
            clock: Unix-seconds clock for client-side guards; the ledger's
                clock is used when omitted
        """
        self.config = config or SealbidConfig()
        self.clock = clock

        self.repository = AuctionRepository(ledger, self.config)
        self.gateway = EncryptionGateway(encryption_service, self.config)
        self.deriver = AddressDeriver(
            self.config.program_id_bytes,
            self.config.encryption_program_id_bytes,
        )
        self.state_machine = AuctionStateMachine()

        self.processor = BidProcessor(self.repository, self.state_machine)
        self.finalizer = FinalizationCoordinator(self.repository, self.deriver, self.config, self.state_machine)
        self.settler = SettlementCoordinator(self.repository, self.gateway, self.config, self.state_machine)

    async def now(self) -> int:
        if self.clock is not None:
            return self.clock()
        return await self.repository.ledger_time()

    # =========================================================================
    # Queries
    # =========================================================================

    async def refresh(self, auction_address: bytes) -> AuctionSnapshot:
        """Read the auction and all of its bids."""
        auction = await self.repository.fetch_auction(auction_address)
        bids = await self.repository.fetch_bids(auction_address)
        return AuctionSnapshot(auction=auction, bids=bids, fetched_at=await self.now())

    async def legal_actions(self, auction_address: bytes, identity: SigningIdentity) -> List[Action]:
        """Actions `identity` could take on the auction right now."""
        snapshot = await self.refresh(auction_address)
        return self.state_machine.legal_actions(
            snapshot.auction,
            identity.address,
            snapshot.fetched_at,
            snapshot.bids,
        )

    async def list_auctions(
        self,
        seller: Optional[bytes] = None,
        state: Optional[AuctionState] = None,
    ) -> List[Auction]:
        return await self.repository.list_auctions(seller=seller, state=state)

    async def list_bids(
        self,
        auction: Optional[bytes] = None,
        bidder: Optional[bytes] = None,
    ) -> List[Bid]:
        return await self.repository.list_bids(auction=auction, bidder=bidder)

    # =========================================================================
    # Seller Actions
    # =========================================================================

    async def create_auction(
        self,
        title: str,
        description: str,
        reserve_price: int,
        duration: int,
        identity: SigningIdentity,
        auction_id: Optional[int] = None,
        item_reference: Optional[bytes] = None,
    ) -> Auction:
        """
        Create an auction sold by `identity`.

        Title and description are truncated to their byte caps. The auction
        id defaults to a nanosecond timestamp; uniqueness per seller is the
        caller's concern.

        Raises:
            InvalidInput: duration out of bounds, reserve not a positive u64,
                or a malformed item reference
        """
        action = "createAuction"

        valid, err = validate_duration(
            duration,
            self.config.min_auction_duration,
            self.config.max_auction_duration,
        )
        if not valid:
            raise InvalidInput(action, err)

        valid, err = validate_integer(reserve_price, "reserve_price", 1, U64_MAX)
        if not valid:
            raise InvalidInput(action, err)

        if item_reference is not None:
            valid, err = validate_address(item_reference, "item_reference")
            if not valid:
                raise InvalidInput(action, err)

        if auction_id is None:
            auction_id = time.time_ns()
        valid, err = validate_integer(auction_id, "auction_id", 0, U64_MAX)
        if not valid:
            raise InvalidInput(action, err)

        title = truncate_text(title, self.config.max_title_length)
        description = truncate_text(description, self.config.max_description_length)

        address = await self.repository.create_auction(
            identity,
            auction_id=auction_id,
            title=title,
            description=description,
            reserve_price=reserve_price,
            duration=duration,
            item_reference=item_reference,
        )
        return await self.repository.fetch_auction(address)

    async def cancel_auction(
        self,
        auction_address: bytes,
        identity: SigningIdentity,
        reason: str = "",
    ) -> Auction:
        auction = await self.repository.fetch_auction(auction_address)
        self.state_machine.check_cancel(auction, identity.address, await self.now())

        await self.repository.cancel_auction(identity, auction, reason)
        return await self.repository.fetch_auction(auction_address)

    # =========================================================================
    # Bidder Actions
    # =========================================================================

    async def place_bid(self, auction_address: bytes, amount: int, identity: SigningIdentity) -> Bid:
        """
        Encrypt `amount` (integer minor units) and bid it.

        A second bid from the same identity replaces the first in place.

        Raises:
            InvalidInput: amount is not a u64 integer or is below the reserve
            StateViolation: bidding is not open
            AuthorizationError: the seller tried to bid
        """
        action = "placeBid"
        valid, err = validate_amount(amount)
        if not valid:
            raise InvalidInput(action, err)

        auction = await self.repository.fetch_auction(auction_address)
        self.state_machine.check_place_bid(auction, identity.address, await self.now())

        if amount < auction.reserve_price:
            raise InvalidInput(action, f"bid is below the reserve price of {auction.reserve_price}")

        ciphertext = await self.gateway.encrypt(amount)
        valid, err = validate_ciphertext(ciphertext)
        if not valid:
            raise InvalidInput(action, err)

        bid_address = await self.repository.place_bid(identity, auction, ciphertext)
        logger.debug(f"Bid by {short_hex(identity.address)} stored at {short_hex(bid_address)}")
        return await self.repository.fetch_bid(bid_address)

    async def settle_auction(self, auction_address: bytes, identity: SigningIdentity) -> SettlementReceipt:
        return await self.settler.settle(auction_address, identity)

    # =========================================================================
    # Permissionless Actions
    # =========================================================================

    async def close_bidding(self, auction_address: bytes, identity: SigningIdentity) -> Auction:
        """End bidding; the auction becomes Closed, or Cancelled without bids."""
        auction = await self.repository.fetch_auction(auction_address)
        expected = self.state_machine.check_close_bidding(auction, await self.now())

        await self.repository.close_bidding(identity, auction)
        updated = await self.repository.fetch_auction(auction_address)
        if updated.state is not expected:
            logger.warning(
                f"closeBidding on {short_hex(auction_address)} left state {updated.state.value}, "
                f"expected {expected.value}"
            )
        return updated

    async def determine_winner(
        self,
        auction_address: bytes,
        bid_address: bytes,
        identity: SigningIdentity,
    ) -> Auction:
        return await self.processor.process_bid(auction_address, bid_address, identity)

    def bid_steps(self, auction_address: bytes) -> AsyncIterator[BidStep]:
        """Pending comparisons, one at a time; see BidProcessor.steps."""
        return self.processor.steps(auction_address)

    async def process_bids(self, auction_address: bytes, identity: SigningIdentity) -> ProcessingReport:
        return await self.processor.process_all(auction_address, identity)

    async def finalize_winner(self, auction_address: bytes, identity: SigningIdentity) -> FinalizationResult:
        return await self.finalizer.finalize(auction_address, identity)


__all__ = ["AuctionCoordinator"]
