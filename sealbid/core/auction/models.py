"""
Auction and Bid records as the coordinator sees them.

The ledger owns these records. Everything here is a read-through copy taken
at `fetched_at`; coordinators re-read before acting on any field another
caller could have changed.
"""

from dataclasses import dataclass, field, replace
from enum import Enum
from typing import List, Optional

from sealbid.core.identity import NULL_IDENTITY


# =============================================================================
# Enums
# =============================================================================


class AuctionState(Enum):
    """
    Lifecycle state of an auction.

        Open -> Closed -> WinnerDetermined -> Settled
          \\
           -> Cancelled
    """
    OPEN = "Open"
    CLOSED = "Closed"
    WINNER_DETERMINED = "WinnerDetermined"
    SETTLED = "Settled"
    CANCELLED = "Cancelled"

    @property
    def is_terminal(self) -> bool:
        return self in (AuctionState.SETTLED, AuctionState.CANCELLED)


class Action(Enum):
    """Actions a caller can take against an auction."""
    PLACE_BID = "placeBid"
    CLOSE_BIDDING = "closeBidding"
    DETERMINE_WINNER = "determineWinner"
    FINALIZE_WINNER = "finalizeWinner"
    SETTLE_AUCTION = "settleAuction"
    CANCEL_AUCTION = "cancelAuction"


# =============================================================================
# Records
# =============================================================================


@dataclass(frozen=True)
class Auction:
    """
    An auction record.

    Invariants maintained by the ledger:
        start_time < end_time
        0 <= bids_processed <= bid_count
        winner/winning_amount are meaningful only once Settled
        highest_bid_handle == 0 means no leader yet
    """
    address: bytes
    seller: bytes
    auction_id: int
    title: str
    description: str
    reserve_price: int
    start_time: int
    end_time: int
    state: AuctionState = AuctionState.OPEN
    bid_count: int = 0
    bids_processed: int = 0
    highest_bid_handle: int = 0
    current_leader: bytes = NULL_IDENTITY
    winner: bytes = NULL_IDENTITY
    winning_amount: int = 0
    item_reference: Optional[bytes] = None

    @property
    def all_bids_processed(self) -> bool:
        return self.bids_processed >= self.bid_count

    @property
    def has_leader(self) -> bool:
        return self.current_leader != NULL_IDENTITY

    @property
    def duration(self) -> int:
        return self.end_time - self.start_time

    def is_bidding_ended(self, now: int) -> bool:
        return now >= self.end_time

    def evolve(self, **changes) -> "Auction":
        return replace(self, **changes)


@dataclass(frozen=True)
class Bid:
    """
    A bid record; one per (auction, bidder).

    `encrypted_amount` is a handle owned by the encryption service and is
    never decrypted by the coordinator.
    """
    address: bytes
    auction: bytes
    bidder: bytes
    encrypted_amount: int
    created_at: int
    updated_at: int
    processed: bool = False

    def evolve(self, **changes) -> "Bid":
        return replace(self, **changes)


@dataclass(frozen=True)
class AuctionSnapshot:
    """Result of refresh(): the auction plus its bids as of one read."""
    auction: Auction
    bids: List[Bid] = field(default_factory=list)
    fetched_at: int = 0

    @property
    def unprocessed_bids(self) -> List[Bid]:
        return [bid for bid in self.bids if not bid.processed]


__all__ = [
    "AuctionState",
    "Action",
    "Auction",
    "Bid",
    "AuctionSnapshot",
]
