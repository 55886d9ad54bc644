"""
Sealbid Auction Module.

Records and lifecycle guards:
- Auction/Bid records and the five-state lifecycle
- Transition guards per action and caller

The protocol coordinators (processor, finalization, settlement, and the
AuctionCoordinator facade) import the ledger layer, which itself imports
the records defined here, so they are imported from their own modules.
"""

from sealbid.core.auction.models import (
    Action,
    Auction,
    AuctionSnapshot,
    AuctionState,
    Bid,
)

from sealbid.core.auction.state_machine import (
    AuctionStateMachine,
    TRANSITIONS,
)

__all__ = [
    # Records
    "Action",
    "Auction",
    "AuctionSnapshot",
    "AuctionState",
    "Bid",
    # Guards
    "AuctionStateMachine",
    "TRANSITIONS",
]
