"""
Auction State Machine - which action is legal right now.

States and edges:

    Open --closeBidding (bids > 0)--> Closed
    Open --closeBidding (no bids)---> Cancelled
    Open --cancelAuction------------> Cancelled
    Closed --determineWinner--------> Closed        (bids_processed += 1)
    Closed --finalizeWinner---------> WinnerDetermined
    WinnerDetermined --settleAuction-> Settled

No other edges exist. Guards here run client-side before anything is
submitted; the ledger re-validates authoritatively. A failed guard always
raises, it never silently does nothing.
"""

from typing import Dict, FrozenSet, List, Optional

from sealbid.core.auction.models import Action, Auction, AuctionState, Bid
from sealbid.core.errors import (
    AlreadyProcessed,
    AuthorizationError,
    InvalidInput,
    StateViolation,
)
from sealbid.core.identity import NULL_IDENTITY
from sealbid.utils.logger import get_logger

logger = get_logger("state_machine")


# =============================================================================
# Transition Table
# =============================================================================

# Actions that can ever be legal from each state (before guards)
TRANSITIONS: Dict[AuctionState, FrozenSet[Action]] = {
    AuctionState.OPEN: frozenset({
        Action.PLACE_BID,
        Action.CLOSE_BIDDING,
        Action.CANCEL_AUCTION,
    }),
    AuctionState.CLOSED: frozenset({
        Action.DETERMINE_WINNER,
        Action.FINALIZE_WINNER,
    }),
    AuctionState.WINNER_DETERMINED: frozenset({Action.SETTLE_AUCTION}),
    AuctionState.SETTLED: frozenset(),
    AuctionState.CANCELLED: frozenset(),
}

_missing = set(AuctionState) - set(TRANSITIONS)
if _missing:
    raise RuntimeError(f"transition table does not cover {sorted(s.value for s in _missing)}")


class AuctionStateMachine:
    """
    Guard evaluation over an auction record, wall-clock time and caller.

    Stateless: every check takes the record it judges. Pass a freshly
    fetched record; guards on a stale copy only predict what the ledger
    will decide.
    """

    # =========================================================================
    # Guards
    # =========================================================================

    def _require_state(self, auction: Auction, action: Action, *allowed: AuctionState) -> None:
        if action not in TRANSITIONS[auction.state] or auction.state not in allowed:
            raise StateViolation(action.value, auction.state)

    def check_place_bid(self, auction: Auction, bidder: bytes, now: int) -> None:
        action = Action.PLACE_BID
        self._require_state(auction, action, AuctionState.OPEN)
        if now < auction.start_time:
            raise StateViolation(action.value, auction.state, "bidding has not started")
        if auction.is_bidding_ended(now):
            raise StateViolation(action.value, auction.state, "bidding period has ended")
        if bidder == auction.seller:
            raise AuthorizationError(
                action.value,
                "the seller cannot bid on their own auction",
                actual=bidder,
            )

    def check_close_bidding(self, auction: Auction, now: int) -> AuctionState:
        """
        Guard closeBidding.

        Returns:
            The state the auction moves to: Closed with bids, else Cancelled
        """
        action = Action.CLOSE_BIDDING
        self._require_state(auction, action, AuctionState.OPEN)
        if not auction.is_bidding_ended(now):
            raise StateViolation(
                action.value,
                auction.state,
                f"bidding ends at {auction.end_time}, now is {now}",
            )
        return AuctionState.CLOSED if auction.bid_count > 0 else AuctionState.CANCELLED

    def check_determine_winner(self, auction: Auction, bid: Bid) -> None:
        action = Action.DETERMINE_WINNER
        self._require_state(auction, action, AuctionState.CLOSED)
        if bid.auction != auction.address:
            raise InvalidInput(
                action.value,
                f"bid 0x{bid.address.hex()} belongs to auction 0x{bid.auction.hex()}",
            )
        if bid.processed:
            raise AlreadyProcessed(action.value, bid.address)
        if auction.bids_processed >= auction.bid_count:
            raise StateViolation(
                action.value,
                auction.state,
                f"all {auction.bid_count} bids already processed",
            )

    def check_finalize_winner(self, auction: Auction) -> None:
        action = Action.FINALIZE_WINNER
        self._require_state(auction, action, AuctionState.CLOSED)
        if not auction.all_bids_processed:
            raise StateViolation(
                action.value,
                auction.state,
                f"{auction.bids_processed}/{auction.bid_count} bids processed",
            )
        if not auction.has_leader:
            raise StateViolation(action.value, auction.state, "no leader has been recorded")

    def check_settle(self, auction: Auction, caller: bytes) -> None:
        action = Action.SETTLE_AUCTION
        self._require_state(auction, action, AuctionState.WINNER_DETERMINED)
        winner = auction.winner if auction.winner != NULL_IDENTITY else auction.current_leader
        if caller != winner:
            raise AuthorizationError.not_role(action.value, "winner", winner, caller)

    def check_cancel(self, auction: Auction, caller: bytes, now: int) -> None:
        action = Action.CANCEL_AUCTION
        self._require_state(auction, action, AuctionState.OPEN)
        if caller != auction.seller:
            raise AuthorizationError.not_role(action.value, "seller", auction.seller, caller)
        if auction.bid_count > 0 and not auction.is_bidding_ended(now):
            raise StateViolation(
                action.value,
                auction.state,
                f"{auction.bid_count} bids placed; cancellable only after {auction.end_time}",
            )

    # =========================================================================
    # Queries
    # =========================================================================

    def legal_actions(
        self,
        auction: Auction,
        caller: bytes,
        now: int,
        bids: Optional[List[Bid]] = None,
    ) -> List[Action]:
        """
        Actions whose guards pass for this caller at `now`.

        determineWinner is listed only when an unprocessed bid is known,
        so pass the auction's bids to get it.
        """
        legal = []
        for action in sorted(TRANSITIONS[auction.state], key=lambda a: a.value):
            if self.is_legal(auction, action, caller, now, bids):
                legal.append(action)
        return legal

    def is_legal(
        self,
        auction: Auction,
        action: Action,
        caller: bytes,
        now: int,
        bids: Optional[List[Bid]] = None,
    ) -> bool:
        try:
            if action is Action.PLACE_BID:
                self.check_place_bid(auction, caller, now)
            elif action is Action.CLOSE_BIDDING:
                self.check_close_bidding(auction, now)
            elif action is Action.CANCEL_AUCTION:
                self.check_cancel(auction, caller, now)
            elif action is Action.DETERMINE_WINNER:
                pending = [b for b in (bids or []) if not b.processed]
                if not pending:
                    return False
                self.check_determine_winner(auction, pending[0])
            elif action is Action.FINALIZE_WINNER:
                self.check_finalize_winner(auction)
            elif action is Action.SETTLE_AUCTION:
                self.check_settle(auction, caller)
            else:
                raise ValueError(f"Unknown action: {action}")
        except (StateViolation, AuthorizationError, AlreadyProcessed, InvalidInput) as exc:
            logger.debug(f"{action.value} not legal: {exc}")
            return False
        return True


__all__ = ["AuctionStateMachine", "TRANSITIONS"]
