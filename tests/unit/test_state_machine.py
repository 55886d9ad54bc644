"""
Unit tests for the auction state machine.

Tests cover:
1. Transition table coverage
2. Guards per action (state, time, caller)
3. legal_actions for seller, bidders and bystanders
"""

import pytest

from sealbid.core.auction.models import Action, Auction, AuctionState, Bid
from sealbid.core.auction.state_machine import TRANSITIONS, AuctionStateMachine
from sealbid.core.errors import (
    AlreadyProcessed,
    AuthorizationError,
    InvalidInput,
    StateViolation,
)
from sealbid.core.identity import NULL_IDENTITY


SELLER = b"\x01" * 20
ALICE = b"\x02" * 20
BOB = b"\x03" * 20
AUCTION = b"\xaa" * 20
START = 1_000
END = 4_600


# =============================================================================
# Fixtures
# =============================================================================


@pytest.fixture
def sm():
    return AuctionStateMachine()


def make_auction(**changes) -> Auction:
    auction = Auction(
        address=AUCTION,
        seller=SELLER,
        auction_id=1,
        title="Lot",
        description="",
        reserve_price=100,
        start_time=START,
        end_time=END,
    )
    return auction.evolve(**changes)


def make_bid(bidder: bytes = ALICE, processed: bool = False, auction: bytes = AUCTION) -> Bid:
    return Bid(
        address=bidder[:10] + b"\xbb" * 10,
        auction=auction,
        bidder=bidder,
        encrypted_amount=42,
        created_at=START,
        updated_at=START,
        processed=processed,
    )


# =============================================================================
# Transition Table
# =============================================================================


class TestTransitions:
    """Tests for the transition table."""

    def test_every_state_covered(self):
        assert set(TRANSITIONS) == set(AuctionState)

    def test_terminal_states_have_no_actions(self):
        for state in AuctionState:
            if state.is_terminal:
                assert TRANSITIONS[state] == frozenset()

    def test_settle_only_from_winner_determined(self):
        states = [s for s, actions in TRANSITIONS.items() if Action.SETTLE_AUCTION in actions]
        assert states == [AuctionState.WINNER_DETERMINED]


# =============================================================================
# Guards
# =============================================================================


class TestPlaceBidGuard:

    def test_open_window_allows_bid(self, sm):
        sm.check_place_bid(make_auction(), ALICE, START + 10)

    def test_after_end_rejected(self, sm):
        with pytest.raises(StateViolation):
            sm.check_place_bid(make_auction(), ALICE, END)

    def test_before_start_rejected(self, sm):
        with pytest.raises(StateViolation):
            sm.check_place_bid(make_auction(), ALICE, START - 1)

    def test_seller_cannot_bid(self, sm):
        with pytest.raises(AuthorizationError):
            sm.check_place_bid(make_auction(), SELLER, START + 10)

    def test_closed_auction_rejected(self, sm):
        with pytest.raises(StateViolation) as exc_info:
            sm.check_place_bid(make_auction(state=AuctionState.CLOSED), ALICE, START + 10)
        assert exc_info.value.state is AuctionState.CLOSED
        assert "placeBid" in str(exc_info.value)


class TestCloseBiddingGuard:

    def test_before_end_rejected(self, sm):
        with pytest.raises(StateViolation):
            sm.check_close_bidding(make_auction(bid_count=1), END - 1)

    def test_with_bids_goes_closed(self, sm):
        assert sm.check_close_bidding(make_auction(bid_count=2), END) is AuctionState.CLOSED

    def test_without_bids_goes_cancelled(self, sm):
        assert sm.check_close_bidding(make_auction(), END) is AuctionState.CANCELLED

    def test_only_from_open(self, sm):
        with pytest.raises(StateViolation):
            sm.check_close_bidding(make_auction(state=AuctionState.CLOSED, bid_count=1), END)


class TestDetermineWinnerGuard:

    def test_pending_bid_allowed(self, sm):
        auction = make_auction(state=AuctionState.CLOSED, bid_count=2, bids_processed=1)
        sm.check_determine_winner(auction, make_bid())

    def test_processed_bid_rejected(self, sm):
        auction = make_auction(state=AuctionState.CLOSED, bid_count=2, bids_processed=1)
        with pytest.raises(AlreadyProcessed):
            sm.check_determine_winner(auction, make_bid(processed=True))

    def test_foreign_bid_rejected(self, sm):
        auction = make_auction(state=AuctionState.CLOSED, bid_count=2)
        with pytest.raises(InvalidInput):
            sm.check_determine_winner(auction, make_bid(auction=b"\xcc" * 20))

    def test_counts_exhausted(self, sm):
        auction = make_auction(state=AuctionState.CLOSED, bid_count=2, bids_processed=2)
        with pytest.raises(StateViolation):
            sm.check_determine_winner(auction, make_bid())

    def test_open_auction_rejected(self, sm):
        with pytest.raises(StateViolation):
            sm.check_determine_winner(make_auction(bid_count=1), make_bid())


class TestFinalizeGuard:

    def test_all_processed_with_leader(self, sm):
        auction = make_auction(
            state=AuctionState.CLOSED, bid_count=2, bids_processed=2,
            highest_bid_handle=7, current_leader=ALICE,
        )
        sm.check_finalize_winner(auction)

    def test_pending_bids_rejected(self, sm):
        auction = make_auction(
            state=AuctionState.CLOSED, bid_count=2, bids_processed=1,
            highest_bid_handle=7, current_leader=ALICE,
        )
        with pytest.raises(StateViolation):
            sm.check_finalize_winner(auction)

    def test_no_leader_rejected(self, sm):
        auction = make_auction(state=AuctionState.CLOSED, bid_count=0)
        with pytest.raises(StateViolation):
            sm.check_finalize_winner(auction)

    def test_wrong_state_rejected(self, sm):
        auction = make_auction(state=AuctionState.WINNER_DETERMINED, current_leader=ALICE, winner=ALICE)
        with pytest.raises(StateViolation):
            sm.check_finalize_winner(auction)


class TestSettleGuard:

    def test_winner_allowed(self, sm):
        auction = make_auction(state=AuctionState.WINNER_DETERMINED, current_leader=ALICE, winner=ALICE)
        sm.check_settle(auction, ALICE)

    def test_other_caller_rejected(self, sm):
        auction = make_auction(state=AuctionState.WINNER_DETERMINED, current_leader=ALICE, winner=ALICE)
        with pytest.raises(AuthorizationError) as exc_info:
            sm.check_settle(auction, BOB)
        assert exc_info.value.required == ALICE
        assert exc_info.value.actual == BOB
        assert "retrying will not help" in str(exc_info.value)

    def test_falls_back_to_leader_when_winner_unset(self, sm):
        auction = make_auction(state=AuctionState.WINNER_DETERMINED, current_leader=ALICE, winner=NULL_IDENTITY)
        sm.check_settle(auction, ALICE)

    def test_settle_before_finalize_rejected(self, sm):
        auction = make_auction(state=AuctionState.CLOSED, current_leader=ALICE)
        with pytest.raises(StateViolation):
            sm.check_settle(auction, ALICE)


class TestCancelGuard:

    def test_seller_cancels_without_bids(self, sm):
        sm.check_cancel(make_auction(), SELLER, START + 1)

    def test_non_seller_rejected(self, sm):
        with pytest.raises(AuthorizationError):
            sm.check_cancel(make_auction(), ALICE, START + 1)

    def test_bids_block_cancel_until_end(self, sm):
        auction = make_auction(bid_count=1)
        with pytest.raises(StateViolation):
            sm.check_cancel(auction, SELLER, START + 1)
        sm.check_cancel(auction, SELLER, END)

    def test_cannot_cancel_closed(self, sm):
        with pytest.raises(StateViolation):
            sm.check_cancel(make_auction(state=AuctionState.CLOSED, bid_count=1), SELLER, END)


# =============================================================================
# Queries
# =============================================================================


class TestLegalActions:

    def test_bidder_during_bidding(self, sm):
        assert sm.legal_actions(make_auction(), ALICE, START + 1) == [Action.PLACE_BID]

    def test_seller_during_bidding_without_bids(self, sm):
        assert sm.legal_actions(make_auction(), SELLER, START + 1) == [Action.CANCEL_AUCTION]

    def test_after_end_anyone_can_close(self, sm):
        actions = sm.legal_actions(make_auction(bid_count=1), ALICE, END)
        assert actions == [Action.CLOSE_BIDDING]

    def test_closed_with_pending_bids(self, sm):
        auction = make_auction(state=AuctionState.CLOSED, bid_count=1)
        assert sm.legal_actions(auction, BOB, END, bids=[make_bid()]) == [Action.DETERMINE_WINNER]
        assert sm.legal_actions(auction, BOB, END) == []

    def test_only_winner_may_settle(self, sm):
        auction = make_auction(state=AuctionState.WINNER_DETERMINED, current_leader=ALICE, winner=ALICE)
        assert sm.legal_actions(auction, ALICE, END) == [Action.SETTLE_AUCTION]
        assert sm.legal_actions(auction, BOB, END) == []

    def test_terminal_states_offer_nothing(self, sm):
        assert sm.legal_actions(make_auction(state=AuctionState.SETTLED), SELLER, END) == []
        assert sm.legal_actions(make_auction(state=AuctionState.CANCELLED), SELLER, END) == []
