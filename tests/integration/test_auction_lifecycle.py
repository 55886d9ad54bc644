"""
Integration tests for the full auction lifecycle.

Drives the coordinator against the in-memory ledger and the local
encryption service, from creation through settlement.
"""

import asyncio

import pytest

from sealbid.core.auction.models import AuctionState
from sealbid.core.errors import AuthorizationError, BatchInterrupted, StateViolation
from sealbid.core.identity import SigningIdentity


RESERVE = 1_000_000_000
DURATION = 3600


# =============================================================================
# Helpers
# =============================================================================


def assert_counters(auction):
    assert 0 <= auction.bids_processed <= auction.bid_count


async def walk_bids(coordinator, address, identity):
    """Process bids one step at a time, checking counters after each."""
    seen = []
    async for step in coordinator.bid_steps(address):
        assert step.position == step.auction.bids_processed + 1
        updated = await step.run(identity)
        assert_counters(updated)
        seen.append(updated)
    return seen


# =============================================================================
# Full Flow Tests
# =============================================================================


class TestFullAuctionFlow:
    """End-to-end create -> bid -> close -> process -> finalize -> settle."""

    def test_two_bidders(self, coordinator, ledger, clock, seller, alice, bob):
        alice_before = ledger.balance_of(alice.address)
        bob_before = ledger.balance_of(bob.address)

        auction = asyncio.run(coordinator.create_auction("Painting", "Oil on canvas", RESERVE, DURATION, seller))
        assert auction.state is AuctionState.OPEN
        assert_counters(auction)

        asyncio.run(coordinator.place_bid(auction.address, 1_500_000_000, alice))
        asyncio.run(coordinator.place_bid(auction.address, 2_000_000_000, bob))

        # Bidding still open: nobody can close yet
        with pytest.raises(StateViolation):
            asyncio.run(coordinator.close_bidding(auction.address, seller))

        clock.advance(DURATION)
        closed = asyncio.run(coordinator.close_bidding(auction.address, alice))
        assert closed.state is AuctionState.CLOSED
        assert closed.bid_count == 2
        assert closed.bids_processed == 0

        report = asyncio.run(coordinator.process_bids(auction.address, seller))
        assert report.complete
        assert report.bids_processed == 2

        result = asyncio.run(coordinator.finalize_winner(auction.address, seller))
        assert result.leader == bob.address
        assert result.auction.state is AuctionState.WINNER_DETERMINED

        with pytest.raises(AuthorizationError):
            asyncio.run(coordinator.settle_auction(auction.address, alice))

        receipt = asyncio.run(coordinator.settle_auction(auction.address, bob))
        assert receipt.winning_amount == 2_000_000_000
        assert receipt.auction.state is AuctionState.SETTLED
        assert ledger.balance_of(seller.address) == 2_000_000_000
        assert ledger.balance_of(bob.address) == bob_before - 2_000_000_000
        assert ledger.balance_of(alice.address) == alice_before

        names = [event.name for event in ledger.events]
        assert names == [
            "AuctionCreated",
            "BidPlaced",
            "BidPlaced",
            "BiddingClosed",
            "BidProcessed",
            "BidProcessed",
            "WinnerDetermined",
            "AuctionSettled",
        ]

    def test_stepwise_processing(self, coordinator, ledger, clock, seller):
        bidders = []
        for i, amount in enumerate([1_200_000_000, 3_000_000_000, 1_100_000_000, 2_900_000_000]):
            identity = SigningIdentity.generate(f"bidder-{i}")
            ledger.fund(identity.address, amount)
            bidders.append((identity, amount))

        auction = asyncio.run(coordinator.create_auction("Lot", "", RESERVE, DURATION, seller, auction_id=9))
        for identity, amount in bidders:
            asyncio.run(coordinator.place_bid(auction.address, amount, identity))

        clock.advance(DURATION)
        asyncio.run(coordinator.close_bidding(auction.address, seller))

        seen = asyncio.run(walk_bids(coordinator, auction.address, seller))
        assert [a.bids_processed for a in seen] == [1, 2, 3, 4]

        result = asyncio.run(coordinator.finalize_winner(auction.address, seller))
        assert result.leader == bidders[1][0].address

        receipt = asyncio.run(coordinator.settle_auction(auction.address, bidders[1][0]))
        assert receipt.winning_amount == 3_000_000_000
        assert ledger.balance_of(bidders[1][0].address) == 0


# =============================================================================
# Edge Cases
# =============================================================================


class TestEdgeCases:

    def test_zero_bids_cancels_on_close(self, coordinator, ledger, clock, seller):
        auction = asyncio.run(coordinator.create_auction("Lot", "", RESERVE, DURATION, seller, auction_id=1))
        clock.advance(DURATION)

        closed = asyncio.run(coordinator.close_bidding(auction.address, seller))
        assert closed.state is AuctionState.CANCELLED
        assert closed.bid_count == 0
        assert ledger.events[-1].name == "BiddingClosed"
        assert ledger.events[-1].data["total_bids"] == 0

        with pytest.raises(BatchInterrupted) as exc_info:
            asyncio.run(coordinator.process_bids(auction.address, seller))
        assert isinstance(exc_info.value.__cause__, StateViolation)

    def test_rebid_replaces_amount(self, coordinator, clock, seller, alice, bob):
        auction = asyncio.run(coordinator.create_auction("Lot", "", RESERVE, DURATION, seller, auction_id=2))

        first = asyncio.run(coordinator.place_bid(auction.address, 5_000_000_000, alice))
        asyncio.run(coordinator.place_bid(auction.address, 1_500_000_000, bob))
        second = asyncio.run(coordinator.place_bid(auction.address, 1_200_000_000, alice))

        assert second.address == first.address
        assert second.encrypted_amount != first.encrypted_amount

        refreshed = asyncio.run(coordinator.refresh(auction.address))
        assert refreshed.auction.bid_count == 2
        assert len(refreshed.bids) == 2

        clock.advance(DURATION)
        asyncio.run(coordinator.close_bidding(auction.address, seller))
        asyncio.run(coordinator.process_bids(auction.address, seller))
        result = asyncio.run(coordinator.finalize_winner(auction.address, seller))
        assert result.leader == bob.address

    def test_single_bidder_wins_at_reserve(self, coordinator, ledger, clock, seller, alice):
        auction = asyncio.run(coordinator.create_auction("Lot", "", RESERVE, DURATION, seller, auction_id=3))
        asyncio.run(coordinator.place_bid(auction.address, RESERVE, alice))
        clock.advance(DURATION)
        asyncio.run(coordinator.close_bidding(auction.address, seller))
        asyncio.run(coordinator.process_bids(auction.address, seller))
        asyncio.run(coordinator.finalize_winner(auction.address, seller))

        receipt = asyncio.run(coordinator.settle_auction(auction.address, alice))
        assert receipt.winning_amount == RESERVE
        assert ledger.balance_of(seller.address) == RESERVE

    def test_concurrent_auctions_are_independent(self, coordinator, clock, seller, alice, bob):
        first = asyncio.run(coordinator.create_auction("A", "", RESERVE, DURATION, seller, auction_id=10))
        second = asyncio.run(coordinator.create_auction("B", "", RESERVE, DURATION, seller, auction_id=11))

        async def place_all():
            await asyncio.gather(
                coordinator.place_bid(first.address, 2_000_000_000, alice),
                coordinator.place_bid(first.address, 1_000_000_000, bob),
                coordinator.place_bid(second.address, 1_000_000_000, alice),
                coordinator.place_bid(second.address, 2_000_000_000, bob),
            )

        asyncio.run(place_all())
        clock.advance(DURATION)

        leaders = {}
        for address in (first.address, second.address):
            asyncio.run(coordinator.close_bidding(address, seller))
            asyncio.run(coordinator.process_bids(address, seller))
            leaders[address] = asyncio.run(coordinator.finalize_winner(address, seller)).leader

        assert leaders[first.address] == alice.address
        assert leaders[second.address] == bob.address
