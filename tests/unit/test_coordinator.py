"""
Unit tests for the AuctionCoordinator facade.

Tests cover:
1. Client-side create flow (truncation, bounds, default id)
2. Client-side bid flow (reserve check before encryption)
3. Cancellation
4. refresh / legal_actions / listing queries
"""

import asyncio

import pytest

from sealbid.core.auction.coordinator import AuctionCoordinator
from sealbid.core.auction.models import Action, AuctionState
from sealbid.core.errors import AuthorizationError, InvalidInput, StateViolation


RESERVE = 1_000_000_000
DURATION = 3600


class CountingService:
    """Wraps an encryption service and counts encrypt calls."""

    def __init__(self, inner):
        self.inner = inner
        self.encrypt_calls = 0

    async def encrypt(self, amount):
        self.encrypt_calls += 1
        return await self.inner.encrypt(amount)

    async def decrypt_with_proof(self, handle, address, sign_fn):
        return await self.inner.decrypt_with_proof(handle, address, sign_fn)


@pytest.fixture
def auction(coordinator, seller):
    return asyncio.run(coordinator.create_auction("Lot", "Desc", RESERVE, DURATION, seller, auction_id=1))


class TestCreateAuction:

    def test_create(self, coordinator, seller, clock):
        auction = asyncio.run(coordinator.create_auction("Lot", "Desc", RESERVE, DURATION, seller))
        assert auction.state is AuctionState.OPEN
        assert auction.reserve_price == RESERVE
        assert auction.duration == DURATION
        assert auction.start_time == clock.now

    def test_default_ids_are_unique(self, coordinator, seller):
        first = asyncio.run(coordinator.create_auction("A", "", RESERVE, DURATION, seller))
        second = asyncio.run(coordinator.create_auction("B", "", RESERVE, DURATION, seller))
        assert first.address != second.address
        assert first.auction_id != second.auction_id

    def test_text_truncated_to_byte_caps(self, coordinator, seller):
        auction = asyncio.run(coordinator.create_auction("t" * 100, "ü" * 200, RESERVE, DURATION, seller))
        assert auction.title == "t" * 64
        assert auction.description == "ü" * 128

    @pytest.mark.parametrize("reserve,duration", [
        (0, DURATION),
        (-5, DURATION),
        (1.5, DURATION),
        (RESERVE, 59),
        (RESERVE, 604_801),
    ])
    def test_invalid_parameters(self, coordinator, ledger, seller, reserve, duration):
        with pytest.raises(InvalidInput):
            asyncio.run(coordinator.create_auction("Lot", "", reserve, duration, seller))
        assert ledger.auctions == {}

    def test_item_reference(self, coordinator, seller):
        item = b"\x07" * 20
        auction = asyncio.run(coordinator.create_auction("Lot", "", RESERVE, DURATION, seller, item_reference=item))
        assert auction.item_reference == item

    def test_bad_item_reference(self, coordinator, seller):
        with pytest.raises(InvalidInput):
            asyncio.run(coordinator.create_auction("Lot", "", RESERVE, DURATION, seller, item_reference=b"\x07"))


class TestPlaceBid:

    def test_bid_below_reserve_never_encrypted(self, ledger, service, config, seller, alice):
        counting = CountingService(service)
        coordinator = AuctionCoordinator(ledger, counting, config=config)
        auction = asyncio.run(coordinator.create_auction("Lot", "", RESERVE, DURATION, seller, auction_id=1))

        with pytest.raises(InvalidInput):
            asyncio.run(coordinator.place_bid(auction.address, RESERVE - 1, alice))
        assert counting.encrypt_calls == 0

    def test_float_amount_rejected(self, coordinator, auction, alice):
        with pytest.raises(InvalidInput):
            asyncio.run(coordinator.place_bid(auction.address, 1.5e9, alice))

    def test_bid_at_reserve(self, coordinator, auction, alice):
        record = asyncio.run(coordinator.place_bid(auction.address, RESERVE, alice))
        assert record.bidder == alice.address
        assert record.auction == auction.address

    def test_seller_rejected_client_side(self, coordinator, auction, seller):
        with pytest.raises(AuthorizationError):
            asyncio.run(coordinator.place_bid(auction.address, RESERVE, seller))

    def test_after_end_rejected(self, coordinator, auction, alice, clock):
        clock.advance(DURATION)
        with pytest.raises(StateViolation):
            asyncio.run(coordinator.place_bid(auction.address, RESERVE, alice))

    def test_injected_clock_drives_guards(self, ledger, service, config, seller, alice, clock):
        """A caller clock ahead of the ledger rejects bids the ledger would still take."""
        coordinator = AuctionCoordinator(ledger, service, config=config, clock=lambda: clock.now + DURATION)
        auction = asyncio.run(coordinator.create_auction("Lot", "", RESERVE, DURATION, seller, auction_id=1))
        with pytest.raises(StateViolation):
            asyncio.run(coordinator.place_bid(auction.address, RESERVE, alice))


class TestCancel:

    def test_seller_cancels(self, coordinator, auction, seller):
        cancelled = asyncio.run(coordinator.cancel_auction(auction.address, seller, "withdrawn"))
        assert cancelled.state is AuctionState.CANCELLED

    def test_bids_block_early_cancel(self, coordinator, auction, seller, alice, clock):
        asyncio.run(coordinator.place_bid(auction.address, RESERVE, alice))
        with pytest.raises(StateViolation):
            asyncio.run(coordinator.cancel_auction(auction.address, seller))
        clock.advance(DURATION)
        assert asyncio.run(coordinator.cancel_auction(auction.address, seller)).state is AuctionState.CANCELLED

    def test_cancelled_auction_takes_no_bids(self, coordinator, auction, seller, alice):
        asyncio.run(coordinator.cancel_auction(auction.address, seller))
        with pytest.raises(StateViolation):
            asyncio.run(coordinator.place_bid(auction.address, RESERVE, alice))


class TestQueries:

    def test_refresh(self, coordinator, auction, alice, bob, clock):
        asyncio.run(coordinator.place_bid(auction.address, RESERVE, alice))
        asyncio.run(coordinator.place_bid(auction.address, RESERVE, bob))
        snapshot = asyncio.run(coordinator.refresh(auction.address))
        assert snapshot.auction.bid_count == 2
        assert len(snapshot.bids) == 2
        assert len(snapshot.unprocessed_bids) == 2
        assert snapshot.fetched_at == clock.now

    def test_legal_actions_follow_lifecycle(self, coordinator, auction, seller, alice, clock):
        assert asyncio.run(coordinator.legal_actions(auction.address, alice)) == [Action.PLACE_BID]
        asyncio.run(coordinator.place_bid(auction.address, RESERVE, alice))
        assert asyncio.run(coordinator.legal_actions(auction.address, seller)) == []

        clock.advance(DURATION)
        assert asyncio.run(coordinator.legal_actions(auction.address, seller)) == [
            Action.CANCEL_AUCTION,
            Action.CLOSE_BIDDING,
        ]

        asyncio.run(coordinator.close_bidding(auction.address, alice))
        assert asyncio.run(coordinator.legal_actions(auction.address, seller)) == [Action.DETERMINE_WINNER]

        asyncio.run(coordinator.process_bids(auction.address, seller))
        assert asyncio.run(coordinator.legal_actions(auction.address, seller)) == [Action.FINALIZE_WINNER]

        asyncio.run(coordinator.finalize_winner(auction.address, seller))
        assert asyncio.run(coordinator.legal_actions(auction.address, seller)) == []
        assert asyncio.run(coordinator.legal_actions(auction.address, alice)) == [Action.SETTLE_AUCTION]

    def test_my_auctions_and_bids(self, coordinator, seller, alice):
        first = asyncio.run(coordinator.create_auction("A", "", RESERVE, DURATION, seller, auction_id=1))
        asyncio.run(coordinator.create_auction("B", "", RESERVE, DURATION, seller, auction_id=2))
        asyncio.run(coordinator.place_bid(first.address, RESERVE, alice))

        assert len(asyncio.run(coordinator.list_auctions(seller=seller.address))) == 2
        assert asyncio.run(coordinator.list_auctions(seller=alice.address)) == []
        my_bids = asyncio.run(coordinator.list_bids(bidder=alice.address))
        assert [b.auction for b in my_bids] == [first.address]

    def test_determine_winner_by_address(self, coordinator, auction, seller, alice, clock):
        record = asyncio.run(coordinator.place_bid(auction.address, RESERVE, alice))
        clock.advance(DURATION)
        asyncio.run(coordinator.close_bidding(auction.address, seller))
        updated = asyncio.run(coordinator.determine_winner(auction.address, record.address, seller))
        assert updated.bids_processed == 1
        assert updated.current_leader == alice.address
