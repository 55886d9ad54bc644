"""
Unit tests for settlement.

Tests cover:
1. Winner settles and pays
2. Authorization of the caller
3. Proof verification by the ledger
4. Fixed-width encodings on the wire
"""

import asyncio
from dataclasses import replace

import pytest

from sealbid.core.auction.models import AuctionState
from sealbid.core.auction.settlement import SettlementCoordinator
from sealbid.core.encryption.gateway import EncryptionGateway
from sealbid.core.encryption.local import LocalEncryptionService
from sealbid.core.encryption.service import DecryptionResult, EncryptionService
from sealbid.core.errors import (
    AuthorizationError,
    EncryptionFailure,
    NetworkOrLedgerError,
    StateViolation,
)
from sealbid.crypto.codec import decode_u128, encode_u128


RESERVE = 1_000_000_000
DURATION = 3600
ALICE_BID = 2_500_000_000
BOB_BID = 1_750_000_000


@pytest.fixture
def finalized(coordinator, clock, seller, alice, bob):
    """WinnerDetermined auction; alice bid highest."""
    auction = asyncio.run(coordinator.create_auction("Lot", "", RESERVE, DURATION, seller, auction_id=1))
    asyncio.run(coordinator.place_bid(auction.address, ALICE_BID, alice))
    asyncio.run(coordinator.place_bid(auction.address, BOB_BID, bob))
    clock.advance(DURATION)
    asyncio.run(coordinator.close_bidding(auction.address, seller))
    asyncio.run(coordinator.process_bids(auction.address, seller))
    asyncio.run(coordinator.finalize_winner(auction.address, seller))
    return auction.address


class TamperingService(EncryptionService):
    """Decrypts honestly, then reports a different plaintext."""

    def __init__(self, inner: LocalEncryptionService, delta: int):
        self.inner = inner
        self.delta = delta

    async def encrypt(self, amount):
        return await self.inner.encrypt(amount)

    async def decrypt_with_proof(self, handle, address, sign_fn):
        result = await self.inner.decrypt_with_proof(handle, address, sign_fn)
        return replace(result, plaintext=result.plaintext + self.delta)


class ForgedAttestorService(EncryptionService):
    """Signs attestations with a key the ledger does not trust."""

    def __init__(self, inner: LocalEncryptionService):
        self.inner = inner
        self.rogue = LocalEncryptionService()

    async def encrypt(self, amount):
        return await self.inner.encrypt(amount)

    async def decrypt_with_proof(self, handle, address, sign_fn):
        result = await self.inner.decrypt_with_proof(handle, address, sign_fn)
        rogue_handle = self.rogue.register_ciphertext(await self.rogue.encrypt(result.plaintext), owner=address)
        forged = await self.rogue.decrypt_with_proof(rogue_handle, address, sign_fn)
        attestation = replace(forged.proof[0], handle=encode_u128(handle))
        return DecryptionResult(plaintext=result.plaintext, handle=handle, proof=[attestation])


def settler_with(coordinator, service):
    gateway = EncryptionGateway(service, coordinator.config)
    return SettlementCoordinator(coordinator.repository, gateway, coordinator.config)


class TestSettle:
    """Tests for SettlementCoordinator."""

    def test_winner_settles_and_pays(self, coordinator, ledger, finalized, seller, alice):
        alice_before = ledger.balance_of(alice.address)

        receipt = asyncio.run(coordinator.settle_auction(finalized, alice))

        assert receipt.winner == alice.address
        assert receipt.winning_amount == ALICE_BID
        assert receipt.auction.state is AuctionState.SETTLED
        assert receipt.auction.winning_amount == ALICE_BID
        assert ledger.balance_of(seller.address) == ALICE_BID
        assert ledger.balance_of(alice.address) == alice_before - ALICE_BID
        assert ledger.events[-1].name == "AuctionSettled"

    def test_wire_encodings(self, coordinator, finalized, alice):
        receipt = asyncio.run(coordinator.settle_auction(finalized, alice))
        assert len(receipt.handle) == 16
        assert decode_u128(receipt.handle) == receipt.auction.highest_bid_handle
        assert receipt.plaintext == encode_u128(ALICE_BID)

    def test_loser_cannot_settle(self, coordinator, finalized, bob, alice):
        with pytest.raises(AuthorizationError) as exc_info:
            asyncio.run(coordinator.settle_auction(finalized, bob))
        assert exc_info.value.required == alice.address
        assert "settleAuction" in str(exc_info.value)

    def test_seller_cannot_settle(self, coordinator, finalized, seller):
        with pytest.raises(AuthorizationError):
            asyncio.run(coordinator.settle_auction(finalized, seller))

    def test_settle_before_finalize_rejected(self, coordinator, clock, seller, alice):
        auction = asyncio.run(coordinator.create_auction("Lot", "", RESERVE, DURATION, seller, auction_id=2))
        asyncio.run(coordinator.place_bid(auction.address, RESERVE, alice))
        clock.advance(DURATION)
        asyncio.run(coordinator.close_bidding(auction.address, seller))
        asyncio.run(coordinator.process_bids(auction.address, seller))

        with pytest.raises(StateViolation):
            asyncio.run(coordinator.settle_auction(auction.address, alice))

    def test_settle_twice_rejected(self, coordinator, finalized, alice):
        asyncio.run(coordinator.settle_auction(finalized, alice))
        with pytest.raises(StateViolation):
            asyncio.run(coordinator.settle_auction(finalized, alice))

    def test_tampered_plaintext_rejected(self, coordinator, service, ledger, finalized, alice):
        settler = settler_with(coordinator, TamperingService(service, delta=-1))
        with pytest.raises(EncryptionFailure):
            asyncio.run(settler.settle(finalized, alice))
        assert ledger.auctions[finalized].state is AuctionState.WINNER_DETERMINED

    def test_untrusted_attestor_rejected(self, coordinator, service, finalized, alice):
        settler = settler_with(coordinator, ForgedAttestorService(service))
        with pytest.raises(EncryptionFailure):
            asyncio.run(settler.settle(finalized, alice))

    def test_insufficient_funds(self, coordinator, ledger, finalized, alice):
        ledger.balances[alice.address] = ALICE_BID - 1
        with pytest.raises(NetworkOrLedgerError):
            asyncio.run(coordinator.settle_auction(finalized, alice))
        assert ledger.auctions[finalized].state is AuctionState.WINNER_DETERMINED
