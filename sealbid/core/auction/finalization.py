"""
Finalization - grant the leader decrypt permission and name the winner.

Always reads the authoritative leader immediately before deriving the
permission address. If another caller moves the leader between that read
and the submission, the ledger rejects the stale pair; the coordinator
re-reads and retries up to `stale_retry_limit` times, then surfaces the
StaleState.
"""

from dataclasses import dataclass
from typing import Optional

from sealbid.core.auction.models import Auction
from sealbid.core.auction.state_machine import AuctionStateMachine
from sealbid.core.config import SealbidConfig
from sealbid.core.errors import StaleState
from sealbid.core.identity import SigningIdentity
from sealbid.core.ledger.repository import AuctionRepository
from sealbid.crypto import short_hex
from sealbid.crypto.derivation import AddressDeriver
from sealbid.utils.logger import auction_logger


@dataclass(frozen=True)
class FinalizationResult:
    """The re-read auction after finalizeWinner committed."""
    auction: Auction
    leader: bytes
    allowance: bytes
    attempts: int


class FinalizationCoordinator:

    def __init__(
        self,
        repository: AuctionRepository,
        deriver: AddressDeriver,
        config: SealbidConfig,
        state_machine: Optional[AuctionStateMachine] = None,
    ):
        self.repository = repository
        self.deriver = deriver
        self.config = config
        self.state_machine = state_machine or AuctionStateMachine()

    async def finalize(self, auction_address: bytes, identity: SigningIdentity) -> FinalizationResult:
        """
        Submit finalizeWinner for the authoritative leader.

        Raises:
            StateViolation: not Closed, bids pending, or no leader
            StaleState: the leader kept moving past the retry budget
        """
        log = auction_logger("finalization", auction_address)
        attempts = 0
        while True:
            attempts += 1
            auction = await self.repository.fetch_auction(auction_address)
            self.state_machine.check_finalize_winner(auction)

            leader = auction.current_leader
            allowance = self.deriver.allowance_address(auction.highest_bid_handle, leader)
            log.debug(f"Allowance for leader {short_hex(leader)}: {short_hex(allowance)}")

            try:
                await self.repository.finalize_winner(identity, auction, allowance, leader)
            except StaleState as exc:
                if attempts > self.config.stale_retry_limit:
                    raise
                log.warning(f"finalizeWinner hit stale state (attempt {attempts}), re-reading: {exc}")
                continue
            break

        final = await self.repository.fetch_auction(auction_address)
        log.info(f"Finalized: winner {short_hex(final.winner)}")
        return FinalizationResult(auction=final, leader=leader, allowance=allowance, attempts=attempts)


__all__ = ["FinalizationCoordinator", "FinalizationResult"]
