"""
Bid Processor - sequential encrypted winner determination.

Each determineWinner instruction compares one unprocessed bid against the
auction's running encrypted leader and marks that bid processed. The
processor drives bids_processed up to bid_count, one instruction at a time.

Two ways to drive it:

    steps(auction)      async generator of BidStep; the caller runs each
                        step and may retry, back off or stop in between
    process_all(...)    runs every step, skipping bids another caller
                        processed first, and reports how far it got

Every step re-reads the ledger first, so a run interrupted after k of n
bids resumes from the durable counters without re-processing anything.
Concurrent processors are tolerated through AlreadyProcessed, not locks.
"""

from dataclasses import dataclass, field
from typing import AsyncIterator, List, Optional

from sealbid.core.auction.models import Auction, AuctionState, Bid
from sealbid.core.auction.state_machine import AuctionStateMachine
from sealbid.core.errors import (
    AlreadyProcessed,
    BatchInterrupted,
    SealbidError,
    StaleState,
    StateViolation,
)
from sealbid.core.identity import SigningIdentity
from sealbid.core.ledger.repository import AuctionRepository
from sealbid.crypto import short_hex
from sealbid.utils.logger import auction_logger

ACTION = "determineWinner"


@dataclass
class ProcessingReport:
    """
    Outcome of a batch run.

    Attributes:
        auction: Auction address
        processed: Bids this run compared, in order
        skipped: Bids found already processed by another caller
        bids_processed: Ledger counter after the run
        bid_count: Ledger counter after the run
    """
    auction: bytes
    processed: List[bytes] = field(default_factory=list)
    skipped: List[bytes] = field(default_factory=list)
    bids_processed: int = 0
    bid_count: int = 0

    @property
    def complete(self) -> bool:
        return self.bids_processed >= self.bid_count


@dataclass
class BidStep:
    """
    One pending comparison: `bid` against the leader of `auction`.

    `position` is the 1-based index this bid would take in the processing
    order; `remaining` counts unprocessed bids including this one.
    """
    auction: Auction
    bid: Bid
    position: int
    remaining: int
    processor: "BidProcessor" = field(repr=False)

    async def run(self, identity: SigningIdentity) -> Auction:
        """Submit this comparison; returns the re-read auction."""
        return await self.processor.process_bid(self.auction.address, self.bid.address, identity)


class BidProcessor:
    """Drives bids_processed to bid_count for Closed auctions."""

    def __init__(self, repository: AuctionRepository, state_machine: Optional[AuctionStateMachine] = None):
        self.repository = repository
        self.state_machine = state_machine or AuctionStateMachine()

    async def process_bid(self, auction_address: bytes, bid_address: bytes, identity: SigningIdentity) -> Auction:
        """
        Compare a single bid against the current leader.

        Raises:
            AlreadyProcessed: the bid was compared before (no state change)
            StateViolation: auction is not Closed, or every bid is processed
        """
        auction = await self.repository.fetch_auction(auction_address)
        bid = await self.repository.fetch_bid(bid_address)
        self.state_machine.check_determine_winner(auction, bid)

        await self.repository.determine_winner(identity, auction, bid)

        updated = await self.repository.fetch_auction(auction_address)
        auction_logger("processor", auction_address).debug(
            f"Processed bid {short_hex(bid_address)}: {updated.bids_processed}/{updated.bid_count}"
        )
        return updated

    async def steps(self, auction_address: bytes) -> AsyncIterator[BidStep]:
        """
        Yield the next pending comparison until none remain.

        The ledger is re-read before every yield. A step the caller does not
        run is offered again on the next iteration.

        Raises:
            StateViolation: auction is Open or Cancelled
            StaleState: counters say bids are pending but none can be found
        """
        recheck = False
        while True:
            auction = await self.repository.fetch_auction(auction_address)

            if auction.state in (AuctionState.OPEN, AuctionState.CANCELLED):
                raise StateViolation(ACTION, auction.state, "bids are processed only after bidding closes")
            if auction.state is not AuctionState.CLOSED or auction.all_bids_processed:
                return

            pending = await self.repository.fetch_unprocessed_bids(auction_address)
            if not pending:
                # Another caller may have processed the last bid between the two reads
                if recheck:
                    raise StaleState(
                        ACTION,
                        f"auction reports {auction.bids_processed}/{auction.bid_count} processed "
                        f"but no unprocessed bid records exist",
                    )
                recheck = True
                continue

            recheck = False
            yield BidStep(
                auction=auction,
                bid=pending[0],
                position=auction.bids_processed + 1,
                remaining=len(pending),
                processor=self,
            )

    async def process_all(self, auction_address: bytes, identity: SigningIdentity) -> ProcessingReport:
        """
        Process every remaining bid, strictly one at a time.

        Bids already processed by a concurrent caller are skipped. If another
        caller completes the remaining bids (or finalizes) while a step is
        in flight, that step is skipped and the batch ends normally. Any
        other error stops the batch.

        Raises:
            BatchInterrupted: carries processed/skipped counts; the original
                error is chained as __cause__
        """
        report = ProcessingReport(auction=auction_address)
        log = auction_logger("processor", auction_address)

        try:
            async for step in self.steps(auction_address):
                try:
                    await step.run(identity)
                except AlreadyProcessed:
                    log.warning(f"Bid {short_hex(step.bid.address)} already processed, skipping")
                    report.skipped.append(step.bid.address)
                    continue
                except StateViolation:
                    if not await self._overtaken(auction_address):
                        raise
                    log.warning(f"Bid {short_hex(step.bid.address)} skipped: another caller completed processing")
                    report.skipped.append(step.bid.address)
                    break
                report.processed.append(step.bid.address)
        except SealbidError as exc:
            log.error(
                f"Bid processing stopped after {len(report.processed)} processed, "
                f"{len(report.skipped)} skipped: {exc}"
            )
            raise BatchInterrupted(
                "processBids",
                processed=len(report.processed),
                skipped=len(report.skipped),
                cause=exc,
            ) from exc

        auction = await self.repository.fetch_auction(auction_address)
        report.bids_processed = auction.bids_processed
        report.bid_count = auction.bid_count

        log.info(f"Bid processing complete: {len(report.processed)} processed, {len(report.skipped)} skipped")
        return report

    async def _overtaken(self, auction_address: bytes) -> bool:
        """True once other callers have processed every bid (and maybe finalized)."""
        auction = await self.repository.fetch_auction(auction_address)
        if auction.state in (AuctionState.WINNER_DETERMINED, AuctionState.SETTLED):
            return True
        return auction.state is AuctionState.CLOSED and auction.all_bids_processed


__all__ = ["BidProcessor", "BidStep", "ProcessingReport"]
