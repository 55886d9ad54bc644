"""
Ledger client interface.

The ledger is the source of truth for auction and bid records. The
coordinator reads through this interface and mutates only by submitting
signed transactions, one instruction each, that the ledger executes
atomically or rejects with a ProgramError code.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import IntEnum
from typing import Any, Dict, List, Optional

from sealbid.core.auction.models import Auction, AuctionState, Bid
from sealbid.core.ledger.transaction import Transaction


# =============================================================================
# Program Errors
# =============================================================================


class ProgramError(IntEnum):
    """Rejection codes returned by the auction program."""
    # Timing
    DURATION_TOO_SHORT = 6000
    DURATION_TOO_LONG = 6001
    AUCTION_NOT_STARTED = 6002
    BIDDING_NOT_ENDED = 6003
    BIDDING_ENDED = 6004
    # State
    AUCTION_NOT_OPEN = 6005
    AUCTION_NOT_CLOSED = 6006
    WINNER_NOT_DETERMINED = 6007
    AUCTION_ALREADY_SETTLED = 6008
    AUCTION_CANCELLED = 6009
    NO_BIDS_PLACED = 6010
    BIDS_NOT_PROCESSED = 6011
    # Authorization
    NOT_SELLER = 6012
    NOT_WINNER = 6013
    SELLER_CANNOT_BID = 6014
    INVALID_SIGNATURE = 6015
    # Bids
    BID_AUCTION_MISMATCH = 6016
    BID_ALREADY_PROCESSED = 6017
    INVALID_BID_CIPHERTEXT = 6018
    # Input
    TITLE_TOO_LONG = 6019
    DESCRIPTION_TOO_LONG = 6020
    INVALID_RESERVE_PRICE = 6021
    ACCOUNT_ALREADY_EXISTS = 6022
    # Cryptography
    ENCRYPTION_FAILED = 6023
    COMPARISON_FAILED = 6024
    ATTESTATION_VERIFICATION_FAILED = 6025
    INVALID_DECRYPTION_PROOF = 6026
    # Accounts / staleness
    WINNER_NOT_SET = 6027
    LEADER_MISMATCH = 6028
    ALLOWANCE_MISMATCH = 6029
    HANDLE_MISMATCH = 6030
    ACCOUNT_NOT_FOUND = 6031
    INSUFFICIENT_FUNDS = 6032
    UNKNOWN_INSTRUCTION = 6033


class InstructionError(Exception):
    """A transaction was rejected by the program."""

    def __init__(self, code: ProgramError, message: str = "", account: Optional[bytes] = None):
        self.code = code
        self.message = message or code.name.lower().replace("_", " ")
        self.account = account
        super().__init__(f"{code.name} ({int(code)}): {self.message}")


# =============================================================================
# Events and Receipts
# =============================================================================


@dataclass(frozen=True)
class LedgerEvent:
    """An event emitted by a committed instruction."""
    name: str
    auction: bytes
    timestamp: int
    data: Dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class TransactionReceipt:
    """Outcome of a committed transaction."""
    instruction: str
    digest: bytes
    slot: int
    events: List[LedgerEvent] = field(default_factory=list)
    created: Optional[bytes] = None  # address of a record the instruction created


# =============================================================================
# Client Interface
# =============================================================================


class LedgerClient(ABC):
    """Read and submit surface of the ledger runtime."""

    @abstractmethod
    async def get_time(self) -> int:
        """Ledger clock, Unix seconds."""

    @abstractmethod
    async def get_auction(self, address: bytes) -> Optional[Auction]:
        ...

    @abstractmethod
    async def get_bid(self, address: bytes) -> Optional[Bid]:
        ...

    @abstractmethod
    async def get_auctions(
        self,
        seller: Optional[bytes] = None,
        state: Optional[AuctionState] = None,
    ) -> List[Auction]:
        ...

    @abstractmethod
    async def get_bids(
        self,
        auction: Optional[bytes] = None,
        bidder: Optional[bytes] = None,
        processed: Optional[bool] = None,
    ) -> List[Bid]:
        ...

    @abstractmethod
    async def submit(self, transaction: Transaction) -> TransactionReceipt:
        """
        Execute a signed transaction atomically.

        Raises:
            InstructionError: the program rejected the instruction
            ConnectionError: transport failure
        """


__all__ = [
    "ProgramError",
    "InstructionError",
    "LedgerEvent",
    "TransactionReceipt",
    "LedgerClient",
]
