"""Ledger client interface, signed transactions, repository and the in-memory program"""
from sealbid.core.ledger.base import (
    InstructionError,
    LedgerClient,
    LedgerEvent,
    ProgramError,
    TransactionReceipt,
)
from sealbid.core.ledger.transaction import Transaction, encode_arg, decode_bytes_arg
from sealbid.core.ledger.repository import AuctionRepository, translate_instruction_error
from sealbid.core.ledger.memory import InMemoryLedger

__all__ = [
    "InstructionError",
    "LedgerClient",
    "LedgerEvent",
    "ProgramError",
    "TransactionReceipt",
    "Transaction",
    "encode_arg",
    "decode_bytes_arg",
    "AuctionRepository",
    "translate_instruction_error",
    "InMemoryLedger",
]
