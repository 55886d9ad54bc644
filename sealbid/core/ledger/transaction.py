"""
Transaction - a signed single-instruction envelope.

Wire shape (canonical JSON, sorted keys, no whitespace):

    {"args": {...}, "instruction": "<name>", "signer": "0x<20 bytes>"}

Bytes arguments travel as 0x-prefixed hex. The signer signs
sha256(signing_payload); the ledger recovers the signer address from the
signature and rejects the transaction if it does not match.
"""

import json
from dataclasses import dataclass, field
from typing import Any, Dict

from sealbid.crypto import bytes_to_hex, hex_to_bytes, sha256


def encode_arg(value: Any) -> Any:
    """Convert an argument to its JSON-compatible wire form."""
    if isinstance(value, (bytes, bytearray)):
        return bytes_to_hex(bytes(value))
    if isinstance(value, dict):
        return {key: encode_arg(item) for key, item in value.items()}
    if isinstance(value, (list, tuple)):
        return [encode_arg(item) for item in value]
    if hasattr(value, "to_dict"):
        return encode_arg(value.to_dict())
    return value


def decode_bytes_arg(args: Dict[str, Any], name: str) -> bytes:
    """Read a hex-encoded bytes argument."""
    value = args.get(name)
    if not isinstance(value, str):
        raise ValueError(f"argument {name} must be hex string")
    return hex_to_bytes(value)


@dataclass
class Transaction:
    """
    A single instruction signed by one identity.

    Attributes:
        instruction: Program instruction name (e.g. "placeBid")
        args: JSON-compatible arguments
        signer: 20-byte address of the signing identity
        signature: 64-byte signature over sha256(signing_payload())
    """
    instruction: str
    args: Dict[str, Any]
    signer: bytes
    signature: bytes = field(default=b"", repr=False)

    def signing_payload(self) -> bytes:
        """Canonical bytes the signer signs."""
        body = {
            "args": self.args,
            "instruction": self.instruction,
            "signer": bytes_to_hex(self.signer),
        }
        return json.dumps(body, sort_keys=True, separators=(",", ":")).encode("utf-8")

    def digest(self) -> bytes:
        return sha256(self.signing_payload())


__all__ = ["Transaction", "encode_arg", "decode_bytes_arg"]
