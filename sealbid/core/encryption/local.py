"""
Local encryption service - in-process stand-in for the confidential
compute service.

Holds every plaintext behind a handle and exposes two surfaces:

Client side (async, what the coordinator calls):
    encrypt(amount)                      -> AES-GCM ciphertext
    decrypt_with_proof(handle, ...)      -> plaintext + attestation

Program side (sync, what the ledger calls inside an instruction):
    register_ciphertext(ciphertext, owner) -> handle
    ge(a, b) -> encrypted bool handle
    select(cond, a, b) -> a or b
    allow(handle, address)

Ciphertext layout: nonce (12) | tag (16) | AES-GCM(le128 amount) (16).
"""

import asyncio
import secrets
from typing import Dict, Optional, Set

from Crypto.Cipher import AES
from Crypto.Random import get_random_bytes

from sealbid.core.encryption.service import (
    Attestation,
    DecryptionResult,
    EncryptionService,
    EncryptionServiceError,
    attestation_digest,
    decrypt_challenge,
)
from sealbid.core.identity import SignFn
from sealbid.crypto import (
    KeyPair,
    generate_keypair,
    recover_signer_address,
    sha256,
    short_hex,
    sign,
)
from sealbid.crypto.codec import U128_MAX, U64_MAX, decode_u128, encode_u128, format_handle
from sealbid.utils.logger import get_logger

logger = get_logger("encryption")

NONCE_SIZE = 12
TAG_SIZE = 16
CIPHERTEXT_SIZE = NONCE_SIZE + TAG_SIZE + 16


class LocalEncryptionService(EncryptionService):
    """
    Reference encryption service.

    Attributes:
        attestor: Keypair whose signatures the ledger trusts
        latency: Simulated delay (seconds) on client-side calls
    """

    def __init__(
        self,
        key: Optional[bytes] = None,
        attestor: Optional[KeyPair] = None,
        latency: float = 0.0,
    ):
        self._key = key or get_random_bytes(32)
        self.attestor = attestor or generate_keypair()
        self.latency = latency

        self._values: Dict[int, int] = {}       # handle -> plaintext
        self._booleans: Dict[int, bool] = {}    # ebool handle -> value
        self._acl: Dict[int, Set[bytes]] = {}   # handle -> allowed addresses

    @property
    def public_key(self) -> bytes:
        return self.attestor.public_key

    # =========================================================================
    # Client Side
    # =========================================================================

    async def encrypt(self, amount: int) -> bytes:
        await self._delay()
        if isinstance(amount, bool) or not isinstance(amount, int):
            raise EncryptionServiceError(f"amount must be an integer, got {type(amount).__name__}")
        if amount < 0 or amount > U64_MAX:
            raise EncryptionServiceError(f"amount out of u64 range: {amount}")

        nonce = get_random_bytes(NONCE_SIZE)
        cipher = AES.new(self._key, AES.MODE_GCM, nonce=nonce)
        body, tag = cipher.encrypt_and_digest(encode_u128(amount))
        return nonce + tag + body

    async def decrypt_with_proof(
        self,
        handle: int,
        address: bytes,
        sign_fn: SignFn,
    ) -> DecryptionResult:
        await self._delay()

        if handle not in self._values:
            raise EncryptionServiceError(f"unknown handle {format_handle(handle)}")

        challenge = decrypt_challenge(handle, address)
        signature = await sign_fn(challenge)
        if not recover_signer_address(sha256(challenge), signature, address):
            raise EncryptionServiceError(f"challenge signature does not match 0x{address.hex()}")

        if not self.is_allowed(handle, address):
            raise EncryptionServiceError(
                f"0x{address.hex()} has no decrypt permission for handle {format_handle(handle)}"
            )

        plaintext = self._values[handle]
        handle_bytes = encode_u128(handle)
        plaintext_bytes = encode_u128(plaintext)
        attestation = Attestation(
            handle=handle_bytes,
            plaintext=plaintext_bytes,
            address=address,
            signature=sign(attestation_digest(handle_bytes, plaintext_bytes, address), self.attestor.private_key),
            attestor=self.attestor.public_key,
        )
        logger.debug(f"Attested decryption of {format_handle(handle)} for {short_hex(address)}")
        return DecryptionResult(plaintext=plaintext, handle=handle, proof=[attestation])

    # =========================================================================
    # Program Side
    # =========================================================================

    def register_ciphertext(self, ciphertext: bytes, owner: bytes) -> int:
        """Decrypt a client ciphertext into a new handle owned by `owner`."""
        if len(ciphertext) != CIPHERTEXT_SIZE:
            raise EncryptionServiceError(
                f"ciphertext must be {CIPHERTEXT_SIZE} bytes, got {len(ciphertext)}"
            )
        nonce = ciphertext[:NONCE_SIZE]
        tag = ciphertext[NONCE_SIZE:NONCE_SIZE + TAG_SIZE]
        body = ciphertext[NONCE_SIZE + TAG_SIZE:]

        cipher = AES.new(self._key, AES.MODE_GCM, nonce=nonce)
        try:
            plaintext = decode_u128(cipher.decrypt_and_verify(body, tag))
        except ValueError as exc:
            raise EncryptionServiceError("ciphertext failed authentication") from exc

        handle = self._new_handle()
        self._values[handle] = plaintext
        self._acl[handle] = {owner}
        return handle

    def ge(self, a: int, b: int) -> int:
        """Encrypted a >= b, returned as a boolean handle."""
        if a not in self._values or b not in self._values:
            raise EncryptionServiceError("comparison on unknown handle")
        result = self._new_handle()
        self._booleans[result] = self._values[a] >= self._values[b]
        return result

    def select(self, condition: int, if_true: int, if_false: int) -> int:
        """Encrypted ternary; yields one of the two input handles and consumes `condition`."""
        if condition not in self._booleans:
            raise EncryptionServiceError("select on unknown boolean handle")
        return if_true if self._booleans.pop(condition) else if_false

    def allow(self, handle: int, address: bytes) -> None:
        if handle not in self._values:
            raise EncryptionServiceError(f"unknown handle {format_handle(handle)}")
        self._acl.setdefault(handle, set()).add(address)

    def is_allowed(self, handle: int, address: bytes) -> bool:
        return address in self._acl.get(handle, set())

    # =========================================================================
    # Internals
    # =========================================================================

    def _new_handle(self) -> int:
        while True:
            handle = secrets.randbelow(U128_MAX) + 1
            if handle not in self._values and handle not in self._booleans:
                return handle

    async def _delay(self) -> None:
        if self.latency:
            await asyncio.sleep(self.latency)


__all__ = ["LocalEncryptionService", "CIPHERTEXT_SIZE"]
