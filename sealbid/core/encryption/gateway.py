"""
Encryption gateway - the coordinator's only door to the encryption service.

Adds what the raw service surface lacks: integer-only amount checks,
bounded suspension points, the caller's signing identity threaded into the
decrypt challenge, and translation of service failures into
EncryptionFailure.
"""

from sealbid.core.config import SealbidConfig
from sealbid.core.encryption.service import (
    DecryptionResult,
    EncryptionService,
    EncryptionServiceError,
)
from sealbid.core.errors import EncryptionFailure, InvalidInput, NetworkOrLedgerError
from sealbid.core.identity import SigningIdentity
from sealbid.crypto import short_hex
from sealbid.crypto.codec import format_handle
from sealbid.utils.logger import get_logger
from sealbid.utils.timeouts import bounded
from sealbid.utils.validation import validate_amount

logger = get_logger("encryption")


class EncryptionGateway:
    """Stateless facade over an EncryptionService."""

    def __init__(self, service: EncryptionService, config: SealbidConfig):
        self.service = service
        self.config = config

    async def encrypt(self, amount: int) -> bytes:
        """
        Encrypt a minor-unit amount.

        Raises:
            InvalidInput: amount is not an integer in u64 range
            EncryptionFailure: the service refused
            Timeout: no answer within decrypt_timeout
        """
        action = "encrypt"
        valid, err = validate_amount(amount)
        if not valid:
            raise InvalidInput(action, err)

        try:
            ciphertext = await bounded(
                self.service.encrypt(amount),
                self.config.decrypt_timeout,
                action,
            )
        except EncryptionServiceError as exc:
            raise EncryptionFailure(action, str(exc)) from exc
        except (ConnectionError, OSError) as exc:
            raise NetworkOrLedgerError(action, f"encryption service unreachable: {exc}") from exc

        logger.debug(f"Encrypted amount into {len(ciphertext)}-byte ciphertext")
        return ciphertext

    async def decrypt_with_proof(self, handle: int, identity: SigningIdentity) -> DecryptionResult:
        """
        Decrypt a handle for `identity`, returning plaintext and proof.

        The identity's signature over the service challenge is bounded by
        signature_timeout, the whole exchange by decrypt_timeout.
        """
        action = "decryptWithProof"

        async def sign_challenge(message: bytes) -> bytes:
            return await bounded(
                identity.sign_message(message),
                self.config.signature_timeout,
                f"{action} (signature)",
            )

        try:
            result = await bounded(
                self.service.decrypt_with_proof(handle, identity.address, sign_challenge),
                self.config.decrypt_timeout,
                action,
            )
        except EncryptionServiceError as exc:
            raise EncryptionFailure(action, str(exc)) from exc
        except (ConnectionError, OSError) as exc:
            raise NetworkOrLedgerError(action, f"encryption service unreachable: {exc}") from exc

        if result.handle != handle:
            raise EncryptionFailure(
                action,
                f"service answered for handle {format_handle(result.handle)}, "
                f"requested {format_handle(handle)}",
            )
        if not result.proof:
            raise EncryptionFailure(action, "service returned no proof material")

        logger.debug(f"Decrypted {format_handle(handle)} for {short_hex(identity.address)}")
        return result


__all__ = ["EncryptionGateway"]
