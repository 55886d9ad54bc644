"""Encryption service interface, gateway facade and the local reference service"""
from sealbid.core.encryption.service import (
    Attestation,
    DecryptionResult,
    EncryptionService,
    EncryptionServiceError,
    attestation_digest,
    decrypt_challenge,
)
from sealbid.core.encryption.local import CIPHERTEXT_SIZE, LocalEncryptionService
from sealbid.core.encryption.gateway import EncryptionGateway

__all__ = [
    "Attestation",
    "DecryptionResult",
    "EncryptionService",
    "EncryptionServiceError",
    "attestation_digest",
    "decrypt_challenge",
    "CIPHERTEXT_SIZE",
    "LocalEncryptionService",
    "EncryptionGateway",
]
