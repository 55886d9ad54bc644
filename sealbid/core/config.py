"""
Coordinator configuration for Sealbid.

Defines ledger/program endpoints, auction limits, and suspension-point
timeouts. Values come from defaults, overlaid by SEALBID_* environment
variables (optionally loaded from a .env file).
"""

import os
from pathlib import Path
from typing import Dict, Optional

from dotenv import load_dotenv
from pydantic import BaseModel, field_validator, model_validator

from sealbid.crypto import hex_to_bytes

ENV_PREFIX = "SEALBID_"

# Program ids for the reference collaborators
DEFAULT_PROGRAM_ID = "0x5ea1b1d000000000000000000000000000000001"
DEFAULT_ENCRYPTION_PROGRAM_ID = "0x5ea1b1d0000000000000000000000000000e0c01"


class SealbidConfig(BaseModel):
    """Coordinator-wide configuration parameters"""

    # Ledger
    ledger_endpoint: str = "memory://"
    program_id: str = DEFAULT_PROGRAM_ID
    encryption_program_id: str = DEFAULT_ENCRYPTION_PROGRAM_ID

    # Auction limits (seconds / UTF-8 bytes)
    min_auction_duration: int = 60
    max_auction_duration: int = 604_800  # 7 days
    max_title_length: int = 64
    max_description_length: int = 256

    # Suspension point bounds (seconds)
    signature_timeout: float = 30.0
    submit_timeout: float = 60.0
    decrypt_timeout: float = 60.0

    # Re-read-and-retry budget for StaleState
    stale_retry_limit: int = 1

    # Logging; log_dir None means <data dir>/logs for the CLI
    log_level: str = "INFO"
    log_dir: Optional[Path] = None

    @field_validator("program_id", "encryption_program_id")
    @classmethod
    def _check_program_id(cls, value: str) -> str:
        try:
            raw = hex_to_bytes(value)
        except ValueError as exc:
            raise ValueError(f"program id is not hex: {value}") from exc
        if len(raw) != 20:
            raise ValueError(f"program id must be 20 bytes, got {len(raw)}")
        return value.lower()

    @field_validator("signature_timeout", "submit_timeout", "decrypt_timeout")
    @classmethod
    def _check_timeout(cls, value: float) -> float:
        if value <= 0:
            raise ValueError("timeouts must be positive")
        return value

    @field_validator("stale_retry_limit")
    @classmethod
    def _check_retry_limit(cls, value: int) -> int:
        if value < 0:
            raise ValueError("stale_retry_limit cannot be negative")
        return value

    @field_validator("log_level")
    @classmethod
    def _check_log_level(cls, value: str) -> str:
        value = value.upper()
        if value not in ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"):
            raise ValueError(f"unknown log level: {value}")
        return value

    @model_validator(mode="after")
    def _check_durations(self) -> "SealbidConfig":
        if self.min_auction_duration <= 0:
            raise ValueError("min_auction_duration must be positive")
        if self.min_auction_duration >= self.max_auction_duration:
            raise ValueError("min_auction_duration must be below max_auction_duration")
        if self.max_title_length <= 0 or self.max_description_length <= 0:
            raise ValueError("text length caps must be positive")
        return self

    @property
    def program_id_bytes(self) -> bytes:
        return hex_to_bytes(self.program_id)

    @property
    def encryption_program_id_bytes(self) -> bytes:
        return hex_to_bytes(self.encryption_program_id)


def _env_overrides(environ: Dict[str, str]) -> Dict[str, str]:
    """Collect SEALBID_<FIELD> variables that name a config field."""
    overrides = {}
    for name in SealbidConfig.model_fields:
        key = ENV_PREFIX + name.upper()
        if key in environ:
            overrides[name] = environ[key]
    return overrides


def load_config(env_file: Optional[str] = None, **overrides) -> SealbidConfig:
    """
    Load configuration from the environment.

    Args:
        env_file: Optional .env file loaded before reading the environment
        **overrides: Explicit values that win over the environment

    Returns:
        SealbidConfig instance

    Raises:
        pydantic.ValidationError: if any value is invalid
    """
    if env_file:
        load_dotenv(env_file, override=False)

    values = _env_overrides(dict(os.environ))
    values.update(overrides)
    return SealbidConfig(**values)


__all__ = [
    "SealbidConfig",
    "load_config",
    "DEFAULT_PROGRAM_ID",
    "DEFAULT_ENCRYPTION_PROGRAM_ID",
]
