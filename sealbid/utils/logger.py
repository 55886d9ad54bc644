"""
Centralized logging configuration for Sealbid.

One "sealbid" root logger with a colorlog console handler and an optional
plain file handler. Subsystems log through children of it:

    sealbid.coordinator   sealbid.processor   sealbid.finalization
    sealbid.settlement    sealbid.repository  sealbid.ledger
    sealbid.encryption

Work on a single auction goes through auction_logger(), which tags every
line with the auction's short address so interleaved lifecycles from
concurrent callers stay readable in one log.
"""

import logging
import sys
from pathlib import Path
from typing import Optional, Union

import colorlog

ROOT = "sealbid"
LOG_FILE = "sealbid.log"

CONSOLE_FORMAT = "%(log_color)s%(asctime)s [%(name)s] %(levelname)-8s%(reset)s %(message)s"
FILE_FORMAT = "%(asctime)s [%(name)s] %(levelname)-8s %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

LOG_COLORS = {
    "DEBUG": "cyan",
    "INFO": "green",
    "WARNING": "yellow",
    "ERROR": "red",
    "CRITICAL": "red,bg_white",
}


def _resolve_level(level: Union[int, str]) -> int:
    """Accept logging constants or names such as "debug"."""
    if isinstance(level, int):
        return level
    resolved = logging.getLevelName(level.upper())
    if not isinstance(resolved, int):
        raise ValueError(f"unknown log level: {level}")
    return resolved


class SealbidLogger:
    """Owns the handlers on the sealbid root logger"""

    _initialized = False
    _log_dir: Optional[Path] = None

    @classmethod
    def setup(
        cls,
        level: Union[int, str] = logging.INFO,
        log_dir: Optional[str] = None,
        log_to_file: bool = True,
    ):
        """
        Install console (and optionally file) handlers once.

        Args:
            level: Logging level, as a constant or a name
            log_dir: Directory for sealbid.log. If None, uses ./logs
            log_to_file: Whether to write logs to file
        """
        if cls._initialized:
            return

        level = _resolve_level(level)
        root_logger = logging.getLogger(ROOT)
        root_logger.setLevel(level)
        root_logger.handlers.clear()
        root_logger.addHandler(cls._console_handler(level))

        if log_to_file:
            cls._log_dir = Path(log_dir) if log_dir else Path("logs")
            cls._log_dir.mkdir(parents=True, exist_ok=True)
            root_logger.addHandler(cls._file_handler(cls._log_dir / LOG_FILE, level))

        cls._initialized = True

    @staticmethod
    def _console_handler(level: int) -> logging.Handler:
        handler = colorlog.StreamHandler(sys.stdout)
        handler.setLevel(level)
        handler.setFormatter(colorlog.ColoredFormatter(CONSOLE_FORMAT, datefmt=DATE_FORMAT, log_colors=LOG_COLORS))
        return handler

    @staticmethod
    def _file_handler(path: Path, level: int) -> logging.Handler:
        handler = logging.FileHandler(path)
        handler.setLevel(level)
        handler.setFormatter(logging.Formatter(FILE_FORMAT, datefmt=DATE_FORMAT))
        return handler

    @classmethod
    def get_logger(cls, name: str) -> logging.Logger:
        """
        Get a logger for a specific subsystem.

        Args:
            name: Subsystem name (e.g., 'processor', 'settlement')
        """
        if not cls._initialized:
            # Library use: console only, the CLI opts into the file handler
            cls.setup(log_to_file=False)

        return logging.getLogger(f"{ROOT}.{name}")

    @classmethod
    def reset(cls):
        """Close and drop handlers so setup() can run again with new options."""
        root_logger = logging.getLogger(ROOT)
        for handler in root_logger.handlers:
            handler.close()
        root_logger.handlers.clear()
        cls._initialized = False
        cls._log_dir = None


class AuctionLogAdapter(logging.LoggerAdapter):
    """Prefixes each message with the auction it concerns."""

    def process(self, msg, kwargs):
        return f"[auction {self.extra['auction']}] {msg}", kwargs


# Convenience functions
def get_logger(name: str) -> logging.Logger:
    """Get a logger for a specific subsystem"""
    return SealbidLogger.get_logger(name)


def auction_logger(name: str, auction_address: bytes) -> AuctionLogAdapter:
    """Subsystem logger tagged with `auction_address` (shortened)."""
    return AuctionLogAdapter(get_logger(name), {"auction": f"0x{auction_address[:4].hex()}..."})


def setup_logging(
    level: Union[int, str] = logging.INFO,
    log_dir: Optional[str] = None,
    log_to_file: bool = True,
):
    """Replace any existing handlers with a fresh configuration"""
    SealbidLogger.reset()
    SealbidLogger.setup(level=level, log_dir=log_dir, log_to_file=log_to_file)
