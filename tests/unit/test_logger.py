"""
Unit tests for logging setup and auction-tagged loggers.
"""

import logging

import pytest

from sealbid.utils.logger import SealbidLogger, auction_logger, get_logger, setup_logging


@pytest.fixture(autouse=True)
def fresh_logging():
    SealbidLogger.reset()
    yield
    SealbidLogger.reset()


class TestSetup:

    def test_level_by_name(self, tmp_path):
        setup_logging(level="warning", log_dir=str(tmp_path))
        assert logging.getLogger("sealbid").level == logging.WARNING
        assert (tmp_path / "sealbid.log").exists()

    def test_unknown_level(self):
        with pytest.raises(ValueError):
            setup_logging(level="chatty", log_to_file=False)

    def test_reset_drops_handlers(self, tmp_path):
        setup_logging(log_dir=str(tmp_path))
        assert len(logging.getLogger("sealbid").handlers) == 2
        SealbidLogger.reset()
        assert logging.getLogger("sealbid").handlers == []

    def test_library_use_is_console_only(self):
        get_logger("processor")
        handlers = logging.getLogger("sealbid").handlers
        assert len(handlers) == 1
        assert not isinstance(handlers[0], logging.FileHandler)


class TestAuctionLogger:

    def test_messages_tagged_with_auction(self, caplog):
        log = auction_logger("settlement", bytes.fromhex("deadbeef") + b"\x00" * 16)
        with caplog.at_level(logging.INFO, logger="sealbid"):
            log.info("Settled")

        record = caplog.records[-1]
        assert record.name == "sealbid.settlement"
        assert record.getMessage() == "[auction 0xdeadbeef...] Settled"
