"""
Shared fixtures: a manual clock, the in-memory collaborators, identities.

Coordinator calls are coroutines; tests drive them with asyncio.run.
"""

import pytest

from sealbid.core.auction.coordinator import AuctionCoordinator
from sealbid.core.config import SealbidConfig
from sealbid.core.encryption.local import LocalEncryptionService
from sealbid.core.identity import SigningIdentity
from sealbid.core.ledger.memory import InMemoryLedger

START_TIME = 1_700_000_000
RESERVE = 1_000_000_000
DURATION = 3600
FUNDING = 10**12


class ManualClock:
    """Unix-seconds clock that only moves when told to."""

    def __init__(self, now: int = START_TIME):
        self.now = now

    def __call__(self) -> int:
        return self.now

    def advance(self, seconds: int):
        self.now += seconds


@pytest.fixture
def clock():
    return ManualClock()


@pytest.fixture
def config():
    return SealbidConfig()


@pytest.fixture
def service():
    return LocalEncryptionService()


@pytest.fixture
def ledger(service, config, clock):
    return InMemoryLedger(service, config=config, clock=clock)


@pytest.fixture
def coordinator(ledger, service, config):
    return AuctionCoordinator(ledger, service, config=config)


@pytest.fixture
def seller():
    return SigningIdentity.generate("seller")


@pytest.fixture
def alice(ledger):
    identity = SigningIdentity.generate("alice")
    ledger.fund(identity.address, FUNDING)
    return identity


@pytest.fixture
def bob(ledger):
    identity = SigningIdentity.generate("bob")
    ledger.fund(identity.address, FUNDING)
    return identity
