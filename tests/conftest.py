"""Pytest configuration and shared fixtures for all tests."""

import os
import sys
from pathlib import Path

# Minimal environment for settings validation
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("RELAY_CONFIG", str(Path(__file__).parent / "relay.test.json"))
os.environ.setdefault("LOG_LEVEL", "DEBUG")

# Add project root to PYTHONPATH
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

from decimal import Decimal  # noqa: E402

import pytest  # noqa: E402
import pytest_asyncio  # noqa: E402

from relay.config.database import create_engine, create_session_maker, init_db  # noqa: E402
from relay.services.address_ledger import AddressLedger  # noqa: E402
from relay.services.exchange_rates import FixedRateLookup  # noqa: E402
from relay.services.transaction_ledger import TransactionLedger  # noqa: E402
from relay.utils.exceptions import KeyDerivationError  # noqa: E402


T0 = 1_700_000_000


class FakeClock:
    """Manual clock; sleep() advances time instead of waiting."""

    def __init__(self, start: float = T0) -> None:
        self.now = float(start)
        self.sleeps: list[float] = []

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds

    async def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.now += seconds


class FakeDeriver:
    """Derives '<coin>-addr-<index>'; can be told to fail."""

    def __init__(self) -> None:
        self.calls: list[tuple[str, int]] = []
        self.error: Exception | None = None

    async def derive_address(self, coin: str, index: int) -> str:
        self.calls.append((coin, index))
        if self.error is not None:
            raise self.error
        return f"{coin}-addr-{index}"


@pytest.fixture
def clock():
    """Fake clock starting at T0."""
    return FakeClock()


@pytest.fixture
def deriver():
    """Fake key-derivation collaborator."""
    return FakeDeriver()


@pytest.fixture
def rates():
    """Fixed fiat rates: 1 BTC = 20000, 1 ETH = 1500."""
    return FixedRateLookup({"btc": Decimal("20000"), "eth": Decimal("1500")})


@pytest_asyncio.fixture
async def engine():
    """Fresh in-memory SQLite database per test."""
    engine = create_engine("sqlite+aiosqlite:///:memory:", echo=False)
    await init_db(engine)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    """Session maker bound to the test database."""
    return create_session_maker(engine)


@pytest.fixture
def address_ledger(session_factory, deriver, rates, clock):
    """
    Address ledger with deterministic backoff.

    min=300, factor=2 (no jitter), max=86400.
    """
    return AddressLedger(
        session_factory,
        deriver=deriver,
        rate_lookup=rates,
        min_wait=300,
        factor=2.0,
        max_wait=86400,
        jitter=lambda factor: factor,
        clock=clock,
    )


@pytest.fixture
def transaction_ledger(session_factory, address_ledger, clock):
    """Transaction ledger with a 900 second TTL."""
    return TransactionLedger(session_factory, address_ledger, ttl=900, clock=clock)


@pytest_asyncio.fixture
async def seeded(address_ledger):
    """Store with coins btc and eth, accounts shop1 and shop2."""
    await address_ledger.register_coin("btc", "Bitcoin")
    await address_ledger.register_coin("eth", "Ethereum")
    await address_ledger.register_account("shop1")
    await address_ledger.register_account("shop2")
    return address_ledger


@pytest.fixture
def derivation_failure():
    """Error raised by a failing key-derivation collaborator."""
    return KeyDerivationError("hardware wallet offline")


@pytest_asyncio.fixture
async def file_session_factory(tmp_path):
    """File-backed SQLite database; every session gets its own connection."""
    engine = create_engine(f"sqlite+aiosqlite:///{tmp_path / 'relay.db'}", echo=False)
    await init_db(engine)
    yield create_session_maker(engine)
    await engine.dispose()
