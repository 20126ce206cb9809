"""Integration tests for the balance check worker."""

import asyncio
from decimal import Decimal
from unittest.mock import AsyncMock

import pytest

from relay.config.settings import ProviderConfig
from relay.models.enums import AddressStatus
from relay.services.balance_scheduler import BalanceScheduler
from relay.services.providers.base import ChainAdapter, FundRecord, HttpProvider
from relay.services.providers.registry import ProviderRegistry
from relay.utils.exceptions import (
    ProviderResponseInvalid,
    ProviderUnavailable,
    StoreUnavailable,
)


T0 = 1_700_000_000


class ScriptedAdapter(HttpProvider, ChainAdapter):
    """Answers balances from a dict; raises `error` when set."""

    name = "scripted"

    def __init__(self) -> None:
        super().__init__()
        self.balances: dict[str, Decimal] = {}
        self.funds: list[FundRecord] = []
        self.error: Exception | None = None
        self.calls: list[str] = []

    async def fetch_balance(self, address):
        self.calls.append(address)
        if self.error is not None:
            raise self.error
        return self.balances.get(address, Decimal("0"))

    async def fetch_funds(self, address_id, address):
        return self.funds


@pytest.fixture
def adapter():
    return ScriptedAdapter()


@pytest.fixture
def registry(adapter):
    registry = ProviderRegistry()
    registry.register("scripted", adapter)
    registry.bind("btc", "scripted")
    registry.initialize({"scripted": ProviderConfig()})
    return registry


@pytest.fixture
def worker(registry, seeded):
    return BalanceScheduler(registry, seeded, default_limit=Decimal("1000"))


class TestProcess:
    """Tests for single balance checks."""

    @pytest.mark.asyncio
    async def test_increase_resets_wait(self, worker, seeded, adapter):
        """A grown balance is stored and the wait reset to the minimum."""
        address = await seeded.allocate_address("btc", "shop1")
        await seeded.reschedule_after_check(address.id, reset_to_minimum=False)
        adapter.balances[address.value] = Decimal("0.01")

        outcome = await worker.process(address.id)

        assert outcome.increased
        stored = await seeded.get(address.id)
        assert stored.balance == Decimal("0.01")
        assert stored.wait_check == 300
        assert stored.next_check == T0 + 300 + 600 + 300
        assert worker.processed == 1

    @pytest.mark.asyncio
    async def test_unchanged_backs_off(self, worker, seeded):
        """An unchanged balance doubles the wait."""
        address = await seeded.allocate_address("btc", "shop1")

        outcome = await worker.process(address.id)

        assert not outcome.increased
        stored = await seeded.get(address.id)
        assert stored.wait_check == 600
        assert stored.next_check == T0 + 900
        assert stored.last_check == T0

    @pytest.mark.asyncio
    async def test_close_with_default_limit(self, worker, seeded, adapter):
        """The worker closes addresses reaching the account limit."""
        address = await seeded.allocate_address("btc", "shop1")
        adapter.balances[address.value] = Decimal("0.05")

        outcome = await worker.process(address.id)

        assert outcome.closed
        assert (await seeded.get(address.id)).status == AddressStatus.CLOSED

    @pytest.mark.asyncio
    async def test_coin_limit_overrides_default(self, seeded, adapter):
        """A per-coin limit replaces the account limit."""
        registry = ProviderRegistry()
        registry.register("scripted", adapter)
        registry.bind("btc", "scripted", limit=Decimal("5000"))
        registry.initialize({})
        worker = BalanceScheduler(registry, seeded, default_limit=Decimal("1000"))
        address = await seeded.allocate_address("btc", "shop1")
        adapter.balances[address.value] = Decimal("0.05")

        outcome = await worker.process(address.id)

        assert not outcome.closed

    @pytest.mark.parametrize(
        "error",
        [
            ProviderUnavailable("scripted", "HTTP 502"),
            ProviderResponseInvalid("scripted", "garbage"),
        ],
    )
    @pytest.mark.asyncio
    async def test_provider_failure_leaves_schedule(self, worker, seeded, adapter, error):
        """Provider failures drop the check without touching the address."""
        address = await seeded.allocate_address("btc", "shop1")
        adapter.error = error

        assert await worker.process(address.id) is None

        stored = await seeded.get(address.id)
        assert stored.next_check == address.next_check
        assert stored.wait_check == address.wait_check
        assert stored.last_check == 0
        assert worker.failed == 1

    @pytest.mark.asyncio
    async def test_unbound_coin(self, worker, seeded, adapter):
        """Addresses of coins without an adapter are dropped."""
        address = await seeded.allocate_address("eth", "shop1")

        assert await worker.process(address.id) is None
        assert adapter.calls == []

    @pytest.mark.asyncio
    async def test_locked_skipped(self, worker, seeded, adapter):
        """Locked addresses are never queried."""
        address = await seeded.allocate_address("btc", "shop1")
        await seeded.lock(address.id)

        assert await worker.process(address.id) is None
        assert adapter.calls == []

    @pytest.mark.asyncio
    async def test_missing_address(self, worker):
        """A vanished address is skipped."""
        assert await worker.process(999) is None

    @pytest.mark.asyncio
    async def test_unexpected_error_propagates(self, worker, seeded, adapter):
        """Programming errors are not swallowed by process()."""
        address = await seeded.allocate_address("btc", "shop1")
        adapter.error = ZeroDivisionError()

        with pytest.raises(ZeroDivisionError):
            await worker.process(address.id)

    @pytest.mark.asyncio
    async def test_sync_funds(self, worker, seeded, adapter):
        """Funding history is stored once."""
        address = await seeded.allocate_address("btc", "shop1")
        adapter.funds = [
            FundRecord(seen=T0 - 100, address_id=address.id, amount=Decimal("0.01")),
        ]

        assert await worker.sync_funds(address.id) == 1
        assert await worker.sync_funds(address.id) == 0


class TestQueue:
    """Tests for the work queue and worker loop."""

    @pytest.mark.asyncio
    async def test_enqueue_deduplicates(self, worker):
        """An address waits in the queue at most once."""
        assert worker.enqueue(1)
        assert not worker.enqueue(1)
        assert worker.enqueue_many([1, 2, 3]) == 2
        assert worker.queue_size == 3

    @pytest.mark.asyncio
    async def test_worker_drains_queue(self, worker, seeded, adapter):
        """The worker checks every queued address."""
        first = await seeded.allocate_address("btc", "shop1")
        second = await seeded.allocate_address("btc", "shop2")
        adapter.balances[second.value] = Decimal("0.02")

        worker.start()
        assert worker.running
        worker.enqueue_many([first.id, second.id])
        await asyncio.wait_for(worker.drain(), timeout=5)
        await worker.stop()

        assert not worker.running
        assert worker.processed == 2
        assert adapter.calls == [first.value, second.value]
        assert (await seeded.get(second.id)).balance == Decimal("0.02")

    @pytest.mark.asyncio
    async def test_worker_survives_store_errors(self, worker, seeded, adapter):
        """A store failure is logged and the loop continues."""
        address = await seeded.allocate_address("btc", "shop1")
        real_get = seeded.get
        seeded.get = AsyncMock(side_effect=[StoreUnavailable("down"), await real_get(address.id)])

        worker.start()
        worker.enqueue(address.id)
        await asyncio.wait_for(worker.drain(), timeout=5)
        worker.enqueue(address.id)
        await asyncio.wait_for(worker.drain(), timeout=5)
        await worker.stop()

        assert worker.failed == 1
        assert worker.processed == 1

    @pytest.mark.asyncio
    async def test_worker_survives_unexpected_errors(self, worker, seeded, adapter):
        """Unexpected errors are logged and the loop continues."""
        address = await seeded.allocate_address("btc", "shop1")
        adapter.error = ZeroDivisionError()

        worker.start()
        worker.enqueue(address.id)
        await asyncio.wait_for(worker.drain(), timeout=5)
        assert worker.running
        await worker.stop()

        assert worker.failed == 1

    @pytest.mark.asyncio
    async def test_stop_without_start(self, worker):
        """Stopping an idle scheduler is a no-op."""
        await worker.stop()

        assert not worker.running
