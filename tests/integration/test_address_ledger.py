"""Integration tests for the address ledger (in-memory SQLite)."""

from decimal import Decimal
from unittest.mock import AsyncMock, patch

import pytest
from sqlalchemy.exc import InvalidRequestError

from relay.models.enums import AddressStatus
from relay.repositories.address_repository import AddressRepository
from relay.repositories.coin_repository import CoinRepository
from relay.repositories.incoming_repository import IncomingRepository
from relay.services.exchange_rates import StoredRateLookup
from relay.services.providers.base import FundRecord
from relay.utils.exceptions import (
    AddressNotFound,
    AllocationConflict,
    KeyDerivationError,
    UnknownAccount,
    UnknownCoin,
)


T0 = 1_700_000_000


class TestAllocation:
    """Tests for address allocation."""

    @pytest.mark.asyncio
    async def test_first_allocation(self, seeded, deriver):
        """The first address of a coin gets index 0 and the minimum wait."""
        address = await seeded.allocate_address("btc", "shop1")

        assert address.idx == 0
        assert address.value == "btc-addr-0"
        assert address.coin == "btc"
        assert address.status == AddressStatus.OPEN
        assert address.balance == Decimal("0")
        assert address.wait_check == 300
        assert address.next_check == T0 + 300
        assert address.valid_to is None
        assert deriver.calls == [("btc", 0)]

    @pytest.mark.asyncio
    async def test_open_address_reused(self, seeded, deriver):
        """A pair keeps its open address."""
        first = await seeded.allocate_address("btc", "shop1")
        second = await seeded.allocate_address("BTC", "shop1")

        assert second.id == first.id
        assert len(deriver.calls) == 1

    @pytest.mark.asyncio
    async def test_indices_are_per_coin(self, seeded):
        """Indices grow per coin across accounts."""
        a = await seeded.allocate_address("btc", "shop1")
        b = await seeded.allocate_address("btc", "shop2")
        c = await seeded.allocate_address("eth", "shop1")

        assert (a.idx, b.idx, c.idx) == (0, 1, 0)

    @pytest.mark.asyncio
    async def test_no_reuse_after_close(self, seeded):
        """A closed address is never handed out again."""
        first = await seeded.allocate_address("btc", "shop1")
        assert await seeded.close(first.id)

        second = await seeded.allocate_address("btc", "shop1")

        assert second.id != first.id
        assert second.idx == 1

    @pytest.mark.asyncio
    async def test_unknown_coin(self, seeded):
        """Allocation for an unknown coin fails."""
        with pytest.raises(UnknownCoin):
            await seeded.allocate_address("xmr", "shop1")

    @pytest.mark.asyncio
    async def test_unknown_account(self, seeded):
        """Allocation for an unknown account fails."""
        with pytest.raises(UnknownAccount):
            await seeded.allocate_address("btc", "nobody")

    @pytest.mark.asyncio
    async def test_derivation_failure_persists_nothing(self, seeded, deriver, derivation_failure):
        """A failed derivation aborts the allocation."""
        deriver.error = derivation_failure

        with pytest.raises(KeyDerivationError):
            await seeded.allocate_address("btc", "shop1")

        assert await seeded.list_addresses(include_locked=True) == []
        assert deriver.calls == [("btc", 0)]

    @pytest.mark.asyncio
    async def test_unexpected_derivation_error_wrapped(self, seeded, deriver):
        """Any collaborator failure surfaces as KeyDerivationError."""
        deriver.error = OSError("device unplugged")

        with pytest.raises(KeyDerivationError):
            await seeded.allocate_address("btc", "shop1")

    @pytest.mark.asyncio
    async def test_index_clash_is_allocation_conflict(self, seeded):
        """A unique index clash surfaces as AllocationConflict after retries."""
        first = await seeded.allocate_address("btc", "shop1")
        await seeded.close(first.id)

        with patch.object(AddressRepository, "max_index", AsyncMock(return_value=None)):
            with pytest.raises(AllocationConflict):
                await seeded.allocate_address("btc", "shop1")

        assert len(await seeded.list_addresses(coin="btc")) == 1

    @pytest.mark.asyncio
    async def test_stale_index_retried(self, seeded, deriver):
        """An index taken by a concurrent allocation is retried with the next one."""
        first = await seeded.allocate_address("btc", "shop1")
        await seeded.close(first.id)
        real_max_index = AddressRepository.max_index
        lookups = []

        async def stale_once(repo, coin_id):
            lookups.append(coin_id)
            if len(lookups) == 1:
                return None
            return await real_max_index(repo, coin_id)

        with patch.object(AddressRepository, "max_index", stale_once):
            address = await seeded.allocate_address("btc", "shop1")

        assert address.idx == 1
        assert address.value == "btc-addr-1"
        assert len(lookups) == 2
        assert deriver.calls == [("btc", 0), ("btc", 0), ("btc", 1)]
        assert [a.idx for a in await seeded.list_addresses(coin="btc")] == [0, 1]

    @pytest.mark.asyncio
    async def test_conflict_retried(self, seeded):
        """A transient conflict is retried."""
        real_allocate = seeded._allocate
        attempts = []

        async def flaky(session, coin, account, now):
            attempts.append(coin)
            if len(attempts) == 1:
                raise AllocationConflict(coin, 0)
            return await real_allocate(session, coin, account, now)

        seeded._allocate = flaky

        address = await seeded.allocate_address("btc", "shop1")

        assert len(attempts) == 2
        assert address.idx == 0


class TestBalanceChecks:
    """Tests for balance observations."""

    @pytest.mark.asyncio
    async def test_close_on_limit(self, seeded):
        """0.05 BTC at 20000 reaches a 1000 limit and closes the address."""
        address = await seeded.allocate_address("btc", "shop1")

        outcome = await seeded.record_check(address.id, Decimal("0.05"), Decimal("1000"))

        assert outcome.increased
        assert outcome.closed
        stored = await seeded.get(address.id)
        assert stored.status == AddressStatus.CLOSED
        assert stored.balance == Decimal("0.05")
        assert stored.valid_to is not None
        assert stored.last_check == T0

    @pytest.mark.asyncio
    async def test_below_limit_stays_open(self, seeded):
        """An address below the limit stays open."""
        address = await seeded.allocate_address("btc", "shop1")

        outcome = await seeded.record_check(address.id, Decimal("0.04"), Decimal("1000"))

        assert outcome.increased
        assert not outcome.closed
        assert (await seeded.get(address.id)).status == AddressStatus.OPEN

    @pytest.mark.asyncio
    async def test_balance_never_decreases(self, seeded, clock):
        """A lower observation keeps the stored balance."""
        address = await seeded.allocate_address("btc", "shop1")
        await seeded.record_check(address.id, Decimal("0.04"), Decimal("1000"))
        clock.advance(60)

        outcome = await seeded.record_check(address.id, Decimal("0.03"), Decimal("1000"))

        assert not outcome.increased
        stored = await seeded.get(address.id)
        assert stored.balance == Decimal("0.04")
        assert stored.last_check == T0 + 60

    @pytest.mark.asyncio
    async def test_unchanged_balance(self, seeded):
        """An equal observation is not an increase."""
        address = await seeded.allocate_address("btc", "shop1")

        outcome = await seeded.record_check(address.id, Decimal("0"), Decimal("1000"))

        assert not outcome.increased
        assert not outcome.closed

    @pytest.mark.asyncio
    async def test_increase_recorded_as_incoming(self, seeded, session_factory):
        """Each increase is stored as a funding event of the delta."""
        address = await seeded.allocate_address("btc", "shop1")
        await seeded.record_check(address.id, Decimal("0.01"), Decimal("1000"))
        await seeded.record_check(address.id, Decimal("0.03"), Decimal("1000"))

        async with session_factory() as session:
            funds = await IncomingRepository(session).find_by_address(address.id)

        assert [f.amount for f in funds] == [Decimal("0.01"), Decimal("0.02")]

    @pytest.mark.asyncio
    async def test_closed_address_still_tracked(self, seeded):
        """A closed address keeps receiving balance updates."""
        address = await seeded.allocate_address("btc", "shop1")
        await seeded.record_check(address.id, Decimal("0.05"), Decimal("1000"))

        outcome = await seeded.record_check(address.id, Decimal("0.06"), Decimal("1000"))

        assert outcome.increased
        assert not outcome.closed
        assert (await seeded.get(address.id)).balance == Decimal("0.06")

    @pytest.mark.asyncio
    async def test_missing_address(self, seeded):
        """Checks of unknown addresses fail."""
        with pytest.raises(AddressNotFound):
            await seeded.record_check(999, Decimal("1"), Decimal("1000"))


class TestScheduling:
    """Tests for poll scheduling."""

    @pytest.mark.asyncio
    async def test_pending_after_minimum_wait(self, seeded, clock):
        """A new address is due once the minimum wait has passed."""
        address = await seeded.allocate_address("btc", "shop1")

        assert await seeded.pending_addresses() == []
        clock.advance(300)
        assert await seeded.pending_addresses() == [address.id]

    @pytest.mark.asyncio
    async def test_locked_never_pending(self, seeded):
        """Locked addresses are not polled."""
        address = await seeded.allocate_address("btc", "shop1")
        await seeded.lock(address.id)

        assert await seeded.pending_addresses(now=T0 + 10**9) == []

    @pytest.mark.asyncio
    async def test_closed_still_pending(self, seeded):
        """Closed addresses keep being polled."""
        address = await seeded.allocate_address("btc", "shop1")
        await seeded.close(address.id)

        assert await seeded.pending_addresses(now=T0 + 300) == [address.id]

    @pytest.mark.asyncio
    async def test_reschedule_is_cumulative(self, seeded):
        """next_check advances from its previous value."""
        address = await seeded.allocate_address("btc", "shop1")

        assert await seeded.reschedule_after_check(address.id, reset_to_minimum=False) == 600
        assert (await seeded.get(address.id)).next_check == T0 + 900

        assert await seeded.reschedule_after_check(address.id, reset_to_minimum=True) == 300
        stored = await seeded.get(address.id)
        assert stored.next_check == T0 + 1200
        assert stored.wait_check == 300

    @pytest.mark.asyncio
    async def test_backoff_reaches_maximum(self, seeded):
        """Nine unchanged checks clip the wait at the maximum."""
        address = await seeded.allocate_address("btc", "shop1")

        waits = [
            await seeded.reschedule_after_check(address.id, reset_to_minimum=False)
            for _ in range(9)
        ]

        assert waits[-1] == 86400
        assert waits == sorted(waits)

    @pytest.mark.asyncio
    async def test_force_immediate_check(self, seeded, clock):
        """A forced check makes the address due now."""
        address = await seeded.allocate_address("btc", "shop1")
        await seeded.reschedule_after_check(address.id, reset_to_minimum=False)
        clock.advance(10)

        await seeded.force_immediate_check(address.id)

        assert (await seeded.get(address.id)).next_check == T0 + 10
        assert await seeded.pending_addresses() == [address.id]

    @pytest.mark.asyncio
    async def test_force_missing_address(self, seeded):
        """Forcing an unknown address fails."""
        with pytest.raises(AddressNotFound):
            await seeded.force_immediate_check(999)


class TestStatusTransitions:
    """Tests for close and lock."""

    @pytest.mark.asyncio
    async def test_close_only_from_open(self, seeded):
        """Closing twice changes nothing."""
        address = await seeded.allocate_address("btc", "shop1")

        assert await seeded.close(address.id)
        assert not await seeded.close(address.id)

    @pytest.mark.asyncio
    async def test_lock(self, seeded):
        """Locking stamps valid_to and hides the address from listings."""
        address = await seeded.allocate_address("btc", "shop1")

        assert await seeded.lock(address.id)
        assert not await seeded.lock(address.id)
        assert not await seeded.close(address.id)

        stored = await seeded.get(address.id)
        assert stored.status == AddressStatus.LOCKED
        assert stored.valid_to is not None
        assert await seeded.list_addresses() == []
        assert len(await seeded.list_addresses(include_locked=True)) == 1

    @pytest.mark.asyncio
    async def test_get_missing(self, seeded):
        """Unknown addresses raise AddressNotFound."""
        with pytest.raises(AddressNotFound):
            await seeded.get(999)


class TestQueries:
    """Tests for listings and funds."""

    @pytest.mark.asyncio
    async def test_list_filters(self, seeded):
        """Listings filter by coin and account."""
        await seeded.allocate_address("btc", "shop1")
        await seeded.allocate_address("btc", "shop2")
        await seeded.allocate_address("eth", "shop1")

        assert len(await seeded.list_addresses()) == 3
        assert len(await seeded.list_addresses(coin="btc")) == 2
        assert [a.coin for a in await seeded.list_addresses(account="shop1")] == ["btc", "eth"]

        with pytest.raises(UnknownCoin):
            await seeded.list_addresses(coin="xmr")

    @pytest.mark.asyncio
    async def test_list_coins(self, seeded):
        """Registered coins are listed."""
        assert sorted(await seeded.list_coins()) == ["btc", "eth"]

    @pytest.mark.asyncio
    async def test_register_is_idempotent(self, seeded):
        """Registering twice returns the same row."""
        first = await seeded.register_coin("btc")
        second = await seeded.register_coin("BTC")

        assert first == second

    @pytest.mark.asyncio
    async def test_store_funds_deduplicates(self, seeded):
        """Known funding events are not stored twice."""
        address = await seeded.allocate_address("btc", "shop1")
        funds = [
            FundRecord(seen=100, address_id=address.id, amount=Decimal("0.5")),
            FundRecord(seen=200, address_id=address.id, amount=Decimal("0.25")),
        ]

        assert await seeded.store_funds(address.id, funds) == 2
        assert await seeded.store_funds(address.id, funds) == 0


class TestStoredRateLookup:
    """Tests for rates read from the coin table."""

    @pytest.mark.asyncio
    async def test_reads_rate(self, seeded, session_factory):
        """The stored rate is returned."""
        async with session_factory() as session, session.begin():
            await CoinRepository(session).set_rate("btc", Decimal("25000.5"))

        lookup = StoredRateLookup(session_factory)

        assert await lookup.get_rate("btc") == Decimal("25000.5")

    @pytest.mark.asyncio
    async def test_unknown_coin(self, seeded, session_factory):
        """Unknown coins have no rate."""
        with pytest.raises(UnknownCoin):
            await StoredRateLookup(session_factory).get_rate("xmr")


class TestCoinModel:
    """Tests for the coin mapping."""

    @pytest.mark.asyncio
    async def test_addresses_not_lazy_loaded(self, seeded, session_factory):
        """Coin rows never load their address collection implicitly."""
        await seeded.allocate_address("btc", "shop1")

        async with session_factory() as session:
            coin = await CoinRepository(session).get_by_symbol("btc")
            with pytest.raises(InvalidRequestError):
                coin.addresses
