"""
Balance scheduler.

Single consumer of a queue of address IDs needing a balance check.
Producers (periodic sweep, expired payment sessions, operator
rechecks) enqueue without blocking. One check is in flight at a time,
which keeps every provider inside its admission policy.
"""

import asyncio
from decimal import Decimal

from loguru import logger

from relay.config.constants import WORKER_STOP_TIMEOUT
from relay.models.enums import AddressStatus
from relay.services.address_ledger import AddressLedger, CheckOutcome
from relay.services.providers.registry import ProviderRegistry
from relay.utils.exceptions import (
    AddressNotFound,
    StoreUnavailable,
    UnknownCoinAdapter,
    is_recoverable,
)


class BalanceScheduler:
    """
    Drains the check queue through the coin's provider adapter.

    Args:
        registry: Provider registry
        ledger: Address ledger
        default_limit: Fiat close limit for coins without their own
    """

    def __init__(
        self,
        registry: ProviderRegistry,
        ledger: AddressLedger,
        default_limit: Decimal,
    ) -> None:
        self._registry = registry
        self._ledger = ledger
        self._default_limit = default_limit
        self._queue: asyncio.Queue[int] = asyncio.Queue()
        self._queued: set[int] = set()
        self._worker: asyncio.Task | None = None
        self._idle = asyncio.Event()
        self._idle.set()
        self.processed = 0
        self.failed = 0

    @property
    def queue_size(self) -> int:
        return self._queue.qsize()

    @property
    def running(self) -> bool:
        return self._worker is not None and not self._worker.done()

    def enqueue(self, address_id: int) -> bool:
        """
        Queue an address for a balance check.

        Returns:
            False if the address is already waiting in the queue
        """
        if address_id in self._queued:
            return False
        self._queued.add(address_id)
        self._queue.put_nowait(address_id)
        return True

    def enqueue_many(self, address_ids: list[int]) -> int:
        """Queue several addresses, returning how many were new."""
        return sum(1 for address_id in address_ids if self.enqueue(address_id))

    async def process(self, address_id: int) -> CheckOutcome | None:
        """
        Check one address.

        Provider failures and unbound coins are logged and the address is
        dropped for this cycle; its schedule stays untouched. Store
        failures propagate.

        Returns:
            CheckOutcome, or None if the check was skipped or failed
        """
        try:
            address = await self._ledger.get(address_id)
        except AddressNotFound:
            logger.warning(f"Address {address_id} vanished before its check")
            return None

        if address.status == AddressStatus.LOCKED:
            logger.debug(f"Address {address_id} is locked, skipping")
            return None

        try:
            binding = self._registry.resolve(address.coin)
            balance = await binding.adapter.fetch_balance(address.value)
        except UnknownCoinAdapter as e:
            logger.error(f"Address {address_id}: {e}")
            self.failed += 1
            return None
        except Exception as e:
            if not is_recoverable(e):
                raise
            logger.warning(f"Balance check of address {address_id} ({address.coin}) failed: {e}")
            self.failed += 1
            return None

        limit = binding.limit if binding.limit is not None else self._default_limit
        outcome = await self._ledger.record_check(address_id, balance, limit)
        if outcome.closed and binding.explorer:
            logger.info(f"Closed address {address_id}: {binding.explorer_url(address.value)}")
        await self._ledger.reschedule_after_check(address_id, reset_to_minimum=outcome.increased)
        self.processed += 1
        return outcome

    async def sync_funds(self, address_id: int) -> int:
        """
        Fetch the funding history of an address and store new events.

        Returns:
            Number of newly stored funds
        """
        address = await self._ledger.get(address_id)
        binding = self._registry.resolve(address.coin)
        funds = await binding.adapter.fetch_funds(address_id, address.value)
        added = await self._ledger.store_funds(address_id, funds)
        if added:
            logger.info(f"Address {address_id}: {added} new funds recorded")
        return added

    async def run(self) -> None:
        """Worker loop; runs until cancelled."""
        logger.info("Balance scheduler worker started")
        while True:
            address_id = await self._queue.get()
            self._queued.discard(address_id)
            self._idle.clear()
            try:
                await self.process(address_id)
            except StoreUnavailable as e:
                logger.error(f"Store unavailable while checking address {address_id}: {e}")
                self.failed += 1
            except Exception as e:
                logger.exception(f"Unexpected error checking address {address_id}: {e}")
                self.failed += 1
            finally:
                self._idle.set()
                self._queue.task_done()

    async def drain(self) -> None:
        """Wait until every queued address has been processed."""
        await self._queue.join()

    def start(self) -> asyncio.Task:
        """Start the worker task."""
        if self.running:
            return self._worker
        self._worker = asyncio.create_task(self.run(), name="balance-scheduler")
        return self._worker

    async def stop(self, timeout: float = WORKER_STOP_TIMEOUT) -> None:
        """
        Stop the worker.

        An in-flight check (including a limiter sleep) is waited for up
        to `timeout` seconds before the task is cancelled.
        """
        if self._worker is None:
            return
        worker, self._worker = self._worker, None
        try:
            await asyncio.wait_for(self._idle.wait(), timeout=timeout)
        except TimeoutError:
            logger.warning(f"Balance check still running after {timeout}s, cancelling")
        worker.cancel()
        try:
            await worker
        except asyncio.CancelledError:
            pass
        logger.info(
            f"Balance scheduler stopped ({self.processed} checked, "
            f"{self.failed} failed, {self.queue_size} queued)"
        )
