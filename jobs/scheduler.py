"""
Periodic job scheduler.

Drives the balance scheduler queue from two interval jobs:
- pending address sweep (every BALANCE_EPOCH seconds)
- payment session expiry (every TX_SWEEP_INTERVAL seconds)
"""

from datetime import UTC, datetime

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from loguru import logger

from jobs.tasks.balance_sweep import enqueue_pending_addresses
from jobs.tasks.transaction_expiry import expire_transactions
from relay.config.settings import Settings
from relay.services.address_ledger import AddressLedger
from relay.services.balance_scheduler import BalanceScheduler
from relay.services.transaction_ledger import TransactionLedger


# Global scheduler reference for shutdown
scheduler_instance: AsyncIOScheduler | None = None


def create_scheduler(
    config: Settings,
    addresses: AddressLedger,
    transactions: TransactionLedger,
    balance_scheduler: BalanceScheduler,
) -> AsyncIOScheduler:
    """
    Create the periodic job scheduler (not started).

    Both jobs fire once right after start so a restarted relay catches
    up immediately.

    Args:
        config: Application settings
        addresses: Address ledger
        transactions: Transaction ledger
        balance_scheduler: Queue consumer receiving the work

    Returns:
        Configured AsyncIOScheduler
    """
    global scheduler_instance

    scheduler = AsyncIOScheduler(timezone=UTC)
    now = datetime.now(UTC)

    scheduler.add_job(
        enqueue_pending_addresses,
        trigger="interval",
        seconds=config.balance_epoch,
        args=[addresses, balance_scheduler],
        id="pending_address_sweep",
        name="Pending address sweep",
        next_run_time=now,
        max_instances=1,
        coalesce=True,
    )
    scheduler.add_job(
        expire_transactions,
        trigger="interval",
        seconds=config.tx_sweep_interval,
        args=[transactions, addresses, balance_scheduler],
        id="transaction_expiry",
        name="Payment session expiry",
        next_run_time=now,
        max_instances=1,
        coalesce=True,
    )

    logger.info(
        f"Periodic jobs configured: balance sweep every {config.balance_epoch}s, "
        f"expiry sweep every {config.tx_sweep_interval}s"
    )
    scheduler_instance = scheduler
    return scheduler
