"""
Pending balance sweep.

Pushes every address whose next check has arrived onto the balance
scheduler queue. Runs every BALANCE_EPOCH seconds.
"""

from loguru import logger

from relay.services.address_ledger import AddressLedger
from relay.services.balance_scheduler import BalanceScheduler


async def enqueue_pending_addresses(
    ledger: AddressLedger, scheduler: BalanceScheduler
) -> dict:
    """
    Enqueue addresses due for a balance check.

    Returns:
        Dict with pending and enqueued counts
    """
    try:
        pending = await ledger.pending_addresses()
    except Exception as e:
        logger.exception(f"Pending address sweep failed: {e}")
        return {"pending": 0, "enqueued": 0, "error": str(e)}

    enqueued = scheduler.enqueue_many(pending)
    if pending:
        logger.info(
            f"Pending address sweep: {len(pending)} due, {enqueued} enqueued "
            f"(queue size {scheduler.queue_size})"
        )
    return {"pending": len(pending), "enqueued": enqueued}
