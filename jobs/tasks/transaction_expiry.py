"""
Payment session expiry.

Marks sessions whose validity ended and asks for a fresh balance check
of their addresses, since an ended payment window is exactly when the
merchant wants confirmation.
"""

from loguru import logger

from relay.services.address_ledger import AddressLedger
from relay.services.balance_scheduler import BalanceScheduler
from relay.services.transaction_ledger import TransactionLedger
from relay.utils.exceptions import AddressNotFound, StoreUnavailable


async def expire_transactions(
    transactions: TransactionLedger,
    addresses: AddressLedger,
    scheduler: BalanceScheduler,
) -> dict:
    """
    Expire ended payment sessions and recheck their addresses.

    Returns:
        Dict with expired and enqueued counts
    """
    try:
        expired = await transactions.sweep_expired()
    except StoreUnavailable as e:
        logger.error(f"Transaction expiry sweep failed: {e}")
        return {"expired": 0, "enqueued": 0, "error": str(e)}

    if not expired:
        return {"expired": 0, "enqueued": 0}

    marked = 0
    enqueued = 0
    for tx_id, address_id in expired.items():
        # force before marking; a session left pending is swept again
        recheck = True
        try:
            await addresses.force_immediate_check(address_id)
        except AddressNotFound as e:
            logger.warning(f"Payment session {tx_id[:12]}... has no address: {e}")
            recheck = False
        except StoreUnavailable as e:
            logger.error(f"Rechecking address of session {tx_id[:12]}... failed: {e}")
            continue

        try:
            if await transactions.mark_expired(tx_id):
                marked += 1
        except StoreUnavailable as e:
            logger.error(f"Expiring payment session {tx_id[:12]}... failed: {e}")

        if recheck and scheduler.enqueue(address_id):
            enqueued += 1

    logger.info(
        f"Transaction expiry: {marked} sessions expired, {enqueued} addresses enqueued"
    )
    return {"expired": marked, "enqueued": enqueued}
