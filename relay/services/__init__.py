"""
Services.

Balance synchronization engine.
"""

from relay.services.address_ledger import AddressInfo, AddressLedger, CheckOutcome
from relay.services.balance_scheduler import BalanceScheduler
from relay.services.rate_limiter import (
    AdmissionPolicy,
    CooldownLimiter,
    TieredRateLimiter,
    build_limiter,
)
from relay.services.transaction_ledger import (
    PaymentSession,
    TransactionInfo,
    TransactionLedger,
)


__all__ = [
    "AddressInfo",
    "AddressLedger",
    "AdmissionPolicy",
    "BalanceScheduler",
    "CheckOutcome",
    "CooldownLimiter",
    "PaymentSession",
    "TieredRateLimiter",
    "TransactionInfo",
    "TransactionLedger",
    "build_limiter",
]
