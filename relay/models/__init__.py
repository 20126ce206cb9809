"""
Database models.

Exports all SQLAlchemy models for easy imports.
"""

from relay.models.account import Account
from relay.models.address import Address
from relay.models.base import Base
from relay.models.coin import Coin
from relay.models.enums import AddressStatus, TransactionStatus
from relay.models.incoming import Incoming
from relay.models.transaction import Transaction


__all__ = [
    "Account",
    "Address",
    "AddressStatus",
    "Base",
    "Coin",
    "Incoming",
    "Transaction",
    "TransactionStatus",
]
