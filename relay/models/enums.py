"""
Status enumerations shared by models and services.
"""

import enum


class AddressStatus(str, enum.Enum):
    """Address lifecycle: open -> closed -> locked."""

    OPEN = "open"  # Usable for new payment sessions, polled
    CLOSED = "closed"  # Fiat limit reached, still polled
    LOCKED = "locked"  # Funds swept by operator, never polled


class TransactionStatus(str, enum.Enum):
    """Payment session status."""

    PENDING = "pending"
    EXPIRED = "expired"
