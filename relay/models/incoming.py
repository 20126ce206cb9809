"""
Incoming funds model.

Immutable records of funding events per address.
"""

from decimal import Decimal

from sqlalchemy import BigInteger, ForeignKey, Integer
from sqlalchemy.orm import Mapped, mapped_column

from relay.models.base import Base
from relay.models.types import MoneyType


class Incoming(Base):
    """One observed funding event (provider history or balance delta)."""

    __tablename__ = "incoming"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)

    address_id: Mapped[int] = mapped_column(
        ForeignKey("addresses.id", ondelete="CASCADE"), nullable=False, index=True
    )

    # Unix seconds
    seen: Mapped[int] = mapped_column(BigInteger, nullable=False)
    amount: Mapped[Decimal] = mapped_column(MoneyType, nullable=False)

    def __repr__(self) -> str:
        return (
            f"<Incoming(address_id={self.address_id}, seen={self.seen}, "
            f"amount={self.amount})>"
        )
