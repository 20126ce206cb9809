"""
Coin model.

Coins served by the relay together with their current fiat rate.
"""

from datetime import UTC, datetime
from decimal import Decimal
from typing import TYPE_CHECKING

from sqlalchemy import DateTime, Integer, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from relay.models.base import Base
from relay.models.types import RateType


if TYPE_CHECKING:
    from relay.models.address import Address


class Coin(Base):
    """
    Coin known to the relay.

    The rate column is the fiat price of one coin unit; it is maintained
    by an external market-data job and only read here.
    """

    __tablename__ = "coins"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)

    symbol: Mapped[str] = mapped_column(
        String(16), nullable=False, unique=True, index=True
    )  # btc, eth, ...
    label: Mapped[str] = mapped_column(String(64), nullable=False, default="")

    rate: Mapped[Decimal] = mapped_column(
        RateType, nullable=False, default=Decimal("0"), comment="Fiat price per coin unit"
    )
    rate_updated_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(UTC),
        nullable=False,
    )

    addresses: Mapped[list["Address"]] = relationship(
        "Address", back_populates="coin", lazy="raise"
    )

    def __repr__(self) -> str:
        return f"<Coin(id={self.id}, symbol={self.symbol!r}, rate={self.rate})>"
