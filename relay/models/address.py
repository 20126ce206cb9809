"""
Address model.

Receiving addresses and their balance polling schedule.
"""

from datetime import UTC, datetime
from decimal import Decimal
from typing import TYPE_CHECKING

from sqlalchemy import (
    BigInteger,
    DateTime,
    ForeignKey,
    Integer,
    String,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from relay.models.base import Base
from relay.models.enums import AddressStatus
from relay.models.types import MoneyType


if TYPE_CHECKING:
    from relay.models.coin import Coin


class Address(Base):
    """
    Receiving address derived for a (coin, account) pair.

    Schedule columns hold Unix seconds:
    - last_check: time of the last successful balance check
    - next_check: address is due once next_check <= now
    - wait_check: current backoff interval, bounded by [min, max]

    Balance is the cumulative received amount in coin units and
    never decreases.
    """

    __tablename__ = "addresses"
    __table_args__ = (
        UniqueConstraint("coin_id", "idx", name="uq_address_coin_idx"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)

    coin_id: Mapped[int] = mapped_column(
        ForeignKey("coins.id", ondelete="RESTRICT"), nullable=False, index=True
    )
    account_id: Mapped[int] = mapped_column(
        ForeignKey("accounts.id", ondelete="RESTRICT"), nullable=False, index=True
    )

    # Derivation index, allocated per coin
    idx: Mapped[int] = mapped_column(Integer, nullable=False)
    value: Mapped[str] = mapped_column(String(128), nullable=False, index=True)

    status: Mapped[str] = mapped_column(
        String(10),
        nullable=False,
        default=AddressStatus.OPEN.value,
        index=True,
        comment="open, closed, locked",
    )

    balance: Mapped[Decimal] = mapped_column(
        MoneyType, nullable=False, default=Decimal("0")
    )

    # Polling schedule
    last_check: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)
    next_check: Mapped[int] = mapped_column(
        BigInteger, nullable=False, default=0, index=True
    )
    wait_check: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    # Usage by payment sessions
    ref_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    last_tx: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)

    valid_from: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(UTC),
        nullable=False,
    )
    valid_to: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )

    coin: Mapped["Coin"] = relationship(
        "Coin", back_populates="addresses", lazy="selectin"
    )

    @property
    def is_open(self) -> bool:
        return self.status == AddressStatus.OPEN

    @property
    def is_locked(self) -> bool:
        return self.status == AddressStatus.LOCKED

    def __repr__(self) -> str:
        return (
            f"<Address(id={self.id}, coin_id={self.coin_id}, idx={self.idx}, "
            f"status={self.status}, balance={self.balance})>"
        )
