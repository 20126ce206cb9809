"""
Transaction model.

Time-boxed payment sessions bound to a receiving address.
"""

from sqlalchemy import BigInteger, ForeignKey, String
from sqlalchemy.orm import Mapped, mapped_column

from relay.models.base import Base
from relay.models.enums import TransactionStatus


class Transaction(Base):
    """
    Payment session.

    valid_to is fixed at creation (valid_from + TTL) and never extended.
    Rows are never deleted, only marked expired.
    """

    __tablename__ = "transactions"

    # 32 random bytes, hex encoded
    id: Mapped[str] = mapped_column(String(64), primary_key=True)

    address_id: Mapped[int] = mapped_column(
        ForeignKey("addresses.id", ondelete="RESTRICT"), nullable=False, index=True
    )

    status: Mapped[str] = mapped_column(
        String(10),
        nullable=False,
        default=TransactionStatus.PENDING.value,
        index=True,
    )

    valid_from: Mapped[int] = mapped_column(BigInteger, nullable=False)
    valid_to: Mapped[int] = mapped_column(BigInteger, nullable=False, index=True)

    def __repr__(self) -> str:
        return (
            f"<Transaction(id={self.id[:12]}..., address_id={self.address_id}, "
            f"status={self.status}, valid_to={self.valid_to})>"
        )
