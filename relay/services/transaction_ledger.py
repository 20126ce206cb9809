"""
Transaction ledger.

Payment sessions: a time-boxed claim on a receiving address for one
checkout attempt.
"""

import secrets
import time
from collections.abc import Callable
from dataclasses import dataclass

from loguru import logger
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from relay.config.constants import ALLOCATION_MAX_ATTEMPTS, TX_ID_BYTES
from relay.models.enums import TransactionStatus
from relay.models.transaction import Transaction
from relay.repositories.address_repository import AddressRepository
from relay.repositories.transaction_repository import TransactionRepository
from relay.services.address_ledger import AddressInfo, AddressLedger
from relay.utils.db_decorators import store_operation
from relay.utils.exceptions import RelayError, must_retry


@dataclass(frozen=True)
class PaymentSession:
    """Payment session handed out to a checkout."""

    id: str
    address: AddressInfo
    status: TransactionStatus
    valid_from: int
    valid_to: int


@dataclass(frozen=True)
class TransactionInfo:
    """Detached snapshot of a transaction row."""

    id: str
    address_id: int
    status: TransactionStatus
    valid_from: int
    valid_to: int

    @classmethod
    def from_model(cls, tx: Transaction) -> "TransactionInfo":
        return cls(
            id=tx.id,
            address_id=tx.address_id,
            status=TransactionStatus(tx.status),
            valid_from=tx.valid_from,
            valid_to=tx.valid_to,
        )


class TransactionLedger:
    """
    Issues payment sessions and finds expired ones.

    Args:
        session_factory: Async session maker
        addresses: Address ledger used for allocation
        ttl: Session lifetime (s)
        clock: Time source (Unix seconds)
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        addresses: AddressLedger,
        ttl: int = 900,
        clock: Callable[[], float] = time.time,
    ) -> None:
        if ttl <= 0:
            raise ValueError("Transaction TTL must be positive")
        self._session_factory = session_factory
        self._addresses = addresses
        self.ttl = ttl
        self._clock = clock

    def now(self) -> int:
        return int(self._clock())

    @staticmethod
    def new_id() -> str:
        """256 random bits, hex encoded."""
        return secrets.token_hex(TX_ID_BYTES)

    @store_operation
    async def open(self, coin: str, account: str) -> PaymentSession:
        """
        Open a payment session for an account in a coin.

        Allocation, the transaction row and the address usage bump are
        committed together. The address is polled at the minimum
        interval from now on, since funds are expected.

        Args:
            coin: Coin symbol
            account: Account label

        Returns:
            PaymentSession

        Raises:
            UnknownCoin, UnknownAccount, KeyDerivationError, AllocationConflict
        """
        for attempt in range(1, ALLOCATION_MAX_ATTEMPTS + 1):
            try:
                return await self._open(coin, account)
            except RelayError as e:
                if not must_retry(e):
                    raise
                if attempt == ALLOCATION_MAX_ATTEMPTS:
                    logger.error(f"Opening payment session failed after {attempt} attempts: {e}")
                    raise
                logger.warning(f"Payment session allocation conflict, retrying ({attempt}): {e}")
        raise AssertionError("unreachable")

    async def _open(self, coin: str, account: str) -> PaymentSession:
        now = self.now()
        async with self._session_factory() as session, session.begin():
            address, symbol = await self._addresses._allocate(session, coin, account, now)

            tx = await TransactionRepository(session).create(
                id=self.new_id(),
                address_id=address.id,
                status=TransactionStatus.PENDING.value,
                valid_from=now,
                valid_to=now + self.ttl,
            )

            # synchronizes the in-session address row as well
            await AddressRepository(session).increment_usage(address.id, now)
            address.wait_check = self._addresses.min_wait
            address.next_check = now + self._addresses.min_wait
            await session.flush()

            info = AddressInfo.from_model(address, symbol)

        logger.info(
            f"Payment session {tx.id[:12]}... opened: {symbol} address {info.id} "
            f"for {account}, valid until {tx.valid_to}"
        )
        return PaymentSession(
            id=tx.id,
            address=info,
            status=TransactionStatus.PENDING,
            valid_from=tx.valid_from,
            valid_to=tx.valid_to,
        )

    @store_operation
    async def sweep_expired(self, now: int | None = None) -> dict[str, int]:
        """
        Pending sessions whose validity ended at or before `now`.

        Args:
            now: Unix seconds (defaults to the ledger clock)

        Returns:
            Mapping of transaction ID to address ID
        """
        now = self.now() if now is None else now
        async with self._session_factory() as session:
            return await TransactionRepository(session).expired(now)

    @store_operation
    async def mark_expired(self, tx_id: str) -> bool:
        """
        Mark a pending session expired.

        Returns:
            True if the session was pending
        """
        async with self._session_factory() as session, session.begin():
            changed = await TransactionRepository(session).mark_expired(tx_id)
        if changed:
            logger.info(f"Payment session {tx_id[:12]}... expired")
        return changed

    @store_operation
    async def get(self, tx_id: str) -> TransactionInfo | None:
        """Snapshot of a session, None if unknown."""
        async with self._session_factory() as session:
            tx = await TransactionRepository(session).get_by_id(tx_id)
            return TransactionInfo.from_model(tx) if tx is not None else None

    @store_operation
    async def list_for_address(self, address_id: int) -> list[TransactionInfo]:
        """Sessions issued for an address, oldest first."""
        async with self._session_factory() as session:
            rows = await TransactionRepository(session).find_by_address(address_id)
            return [TransactionInfo.from_model(tx) for tx in rows]
