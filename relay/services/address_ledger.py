"""
Address ledger.

Store-backed address lifecycle and poll-schedule bookkeeping:

- allocation of receiving addresses per (coin, account)
- balance updates with close-on-limit
- backoff of the next balance check for unchanged addresses

Every public operation runs in its own session and transaction.
Schedule fields are Unix seconds.
"""

import random
import time
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime
from decimal import ROUND_DOWN, Decimal

from loguru import logger
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from relay.config.constants import (
    ALLOCATION_MAX_ATTEMPTS,
    AMOUNT_QUANTUM,
    BACKOFF_JITTER_RATIO,
)
from relay.models.address import Address
from relay.models.enums import AddressStatus
from relay.repositories.account_repository import AccountRepository
from relay.repositories.address_repository import AddressRepository
from relay.repositories.coin_repository import CoinRepository
from relay.repositories.incoming_repository import IncomingRepository
from relay.services.exchange_rates import RateLookup
from relay.services.key_derivation import KeyDeriver
from relay.services.providers.base import FundRecord
from relay.utils.datetime_utils import from_epoch
from relay.utils.db_decorators import store_operation
from relay.utils.exceptions import (
    AddressNotFound,
    AllocationConflict,
    KeyDerivationError,
    RelayError,
    UnknownAccount,
    UnknownCoin,
    must_retry,
)


def gaussian_jitter(factor: float) -> float:
    """Growth factor perturbed with N(factor, 0.25 * factor)."""
    return random.gauss(factor, BACKOFF_JITTER_RATIO * factor)


def to_stored_amount(value: Decimal) -> Decimal:
    """Truncate an amount to the stored scale."""
    return Decimal(value).quantize(Decimal(AMOUNT_QUANTUM), rounding=ROUND_DOWN)


@dataclass(frozen=True)
class AddressInfo:
    """Detached snapshot of an address row."""

    id: int
    coin: str
    account_id: int
    idx: int
    value: str
    status: AddressStatus
    balance: Decimal
    last_check: int
    next_check: int
    wait_check: int
    ref_count: int
    last_tx: int
    valid_from: datetime
    valid_to: datetime | None

    @classmethod
    def from_model(cls, address: Address, coin: str | None = None) -> "AddressInfo":
        return cls(
            id=address.id,
            coin=coin or address.coin.symbol,
            account_id=address.account_id,
            idx=address.idx,
            value=address.value,
            status=AddressStatus(address.status),
            balance=Decimal(address.balance),
            last_check=address.last_check,
            next_check=address.next_check,
            wait_check=address.wait_check,
            ref_count=address.ref_count,
            last_tx=address.last_tx,
            valid_from=address.valid_from,
            valid_to=address.valid_to,
        )


@dataclass(frozen=True)
class CheckOutcome:
    """Result of applying a balance observation."""

    address_id: int
    balance: Decimal
    increased: bool
    closed: bool


class AddressLedger:
    """
    Address allocation, status transitions and poll scheduling.

    Args:
        session_factory: Async session maker
        deriver: Key-derivation collaborator
        rate_lookup: Fiat rate per coin unit
        min_wait: Minimum wait between checks (s)
        factor: Backoff growth factor (>= 1)
        max_wait: Maximum wait between checks (s)
        jitter: Maps the growth factor to the factor applied this round
        clock: Time source (Unix seconds)
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        deriver: KeyDeriver,
        rate_lookup: RateLookup,
        min_wait: int = 300,
        factor: float = 2.0,
        max_wait: int = 604800,
        jitter: Callable[[float], float] = gaussian_jitter,
        clock: Callable[[], float] = time.time,
    ) -> None:
        if min_wait <= 0 or min_wait > max_wait:
            raise ValueError("Wait bounds must satisfy 0 < min_wait <= max_wait")
        if factor < 1.0:
            raise ValueError("Backoff factor must be >= 1")
        self._session_factory = session_factory
        self._deriver = deriver
        self._rate_lookup = rate_lookup
        self.min_wait = min_wait
        self.factor = factor
        self.max_wait = max_wait
        self._jitter = jitter
        self._clock = clock

    def now(self) -> int:
        return int(self._clock())

    def next_wait(self, current: int) -> int:
        """
        Backoff step for an unchanged address.

        The jittered factor is floored at 1.0 so the interval never
        shrinks; the result is clipped to max_wait.
        """
        current = max(current, self.min_wait)
        growth = max(1.0, self._jitter(self.factor))
        return int(min(self.max_wait, current * growth))

    # ------------------------------------------------------------------
    # Catalog
    # ------------------------------------------------------------------

    @store_operation
    async def register_coin(self, symbol: str, label: str = "") -> int:
        """Ensure a coin row exists, returning its ID."""
        async with self._session_factory() as session, session.begin():
            coin = await CoinRepository(session).ensure(symbol, label)
            return coin.id

    @store_operation
    async def register_account(self, label: str, name: str = "") -> int:
        """Ensure an account row exists, returning its ID."""
        async with self._session_factory() as session, session.begin():
            account = await AccountRepository(session).ensure(label, name)
            return account.id

    @store_operation
    async def list_coins(self) -> list[str]:
        """Symbols of all coins in the store."""
        async with self._session_factory() as session:
            return [coin.symbol for coin in await CoinRepository(session).find_all()]

    # ------------------------------------------------------------------
    # Allocation
    # ------------------------------------------------------------------

    async def _allocate(
        self, session: AsyncSession, coin: str, account: str, now: int
    ) -> tuple[Address, str]:
        """
        Find or create the open address of a pair inside the caller's transaction.

        The coin row is locked first, so concurrent allocations for the
        same coin serialize on it; the unique (coin_id, idx) constraint
        backs this up.

        Returns:
            (address, coin symbol)

        Raises:
            UnknownCoin, UnknownAccount, KeyDerivationError, AllocationConflict
        """
        coin_row = await CoinRepository(session).get_by_symbol(coin, for_update=True)
        if coin_row is None:
            raise UnknownCoin(coin)
        # a failed flush expires loaded rows
        symbol = coin_row.symbol
        account_row = await AccountRepository(session).get_by_label(account)
        if account_row is None:
            raise UnknownAccount(account)

        addresses = AddressRepository(session)
        existing = await addresses.find_open(coin_row.id, account_row.id)
        if existing is not None:
            return existing, symbol

        max_idx = await addresses.max_index(coin_row.id)
        idx = 0 if max_idx is None else max_idx + 1
        try:
            value = await self._deriver.derive_address(symbol, idx)
        except KeyDerivationError:
            raise
        except Exception as e:
            raise KeyDerivationError(
                f"Derivation of {symbol}/{idx} failed: {e}"
            ) from e

        address = Address(
            coin_id=coin_row.id,
            account_id=account_row.id,
            idx=idx,
            value=value,
            status=AddressStatus.OPEN.value,
            balance=Decimal("0"),
            last_check=0,
            next_check=now + self.min_wait,
            wait_check=self.min_wait,
            ref_count=0,
            last_tx=0,
            valid_from=from_epoch(now),
            valid_to=None,
        )
        session.add(address)
        try:
            await session.flush()
        except IntegrityError as e:
            raise AllocationConflict(symbol, idx) from e

        logger.info(
            f"Allocated {symbol} address #{idx} for account {account}: {value}"
        )
        return address, symbol

    @store_operation
    async def allocate_address(self, coin: str, account: str) -> AddressInfo:
        """
        Return the open address of a (coin, account) pair, deriving a new one if needed.

        Args:
            coin: Coin symbol
            account: Account label

        Returns:
            Address snapshot

        Raises:
            UnknownCoin: coin not in store
            UnknownAccount: account not in store
            KeyDerivationError: derivation failed, nothing persisted
            AllocationConflict: index clash persisted across all retries
        """
        for attempt in range(1, ALLOCATION_MAX_ATTEMPTS + 1):
            try:
                async with self._session_factory() as session, session.begin():
                    address, symbol = await self._allocate(
                        session, coin, account, self.now()
                    )
                    return AddressInfo.from_model(address, symbol)
            except RelayError as e:
                if not must_retry(e):
                    raise
                if attempt == ALLOCATION_MAX_ATTEMPTS:
                    logger.error(f"Address allocation failed after {attempt} attempts: {e}")
                    raise
                logger.warning(f"Address allocation conflict, retrying ({attempt}): {e}")
        raise AssertionError("unreachable")

    # ------------------------------------------------------------------
    # Scheduling
    # ------------------------------------------------------------------

    @store_operation
    async def pending_addresses(self, now: int | None = None) -> list[int]:
        """
        IDs of non-locked addresses due for a balance check.

        Args:
            now: Unix seconds (defaults to the ledger clock)
        """
        now = self.now() if now is None else now
        async with self._session_factory() as session:
            return await AddressRepository(session).pending_ids(now)

    @store_operation
    async def record_check(
        self, address_id: int, new_balance: Decimal, limit: Decimal
    ) -> CheckOutcome:
        """
        Apply a balance observation.

        The stored balance only grows; a lower observation is ignored.
        An open address whose fiat value reaches `limit` is closed.
        last_check is updated in every case.

        Args:
            address_id: Address ID
            new_balance: Cumulative received amount in coin units
            limit: Fiat auto-close limit

        Returns:
            CheckOutcome
        """
        new_balance = to_stored_amount(new_balance)
        async with self._session_factory() as session:
            address = await AddressRepository(session).get_by_id(address_id)
            if address is None:
                raise AddressNotFound(address_id)
            coin = address.coin.symbol

        rate = await self._rate_lookup.get_rate(coin)
        now = self.now()

        async with self._session_factory() as session, session.begin():
            address = await AddressRepository(session).get_by_id(address_id, for_update=True)
            if address is None:
                raise AddressNotFound(address_id)

            previous = Decimal(address.balance)
            increased = new_balance > previous
            if increased:
                address.balance = new_balance
                await IncomingRepository(session).record(
                    address_id, now, new_balance - previous
                )
                logger.info(
                    f"Address {address_id} ({coin}): balance {previous} -> {new_balance}"
                )
            elif new_balance < previous:
                logger.warning(
                    f"Address {address_id} ({coin}): provider reports {new_balance}, "
                    f"below stored {previous}; keeping stored balance"
                )

            balance = Decimal(address.balance) if not increased else new_balance
            closed = False
            if address.status == AddressStatus.OPEN and balance * rate >= limit:
                address.status = AddressStatus.CLOSED.value
                address.valid_to = from_epoch(now)
                closed = True
                logger.success(
                    f"Address {address_id} ({coin}) closed: "
                    f"{balance} x {rate} >= limit {limit}"
                )

            address.last_check = now

        return CheckOutcome(
            address_id=address_id, balance=balance, increased=increased, closed=closed
        )

    @store_operation
    async def reschedule_after_check(
        self, address_id: int, reset_to_minimum: bool
    ) -> int:
        """
        Advance the next check of an address.

        The wait is reset to the minimum, or grown by the jittered
        factor and clipped to the maximum. next_check advances from its
        previous value, not from now.

        Returns:
            New wait interval (s)
        """
        async with self._session_factory() as session, session.begin():
            address = await AddressRepository(session).get_by_id(address_id, for_update=True)
            if address is None:
                raise AddressNotFound(address_id)
            wait = self.min_wait if reset_to_minimum else self.next_wait(address.wait_check)
            address.wait_check = wait
            address.next_check = address.next_check + wait
            logger.debug(
                f"Address {address_id}: wait {wait}s, next check at {address.next_check}"
            )
            return wait

    @store_operation
    async def force_immediate_check(self, address_id: int) -> None:
        """Make an address due now regardless of its schedule."""
        async with self._session_factory() as session, session.begin():
            updated = await AddressRepository(session).update(
                address_id, for_update=True, next_check=self.now()
            )
            if updated is None:
                raise AddressNotFound(address_id)

    # ------------------------------------------------------------------
    # Status transitions
    # ------------------------------------------------------------------

    @store_operation
    async def close(self, address_id: int) -> bool:
        """
        Close an open address.

        Returns:
            True if the address was open
        """
        async with self._session_factory() as session, session.begin():
            address = await AddressRepository(session).get_by_id(address_id, for_update=True)
            if address is None:
                raise AddressNotFound(address_id)
            if address.status != AddressStatus.OPEN:
                logger.warning(f"Address {address_id} is {address.status}, not closing")
                return False
            address.status = AddressStatus.CLOSED.value
            address.valid_to = from_epoch(self.now())
            logger.info(f"Address {address_id} closed")
            return True

    @store_operation
    async def lock(self, address_id: int) -> bool:
        """
        Lock an address after its funds were swept; it is never polled again.

        Returns:
            True if the status changed
        """
        async with self._session_factory() as session, session.begin():
            address = await AddressRepository(session).get_by_id(address_id, for_update=True)
            if address is None:
                raise AddressNotFound(address_id)
            if address.status == AddressStatus.LOCKED:
                return False
            address.status = AddressStatus.LOCKED.value
            if address.valid_to is None:
                address.valid_to = from_epoch(self.now())
            logger.info(f"Address {address_id} locked")
            return True

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    @store_operation
    async def get(self, address_id: int) -> AddressInfo:
        """
        Snapshot of an address.

        Raises:
            AddressNotFound: no such address
        """
        async with self._session_factory() as session:
            address = await AddressRepository(session).get_by_id(address_id)
            if address is None:
                raise AddressNotFound(address_id)
            return AddressInfo.from_model(address)

    @store_operation
    async def list_addresses(
        self,
        coin: str | None = None,
        account: str | None = None,
        include_locked: bool = False,
    ) -> list[AddressInfo]:
        """List address snapshots, optionally filtered by coin and account label."""
        async with self._session_factory() as session:
            coin_id = account_id = None
            if coin is not None:
                coin_row = await CoinRepository(session).get_by_symbol(coin)
                if coin_row is None:
                    raise UnknownCoin(coin)
                coin_id = coin_row.id
            if account is not None:
                account_row = await AccountRepository(session).get_by_label(account)
                if account_row is None:
                    raise UnknownAccount(account)
                account_id = account_row.id
            rows = await AddressRepository(session).find_filtered(
                coin_id=coin_id, account_id=account_id, include_locked=include_locked
            )
            return [AddressInfo.from_model(row) for row in rows]

    @store_operation
    async def store_funds(self, address_id: int, funds: list[FundRecord]) -> int:
        """
        Store provider funding events not seen before.

        Args:
            address_id: Address ID
            funds: FundRecord items

        Returns:
            Number of new records
        """
        async with self._session_factory() as session, session.begin():
            repo = IncomingRepository(session)
            known = await repo.known_keys(address_id)
            added = 0
            for fund in funds:
                amount = to_stored_amount(fund.amount)
                key = (int(fund.seen), amount)
                if key in known:
                    continue
                await repo.record(address_id, key[0], amount)
                known.add(key)
                added += 1
            return added
