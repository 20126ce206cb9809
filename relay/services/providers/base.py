"""
Provider adapter base classes.

Every chain-data provider is wrapped by an HttpProvider that owns one
admission policy, an optional API key and a lazily created aiohttp
session. Two adapter shapes sit on top of it:

- ChainAdapter: dedicated to one coin.
- SharedChainAdapter: one explorer serving several coins, the coin is
  passed with every call. DerivedAdapter exposes one of its coins
  through the single-coin contract.

Adapters never touch the store. Failures are raised as
ProviderUnavailable (network, timeout, HTTP status) or
ProviderResponseInvalid (payload cannot be interpreted).
"""

import asyncio
import json
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import UTC, datetime
from decimal import Decimal, InvalidOperation
from typing import Any

import aiohttp
from loguru import logger

from relay.config.constants import PROVIDER_TIMEOUT
from relay.config.settings import ProviderConfig
from relay.services.rate_limiter import (
    AdmissionPolicy,
    Clock,
    Sleeper,
    build_limiter,
)
from relay.utils.exceptions import ProviderResponseInvalid, ProviderUnavailable


@dataclass(frozen=True)
class FundRecord:
    """One funding event reported by a provider."""

    seen: int  # Unix seconds
    address_id: int
    amount: Decimal


class HttpProvider:
    """
    HTTP access to one external provider.

    setup() binds the admission policy and API key exactly once; later
    calls are no-ops so several coins may reference the same provider.
    """

    name = "provider"

    def __init__(self) -> None:
        self.api_key: str | None = None
        self._limiter: AdmissionPolicy | None = None
        self._session: aiohttp.ClientSession | None = None
        self._initialized = False

    @property
    def initialized(self) -> bool:
        return self._initialized

    @property
    def limiter(self) -> AdmissionPolicy:
        if self._limiter is None:
            raise RuntimeError(f"Provider {self.name} used before setup()")
        return self._limiter

    def setup(
        self,
        config: ProviderConfig,
        clock: Clock = time.time,
        sleep: Sleeper = asyncio.sleep,
    ) -> None:
        """
        Bind access policy and API key.

        Args:
            config: Provider access policy
            clock: Time source for the limiter
            sleep: Async sleep used by the limiter
        """
        if self._initialized:
            logger.debug(f"Provider {self.name} already set up, ignoring")
            return
        self._initialized = True
        self._limiter = build_limiter(config, self.name, clock=clock, sleep=sleep)
        self.api_key = config.api_key or self.default_api_key()
        logger.info(
            f"Provider {self.name} set up "
            f"({type(self._limiter).__name__}, api key: {'yes' if self.api_key else 'no'})"
        )

    def default_api_key(self) -> str | None:
        return None

    async def _get_session(self) -> aiohttp.ClientSession:
        """Get or create aiohttp session."""
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession()
        return self._session

    async def close(self) -> None:
        """Close the HTTP session."""
        if self._session is not None and not self._session.closed:
            await self._session.close()
        self._session = None

    async def _request(self, url: str, params: dict[str, Any] | None = None) -> str:
        """
        Perform one admitted GET request.

        Args:
            url: Request URL
            params: Query parameters

        Returns:
            Response body

        Raises:
            ProviderUnavailable: network error, timeout or non-2xx status
        """
        try:
            async with self.limiter:
                session = await self._get_session()
                async with session.get(
                    url,
                    params=params,
                    timeout=aiohttp.ClientTimeout(total=PROVIDER_TIMEOUT),
                ) as response:
                    if not 200 <= response.status < 300:
                        raise ProviderUnavailable(
                            self.name, f"HTTP {response.status} for {url}"
                        )
                    return await response.text()
        except TimeoutError as e:
            raise ProviderUnavailable(
                self.name, f"timeout after {PROVIDER_TIMEOUT}s for {url}"
            ) from e
        except aiohttp.ClientError as e:
            raise ProviderUnavailable(self.name, f"{type(e).__name__}: {e}") from e

    async def _query_json(self, url: str, params: dict[str, Any] | None = None) -> Any:
        """GET and decode a JSON document."""
        body = await self._request(url, params)
        try:
            return json.loads(body)
        except ValueError as e:
            raise ProviderResponseInvalid(self.name, f"invalid JSON from {url}") from e

    async def _query_text(self, url: str, params: dict[str, Any] | None = None) -> str:
        """GET a plain-text document."""
        return (await self._request(url, params)).strip()

    def _amount(self, value: Any, scale: Decimal | int = 1) -> Decimal:
        """
        Convert a provider value to coin units.

        Args:
            value: Number or numeric string in provider units
            scale: Provider units per coin unit (1e8 for satoshi)

        Raises:
            ProviderResponseInvalid: value is not numeric
        """
        if value is None or isinstance(value, bool):
            raise ProviderResponseInvalid(self.name, f"missing amount: {value!r}")
        try:
            amount = Decimal(str(value))
        except InvalidOperation as e:
            raise ProviderResponseInvalid(self.name, f"invalid amount: {value!r}") from e
        if not amount.is_finite():
            raise ProviderResponseInvalid(self.name, f"invalid amount: {value!r}")
        return amount / Decimal(scale)

    def _field(self, data: Any, *path: str) -> Any:
        """Walk nested mappings, raising ProviderResponseInvalid on a missing key."""
        node = data
        for key in path:
            if not isinstance(node, dict) or key not in node:
                raise ProviderResponseInvalid(
                    self.name, f"missing field {'.'.join(path)}"
                )
            node = node[key]
        return node

    def _timestamp(self, value: Any) -> int:
        """Unix seconds from an int, numeric string or 'YYYY-MM-DD HH:MM:SS' (UTC)."""
        try:
            return int(value)
        except (TypeError, ValueError):
            pass
        try:
            dt = datetime.strptime(str(value), "%Y-%m-%d %H:%M:%S").replace(tzinfo=UTC)
        except ValueError as e:
            raise ProviderResponseInvalid(self.name, f"invalid timestamp: {value!r}") from e
        return int(dt.timestamp())


class ChainAdapter(ABC):
    """Balance and funding history of addresses of one coin."""

    @abstractmethod
    async def fetch_balance(self, address: str) -> Decimal:
        """Cumulative amount received by the address in coin units."""

    @abstractmethod
    async def fetch_funds(self, address_id: int, address: str) -> list[FundRecord]:
        """Funding events of the address, oldest first."""


class SharedChainAdapter(ABC):
    """Explorer serving several coins; the provider-side coin key is passed along."""

    @abstractmethod
    def supports(self, coin: str) -> bool:
        """Whether the provider-side coin key is served."""

    @abstractmethod
    async def fetch_balance(self, address: str, coin: str) -> Decimal:
        """Cumulative amount received by the address in coin units."""

    @abstractmethod
    async def fetch_funds(
        self, address_id: int, address: str, coin: str
    ) -> list[FundRecord]:
        """Funding events of the address, oldest first."""


class DerivedAdapter(ChainAdapter):
    """Single-coin view of a shared adapter."""

    def __init__(self, parent: SharedChainAdapter, coin: str) -> None:
        self.parent = parent
        self.coin = coin

    async def fetch_balance(self, address: str) -> Decimal:
        return await self.parent.fetch_balance(address, self.coin)

    async def fetch_funds(self, address_id: int, address: str) -> list[FundRecord]:
        return await self.parent.fetch_funds(address_id, address, self.coin)

    def __repr__(self) -> str:
        return f"<DerivedAdapter({getattr(self.parent, 'name', self.parent)}:{self.coin})>"
