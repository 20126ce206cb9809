"""
Provider registry.

Constructed once at startup and passed to the scheduler. Startup is
two-phase: register providers and bind coins, then initialize every
provider exactly once.
"""

import asyncio
import time
from dataclasses import dataclass
from decimal import Decimal

from loguru import logger

from relay.config.constants import DEFAULT_COIN_PROVIDERS
from relay.config.settings import ProviderConfig, Settings
from relay.services.providers.base import (
    ChainAdapter,
    DerivedAdapter,
    HttpProvider,
    SharedChainAdapter,
)
from relay.services.providers.blockchain_info import BlockchainInfoAdapter
from relay.services.providers.blockchair import BlockchairAdapter
from relay.services.providers.blockscout import BlockscoutAdapter
from relay.services.providers.cryptoid import CryptoidAdapter
from relay.services.providers.ethplorer import EthplorerAdapter
from relay.services.providers.zchain import ZchainAdapter
from relay.services.rate_limiter import Clock, Sleeper
from relay.utils.exceptions import UnknownCoinAdapter


@dataclass(frozen=True)
class CoinBinding:
    """Adapter and per-coin settings resolved for one coin."""

    coin: str
    provider: str
    adapter: ChainAdapter
    limit: Decimal | None = None
    explorer: str = ""

    def explorer_url(self, address: str) -> str:
        """Block explorer link for an address."""
        if not self.explorer:
            return ""
        if "{address}" in self.explorer:
            return self.explorer.replace("{address}", address)
        return self.explorer + address


class ProviderRegistry:
    """Coin -> adapter mapping with explicit two-phase initialization."""

    def __init__(self) -> None:
        self._providers: dict[str, HttpProvider] = {}
        self._bindings: dict[str, CoinBinding] = {}
        self._initialized = False

    @property
    def coins(self) -> list[str]:
        return sorted(self._bindings)

    @property
    def providers(self) -> dict[str, HttpProvider]:
        return dict(self._providers)

    @property
    def initialized(self) -> bool:
        return self._initialized

    def register(self, name: str, provider: HttpProvider) -> None:
        """
        Register a provider under a name.

        Raises:
            ValueError: name already registered
        """
        if name in self._providers:
            raise ValueError(f"Provider '{name}' already registered")
        self._providers[name] = provider

    def bind(
        self,
        coin: str,
        provider: str,
        provider_coin: str | None = None,
        limit: Decimal | None = None,
        explorer: str = "",
    ) -> CoinBinding:
        """
        Bind a coin to a registered provider.

        Shared providers get a DerivedAdapter for `provider_coin`
        (defaults to the coin symbol).

        Raises:
            UnknownCoinAdapter: provider unknown or coin not served by it
        """
        coin = coin.lower()
        target = self._providers.get(provider)
        if target is None:
            logger.error(f"Coin {coin}: provider '{provider}' is not registered")
            raise UnknownCoinAdapter(coin)

        if isinstance(target, SharedChainAdapter):
            key = provider_coin or coin
            if not target.supports(key):
                logger.error(f"Coin {coin}: provider '{provider}' does not serve '{key}'")
                raise UnknownCoinAdapter(coin)
            adapter: ChainAdapter = DerivedAdapter(target, key)
        elif isinstance(target, ChainAdapter):
            adapter = target
        else:
            raise TypeError(f"Provider '{provider}' implements no adapter contract")

        binding = CoinBinding(
            coin=coin, provider=provider, adapter=adapter, limit=limit, explorer=explorer
        )
        self._bindings[coin] = binding
        logger.debug(f"Coin {coin} bound to {provider}")
        return binding

    def initialize(
        self,
        configs: dict[str, ProviderConfig],
        clock: Clock = time.time,
        sleep: Sleeper = asyncio.sleep,
    ) -> None:
        """
        Set up every registered provider exactly once.

        Providers without an entry in `configs` run unconstrained.
        """
        if self._initialized:
            logger.warning("Provider registry already initialized")
            return
        for name, provider in self._providers.items():
            config = configs.get(name)
            if config is None:
                logger.warning(f"No access policy configured for provider {name}")
                config = ProviderConfig()
            provider.setup(config, clock=clock, sleep=sleep)
        self._initialized = True
        logger.info(
            f"Provider registry initialized: {len(self._providers)} providers, "
            f"{len(self._bindings)} coins"
        )

    def resolve(self, coin: str) -> CoinBinding:
        """
        Binding for a coin.

        Raises:
            UnknownCoinAdapter: coin not bound
        """
        binding = self._bindings.get(coin.lower())
        if binding is None:
            raise UnknownCoinAdapter(coin)
        return binding

    def require(self, coins: list[str]) -> None:
        """
        Fail unless every coin is bound.

        Raises:
            UnknownCoinAdapter: first unbound coin
        """
        missing = [c for c in coins if c.lower() not in self._bindings]
        if missing:
            logger.critical(f"No provider adapter for coins: {', '.join(missing)}")
            raise UnknownCoinAdapter(missing[0])

    async def close(self) -> None:
        """Release provider HTTP sessions."""
        for name, provider in self._providers.items():
            try:
                await provider.close()
            except Exception as e:
                logger.warning(f"Error closing provider {name}: {e}")


def default_providers() -> dict[str, HttpProvider]:
    """Fresh instances of all built-in providers."""
    providers: list[HttpProvider] = [
        BlockchainInfoAdapter(),
        EthplorerAdapter(),
        BlockscoutAdapter(),
        ZchainAdapter(),
        BlockchairAdapter(),
        CryptoidAdapter(),
    ]
    return {p.name: p for p in providers}


def build_registry(
    config: Settings,
    clock: Clock = time.time,
    sleep: Sleeper = asyncio.sleep,
) -> ProviderRegistry:
    """
    Build and initialize the registry for the configured coins.

    Args:
        config: Application settings
        clock: Time source for limiters
        sleep: Async sleep used by limiters

    Returns:
        Initialized registry

    Raises:
        UnknownCoinAdapter: a configured coin cannot be bound
    """
    registry = ProviderRegistry()
    for name, provider in default_providers().items():
        registry.register(name, provider)

    for coin in config.coins:
        provider = coin.provider
        provider_coin = coin.provider_coin
        if provider is None:
            default = DEFAULT_COIN_PROVIDERS.get(coin.symbol)
            if default is None:
                logger.critical(f"Coin {coin.symbol} has no provider configured")
                raise UnknownCoinAdapter(coin.symbol)
            provider, default_coin = default
            provider_coin = provider_coin or default_coin
        registry.bind(
            coin.symbol,
            provider,
            provider_coin=provider_coin,
            limit=coin.limit,
            explorer=coin.explorer,
        )

    registry.initialize(config.providers, clock=clock, sleep=sleep)
    registry.require([coin.symbol for coin in config.coins])
    return registry
