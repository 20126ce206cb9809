"""
Relay Initialization - Services Module.

Module: services.py
Builds the balance synchronization engine: provider registry, ledgers
and the balance check worker. Coins without a provider adapter halt
startup.
"""

from dataclasses import dataclass

from loguru import logger
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from relay.config.settings import Settings
from relay.services.address_ledger import AddressLedger
from relay.services.balance_scheduler import BalanceScheduler
from relay.services.exchange_rates import StoredRateLookup
from relay.services.key_derivation import AddressListDeriver
from relay.services.providers.registry import ProviderRegistry, build_registry
from relay.services.transaction_ledger import TransactionLedger


@dataclass
class RelayServices:
    """Engine components shared by the worker, jobs and health server."""

    registry: ProviderRegistry
    addresses: AddressLedger
    transactions: TransactionLedger
    balance_scheduler: BalanceScheduler


async def initialize_services(
    config: Settings,
    session_factory: async_sessionmaker[AsyncSession],
) -> RelayServices:
    """
    Build and wire engine components.

    Args:
        config: Application settings
        session_factory: Async session maker

    Returns:
        RelayServices

    Raises:
        UnknownCoinAdapter: a configured or stored coin has no adapter
    """
    registry = build_registry(config)

    addresses = AddressLedger(
        session_factory,
        deriver=AddressListDeriver.from_coins(config.coins),
        rate_lookup=StoredRateLookup(session_factory),
        min_wait=config.balance_wait_min,
        factor=config.balance_wait_factor,
        max_wait=config.balance_wait_max,
    )

    for coin in config.coins:
        await addresses.register_coin(coin.symbol, coin.label)
    for label in config.accounts:
        await addresses.register_account(label)

    # addresses of stored coins must be serviceable too
    registry.require(await addresses.list_coins())

    transactions = TransactionLedger(session_factory, addresses, ttl=config.tx_ttl)
    balance_scheduler = BalanceScheduler(registry, addresses, config.account_limit)

    logger.info(
        f"Engine initialized: coins {', '.join(registry.coins) or '-'}, "
        f"{len(config.accounts)} accounts"
    )
    return RelayServices(
        registry=registry,
        addresses=addresses,
        transactions=transactions,
        balance_scheduler=balance_scheduler,
    )
