"""
Key-derivation collaborator.

HD wallet derivation lives outside the relay. The relay only needs
"address string for (coin, index)"; the default implementation serves
addresses pre-derived offline and listed in the coin configuration.
"""

from typing import Protocol

from loguru import logger

from relay.config.settings import CoinConfig
from relay.utils.exceptions import KeyDerivationError


class KeyDeriver(Protocol):
    """Derives the receiving address of a coin at an index."""

    async def derive_address(self, coin: str, index: int) -> str:
        """
        Raises:
            KeyDerivationError: address cannot be derived
        """
        ...


class AddressListDeriver:
    """Serves pre-derived addresses: index i maps to the i-th list entry."""

    def __init__(self, addresses: dict[str, list[str]]) -> None:
        self._addresses = {coin.lower(): list(values) for coin, values in addresses.items()}

    @classmethod
    def from_coins(cls, coins: list[CoinConfig]) -> "AddressListDeriver":
        """Build from coin configuration entries."""
        return cls({coin.symbol: coin.addresses for coin in coins})

    async def derive_address(self, coin: str, index: int) -> str:
        addresses = self._addresses.get(coin.lower())
        if not addresses:
            raise KeyDerivationError(f"No addresses available for coin '{coin}'")
        if index < 0 or index >= len(addresses):
            logger.error(
                f"Address pool for {coin} exhausted: index {index}, "
                f"{len(addresses)} addresses configured"
            )
            raise KeyDerivationError(
                f"Index {index} out of range for coin '{coin}' ({len(addresses)} addresses)"
            )
        return addresses[index]
