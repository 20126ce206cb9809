"""
Chain-data provider adapters.
"""

from relay.services.providers.base import (
    ChainAdapter,
    DerivedAdapter,
    FundRecord,
    HttpProvider,
    SharedChainAdapter,
)
from relay.services.providers.registry import (
    CoinBinding,
    ProviderRegistry,
    build_registry,
    default_providers,
)


__all__ = [
    "ChainAdapter",
    "CoinBinding",
    "DerivedAdapter",
    "FundRecord",
    "HttpProvider",
    "ProviderRegistry",
    "SharedChainAdapter",
    "build_registry",
    "default_providers",
]
