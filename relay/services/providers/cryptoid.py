"""
Multi-coin adapter backed by chainz.cryptoid.info.

The query API answers with a bare decimal number in coin units and
offers no funding history.
"""

from decimal import Decimal

from relay.services.providers.base import FundRecord, HttpProvider, SharedChainAdapter


SUPPORTED_COINS = frozenset({
    "blk", "dgb", "ftc", "grs", "lbc", "nmc", "ppc", "sys", "via", "vtc",
})


class CryptoidAdapter(HttpProvider, SharedChainAdapter):
    """Received totals for cryptoid-indexed coins."""

    name = "cryptoid"
    base_url = "https://chainz.cryptoid.info"

    def supports(self, coin: str) -> bool:
        return coin in SUPPORTED_COINS

    async def fetch_balance(self, address: str, coin: str) -> Decimal:
        params = {"q": "getreceivedbyaddress", "a": address}
        if self.api_key:
            params["key"] = self.api_key
        body = await self._query_text(f"{self.base_url}/{coin}/api.dws", params=params)
        return self._amount(body)

    async def fetch_funds(
        self, address_id: int, address: str, coin: str
    ) -> list[FundRecord]:
        return []
