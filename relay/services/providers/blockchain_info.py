"""
Bitcoin adapter backed by blockchain.info.

The public API is keyless and throttled hard, so the default access
policy is a 10 second cooldown.
"""

from decimal import Decimal

from relay.services.providers.base import ChainAdapter, FundRecord, HttpProvider
from relay.utils.exceptions import ProviderResponseInvalid


SATOSHI_PER_BTC = 100_000_000


class BlockchainInfoAdapter(HttpProvider, ChainAdapter):
    """BTC balances from the blockchain.info rawaddr endpoint."""

    name = "blockchain.info"
    base_url = "https://blockchain.info"

    async def _rawaddr(self, address: str) -> dict:
        data = await self._query_json(f"{self.base_url}/rawaddr/{address}")
        if not isinstance(data, dict):
            raise ProviderResponseInvalid(self.name, "rawaddr document is not an object")
        return data

    async def fetch_balance(self, address: str) -> Decimal:
        data = await self._rawaddr(address)
        return self._amount(self._field(data, "total_received"), SATOSHI_PER_BTC)

    async def fetch_funds(self, address_id: int, address: str) -> list[FundRecord]:
        data = await self._rawaddr(address)
        funds = []
        for tx in data.get("txs") or []:
            for out in tx.get("out") or []:
                if out.get("addr") != address:
                    continue
                funds.append(
                    FundRecord(
                        seen=self._timestamp(self._field(tx, "time")),
                        address_id=address_id,
                        amount=self._amount(out.get("value"), SATOSHI_PER_BTC),
                    )
                )
        funds.sort(key=lambda f: f.seen)
        return funds
