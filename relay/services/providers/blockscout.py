"""
Ethereum Classic adapter backed by the blockscout explorer API.
"""

from decimal import Decimal

from relay.services.providers.base import ChainAdapter, FundRecord, HttpProvider
from relay.utils.exceptions import ProviderResponseInvalid


WEI_PER_ETC = 10**18


class BlockscoutAdapter(HttpProvider, ChainAdapter):
    """ETC balance and incoming transactions (etherscan-style API)."""

    name = "blockscout"
    base_url = "https://blockscout.com/etc/mainnet/api"

    async def fetch_balance(self, address: str) -> Decimal:
        data = await self._query_json(
            self.base_url,
            params={"module": "account", "action": "balance", "address": address},
        )
        result = self._field(data, "result")
        if result is None:
            raise ProviderResponseInvalid(
                self.name, f"no balance: {data.get('message', 'unknown error')}"
            )
        return self._amount(result, WEI_PER_ETC)

    async def fetch_funds(self, address_id: int, address: str) -> list[FundRecord]:
        data = await self._query_json(
            self.base_url,
            params={"module": "account", "action": "txlist", "address": address},
        )
        result = self._field(data, "result")
        if result is None or (data.get("status") == "0" and not result):
            # "No transactions found"
            return []
        if not isinstance(result, list):
            raise ProviderResponseInvalid(self.name, f"unexpected txlist result: {result!r}")

        funds = []
        for tx in result:
            if tx.get("isError") == "1":
                continue
            if (tx.get("to") or "").lower() != address.lower():
                continue
            funds.append(
                FundRecord(
                    seen=self._timestamp(self._field(tx, "timeStamp")),
                    address_id=address_id,
                    amount=self._amount(tx.get("value"), WEI_PER_ETC),
                )
            )
        funds.sort(key=lambda f: f.seen)
        return funds
