"""
Ethereum adapter backed by ethplorer.io.

Values are already in ETH. Without a configured key the public
"freekey" is used.
"""

from decimal import Decimal

from relay.config.constants import ETHPLORER_FREE_KEY
from relay.services.providers.base import ChainAdapter, FundRecord, HttpProvider
from relay.utils.exceptions import ProviderResponseInvalid


class EthplorerAdapter(HttpProvider, ChainAdapter):
    """ETH received totals and incoming transfers."""

    name = "ethplorer"
    base_url = "https://api.ethplorer.io"

    def default_api_key(self) -> str | None:
        return ETHPLORER_FREE_KEY

    def _check_error(self, data) -> None:
        # ethplorer reports API errors with HTTP 200
        if isinstance(data, dict) and "error" in data:
            error = data["error"]
            message = error.get("message") if isinstance(error, dict) else error
            raise ProviderResponseInvalid(self.name, f"API error: {message}")

    async def fetch_balance(self, address: str) -> Decimal:
        data = await self._query_json(
            f"{self.base_url}/getAddressInfo/{address}",
            params={"showETHTotals": "true", "apiKey": self.api_key},
        )
        self._check_error(data)
        return self._amount(self._field(data, "ETH", "totalIn"))

    async def fetch_funds(self, address_id: int, address: str) -> list[FundRecord]:
        data = await self._query_json(
            f"{self.base_url}/getAddressTransactions/{address}",
            params={"apiKey": self.api_key},
        )
        self._check_error(data)
        if not isinstance(data, list):
            raise ProviderResponseInvalid(self.name, "transaction list expected")

        funds = []
        for tx in data:
            if tx.get("success") is False:
                continue
            to = tx.get("to")
            if to is not None and to.lower() != address.lower():
                continue
            funds.append(
                FundRecord(
                    seen=self._timestamp(self._field(tx, "timestamp")),
                    address_id=address_id,
                    amount=self._amount(tx.get("value")),
                )
            )
        funds.sort(key=lambda f: f.seen)
        return funds
