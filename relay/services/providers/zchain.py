"""
Zcash adapter backed by zcha.in.

Funding history is paged; each page costs one admitted request.
"""

from decimal import Decimal

from relay.config.constants import PROVIDER_PAGE_SIZE
from relay.services.providers.base import ChainAdapter, FundRecord, HttpProvider
from relay.utils.exceptions import ProviderResponseInvalid


class ZchainAdapter(HttpProvider, ChainAdapter):
    """ZEC transparent address totals."""

    name = "zcha.in"
    base_url = "https://api.zcha.in/v2/mainnet"

    async def fetch_balance(self, address: str) -> Decimal:
        data = await self._query_json(f"{self.base_url}/accounts/{address}")
        return self._amount(self._field(data, "totalRecv"))

    async def fetch_funds(self, address_id: int, address: str) -> list[FundRecord]:
        funds = []
        offset = 0
        while True:
            page = await self._query_json(
                f"{self.base_url}/accounts/{address}/recv",
                params={
                    "limit": PROVIDER_PAGE_SIZE,
                    "offset": offset,
                    "sort": "timestamp",
                    "direction": "ascending",
                },
            )
            if not isinstance(page, list):
                raise ProviderResponseInvalid(self.name, "transaction page expected")

            for tx in page:
                for vout in tx.get("vout") or []:
                    script = vout.get("scriptPubKey") or {}
                    if address not in (script.get("addresses") or []):
                        continue
                    funds.append(
                        FundRecord(
                            seen=self._timestamp(self._field(tx, "timestamp")),
                            address_id=address_id,
                            amount=self._amount(vout.get("value", tx.get("value"))),
                        )
                    )

            if len(page) < PROVIDER_PAGE_SIZE:
                break
            offset += len(page)

        return funds
