"""
Multi-coin adapter backed by the blockchair.com dashboards API.

One instance serves every UTXO coin blockchair indexes; the coin key is
part of the URL path and the unit scale comes from UNIT_SCALE.
"""

from decimal import Decimal

from relay.services.providers.base import FundRecord, HttpProvider, SharedChainAdapter
from relay.utils.exceptions import ProviderResponseInvalid, ProviderUnavailable


# Provider units per coin unit
UNIT_SCALE: dict[str, int] = {
    "bitcoin": 10**8,
    "bitcoin-cash": 10**8,
    "bitcoin-sv": 10**8,
    "dash": 10**8,
    "dogecoin": 10**8,
    "groestlcoin": 10**8,
    "litecoin": 10**8,
    "zcash": 10**8,
    "ecash": 10**2,
}


class BlockchairAdapter(HttpProvider, SharedChainAdapter):
    """Received totals and funding outputs for blockchair-indexed coins."""

    name = "blockchair"
    base_url = "https://api.blockchair.com"

    def supports(self, coin: str) -> bool:
        return coin in UNIT_SCALE

    def _params(self) -> dict[str, str] | None:
        return {"key": self.api_key} if self.api_key else None

    async def _dashboard(self, coin: str, kind: str, key: str) -> dict:
        """
        Query one dashboard and return its data entry for `key`.

        Raises:
            ProviderUnavailable: context code is not 200
            ProviderResponseInvalid: entry missing
        """
        data = await self._query_json(
            f"{self.base_url}/{coin}/dashboards/{kind}/{key}", params=self._params()
        )
        code = self._field(data, "context", "code")
        if code != 200:
            raise ProviderUnavailable(self.name, f"context code {code} for {coin}/{kind}")

        entries = self._field(data, "data")
        if not isinstance(entries, dict) or not entries:
            raise ProviderResponseInvalid(self.name, f"no {kind} data for {key}")
        if key in entries:
            return entries[key]
        if len(entries) == 1:
            # blockchair may normalize the key (e.g. address case)
            return next(iter(entries.values()))
        raise ProviderResponseInvalid(self.name, f"no {kind} data for {key}")

    def _scale(self, coin: str) -> int:
        try:
            return UNIT_SCALE[coin]
        except KeyError:
            raise ProviderResponseInvalid(self.name, f"unsupported coin {coin}") from None

    async def fetch_balance(self, address: str, coin: str) -> Decimal:
        scale = self._scale(coin)
        entry = await self._dashboard(coin, "address", address)
        return self._amount(self._field(entry, "address", "received"), scale)

    async def fetch_funds(
        self, address_id: int, address: str, coin: str
    ) -> list[FundRecord]:
        scale = self._scale(coin)
        entry = await self._dashboard(coin, "address", address)

        funds = []
        for tx_hash in entry.get("transactions") or []:
            tx = await self._dashboard(coin, "transaction", tx_hash)
            for vout in tx.get("outputs") or []:
                if vout.get("recipient") != address:
                    continue
                funds.append(
                    FundRecord(
                        seen=self._timestamp(self._field(vout, "time")),
                        address_id=address_id,
                        amount=self._amount(vout.get("value"), scale),
                    )
                )
        funds.sort(key=lambda f: f.seen)
        return funds
