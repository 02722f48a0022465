"""Interface for upstream USD price sources."""

from decimal import Decimal
from typing import Protocol


class PriceReader(Protocol):
    """
    Source of USD spot prices keyed by price id.

    Methods
    -------
    fetch_price(price_id)
        Price of one asset, or None if unavailable
    fetch_prices_batch(price_ids)
        Prices of several assets; ids missing from the result were not found

    """

    async def fetch_price(self, price_id: str) -> Decimal | None: ...

    async def fetch_prices_batch(self, price_ids: list[str]) -> dict[str, Decimal]: ...
