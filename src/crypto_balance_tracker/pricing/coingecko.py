"""CoinGecko pricing client for fetching USD spot prices."""

import logging
from decimal import Decimal
from typing import Any

import httpx

logger = logging.getLogger(__name__)


class CoinGeckoPriceReader:
    """
    Fetches USD prices from the CoinGecko ``simple/price`` endpoint.

    Failures are expected outcomes here: HTTP errors and malformed payloads
    are logged and reported as missing prices, never raised.

    Parameters
    ----------
    base_url : str
        CoinGecko API base URL
    api_key : str | None
        Optional demo API key sent as ``x-cg-demo-api-key``
    timeout : float
        Request timeout in seconds
    client : httpx.AsyncClient | None
        Pre-configured client (mainly for tests). Created if None.

    """

    def __init__(
        self,
        base_url: str = "https://api.coingecko.com/api/v3",
        api_key: str | None = None,
        timeout: float = 5.0,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        headers = {"accept": "application/json"}
        if api_key:
            headers["x-cg-demo-api-key"] = api_key
        self.client = client or httpx.AsyncClient(timeout=timeout, headers=headers)

    async def fetch_price(self, price_id: str) -> Decimal | None:
        """
        Fetch USD price for a single asset.

        Parameters
        ----------
        price_id : str
            CoinGecko coin id (e.g., 'ethereum')

        Returns
        -------
        Decimal | None
            USD price, or None if unavailable

        """
        prices = await self.fetch_prices_batch([price_id])
        return prices.get(price_id)

    async def fetch_prices_batch(self, price_ids: list[str]) -> dict[str, Decimal]:
        """
        Fetch USD prices for multiple assets in one request.

        Parameters
        ----------
        price_ids : list[str]
            CoinGecko coin ids

        Returns
        -------
        dict[str, Decimal]
            Mapping of price id to USD price. Ids without a price are absent.

        Examples
        --------
        >>> reader = CoinGeckoPriceReader()
        >>> prices = await reader.fetch_prices_batch(["ethereum", "matic-network"])

        """
        if not price_ids:
            return {}

        data = await self._fetch_simple_price(price_ids)

        prices = {}
        for price_id in price_ids:
            entry = data.get(price_id)
            usd = entry.get("usd") if isinstance(entry, dict) else None
            if isinstance(usd, int | float) and not isinstance(usd, bool):
                prices[price_id] = Decimal(str(usd))
            else:
                logger.debug("No USD price in CoinGecko response for %s", price_id)
        return prices

    async def _fetch_simple_price(self, price_ids: list[str]) -> dict[str, Any]:
        """
        Call the CoinGecko simple price endpoint.

        Parameters
        ----------
        price_ids : list[str]
            Coin ids to query

        Returns
        -------
        dict[str, Any]
            Raw response payload, empty on failure

        """
        try:
            response = await self.client.get(
                f"{self.base_url}/simple/price",
                params={"ids": ",".join(price_ids), "vs_currencies": "usd"},
            )
            response.raise_for_status()
            data = response.json()
        except httpx.HTTPError as e:
            logger.warning("CoinGecko request for %d ids failed: %s", len(price_ids), e)
            return {}
        except ValueError as e:
            logger.warning("CoinGecko returned invalid JSON: %s", e)
            return {}

        if not isinstance(data, dict):
            logger.warning("Unexpected CoinGecko payload type: %s", type(data).__name__)
            return {}
        return data

    async def aclose(self) -> None:
        """Close HTTP client."""
        await self.client.aclose()

    async def __aenter__(self) -> "CoinGeckoPriceReader":
        """Async context manager entry."""
        return self

    async def __aexit__(self, exc_type: type, exc_val: Exception, exc_tb: object) -> None:
        """Async context manager exit."""
        await self.aclose()
