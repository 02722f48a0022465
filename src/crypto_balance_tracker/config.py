"""Runtime settings, overridable through ``BALANCE_TRACKER_*`` environment variables."""

from pathlib import Path

from pydantic import Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from crypto_balance_tracker.rpc.retry import RetryConfig

DEFAULT_STABLECOINS = ["USDC", "USDT", "DAI", "USDC.E", "USDCE"]

DEFAULT_WRAPPED_TOKENS = {
    "WETH": "ethereum",
    "WMATIC": "matic-network",
    "WBNB": "binancecoin",
    "WAVAX": "avalanche-2",
    "WFTM": "fantom",
}


class TrackerSettings(BaseSettings):
    """
    Balance tracker configuration.

    All durations are in seconds.

    Attributes
    ----------
    non_zero_balance_ttl : float
        Cache TTL for networks that last had a non-zero balance
    zero_balance_ttl : float
        Cache TTL for networks that last had no balance
    price_ttl : float
        Cache TTL for USD prices
    sweep_interval : float
        Interval between eager sweeps of expired cache entries
    refresh_interval : float
        Interval between background refresh runs
    refresh_window : float
        Entries expiring within this window are refreshed in the background
    initial_refresh_delay : float
        Delay before the first background refresh run
    fetch_timeout : float
        Overall limit of one upstream fetch, retries and backoff included
    request_timeout : float
        HTTP timeout of a single request attempt
    max_concurrent_addresses : int
        Concurrency limit when scanning several addresses
    stablecoin_symbols : list[str]
        Symbols pegged at 1 USD
    wrapped_tokens : dict[str, str]
        Wrapped token symbol to underlying price id
    coingecko_base_url : str
        CoinGecko API base URL
    coingecko_api_key : str | None
        Optional CoinGecko demo/pro API key
    rpc_max_retries : int
        Retries per JSON-RPC request
    rpc_base_delay : float
        Initial retry backoff for JSON-RPC requests
    networks_file : Path | None
        Alternative networks YAML file

    """

    model_config = SettingsConfigDict(
        env_prefix="BALANCE_TRACKER_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    non_zero_balance_ttl: float = 10 * 60
    zero_balance_ttl: float = 60 * 60
    price_ttl: float = 10 * 60
    sweep_interval: float = 5 * 60
    refresh_interval: float = 5 * 60
    refresh_window: float = 2 * 60
    initial_refresh_delay: float = 60
    fetch_timeout: float = 30.0
    request_timeout: float = 5.0
    max_concurrent_addresses: int = 4

    stablecoin_symbols: list[str] = Field(default_factory=lambda: list(DEFAULT_STABLECOINS))
    wrapped_tokens: dict[str, str] = Field(default_factory=lambda: dict(DEFAULT_WRAPPED_TOKENS))

    coingecko_base_url: str = "https://api.coingecko.com/api/v3"
    coingecko_api_key: str | None = None

    rpc_max_retries: int = 3
    rpc_base_delay: float = 1.0

    networks_file: Path | None = None

    def rpc_retry_config(self) -> RetryConfig:
        return RetryConfig(max_retries=self.rpc_max_retries, base_delay=self.rpc_base_delay)

    @model_validator(mode="after")
    def check_fetch_timeout_covers_retries(self) -> "TrackerSettings":
        """Every JSON-RPC attempt and backoff delay must fit inside ``fetch_timeout``."""
        retry = self.rpc_retry_config()
        worst_case = (retry.max_retries + 1) * self.request_timeout + sum(
            retry.get_delay(attempt) for attempt in range(retry.max_retries)
        )
        if self.fetch_timeout < worst_case:
            msg = (
                f"fetch_timeout ({self.fetch_timeout}s) is shorter than {worst_case}s needed for "
                f"{retry.max_retries + 1} attempts of {self.request_timeout}s plus backoff"
            )
            raise ValueError(msg)
        return self
