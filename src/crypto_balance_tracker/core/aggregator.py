"""Portfolio aggregation across addresses, plus display helpers."""

from decimal import Decimal

from crypto_balance_tracker.core.models import (
    AddressPortfolio,
    AssetBreakdown,
    Balance,
    NetworkBreakdown,
    PortfolioSummary,
)


def calculate_percentage(part: Decimal, total: Decimal) -> float:
    """
    Share of part in total, in percent. Zero when the total is zero.

    Parameters
    ----------
    part : Decimal
        Partial value
    total : Decimal
        Total value

    Returns
    -------
    float
        Percentage between 0 and 100

    """
    if total == 0:
        return 0.0
    return float(part / total * 100)


def aggregate_portfolios(portfolios: list[AddressPortfolio]) -> PortfolioSummary:
    """
    Aggregate address portfolios into a summary.

    Values are grouped by network id and by asset symbol. Asset amounts are
    summed numerically and rendered at the decimals of the asset. Both
    breakdowns are sorted by USD value, highest first.

    Parameters
    ----------
    portfolios : list[AddressPortfolio]
        Portfolios to aggregate

    Returns
    -------
    PortfolioSummary
        Totals with network and asset breakdowns

    """
    total_usd = sum((p.total_usd_value for p in portfolios), Decimal("0"))

    by_network: dict[str, tuple[str, Decimal]] = {}
    by_asset: dict[str, tuple[Decimal, Decimal, int]] = {}

    for portfolio in portfolios:
        for network_balance in portfolio.network_balances:
            name, value = by_network.get(network_balance.network_id, (network_balance.network_name, Decimal("0")))
            by_network[network_balance.network_id] = (name, value + network_balance.total_usd_value)

            balances: list[Balance] = list(network_balance.token_balances)
            if network_balance.native_balance is not None:
                balances.insert(0, network_balance.native_balance)

            for balance in balances:
                amount, usd, decimals = by_asset.get(balance.symbol, (Decimal("0"), Decimal("0"), balance.decimals))
                by_asset[balance.symbol] = (
                    amount + Decimal(balance.formatted_amount),
                    usd + (balance.usd_value or Decimal("0")),
                    decimals,
                )

    network_breakdown = sorted(
        (
            NetworkBreakdown(
                network_id=network_id,
                network_name=name,
                total_usd_value=value,
                percentage=calculate_percentage(value, total_usd),
            )
            for network_id, (name, value) in by_network.items()
        ),
        key=lambda b: b.total_usd_value,
        reverse=True,
    )

    asset_breakdown = sorted(
        (
            AssetBreakdown(
                symbol=symbol,
                total_amount=f"{amount:.{decimals}f}",
                total_usd_value=usd,
                percentage=calculate_percentage(usd, total_usd),
            )
            for symbol, (amount, usd, decimals) in by_asset.items()
        ),
        key=lambda b: b.total_usd_value,
        reverse=True,
    )

    return PortfolioSummary(
        total_usd_value=total_usd,
        total_addresses=len(portfolios),
        network_breakdown=network_breakdown,
        asset_breakdown=asset_breakdown,
    )


def networks_with_balance(portfolio: AddressPortfolio) -> list[str]:
    """Network ids where the portfolio holds any balance."""
    return [nb.network_id for nb in portfolio.network_balances if nb.has_non_zero_balance]


def networks_without_balance(portfolio: AddressPortfolio) -> list[str]:
    """Network ids scanned successfully but holding nothing."""
    return [nb.network_id for nb in portfolio.network_balances if not nb.has_non_zero_balance and nb.error is None]


def networks_with_errors(portfolio: AddressPortfolio) -> list[dict[str, str]]:
    """Network ids whose scan failed, with the error message."""
    return [
        {"network_id": nb.network_id, "error": nb.error}
        for nb in portfolio.network_balances
        if nb.error is not None
    ]


def sort_portfolios_by_value(portfolios: list[AddressPortfolio]) -> list[AddressPortfolio]:
    """Portfolios sorted by total USD value, highest first. Input is not modified."""
    return sorted(portfolios, key=lambda p: p.total_usd_value, reverse=True)


def filter_portfolios_with_balance(portfolios: list[AddressPortfolio]) -> list[AddressPortfolio]:
    return [p for p in portfolios if p.total_usd_value > 0]


def total_balance_count(portfolios: list[AddressPortfolio]) -> int:
    """Number of native and token balances across all portfolios."""
    count = 0
    for portfolio in portfolios:
        for network_balance in portfolio.network_balances:
            if network_balance.native_balance is not None:
                count += 1
            count += len(network_balance.token_balances)
    return count


def format_usd_value(value: Decimal | None) -> str:
    """
    Format a USD value for display.

    Small values keep more decimal places so they do not render as zero.

    Parameters
    ----------
    value : Decimal | None
        USD value, or None when unpriced

    Returns
    -------
    str
        Display string (e.g., '$1,234.56', '$0.0042'); '-' when unpriced

    """
    if value is None:
        return "-"
    if value == 0:
        return "$0.00"
    if value < Decimal("0.01"):
        return f"${value:.6f}"
    if value < 1:
        return f"${value:.4f}"
    return f"${value:,.2f}"


def format_token_amount(amount: str, decimals: int) -> str:
    """
    Format a token amount for display with magnitude-dependent precision.

    Parameters
    ----------
    amount : str
        Decimal amount string
    decimals : int
        Token decimals, used for dust amounts

    Returns
    -------
    str
        Display string

    """
    value = Decimal(amount)
    if value == 0:
        return "0"
    if value < Decimal("0.000001"):
        return f"{value:.{decimals}f}"
    if value < 1:
        return f"{value:.6f}"
    if value < 1000:
        return f"{value:.4f}"
    return f"{value:,.2f}"
