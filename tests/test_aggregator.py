"""Tests for portfolio aggregation and display helpers."""

from decimal import Decimal

import pytest

from crypto_balance_tracker.core.aggregator import (
    aggregate_portfolios,
    calculate_percentage,
    filter_portfolios_with_balance,
    format_token_amount,
    format_usd_value,
    networks_with_balance,
    networks_with_errors,
    networks_without_balance,
    sort_portfolios_by_value,
    total_balance_count,
)
from crypto_balance_tracker.core.models import AddressPortfolio, Balance, NetworkBalance


def _balance(symbol, amount, usd, decimals=18, native=False):
    return Balance(
        symbol=symbol,
        raw_amount="0",
        formatted_amount=amount,
        decimals=decimals,
        usd_value=None if usd is None else Decimal(usd),
        is_native=native,
    )


def _network(network_id, native=None, tokens=(), error=None):
    balances = [b for b in (native, *tokens) if b is not None]
    total = sum((b.usd_value for b in balances if b.usd_value is not None), Decimal("0"))
    return NetworkBalance(
        network_id=network_id,
        network_name=network_id.capitalize(),
        native_balance=native,
        token_balances=list(tokens),
        total_usd_value=total,
        has_non_zero_balance=bool(balances),
        fetched_at=0.0,
        error=error,
    )


def _portfolio(address_id, *networks):
    return AddressPortfolio(
        address_id=address_id,
        address=f"0x{address_id * 40}"[:42],
        network_balances=list(networks),
        total_usd_value=sum((n.total_usd_value for n in networks), Decimal("0")),
        last_scanned_at=0.0,
    )


@pytest.fixture
def portfolios():
    first = _portfolio(
        "a",
        _network("ethereum", native=_balance("ETH", "2.5", "7500", native=True)),
        _network("polygon", tokens=[_balance("USDC", "100", "100", decimals=6)]),
    )
    second = _portfolio(
        "b",
        _network(
            "arbitrum",
            native=_balance("ETH", "1.5", "4500", native=True),
            tokens=[_balance("USDC", "400", "400", decimals=6)],
        ),
        _network("ethereum"),
        _network("base", error="RPC timeout"),
    )
    return [first, second]


def test_calculate_percentage():
    """Percentages are 0 for an empty total."""
    assert calculate_percentage(Decimal("25"), Decimal("100")) == 25.0
    assert calculate_percentage(Decimal("0"), Decimal("0")) == 0.0
    assert calculate_percentage(Decimal("5"), Decimal("0")) == 0.0


def test_aggregate_totals(portfolios):
    """Grand total and address count cover every portfolio."""
    summary = aggregate_portfolios(portfolios)

    assert summary.total_usd_value == Decimal("12500")
    assert summary.total_addresses == 2


def test_network_breakdown_grouped_and_sorted(portfolios):
    """Networks are summed across addresses and sorted by value."""
    summary = aggregate_portfolios(portfolios)

    assert [(b.network_id, b.total_usd_value) for b in summary.network_breakdown] == [
        ("ethereum", Decimal("7500")),
        ("arbitrum", Decimal("4900")),
        ("polygon", Decimal("100")),
        ("base", Decimal("0")),
    ]
    assert summary.network_breakdown[0].network_name == "Ethereum"
    assert summary.network_breakdown[0].percentage == pytest.approx(60.0)
    assert sum(b.percentage for b in summary.network_breakdown) == pytest.approx(100.0)


def test_asset_breakdown_sums_amounts(portfolios):
    """Asset amounts add up numerically and keep their decimals."""
    summary = aggregate_portfolios(portfolios)
    assets = {b.symbol: b for b in summary.asset_breakdown}

    assert [b.symbol for b in summary.asset_breakdown] == ["ETH", "USDC"]
    assert assets["ETH"].total_amount == "4.000000000000000000"
    assert assets["ETH"].total_usd_value == Decimal("12000")
    assert assets["USDC"].total_amount == "500.000000"
    assert assets["USDC"].percentage == pytest.approx(4.0)


def test_unpriced_assets_count_as_zero_value():
    """Assets without a USD value still appear in the asset breakdown."""
    portfolio = _portfolio("a", _network("ethereum", tokens=[_balance("PEPE", "1000", None)]))

    summary = aggregate_portfolios([portfolio])

    assert summary.total_usd_value == Decimal("0")
    assert summary.asset_breakdown[0].symbol == "PEPE"
    assert summary.asset_breakdown[0].total_usd_value == Decimal("0")
    assert summary.asset_breakdown[0].percentage == 0.0
    assert summary.network_breakdown[0].percentage == 0.0


def test_aggregate_empty():
    """No portfolios give an empty summary."""
    summary = aggregate_portfolios([])

    assert summary.total_usd_value == Decimal("0")
    assert summary.total_addresses == 0
    assert summary.network_breakdown == []
    assert summary.asset_breakdown == []


def test_network_filters(portfolios):
    """Networks split into with balance, without balance, and errored."""
    second = portfolios[1]

    assert networks_with_balance(second) == ["arbitrum"]
    assert networks_without_balance(second) == ["ethereum"]
    assert networks_with_errors(second) == [{"network_id": "base", "error": "RPC timeout"}]


def test_sort_and_filter_portfolios(portfolios):
    """Sorting is by total value; filtering drops empty portfolios."""
    empty = _portfolio("c", _network("ethereum"))

    ordered = sort_portfolios_by_value([empty, *portfolios])

    assert [p.address_id for p in ordered] == ["a", "b", "c"]
    assert filter_portfolios_with_balance([empty, *portfolios]) == portfolios


def test_total_balance_count(portfolios):
    """Native and token balances are both counted."""
    assert total_balance_count(portfolios) == 4


@pytest.mark.parametrize(
    ("value", "expected"),
    [
        (None, "-"),
        (Decimal("0"), "$0.00"),
        (Decimal("0.005"), "$0.005000"),
        (Decimal("0.5"), "$0.5000"),
        (Decimal("1234.5"), "$1,234.50"),
    ],
)
def test_format_usd_value(value, expected):
    assert format_usd_value(value) == expected


@pytest.mark.parametrize(
    ("amount", "decimals", "expected"),
    [
        ("0", 18, "0"),
        ("0.0000001", 8, "0.00000010"),
        ("0.5", 18, "0.500000"),
        ("12.3456789", 18, "12.3457"),
        ("12345.678", 6, "12,345.68"),
    ],
)
def test_format_token_amount(amount, decimals, expected):
    assert format_token_amount(amount, decimals) == expected
