"""Tests for price parsing and currency inference."""

from __future__ import annotations

from decimal import Decimal
from typing import Any

import pytest

from receiptlens.receipt.format_profiles import FormatProfile, build_format_profiles
from receiptlens.receipt.price_normalizer import check_price, detect_currency, format_price, normalize_price


def _profile(currency: str = "JPY", minimum: Any = 1, maximum: Any = 99999) -> FormatProfile:
    raw = {"name": "p", "currency": currency, "price_range": {"min": minimum, "max": maximum}}
    return build_format_profiles([{"profiles": [raw]}])["p"]


@pytest.mark.parametrize(
    ("token", "line_text", "expected"),
    [
        ("¥180", "", ("JPY", 0.95)),
        ("180", "*りんご ¥180", ("JPY", 0.95)),
        ("1,280", "1,280円", ("JPY", 0.95)),
        ("$3.49", "", ("USD", 0.95)),
        ("180", "180 JPY", ("JPY", 0.9)),
        ("3.49", "MILK 3.49 USD", ("USD", 0.9)),
        ("3.49", "MILK 3.49", ("USD", 0.8)),
        ("180", "りんご 180", ("JPY", 0.85)),
    ],
)
def test_detect_currency_precedence(token: str, line_text: str, expected: tuple[str, float]) -> None:
    assert detect_currency(token, line_text) == expected


def test_detect_currency_falls_back_to_given_default() -> None:
    assert detect_currency("349", "", default="USD") == ("USD", 0.85)


@pytest.mark.parametrize(
    ("raw", "expected"),
    [
        ("180", Decimal("180")),
        ("1,280", Decimal("1280")),
        # A period between thousands on a yen receipt is a misread comma
        ("1.128", Decimal("1128")),
        ("12.5", Decimal("13")),
    ],
)
def test_yen_prices(raw: str, expected: Decimal) -> None:
    price, reason = check_price(raw, "", _profile())
    assert reason is None
    assert price is not None
    assert price.value == expected
    assert price.currency == "JPY"


def test_usd_prices_round_half_up_to_cents() -> None:
    price = normalize_price("3.499", "", _profile("USD", "0.01", "9999.99"))
    assert price is not None
    assert price.value == Decimal("3.50")
    assert price.currency == "USD"


@pytest.mark.parametrize(
    ("raw", "reason_fragment"),
    [
        (None, "no price token"),
        ("", "no price token"),
        ("abc", "no number"),
        ("0", "non-positive"),
        ("150000", "outside range"),
    ],
)
def test_rejected_prices(raw: str | None, reason_fragment: str) -> None:
    price, reason = check_price(raw, "", _profile())
    assert price is None
    assert reason is not None
    assert reason_fragment in reason


def test_range_is_inclusive() -> None:
    profile = _profile(minimum=10, maximum=100)
    assert normalize_price("10", "", profile) is not None
    assert normalize_price("100", "", profile) is not None
    assert normalize_price("9", "", profile) is None
    assert normalize_price("101", "", profile) is None


def test_format_price() -> None:
    assert format_price(Decimal("1280"), "JPY") == "¥1,280"
    assert format_price(Decimal("3.5"), "USD") == "$3.50"
    assert format_price(Decimal("7"), "EUR") == "7 EUR"
