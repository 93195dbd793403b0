"""Price token parsing and currency inference."""

from __future__ import annotations

import re
from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation

from receiptlens.receipt.format_profiles import FormatProfile

CURRENCY_SYMBOLS: tuple[tuple[str, str], ...] = (
    ("¥", "JPY"),
    ("￥", "JPY"),
    ("円", "JPY"),
    ("$", "USD"),
)
CURRENCY_CODE_PATTERN = re.compile(r"\b(JPY|YEN|USD)\b", re.IGNORECASE)
CURRENCY_CODES = {"JPY": "JPY", "YEN": "JPY", "USD": "USD"}
TWO_DECIMALS_PATTERN = re.compile(r"\d\.\d{2}$")
NUMBER_PATTERN = re.compile(r"\d[\d,]*(?:\.\d+)?")
# "1.128" on a yen receipt is a thousands comma the OCR read as a period
OCR_THOUSANDS_PERIOD = re.compile(r"^\d{1,3}(?:\.\d{3})+$")

SYMBOL_CONFIDENCE = 0.95
CODE_CONFIDENCE = 0.9
DECIMAL_HEURISTIC_CONFIDENCE = 0.8
DEFAULT_CURRENCY_CONFIDENCE = 0.85

QUANTUM = {"JPY": Decimal("1"), "USD": Decimal("0.01")}


@dataclass(frozen=True)
class NormalizedPrice:
    value: Decimal
    currency: str
    confidence: float


def detect_currency(token: str, line_text: str = "", default: str = "JPY") -> tuple[str, float]:
    """Infer the currency of a price token.

    Precedence: explicit symbol, explicit code token, a decimal point followed
    by exactly two digits (USD), then the default.

    Returns:
        (currency code, confidence of the inference)
    """
    context = f"{token} {line_text}"
    for symbol, currency in CURRENCY_SYMBOLS:
        if symbol in context:
            return currency, SYMBOL_CONFIDENCE
    code = CURRENCY_CODE_PATTERN.search(context)
    if code:
        return CURRENCY_CODES[code.group(1).upper()], CODE_CONFIDENCE
    number = NUMBER_PATTERN.search(token)
    if number and TWO_DECIMALS_PATTERN.search(number.group(0)):
        return "USD", DECIMAL_HEURISTIC_CONFIDENCE
    return default, DEFAULT_CURRENCY_CONFIDENCE


def check_price(
    raw: str | None,
    line_text: str,
    profile: FormatProfile,
) -> tuple[NormalizedPrice | None, str | None]:
    """Parse and validate a price token.

    Returns:
        (price, None) on success, (None, reason) on rejection.
    """
    if raw is None or not raw.strip():
        return None, "no price token"
    number = NUMBER_PATTERN.search(raw)
    if number is None:
        return None, f"no number in price token {raw!r}"

    currency, confidence = detect_currency(raw, line_text, profile.currency)
    number_text = number.group(0)
    if currency == "JPY" and OCR_THOUSANDS_PERIOD.match(number_text):
        number_text = number_text.replace(".", "")
    number_text = number_text.replace(",", "")

    try:
        value = Decimal(number_text)
    except InvalidOperation:
        return None, f"unparseable price {raw!r}"
    if not value.is_finite():
        return None, f"non-finite price {raw!r}"

    try:
        value = value.quantize(QUANTUM.get(currency, Decimal("0.01")), rounding=ROUND_HALF_UP)
    except InvalidOperation:
        return None, f"price {raw!r} exceeds decimal precision"
    if value <= 0:
        return None, f"non-positive price {value}"
    if not profile.price_range.contains(value):
        return None, (
            f"price {value} outside range [{profile.price_range.minimum}, {profile.price_range.maximum}]"
        )
    return NormalizedPrice(value=value, currency=currency, confidence=confidence), None


def normalize_price(raw: str | None, line_text: str, profile: FormatProfile) -> NormalizedPrice | None:
    """Return the normalized price, or None when the token is rejected."""
    price, _ = check_price(raw, line_text, profile)
    return price


def format_price(value: Decimal, currency: str) -> str:
    if currency == "JPY":
        return f"¥{value:,.0f}"
    if currency == "USD":
        return f"${value:,.2f}"
    return f"{value} {currency}"
