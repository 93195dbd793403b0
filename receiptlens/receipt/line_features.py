"""Per-line lexical and structural signal extraction.

Every OCR line is reduced to a ``LineFeatures`` value before classification.
The regex families below are ordered; the first matching pattern of each
family wins, and families are evaluated independently so one line may carry
a price, a quantity and a code signal at the same time.
"""

from __future__ import annotations

import re

from receiptlens.domain.receipt import LineFeatures

HIRAGANA_PATTERN = re.compile(r"[ぁ-ゖ]")
KATAKANA_PATTERN = re.compile(r"[ァ-ヺー]")
KANJI_PATTERN = re.compile(r"[一-龯々]")
LATIN_PATTERN = re.compile(r"[A-Za-z]")
DIGIT_RUN_PATTERN = re.compile(r"\d+")
# int() refuses very long digit strings; runs this long are never prices
MAX_NUMBER_DIGITS = 9

# Currency symbols, a marker asterisk, or a tax-class/multiplier marker after a digit
PRICE_SYMBOL_PATTERN = re.compile(r"[¥￥円$*]|\d\s*[TERX]$")

PRICE_PATTERNS: tuple[tuple[str, re.Pattern[str]], ...] = (
    ("yen_prefix", re.compile(r"^[¥￥]\s*([\d,]+)$")),
    ("dollar_prefix", re.compile(r"^\$\s*(\d[\d,]*(?:\.\d{1,2})?)$")),
    ("yen_suffix", re.compile(r"^([\d,]+)\s*円$")),
    # "1,000 T" / "498 E": warehouse totals carry a tax-class suffix
    ("tax_suffixed", re.compile(r"^([\d,]+(?:\.\d+)?)\s*([TER])$")),
    ("asterisk_suffixed", re.compile(r"^(\d{1,6})\*$")),
    ("multiplier_suffixed", re.compile(r"^(\d{1,6})X$")),
    ("inline_asterisk_yen", re.compile(r"^\*(.+?)\s+[¥￥](\d{1,6})$")),
    ("bare_digits", re.compile(r"^(\d{1,3}(?:,\d{3})+|\d{2,6})$")),
)

QUANTITY_PATTERNS: tuple[tuple[str, re.Pattern[str]], ...] = (
    ("counter_times_unit", re.compile(r"^(\d+)コX単(\d+)$")),
    ("counter_times", re.compile(r"^(\d+)コX(\d+)$")),
    ("counter", re.compile(r"^(\d+)(?:コ|個|点)$")),
    ("marker", re.compile(r"^(\d+)[⚫°.]$")),
    ("multiplier", re.compile(r"^(\d+)\s*[xX×]\s*(\d+)$")),
)

CODE_PATTERNS: tuple[tuple[str, re.Pattern[str]], ...] = (
    ("register_code", re.compile(r"^(\d{4})(軽)?$")),
    ("product_code", re.compile(r"^(\d{5,7})\s*([TE※])?$")),
    ("sku", re.compile(r"^(?=[A-Z0-9\-_]*\d)([A-Z0-9\-_]{5,})$")),
)


def _first_match(
    text: str,
    patterns: tuple[tuple[str, re.Pattern[str]], ...],
) -> tuple[str | None, tuple[str, ...]]:
    for name, pattern in patterns:
        match = pattern.match(text)
        if match:
            return name, tuple(group or "" for group in match.groups())
    return None, ()


def has_japanese(text: str) -> bool:
    """Return True if text contains hiragana, katakana or kanji."""
    return bool(HIRAGANA_PATTERN.search(text) or KATAKANA_PATTERN.search(text) or KANJI_PATTERN.search(text))


def extract_line_features(line: str, index: int, total: int) -> LineFeatures:
    """Extract the feature bundle for one line.

    Args:
        line: Raw (already stripped) line text.
        index: 0-based position of the line.
        total: Number of lines in the receipt.

    Returns:
        LineFeatures for the line. Never raises; missing signals are False/None.
    """
    text = line.strip()
    has_hiragana = bool(HIRAGANA_PATTERN.search(text))
    has_katakana = bool(KATAKANA_PATTERN.search(text))
    has_kanji = bool(KANJI_PATTERN.search(text))

    number_match = DIGIT_RUN_PATTERN.search(text)
    number_value = None
    if number_match and len(number_match.group(0)) <= MAX_NUMBER_DIGITS:
        number_value = int(number_match.group(0))

    price_pattern, price_groups = _first_match(text, PRICE_PATTERNS)
    quantity_pattern, quantity_groups = _first_match(text, QUANTITY_PATTERNS)
    code_pattern, code_groups = _first_match(text, CODE_PATTERNS)

    return LineFeatures(
        has_digits=number_match is not None,
        digits_only=bool(text) and text.isascii() and text.isdigit(),
        has_price_symbol=PRICE_SYMBOL_PATTERN.search(text) is not None,
        has_japanese_script=has_hiragana or has_katakana or has_kanji,
        has_hiragana=has_hiragana,
        has_katakana=has_katakana,
        has_kanji=has_kanji,
        has_latin_script=LATIN_PATTERN.search(text) is not None,
        number_value=number_value,
        length=len(text),
        position_ratio=index / (total - 1) if total > 1 else 0.0,
        price_pattern=price_pattern,
        price_groups=price_groups,
        quantity_pattern=quantity_pattern,
        quantity_groups=quantity_groups,
        code_pattern=code_pattern,
        code_groups=code_groups,
    )
