"""Item name cleaning and validation.

Cleaning fixes what OCR predictably gets wrong (markers, spacing, known
misreads). Validation runs two passes and returns a rejection reason rather
than raising: a structural pass (length, digits, punctuation, noise
literals) and a semantic pass (metadata/exclude keywords, non-food objects,
implausible prices).
"""

from __future__ import annotations

import re
from decimal import Decimal

from receiptlens.domain.receipt import Candidate
from receiptlens.receipt.format_profiles import FormatProfile
from receiptlens.receipt.line_features import has_japanese
from receiptlens.receipt.vocabulary import Vocabulary

MIN_NAME_LENGTH = 2
MAX_NAME_LENGTH = 50
CORRECTION_FACTOR = 0.95

LEADING_MARKERS = re.compile(r"^[*※＊・\s]+")
WHITESPACE_RUN = re.compile(r"\s+")
TRAILING_LOOSE_MARKER = re.compile(r"\s+バラ$")
BRAND_PREFIX = re.compile(r"^([A-Z]{2,3})\s+(.+)$")
DIGITS_ONLY = re.compile(r"^[\d,.\s]+$")
QUANTITY_TOKEN = re.compile(r"^\d+コ[X単\d]*$")
CURRENCY_IN_NAME = re.compile(r"[¥￥円$]")


def _apply_corrections(name: str, vocabulary: Vocabulary) -> str:
    for wrong, right in vocabulary.corrections:
        if wrong in name and right not in name:
            name = name.replace(wrong, right)
    return name


def _strip_duplicated_tail(name: str, candidate: Candidate) -> str:
    """Drop a trailing token that repeats the extracted price or quantity."""
    head, _, tail = name.rpartition(" ")
    if not head:
        return name
    price_digits = re.sub(r"[^\d]", "", candidate.raw_price or "")
    tail_digits = re.sub(r"[¥￥円,*]", "", tail)
    if price_digits and tail_digits == price_digits:
        return head.strip()
    if re.fullmatch(rf"{candidate.quantity}(?:コ|個|点)", tail):
        return head.strip()
    return name


def clean_name(candidate: Candidate, vocabulary: Vocabulary) -> tuple[str, float]:
    """Clean a candidate's name.

    Returns:
        (cleaned name, confidence factor); the factor drops below 1.0 when an
        OCR correction had to be applied.
    """
    name = LEADING_MARKERS.sub("", candidate.name)
    corrected = _apply_corrections(name, vocabulary)
    factor = CORRECTION_FACTOR if corrected != name else 1.0
    name = WHITESPACE_RUN.sub(" ", corrected).strip()
    name = TRAILING_LOOSE_MARKER.sub("", name)

    brand = BRAND_PREFIX.match(name)
    if brand and has_japanese(brand.group(2)):
        name = brand.group(2).strip()

    return _strip_duplicated_tail(name, candidate), factor


def check_structure(name: str, vocabulary: Vocabulary) -> str | None:
    """Return why a name is structurally invalid, or None."""
    if not MIN_NAME_LENGTH <= len(name) <= MAX_NAME_LENGTH:
        return f"length {len(name)} outside [{MIN_NAME_LENGTH}, {MAX_NAME_LENGTH}]"
    if DIGITS_ONLY.match(name):
        return "digits only"
    if not any(char.isalnum() for char in name):
        return "punctuation only"
    if QUANTITY_TOKEN.match(name) or vocabulary.is_noise(name):
        return "noise literal"
    if CURRENCY_IN_NAME.search(name):
        return "currency symbol inside name"
    return None


def find_exclude_keyword(name: str, profile: FormatProfile, vocabulary: Vocabulary) -> str | None:
    """Return the first metadata or profile exclude keyword contained in name."""
    keyword = vocabulary.find_metadata_keyword(name)
    if keyword is not None:
        return keyword
    lowered = name.lower()
    for keyword in profile.exclude_keywords:
        if keyword.lower() in lowered:
            return keyword
    return None


def check_semantics(
    name: str,
    price: Decimal,
    profile: FormatProfile,
    vocabulary: Vocabulary,
) -> str | None:
    """Return why a name/price pair is semantically implausible, or None."""
    keyword = find_exclude_keyword(name, profile, vocabulary)
    if keyword is not None:
        return f"exclude keyword {keyword!r}"
    if profile.food_domain and vocabulary.is_non_food(name):
        return "non-food item"

    limit = profile.single_item_price_max
    if limit is not None and price > limit:
        bulk_limit = profile.bulk_item_price_max
        is_bulk = vocabulary.multi_unit_pattern.search(name) is not None
        if not is_bulk:
            return f"price {price} above single-item limit {limit}"
        if bulk_limit is not None and price > bulk_limit:
            return f"price {price} above multi-unit limit {bulk_limit}"
    return None
