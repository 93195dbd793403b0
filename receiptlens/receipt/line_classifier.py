"""Rule-based line type classification.

Decision order (first match wins):
1. metadata keyword -> METADATA (TOTAL for total keywords)
2. price pattern with a price symbol -> PRICE_ONLY
3. code pattern without script characters -> PRODUCT_CODE
4. quantity pattern -> QUANTITY_INFO
5. food keyword, not digits-only -> ITEM_NAME
6. script characters, length 3-30, not digits-only -> ITEM_NAME
7. digits-only within the plausible price band -> PRICE_ONLY
8. punctuation/whitespace only, or shorter than 2 -> SEPARATOR
Everything else is UNKNOWN.
"""

from __future__ import annotations

import re
from collections.abc import Sequence

from receiptlens.domain.receipt import LineFeatures, LineRecord, LineType
from receiptlens.receipt.line_features import extract_line_features
from receiptlens.receipt.vocabulary import Vocabulary

PRICE_BAND_MIN = 10
PRICE_BAND_MAX = 99999
ITEM_NAME_MIN_LENGTH = 3
ITEM_NAME_MAX_LENGTH = 30
EXCESSIVE_LENGTH = 50

SEPARATOR_PATTERN = re.compile(r"^[\-=*_~.・\s]+$")


def _score(
    line_type: LineType,
    features: LineFeatures,
    has_food_keyword: bool,
    has_exclude_keyword: bool,
) -> float:
    confidence = 0.5

    if line_type is LineType.ITEM_NAME:
        if has_food_keyword:
            confidence += 0.4
        if features.has_japanese_script:
            confidence += 0.2
        if 3 <= features.length <= 25:
            confidence += 0.1
        if features.has_kanji or features.has_hiragana:
            confidence += 0.1
    elif line_type is LineType.PRICE_ONLY:
        if features.price_pattern:
            confidence += 0.4
        if features.has_price_symbol:
            confidence += 0.2
        if features.number_value is not None and features.number_value >= PRICE_BAND_MIN:
            confidence += 0.2
    elif line_type is LineType.PRODUCT_CODE:
        if features.code_pattern:
            confidence += 0.3
        if not features.has_japanese_script and features.has_digits:
            confidence += 0.2
    elif line_type is LineType.QUANTITY_INFO:
        confidence += 0.4
    elif line_type in (LineType.METADATA, LineType.TOTAL):
        confidence += 0.3

    if has_exclude_keyword and line_type not in (LineType.METADATA, LineType.TOTAL):
        confidence -= 0.5
    if features.length > EXCESSIVE_LENGTH:
        confidence -= 0.2

    return max(0.0, min(1.0, confidence))


def classify_line(line: str, features: LineFeatures, vocabulary: Vocabulary) -> tuple[LineType, float]:
    """Assign a type and confidence to one line. Total: every line gets a type."""
    text = line.strip()
    metadata_keyword = vocabulary.find_metadata_keyword(text)
    has_food_keyword = vocabulary.has_food_keyword(text)

    if metadata_keyword is not None:
        if vocabulary.is_total_keyword(metadata_keyword):
            line_type = LineType.TOTAL
        else:
            line_type = LineType.METADATA
    elif features.price_pattern and features.has_price_symbol:
        line_type = LineType.PRICE_ONLY
    elif features.code_pattern and not features.has_script:
        line_type = LineType.PRODUCT_CODE
    elif features.quantity_pattern:
        line_type = LineType.QUANTITY_INFO
    elif has_food_keyword and not features.digits_only:
        line_type = LineType.ITEM_NAME
    elif (
        features.has_script
        and ITEM_NAME_MIN_LENGTH <= features.length <= ITEM_NAME_MAX_LENGTH
        and not features.digits_only
    ):
        line_type = LineType.ITEM_NAME
    elif (
        features.digits_only
        and features.number_value is not None
        and PRICE_BAND_MIN <= features.number_value <= PRICE_BAND_MAX
    ):
        line_type = LineType.PRICE_ONLY
    elif features.length < 2 or SEPARATOR_PATTERN.match(text) or features.punctuation_only:
        line_type = LineType.SEPARATOR
    else:
        line_type = LineType.UNKNOWN

    return line_type, _score(line_type, features, has_food_keyword, metadata_keyword is not None)


def classify_lines(lines: Sequence[str], vocabulary: Vocabulary) -> list[LineRecord]:
    """Extract features and classify every line of one receipt."""
    total = len(lines)
    records: list[LineRecord] = []
    for index, line in enumerate(lines):
        features = extract_line_features(line, index, total)
        line_type, confidence = classify_line(line, features, vocabulary)
        records.append(
            LineRecord(
                index=index,
                raw_content=line,
                features=features,
                classified_type=line_type,
                classification_confidence=confidence,
            )
        )
    return records
