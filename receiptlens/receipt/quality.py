"""Heuristic quality assessment of one engine's output."""

from __future__ import annotations

from collections.abc import Sequence

from receiptlens.domain.receipt import Item, QualityReport

HIGH_CONFIDENCE = 0.7
FEW_ITEMS = 3
MAX_PLAUSIBLE_QUANTITY = 100
SHORT_NAME_LENGTH = 3


def assess_quality(items: Sequence[Item], confidence: float) -> QualityReport:
    """Score an engine result and list the suspicious patterns it shows.

    score = confidence * 0.4 + min(n / 3, 1) * 0.3 + high_confidence_ratio * 0.2
            - min(0.1 * suspicious, 0.3), clamped to [0, 1]
    """
    suspicious: list[str] = []
    if len(items) < FEW_ITEMS:
        suspicious.append("very_few_items")
    if any(item.quantity > MAX_PLAUSIBLE_QUANTITY for item in items):
        suspicious.append("abnormal_quantities")
    if items and confidence < HIGH_CONFIDENCE:
        suspicious.append("low_confidence")
    short_names = sum(1 for item in items if len(item.name) < SHORT_NAME_LENGTH)
    if items and short_names * 3 > len(items):
        suspicious.append("incomplete_names")

    high_ratio = sum(1 for item in items if item.confidence > HIGH_CONFIDENCE) / len(items) if items else 0.0
    score = (
        confidence * 0.4
        + min(len(items) / FEW_ITEMS, 1.0) * 0.3
        + high_ratio * 0.2
        - min(0.1 * len(suspicious), 0.3)
    )
    return QualityReport(score=round(max(0.0, min(1.0, score)), 4), suspicious_patterns=tuple(suspicious))
