"""Single-engine parsing pipeline.

normalize lines -> features + classification -> format detection ->
candidate extraction -> clean / price / validate -> consolidate + categorize
"""

from __future__ import annotations

import logging
import time
import unicodedata
from collections.abc import Sequence
from dataclasses import replace

from receiptlens.domain.receipt import (
    Candidate,
    EngineExplanation,
    EngineResult,
    LineRecord,
    ParseDiagnostic,
    Rejection,
)
from receiptlens.receipt.consolidation import consolidate
from receiptlens.receipt.extraction import extract_candidates
from receiptlens.receipt.format_detector import detect_format_with_reason
from receiptlens.receipt.format_profiles import EngineConfig, FormatProfile
from receiptlens.receipt.item_categories import categorize_item
from receiptlens.receipt.line_classifier import classify_lines
from receiptlens.receipt.name_validator import check_semantics, check_structure, clean_name
from receiptlens.receipt.price_normalizer import check_price
from receiptlens.receipt.quality import assess_quality
from receiptlens.receipt.rule_set import ParserRuleSet
from receiptlens.receipt.vocabulary import Vocabulary

logger = logging.getLogger(__name__)


def normalize_lines(text: str) -> list[str]:
    """NFKC-normalize OCR text and return its non-blank, stripped lines."""
    normalized = unicodedata.normalize("NFKC", text or "")
    return [line.strip() for line in normalized.splitlines() if line.strip()]


def screen_candidate(
    candidate: Candidate,
    profile: FormatProfile,
    vocabulary: Vocabulary,
) -> tuple[Candidate | None, Rejection | None]:
    """Clean, price and validate one candidate.

    The surviving candidate's confidence is the product of the extraction
    rule, name-cleaning and price-inference confidences.

    Returns:
        (accepted candidate, None) or (None, rejection).
    """
    name, name_factor = clean_name(candidate, vocabulary)

    def _reject(stage: str, reason: str) -> tuple[None, Rejection]:
        return None, Rejection(
            name=name or candidate.name,
            source_line_indices=candidate.source_line_indices,
            stage=stage,
            reason=reason,
        )

    reason = check_structure(name, vocabulary)
    if reason is not None:
        return _reject("structure", reason)

    price, reason = check_price(candidate.raw_price, candidate.raw_match_text, profile)
    if price is None:
        return _reject("price", reason or "price rejected")

    reason = check_semantics(name, price.value, profile, vocabulary)
    if reason is not None:
        return _reject("semantic", reason)

    confidence = candidate.confidence * name_factor * price.confidence
    if confidence < profile.min_confidence:
        return _reject("confidence", f"confidence {confidence:.3f} below {profile.min_confidence}")

    return (
        replace(
            candidate,
            name=name,
            price=price.value,
            currency=price.currency,
            confidence=confidence,
        ),
        None,
    )


def _select_profile(
    lines: Sequence[LineRecord],
    engine: EngineConfig,
    profile_hint: str | None,
) -> tuple[FormatProfile, str]:
    if profile_hint:
        hinted = engine.profile(profile_hint)
        if hinted is not None:
            return hinted, "hint"
        logger.info("Engine %s has no profile %r; detecting format instead", engine.name, profile_hint)
    return detect_format_with_reason(lines, engine.profiles)


def trace_engine(
    lines: Sequence[str],
    engine: EngineConfig,
    rule_set: ParserRuleSet,
    profile_hint: str | None = None,
) -> EngineExplanation:
    """Run one engine over normalized lines and keep the full trace."""
    start = time.perf_counter()
    diagnostics: list[ParseDiagnostic] = []
    rejections: list[Rejection] = []

    records = classify_lines(lines, rule_set.vocabulary)
    profile, reason = _select_profile(records, engine, profile_hint)
    diagnostics.append(ParseDiagnostic(engine=engine.name, stage="format", message=f"{profile.name} ({reason})"))
    logger.debug("Engine %s selected format %s (%s)", engine.name, profile.name, reason)

    candidates = extract_candidates(
        records,
        profile,
        max_window_scans=engine.max_window_scans,
        engine=engine.name,
        diagnostic_sink=diagnostics,
    )

    accepted: list[Candidate] = []
    for candidate in candidates:
        screened, rejection = screen_candidate(candidate, profile, rule_set.vocabulary)
        if rejection is not None:
            rejections.append(rejection)
            logger.debug(
                "Engine %s rejected %r (%s: %s)", engine.name, rejection.name, rejection.stage, rejection.reason
            )
            continue
        if screened is not None:
            accepted.append(screened)

    def _categorize(name: str) -> str:
        return categorize_item(name, rule_layers=rule_set.categories)

    items = consolidate(accepted, categorize=_categorize, engine=engine.name)
    diagnostics.append(
        ParseDiagnostic(
            engine=engine.name,
            stage="validation",
            message=f"{len(accepted)} accepted, {len(rejections)} rejected, {len(items)} after consolidation",
        )
    )

    confidence = sum(item.confidence for item in items) / len(items) if items else 0.0
    elapsed_ms = (time.perf_counter() - start) * 1000
    result = EngineResult(
        engine=engine.name,
        format_detected=profile.name,
        items=tuple(items),
        confidence=confidence,
        processing_time_ms=elapsed_ms,
        methods_used=tuple(sorted({item.detection_method for item in items})),
        quality=assess_quality(items, confidence),
    )
    logger.debug(
        "Engine %s: %d items, confidence %.3f, %.1f ms", engine.name, len(items), confidence, elapsed_ms
    )
    return EngineExplanation(
        engine=engine.name,
        format_detected=profile.name,
        lines=tuple(records),
        candidates=tuple(candidates),
        result=result,
        rejections=rejections,
        diagnostics=diagnostics,
    )


def run_engine(
    lines: Sequence[str],
    engine: EngineConfig,
    rule_set: ParserRuleSet,
    profile_hint: str | None = None,
) -> EngineResult:
    """Run one engine and return only its result."""
    return trace_engine(lines, engine, rule_set, profile_hint).result
