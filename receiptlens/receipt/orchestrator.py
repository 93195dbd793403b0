"""Multi-engine orchestration.

Each configured engine runs the full pipeline independently on the same
normalized text. Results are collected under a wall-clock budget and then
either the best one is taken outright or all are merged:

- best-of when the confidence gap between the top two engines exceeds the
  configured margin, or when some engine found nothing while the best one
  clears the minimum confidence;
- otherwise the union of all items, consolidated with the same duplicate
  rule the single-engine pipeline uses.

Selection is a pure function of the ordered engine results, so identical
input always produces identical output.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Sequence
from concurrent.futures import Future, ThreadPoolExecutor, wait
from enum import Enum

from receiptlens.domain.receipt import EngineExplanation, EngineResult, ParseExplanation, ParseResult
from receiptlens.receipt.consolidation import merge_items
from receiptlens.receipt.format_profiles import EngineConfig, OrchestratorSettings
from receiptlens.receipt.pipeline import normalize_lines, trace_engine
from receiptlens.receipt.rule_set import ParserRuleSet

logger = logging.getLogger(__name__)


class OrchestratorState(str, Enum):
    IDLE = "idle"
    RACING = "racing"
    MERGING = "merging"
    DONE = "done"


def _advance(current: OrchestratorState, new: OrchestratorState) -> OrchestratorState:
    logger.debug("Orchestrator %s -> %s", current.value, new.value)
    return new


def empty_engine_result(engine: str, format_detected: str = "", *, timed_out: bool = False) -> EngineResult:
    return EngineResult(
        engine=engine,
        format_detected=format_detected,
        items=(),
        confidence=0.0,
        processing_time_ms=0.0,
        timed_out=timed_out,
    )


def select_result(
    results: Sequence[EngineResult],
    settings: OrchestratorSettings,
    processing_time_ms: float = 0.0,
) -> ParseResult:
    """Pick or merge engine results.

    Args:
        results: Engine results in configuration order.
        settings: Margin and minimum-confidence thresholds.
        processing_time_ms: Wall-clock time to report.

    Returns:
        The final ParseResult; never raises for empty input.
    """
    results = tuple(results)
    if not any(result.items for result in results):
        format_detected = next((r.format_detected for r in results if r.format_detected), "generic")
        return ParseResult(
            items=(),
            confidence=0.0,
            format_detected=format_detected,
            processing_time_ms=processing_time_ms,
            selection="empty",
            engine_results=results,
        )

    # Ties: more items first, then configuration order
    ranked = sorted(
        range(len(results)),
        key=lambda index: (-results[index].confidence, -len(results[index].items), index),
    )
    best = results[ranked[0]]
    runner_up = results[ranked[1]] if len(ranked) > 1 else None

    some_engine_empty = any(not result.items for result in results)
    if (
        runner_up is None
        or best.confidence - runner_up.confidence > settings.confidence_margin
        or (some_engine_empty and best.confidence >= settings.min_confidence)
    ):
        logger.debug("Selected engine %s outright (confidence %.3f)", best.engine, best.confidence)
        return ParseResult(
            items=best.items,
            confidence=best.confidence,
            format_detected=best.format_detected,
            processing_time_ms=processing_time_ms,
            selection="best_of",
            engine_results=results,
        )

    merged = merge_items([result.items for result in results])
    confidence = sum(item.confidence for item in merged) / len(merged) if merged else 0.0
    logger.debug("Merged %d engines into %d items", len(results), len(merged))
    return ParseResult(
        items=tuple(merged),
        confidence=confidence,
        format_detected=best.format_detected,
        processing_time_ms=processing_time_ms,
        selection="merged",
        engine_results=results,
    )


class ReceiptParser:
    """Parse OCR receipt text with every configured engine.

    The rule set is validated when it is built, so a constructed parser never
    fails on configuration. Parsing never raises for malformed input text.
    """

    def __init__(self, rule_set: ParserRuleSet) -> None:
        self.rule_set = rule_set

    @property
    def engines(self) -> tuple[EngineConfig, ...]:
        return self.rule_set.engines

    def _race(self, lines: list[str], profile_hint: str | None) -> list[EngineExplanation]:
        engines = self.engines
        budget_seconds = self.rule_set.settings.budget_ms / 1000
        executor = ThreadPoolExecutor(max_workers=len(engines), thread_name_prefix="receiptlens-engine")
        try:
            futures: list[Future[EngineExplanation]] = [
                executor.submit(trace_engine, lines, engine, self.rule_set, profile_hint) for engine in engines
            ]
            done, _ = wait(futures, timeout=budget_seconds)
        finally:
            # Overrunning engines keep running in the background; their results are ignored.
            executor.shutdown(wait=False, cancel_futures=True)

        traces: list[EngineExplanation] = []
        for engine, future in zip(engines, futures):
            if future not in done:
                logger.warning(
                    "Engine %s exceeded the %.0f ms budget; treating as empty",
                    engine.name,
                    self.rule_set.settings.budget_ms,
                )
                traces.append(self._empty_trace(engine, timed_out=True))
                continue
            error = future.exception()
            if error is not None:
                logger.error("Engine %s failed: %s", engine.name, error, exc_info=error)
                traces.append(self._empty_trace(engine))
                continue
            traces.append(future.result())
        return traces

    @staticmethod
    def _empty_trace(engine: EngineConfig, *, timed_out: bool = False) -> EngineExplanation:
        return EngineExplanation(
            engine=engine.name,
            format_detected="",
            lines=(),
            candidates=(),
            result=empty_engine_result(engine.name, timed_out=timed_out),
        )

    def _run(self, text: str, profile_hint: str | None) -> tuple[list[EngineExplanation], ParseResult]:
        start = time.perf_counter()
        state = OrchestratorState.IDLE
        lines = normalize_lines(text)

        state = _advance(state, OrchestratorState.RACING)
        traces = self._race(lines, profile_hint)

        state = _advance(state, OrchestratorState.MERGING)
        elapsed_ms = (time.perf_counter() - start) * 1000
        result = select_result([trace.result for trace in traces], self.rule_set.settings, elapsed_ms)

        _advance(state, OrchestratorState.DONE)
        logger.info(
            "Parsed %d lines: %d items via %s (%s, confidence %.2f, %.1f ms)",
            len(lines),
            len(result.items),
            result.selection,
            result.format_detected,
            result.confidence,
            elapsed_ms,
        )
        return traces, result

    def parse(self, text: str, profile_hint: str | None = None) -> ParseResult:
        """Parse OCR text into items.

        Args:
            text: Raw OCR text, newline-delimited.
            profile_hint: Optional profile name to use instead of detection.

        Returns:
            ParseResult; empty with confidence 0 when nothing usable was found.
        """
        _, result = self._run(text, profile_hint)
        return result

    def explain(self, text: str, profile_hint: str | None = None) -> ParseExplanation:
        """Parse and return per-engine line classifications, candidates and rejections."""
        traces, result = self._run(text, profile_hint)
        return ParseExplanation(engines=traces, result=result)
