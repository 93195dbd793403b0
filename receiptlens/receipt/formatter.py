"""Format parse results as aligned text or JSON-ready dicts."""

from decimal import Decimal
from typing import Any

from receiptlens.domain.receipt import (
    Candidate,
    EngineExplanation,
    EngineResult,
    Item,
    LineRecord,
    ParseExplanation,
    ParseResult,
)
from receiptlens.receipt.price_normalizer import format_price


def _format_rows_aligned(
    rows: list[tuple[str, str, str | None]],
    indent: str = "  ",
) -> list[str]:
    """
    Format item rows with aligned prices and trailing comments.

    Args:
        rows: List of (name, price_text, comment_or_none) tuples
        indent: Indentation prefix for each line

    Returns:
        List of formatted lines
    """
    if not rows:
        return []

    max_name_len = max(len(name) for name, _, _ in rows)
    max_price_len = max(len(price) for _, price, _ in rows)

    lines = []
    for name, price, comment in rows:
        base = f"{indent}{name.ljust(max_name_len)}  {price.rjust(max_price_len)}"
        if comment:
            lines.append(f"{base}  ; {comment}")
        else:
            lines.append(base)
    return lines


def _item_row(item: Item) -> tuple[str, str, str | None]:
    comment = f"{item.category}, conf {item.confidence:.2f}"
    if item.quantity > 1:
        comment = f"x{item.quantity}, {comment}"
    return item.name, format_price(item.price, item.currency), comment


def format_parse_result(result: ParseResult) -> str:
    """Render a ParseResult as a short human-readable report."""
    header = (
        f"format: {result.format_detected}  selection: {result.selection}  "
        f"confidence: {result.confidence:.2f}  items: {len(result.items)}"
    )
    lines = [header]
    lines.extend(_format_rows_aligned([_item_row(item) for item in result.items]))
    if result.items:
        currencies = {item.currency for item in result.items}
        if len(currencies) == 1:
            currency = currencies.pop()
            total = sum((item.total for item in result.items), Decimal(0))
            lines.append(f"total: {format_price(total, currency)}")
    return "\n".join(lines)


def _format_line_record(record: LineRecord) -> str:
    return (
        f"  {record.index:>3} {record.classified_type.value:<13} "
        f"{record.classification_confidence:.2f}  {record.raw_content}"
    )


def format_engine_explanation(trace: EngineExplanation) -> str:
    lines = [f"== engine {trace.engine} (format {trace.format_detected or '-'}) =="]
    if trace.result.timed_out:
        lines.append("  timed out")
    lines.append("lines:")
    lines.extend(_format_line_record(record) for record in trace.lines)
    lines.append("candidates:")
    for candidate in trace.candidates:
        lines.append(
            f"  {candidate.detection_method}: {candidate.name!r} price={candidate.raw_price!r} "
            f"lines={list(candidate.source_line_indices)}"
        )
    lines.append("rejections:")
    for rejection in trace.rejections:
        lines.append(f"  {rejection.name!r} [{rejection.stage}] {rejection.reason}")
    lines.append("diagnostics:")
    for diagnostic in trace.diagnostics:
        lines.append(f"  {diagnostic.stage}: {diagnostic.message}")
    lines.append("items:")
    lines.extend(_format_rows_aligned([_item_row(item) for item in trace.result.items], indent="    "))
    return "\n".join(lines)


def format_explanation(explanation: ParseExplanation) -> str:
    """Render every engine trace followed by the final result."""
    sections = [format_engine_explanation(trace) for trace in explanation.engines]
    sections.append("== result ==\n" + format_parse_result(explanation.result))
    return "\n\n".join(sections)


def item_to_dict(item: Item) -> dict[str, Any]:
    return {
        "name": item.name,
        # String keeps the exact decimal; floats would turn 0.10 into 0.1
        "price": str(item.price),
        "quantity": item.quantity,
        "category": item.category,
        "confidence": round(item.confidence, 4),
        "currency": item.currency,
        "detection_method": item.detection_method,
        "source_line_indices": list(item.source_line_indices),
        "engine": item.engine,
    }


def engine_result_to_dict(result: EngineResult) -> dict[str, Any]:
    data: dict[str, Any] = {
        "engine": result.engine,
        "format_detected": result.format_detected,
        "confidence": round(result.confidence, 4),
        "item_count": len(result.items),
        "processing_time_ms": round(result.processing_time_ms, 3),
        "methods_used": list(result.methods_used),
        "timed_out": result.timed_out,
    }
    if result.quality is not None:
        data["quality"] = {
            "score": result.quality.score,
            "suspicious_patterns": list(result.quality.suspicious_patterns),
        }
    return data


def result_to_dict(result: ParseResult) -> dict[str, Any]:
    """JSON-ready representation of a ParseResult."""
    return {
        "items": [item_to_dict(item) for item in result.items],
        "confidence": round(result.confidence, 4),
        "format_detected": result.format_detected,
        "processing_time_ms": round(result.processing_time_ms, 3),
        "selection": result.selection,
        "engines": [engine_result_to_dict(engine) for engine in result.engine_results],
    }


def _candidate_to_dict(candidate: Candidate) -> dict[str, Any]:
    return {
        "name": candidate.name,
        "raw_price": candidate.raw_price,
        "quantity": candidate.quantity,
        "confidence": round(candidate.confidence, 4),
        "detection_method": candidate.detection_method,
        "source_line_indices": list(candidate.source_line_indices),
    }


def explanation_to_dict(explanation: ParseExplanation) -> dict[str, Any]:
    """JSON-ready representation of a ParseExplanation."""
    engines = []
    for trace in explanation.engines:
        engines.append(
            {
                "engine": trace.engine,
                "format_detected": trace.format_detected,
                "lines": [
                    {
                        "index": record.index,
                        "text": record.raw_content,
                        "type": record.classified_type.value,
                        "confidence": round(record.classification_confidence, 4),
                    }
                    for record in trace.lines
                ],
                "candidates": [_candidate_to_dict(candidate) for candidate in trace.candidates],
                "rejections": [
                    {
                        "name": rejection.name,
                        "source_line_indices": list(rejection.source_line_indices),
                        "stage": rejection.stage,
                        "reason": rejection.reason,
                    }
                    for rejection in trace.rejections
                ],
                "diagnostics": [
                    {
                        "stage": diagnostic.stage,
                        "message": diagnostic.message,
                        "line_index": diagnostic.line_index,
                    }
                    for diagnostic in trace.diagnostics
                ],
                "result": engine_result_to_dict(trace.result),
                "items": [item_to_dict(item) for item in trace.result.items],
            }
        )
    return {"engines": engines, "result": result_to_dict(explanation.result)}
