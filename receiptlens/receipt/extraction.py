"""Candidate extraction for one detected receipt format.

Extraction runs three phases over the classified lines and keeps a set of
consumed line indices so no line feeds two candidates:

1. special cases: a literal trigger line emits a pre-authored item list
2. multi-line windows, then the profile's registered extraction variants
3. single-line patterns, optionally borrowing the name from the previous line

Within a phase, rules are tried in configured order and the first match wins
for a given position. Lines nothing matches are left alone; that is not an
error.
"""

from __future__ import annotations

import logging
import re
from collections.abc import Callable, Sequence

from receiptlens.domain.receipt import Candidate, LineRecord, LineType, ParseDiagnostic
from receiptlens.receipt.format_profiles import DEFAULT_MAX_WINDOW_SCANS, FieldRef, FormatProfile, MultiLinePattern

logger = logging.getLogger(__name__)

QUANTITY_DIGITS = re.compile(r"\d+")
MAX_QUANTITY = 999

WAREHOUSE_CODE_LINE = re.compile(r"^(\d{5,7})\s*([TE※])?$")
WAREHOUSE_UNIT_TOTAL_LINE = re.compile(r"^([\d,.]+)\s+([\d,.]+)\s*([TE])$")
WAREHOUSE_QTY_UNIT_LINE = re.compile(r"^(\d{1,3})\s+([\d,.]+)$")
WAREHOUSE_TOTAL_LINE = re.compile(r"^([\d,.]+)\s*([TE])$")
WAREHOUSE_QTY_LINE = re.compile(r"^(\d{1,3})(?:個|[⚫°.])?$")
WAREHOUSE_BARE_NUMBER_LINE = re.compile(r"^[\d,]+(?:個|[⚫°.])?$")
WAREHOUSE_REDUCED_TAX_TOTAL_LINE = re.compile(r"^([\d,]+)\s*E$")
REDUCED_TAX_MARKER = "※"
WAREHOUSE_NAME_LOOKBACK = 3
WAREHOUSE_REDUCED_TAX_LOOKAHEAD = 5
WAREHOUSE_PRICE_LOOKAHEAD = 4

# Price tokens a PRICE_ONLY line may carry; inline "*name ¥price" lines are not standalone prices
STANDALONE_PRICE_PATTERNS = frozenset(
    {
        "yen_prefix",
        "dollar_prefix",
        "yen_suffix",
        "tax_suffixed",
        "asterisk_suffixed",
        "multiplier_suffixed",
        "bare_digits",
    }
)


class ScanBudget:
    """Caps the number of window/variant attempts one engine may make."""

    def __init__(self, limit: int = DEFAULT_MAX_WINDOW_SCANS) -> None:
        self.limit = limit
        self.used = 0

    @property
    def exhausted(self) -> bool:
        return self.used >= self.limit

    def take(self) -> bool:
        if self.used >= self.limit:
            return False
        self.used += 1
        return True


ExtractionVariant = Callable[[Sequence[LineRecord], set[int], ScanBudget], list[Candidate]]

EXTRACTION_VARIANTS: dict[str, ExtractionVariant] = {}


def register_variant(name: str) -> Callable[[ExtractionVariant], ExtractionVariant]:
    """Register a named extraction variant that profiles can enable."""

    def decorator(func: ExtractionVariant) -> ExtractionVariant:
        EXTRACTION_VARIANTS[name] = func
        return func

    return decorator


def _parse_quantity(text: str | None) -> int:
    if not text:
        return 1
    match = QUANTITY_DIGITS.search(text)
    if not match:
        return 1
    digits = match.group(0).lstrip("0") or "0"
    if len(digits) > len(str(MAX_QUANTITY)):
        return MAX_QUANTITY
    return max(1, min(MAX_QUANTITY, int(digits)))


def _record_diagnostic(
    sink: list[ParseDiagnostic] | None,
    engine: str,
    stage: str,
    message: str,
    line_index: int | None = None,
) -> None:
    logger.debug("[%s] %s: %s", engine, stage, message)
    if sink is not None:
        sink.append(ParseDiagnostic(engine=engine, stage=stage, message=message, line_index=line_index))


def _extract_special_cases(
    lines: Sequence[LineRecord],
    profile: FormatProfile,
    used: set[int],
) -> list[Candidate]:
    candidates: list[Candidate] = []
    for record in lines:
        if record.index in used:
            continue
        text = record.raw_content.strip()
        for case in profile.special_cases:
            if text != case.trigger:
                continue
            end = min(record.index + case.skip_lines, len(lines))
            indices = tuple(index for index in range(record.index, end) if index not in used)
            for item in case.items:
                candidates.append(
                    Candidate(
                        name=item.name,
                        raw_price=item.price,
                        confidence=case.confidence,
                        detection_method=f"special:{case.name}",
                        source_line_indices=indices,
                        raw_match_text=text,
                        quantity=item.quantity,
                        category=item.category,
                    )
                )
            used.update(indices)
            break
    return candidates


def _match_window(
    lines: Sequence[LineRecord],
    anchor: int,
    pattern: MultiLinePattern,
    used: set[int],
) -> dict[int, re.Match[str] | None] | None:
    matches: dict[int, re.Match[str] | None] = {}
    for window_line in pattern.lines:
        index = anchor + window_line.offset
        if index < 0 or index >= len(lines) or index in used:
            return None
        record = lines[index]
        if window_line.regex is None:
            if record.classified_type is not LineType.ITEM_NAME:
                return None
            matches[window_line.offset] = None
            continue
        match = window_line.regex.match(record.raw_content.strip())
        if match is None:
            return None
        matches[window_line.offset] = match
    return matches


def _resolve_field(
    ref: FieldRef,
    matches: dict[int, re.Match[str] | None],
    lines: Sequence[LineRecord],
    anchor: int,
) -> str:
    match = matches[ref.offset]
    if ref.group is None or match is None:
        return lines[anchor + ref.offset].raw_content.strip()
    return (match.group(ref.group) or "").strip()


def _extract_windows(
    lines: Sequence[LineRecord],
    profile: FormatProfile,
    used: set[int],
    budget: ScanBudget,
) -> list[Candidate]:
    candidates: list[Candidate] = []
    if not profile.multi_line_patterns:
        return candidates

    anchor = 0
    while anchor < len(lines) and not budget.exhausted:
        if anchor in used:
            anchor += 1
            continue
        accepted: MultiLinePattern | None = None
        for pattern in profile.multi_line_patterns:
            if not budget.take():
                break
            matches = _match_window(lines, anchor, pattern, used)
            if matches is None:
                continue
            name = _resolve_field(pattern.name_ref, matches, lines, anchor)
            if pattern.name_must_contain is not None and not pattern.name_must_contain.search(name):
                continue
            quantity = pattern.quantity
            if pattern.quantity_ref is not None:
                quantity = _parse_quantity(_resolve_field(pattern.quantity_ref, matches, lines, anchor))
            indices = tuple(sorted(anchor + window_line.offset for window_line in pattern.lines))
            candidates.append(
                Candidate(
                    name=name,
                    raw_price=_resolve_field(pattern.price_ref, matches, lines, anchor),
                    confidence=pattern.confidence,
                    detection_method=f"multi_line:{pattern.name}",
                    source_line_indices=indices,
                    raw_match_text="\n".join(lines[index].raw_content for index in indices),
                    quantity=quantity,
                )
            )
            used.update(indices)
            accepted = pattern
            break
        anchor = anchor + accepted.max_offset + 1 if accepted is not None else anchor + 1
    return candidates


def _previous_unconsumed(lines: Sequence[LineRecord], index: int, used: set[int]) -> LineRecord | None:
    previous = index - 1
    if previous < 0 or previous in used:
        return None
    return lines[previous]


def _extract_single_lines(
    lines: Sequence[LineRecord],
    profile: FormatProfile,
    used: set[int],
) -> list[Candidate]:
    candidates: list[Candidate] = []
    for record in lines:
        if record.index in used:
            continue
        text = record.raw_content.strip()
        for pattern in profile.single_line_patterns:
            if any(exclude.search(text) for exclude in pattern.exclude_patterns):
                continue
            match = pattern.regex.match(text)
            if match is None:
                continue
            indices: tuple[int, ...] = (record.index,)
            if pattern.requires_previous_line:
                previous = _previous_unconsumed(lines, record.index, used)
                if previous is None:
                    continue
                name = previous.raw_content.strip()
                indices = (previous.index, record.index)
            else:
                assert pattern.name_group is not None
                name = (match.group(pattern.name_group) or "").strip()
            if pattern.name_must_contain is not None and not pattern.name_must_contain.search(name):
                continue
            quantity = 1
            if pattern.quantity_group is not None:
                quantity = _parse_quantity(match.group(pattern.quantity_group))
            candidates.append(
                Candidate(
                    name=name,
                    raw_price=(match.group(pattern.price_group) or "").strip(),
                    confidence=pattern.confidence,
                    detection_method=f"single_line:{pattern.name}",
                    source_line_indices=indices,
                    raw_match_text="\n".join(lines[index].raw_content for index in indices),
                    quantity=quantity,
                )
            )
            used.update(indices)
            break
    return candidates


def _standalone_price_token(record: LineRecord) -> str | None:
    features = record.features
    if features.price_pattern in STANDALONE_PRICE_PATTERNS and features.price_groups:
        return features.price_groups[0]
    if features.digits_only:
        return record.raw_content.strip()
    return None


@register_variant("name_then_price")
def _extract_name_then_price(
    lines: Sequence[LineRecord],
    used: set[int],
    budget: ScanBudget,
) -> list[Candidate]:
    """An item-name line immediately followed by a standalone price line."""
    candidates: list[Candidate] = []
    for index in range(len(lines) - 1):
        if not budget.take():
            break
        name_line, price_line = lines[index], lines[index + 1]
        if index in used or index + 1 in used:
            continue
        if name_line.classified_type is not LineType.ITEM_NAME:
            continue
        if price_line.classified_type is not LineType.PRICE_ONLY:
            continue
        price = _standalone_price_token(price_line)
        if price is None:
            continue
        candidates.append(
            Candidate(
                name=name_line.raw_content.strip(),
                raw_price=price,
                confidence=0.7,
                detection_method="variant:name_then_price",
                source_line_indices=(index, index + 1),
                raw_match_text=f"{name_line.raw_content}\n{price_line.raw_content}",
            )
        )
        used.update((index, index + 1))
    return candidates


def _nearest_name_before(lines: Sequence[LineRecord], index: int, used: set[int]) -> int | None:
    """Index of the closest unconsumed item-name line within the lookback, or None."""
    for offset in range(1, WAREHOUSE_NAME_LOOKBACK + 1):
        previous = index - offset
        if previous < 0 or previous in used:
            return None
        if lines[previous].classified_type is LineType.ITEM_NAME:
            return previous
    return None


def _warehouse_price_block(
    lines: Sequence[LineRecord],
    start: int,
    used: set[int],
) -> tuple[str, int, int] | None:
    """Find a warehouse price block after the product code.

    A bare small number counts as the quantity only when another price line
    (a bare unit price or the unit part of "unit total T") follows it;
    otherwise it is the unit price and the quantity stays 1.

    Returns:
        (total price token, quantity, index of the last consumed line) or None.
    """
    quantity: int | None = None
    bare_numbers: list[str] = []
    end = min(start + WAREHOUSE_PRICE_LOOKAHEAD, len(lines))
    for index in range(start, end):
        if index in used:
            return None
        text = lines[index].raw_content.strip()

        unit_total = WAREHOUSE_UNIT_TOTAL_LINE.match(text)
        if unit_total:
            if quantity is None and bare_numbers and WAREHOUSE_QTY_LINE.match(bare_numbers[0]):
                quantity = _parse_quantity(bare_numbers[0])
            return unit_total.group(2), quantity or 1, index

        total = WAREHOUSE_TOTAL_LINE.match(text)
        if total:
            if quantity is None and len(bare_numbers) >= 2 and WAREHOUSE_QTY_LINE.match(bare_numbers[0]):
                quantity = _parse_quantity(bare_numbers[0])
            return total.group(1), quantity or 1, index

        qty_unit = WAREHOUSE_QTY_UNIT_LINE.match(text)
        if qty_unit and quantity is None and not bare_numbers:
            quantity = _parse_quantity(qty_unit.group(1))
            continue

        if WAREHOUSE_BARE_NUMBER_LINE.match(text):
            bare_numbers.append(text)
    return None


@register_variant("warehouse_flexible_scan")
def _extract_warehouse_flexible(
    lines: Sequence[LineRecord],
    used: set[int],
    budget: ScanBudget,
) -> list[Candidate]:
    """Warehouse layout with irregular line splits.

    A 5-7 digit product code line, the nearest item-name line just above it,
    then a price block: "unit total T", "total T", or quantity and unit lines
    followed by "total T".
    """
    candidates: list[Candidate] = []
    index = 0
    while index < len(lines):
        if not budget.take():
            break
        if index in used or not WAREHOUSE_CODE_LINE.match(lines[index].raw_content.strip()):
            index += 1
            continue

        name_index = _nearest_name_before(lines, index, used)
        if name_index is None:
            index += 1
            continue

        block = _warehouse_price_block(lines, index + 1, used)
        if block is None:
            index += 1
            continue
        price, quantity, last_index = block
        indices = tuple(range(name_index, last_index + 1))
        candidates.append(
            Candidate(
                name=lines[name_index].raw_content.strip(),
                raw_price=price,
                confidence=0.75,
                detection_method="variant:warehouse_flexible_scan",
                source_line_indices=indices,
                raw_match_text="\n".join(lines[i].raw_content for i in indices),
                quantity=quantity,
            )
        )
        used.update(indices)
        index = last_index + 1
    return candidates


@register_variant("warehouse_reduced_tax")
def _extract_warehouse_reduced_tax(
    lines: Sequence[LineRecord],
    used: set[int],
    budget: ScanBudget,
) -> list[Candidate]:
    """A "※name" line for a reduced-tax item, then an "NNN E" total within five lines.

    No product code is needed. Another ※ line ends the search so one total
    never feeds two names.
    """
    candidates: list[Candidate] = []
    for record in lines:
        if not budget.take():
            break
        text = record.raw_content.strip()
        if record.index in used or not text.startswith(REDUCED_TAX_MARKER) or len(text) <= 3:
            continue

        end = min(record.index + 1 + WAREHOUSE_REDUCED_TAX_LOOKAHEAD, len(lines))
        for index in range(record.index + 1, end):
            candidate_text = lines[index].raw_content.strip()
            if index in used or candidate_text.startswith(REDUCED_TAX_MARKER):
                break
            total = WAREHOUSE_REDUCED_TAX_TOTAL_LINE.match(candidate_text)
            if total is None:
                continue
            indices = tuple(range(record.index, index + 1))
            candidates.append(
                Candidate(
                    name=text,
                    raw_price=total.group(1),
                    confidence=0.8,
                    detection_method="variant:warehouse_reduced_tax",
                    source_line_indices=indices,
                    raw_match_text=f"{text}\n{candidate_text}",
                )
            )
            used.update(indices)
            break
    return candidates


@register_variant("warehouse_price_lookback")
def _extract_warehouse_price_lookback(
    lines: Sequence[LineRecord],
    used: set[int],
    budget: ScanBudget,
) -> list[Candidate]:
    """Last resort: an "NNN T/E" total paired with the nearest name line above it."""
    candidates: list[Candidate] = []
    for record in lines:
        if not budget.take():
            break
        if record.index in used:
            continue
        text = record.raw_content.strip()
        total = WAREHOUSE_TOTAL_LINE.match(text)
        if total is None:
            continue
        name_index = _nearest_name_before(lines, record.index, used)
        if name_index is None:
            continue
        name_line = lines[name_index]
        candidates.append(
            Candidate(
                name=name_line.raw_content.strip(),
                raw_price=total.group(1),
                confidence=0.6,
                detection_method="variant:warehouse_price_lookback",
                source_line_indices=(name_index, record.index),
                raw_match_text=f"{name_line.raw_content}\n{text}",
            )
        )
        used.update((name_index, record.index))
    return candidates


def extract_candidates(
    lines: Sequence[LineRecord],
    profile: FormatProfile,
    *,
    max_window_scans: int = DEFAULT_MAX_WINDOW_SCANS,
    engine: str = "",
    diagnostic_sink: list[ParseDiagnostic] | None = None,
) -> list[Candidate]:
    """Run special cases, multi-line windows/variants and single-line patterns.

    Args:
        lines: Classified lines of one receipt.
        profile: The detected (or hinted) format profile.
        max_window_scans: Upper bound on window and variant attempts.
        engine: Engine name, for diagnostics only.
        diagnostic_sink: Optional list that receives per-phase checkpoints.

    Returns:
        Candidates in phase order; their source lines never overlap.
    """
    used: set[int] = set()
    budget = ScanBudget(max_window_scans)

    special = _extract_special_cases(lines, profile, used)
    _record_diagnostic(diagnostic_sink, engine, "special_cases", f"{len(special)} candidates")

    windows = _extract_windows(lines, profile, used, budget)
    for variant_name in profile.variants:
        windows.extend(EXTRACTION_VARIANTS[variant_name](lines, used, budget))
    _record_diagnostic(diagnostic_sink, engine, "multi_line", f"{len(windows)} candidates")
    if budget.exhausted:
        _record_diagnostic(diagnostic_sink, engine, "multi_line", f"window scan limit {budget.limit} reached")

    single = _extract_single_lines(lines, profile, used)
    _record_diagnostic(diagnostic_sink, engine, "single_line", f"{len(single)} candidates")

    return special + windows + single
