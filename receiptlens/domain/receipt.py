"""Data models for receipt text parsing."""

from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal
from enum import Enum


class LineType(str, Enum):
    """Semantic type assigned to one OCR line."""

    ITEM_NAME = "item_name"
    PRICE_ONLY = "price_only"
    QUANTITY_INFO = "quantity_info"
    PRODUCT_CODE = "product_code"
    METADATA = "metadata"
    TOTAL = "total"
    SEPARATOR = "separator"
    UNKNOWN = "unknown"


@dataclass(frozen=True)
class LineFeatures:
    """Lexical and structural signals extracted from a single line."""

    has_digits: bool
    digits_only: bool
    has_price_symbol: bool
    has_japanese_script: bool
    has_hiragana: bool
    has_katakana: bool
    has_kanji: bool
    has_latin_script: bool
    number_value: int | None
    length: int
    position_ratio: float
    price_pattern: str | None = None
    price_groups: tuple[str, ...] = ()
    quantity_pattern: str | None = None
    quantity_groups: tuple[str, ...] = ()
    code_pattern: str | None = None
    code_groups: tuple[str, ...] = ()

    @property
    def has_script(self) -> bool:
        return self.has_japanese_script or self.has_latin_script

    @property
    def punctuation_only(self) -> bool:
        return not self.has_digits and not self.has_script


@dataclass(frozen=True)
class LineRecord:
    """One OCR line after feature extraction and classification."""

    index: int
    raw_content: str
    features: LineFeatures
    classified_type: LineType
    classification_confidence: float


@dataclass(frozen=True)
class Candidate:
    """A tentative extracted item, before normalization and validation."""

    name: str
    raw_price: str | None
    confidence: float
    detection_method: str
    source_line_indices: tuple[int, ...]
    raw_match_text: str = ""
    quantity: int = 1
    price: Decimal | None = None
    currency: str | None = None
    # Only special cases preset a category; everything else is categorized later.
    category: str | None = None


@dataclass(frozen=True)
class Item:
    """A final, validated purchase line item."""

    name: str
    price: Decimal
    quantity: int
    category: str
    confidence: float
    currency: str
    detection_method: str = ""
    source_line_indices: tuple[int, ...] = ()
    engine: str = ""

    @property
    def total(self) -> Decimal:
        # Price is the line total printed on the receipt; quantity is informational.
        return self.price


@dataclass(frozen=True)
class QualityReport:
    """Heuristic quality assessment for one engine's items."""

    score: float
    suspicious_patterns: tuple[str, ...] = ()


@dataclass(frozen=True)
class EngineResult:
    """One engine's full output for one input text."""

    engine: str
    format_detected: str
    items: tuple[Item, ...]
    confidence: float
    processing_time_ms: float = field(compare=False)
    methods_used: tuple[str, ...] = ()
    timed_out: bool = False
    quality: QualityReport | None = None


@dataclass(frozen=True)
class ParseResult:
    """Final result returned to callers."""

    items: tuple[Item, ...]
    confidence: float
    format_detected: str
    processing_time_ms: float = field(compare=False)
    selection: str = "empty"
    engine_results: tuple[EngineResult, ...] = ()


@dataclass(frozen=True)
class ParseDiagnostic:
    """Checkpoint event emitted by the pipeline (counts, decisions)."""

    engine: str
    stage: str
    message: str
    line_index: int | None = None


@dataclass(frozen=True)
class Rejection:
    """Why a candidate did not become an item."""

    name: str
    source_line_indices: tuple[int, ...]
    stage: str
    reason: str


@dataclass
class EngineExplanation:
    """Read-only trace of one engine run."""

    engine: str
    format_detected: str
    lines: tuple[LineRecord, ...]
    candidates: tuple[Candidate, ...]
    result: EngineResult
    rejections: list[Rejection] = field(default_factory=list)
    diagnostics: list[ParseDiagnostic] = field(default_factory=list)


@dataclass
class ParseExplanation:
    """Per-engine traces plus the final selected result."""

    engines: list[EngineExplanation]
    result: ParseResult
