"""Core domain models for receipt text parsing.

This module provides the data models shared by the pipeline and its callers:
- LineType, LineFeatures, LineRecord: per-line analysis
- Candidate, Item: extracted and final line items
- EngineResult, ParseResult: engine and orchestrator outputs

Usage:
    from receiptlens.domain import Item, ParseResult
"""

from receiptlens.domain.receipt import (
    Candidate,
    EngineExplanation,
    EngineResult,
    Item,
    LineFeatures,
    LineRecord,
    LineType,
    ParseDiagnostic,
    ParseExplanation,
    ParseResult,
    QualityReport,
    Rejection,
)

__all__ = [
    "Candidate",
    "EngineExplanation",
    "EngineResult",
    "Item",
    "LineFeatures",
    "LineRecord",
    "LineType",
    "ParseDiagnostic",
    "ParseExplanation",
    "ParseResult",
    "QualityReport",
    "Rejection",
]
