"""Extract purchased items from noisy OCR receipt text.

Usage:
    from receiptlens import parse_receipt_text

    result = parse_receipt_text("*りんご ¥180\\n*バナナ ¥98")
    for item in result.items:
        print(item.name, item.price, item.category)
"""

from receiptlens.domain.receipt import Item, ParseExplanation, ParseResult
from receiptlens.receipt.format_profiles import RuleConfigError
from receiptlens.receipt.orchestrator import ReceiptParser
from receiptlens.runtime.parser_rules import get_default_parser, load_parser_rule_set

__version__ = "0.1.0"


def parse_receipt_text(text: str, profile_hint: str | None = None) -> ParseResult:
    """Parse OCR text with the default (bundled + user) rules."""
    return get_default_parser().parse(text, profile_hint=profile_hint)


__all__ = [
    "Item",
    "ParseExplanation",
    "ParseResult",
    "ReceiptParser",
    "RuleConfigError",
    "get_default_parser",
    "load_parser_rule_set",
    "parse_receipt_text",
]
