"""Receipt format profiles and engine configuration.

A ``FormatProfile`` describes one receipt layout family: how to recognize it
(store identifiers, structural signatures), what prices are plausible, and
which extraction rules to run. Profiles are built once from TOML-shaped
mappings and are read-only afterwards. Every malformed entry raises
``RuleConfigError`` at build time so no parse ever runs on a broken rule set.
"""

from __future__ import annotations

import re
from collections.abc import Collection, Mapping, Sequence
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from typing import Any

from receiptlens.domain.receipt import LineRecord, LineType

ITEM_NAME_SENTINEL = "@item_name"
REGEX_STEP_PREFIX = "re:"
WILDCARD_STEP = "*"
FIELD_REF_PATTERN = re.compile(r"^line(-?\d+)(?:\.group(\d+))?$")

DEFAULT_MAX_WINDOW_SCANS = 20000


class RuleConfigError(ValueError):
    """Raised when parser rule configuration is malformed."""


def compile_rule_regex(pattern: Any, where: str) -> re.Pattern[str]:
    """Compile a configured regex, converting failures to RuleConfigError."""
    if not isinstance(pattern, str) or not pattern:
        raise RuleConfigError(f"{where}: regex must be a non-empty string")
    try:
        return re.compile(pattern)
    except re.error as exc:
        raise RuleConfigError(f"{where}: invalid regex {pattern!r}: {exc}") from exc


def _to_decimal(value: Any, where: str) -> Decimal:
    try:
        return Decimal(str(value))
    except InvalidOperation as exc:
        raise RuleConfigError(f"{where}: not a number: {value!r}") from exc


def _to_confidence(value: Any, where: str) -> float:
    try:
        confidence = float(value)
    except (TypeError, ValueError) as exc:
        raise RuleConfigError(f"{where}: confidence must be a number") from exc
    if not 0.0 <= confidence <= 1.0:
        raise RuleConfigError(f"{where}: confidence {confidence} outside [0, 1]")
    return confidence


def _string_tuple(raw: Any) -> tuple[str, ...]:
    if isinstance(raw, str):
        value = raw.strip()
        return (value,) if value else ()
    if isinstance(raw, list):
        return tuple(str(v).strip() for v in raw if str(v).strip())
    return ()


@dataclass(frozen=True)
class PriceRange:
    minimum: Decimal
    maximum: Decimal

    def contains(self, value: Decimal) -> bool:
        return self.minimum <= value <= self.maximum


@dataclass(frozen=True)
class SignatureStep:
    """One step of a structural signature; both fields None means wildcard."""

    line_type: LineType | None = None
    regex: re.Pattern[str] | None = None

    def matches(self, record: LineRecord) -> bool:
        if self.line_type is not None:
            return record.classified_type is self.line_type
        if self.regex is not None:
            return self.regex.search(record.raw_content) is not None
        return True


@dataclass(frozen=True)
class StructuralSignature:
    """A sequence of line steps that must appear consecutively at least once."""

    name: str
    steps: tuple[SignatureStep, ...]

    def matches(self, lines: Sequence[LineRecord]) -> bool:
        width = len(self.steps)
        for start in range(len(lines) - width + 1):
            if all(step.matches(lines[start + offset]) for offset, step in enumerate(self.steps)):
                return True
        return False


@dataclass(frozen=True)
class SingleLinePattern:
    name: str
    regex: re.Pattern[str]
    confidence: float
    price_group: int
    name_group: int | None = None
    quantity_group: int | None = None
    requires_previous_line: bool = False
    exclude_patterns: tuple[re.Pattern[str], ...] = ()
    name_must_contain: re.Pattern[str] | None = None


@dataclass(frozen=True)
class WindowLine:
    """Sub-pattern for one offset of a multi-line window.

    ``regex`` None means the line must be classified as an item name.
    """

    offset: int
    regex: re.Pattern[str] | None = None


@dataclass(frozen=True)
class FieldRef:
    """Reference to a whole window line (group None) or one capture group."""

    offset: int
    group: int | None = None


@dataclass(frozen=True)
class MultiLinePattern:
    name: str
    lines: tuple[WindowLine, ...]
    confidence: float
    name_ref: FieldRef
    price_ref: FieldRef
    quantity_ref: FieldRef | None = None
    quantity: int = 1
    name_must_contain: re.Pattern[str] | None = None

    @property
    def line_count(self) -> int:
        return len(self.lines)

    @property
    def min_offset(self) -> int:
        return self.lines[0].offset

    @property
    def max_offset(self) -> int:
        return self.lines[-1].offset


@dataclass(frozen=True)
class SpecialCaseItem:
    name: str
    price: str
    quantity: int = 1
    category: str | None = None


@dataclass(frozen=True)
class SpecialCase:
    name: str
    trigger: str
    items: tuple[SpecialCaseItem, ...]
    skip_lines: int
    confidence: float


@dataclass(frozen=True)
class FormatProfile:
    """Configuration for one receipt layout family."""

    name: str
    priority: int
    identifiers: tuple[str, ...]
    signatures: tuple[StructuralSignature, ...]
    exclude_keywords: tuple[str, ...]
    price_range: PriceRange
    currency: str = "JPY"
    food_domain: bool = True
    single_item_price_max: Decimal | None = None
    bulk_item_price_max: Decimal | None = None
    special_cases: tuple[SpecialCase, ...] = ()
    multi_line_patterns: tuple[MultiLinePattern, ...] = ()
    single_line_patterns: tuple[SingleLinePattern, ...] = ()
    variants: tuple[str, ...] = ()
    min_confidence: float = 0.0

    @property
    def is_generic(self) -> bool:
        return not self.identifiers and not self.signatures


@dataclass(frozen=True)
class EngineConfig:
    """One engine: an ordered profile set plus its structural work bound."""

    name: str
    profiles: tuple[FormatProfile, ...]
    max_window_scans: int = DEFAULT_MAX_WINDOW_SCANS

    @property
    def generic_profile(self) -> FormatProfile:
        return next(profile for profile in self.profiles if profile.is_generic)

    def profile(self, name: str) -> FormatProfile | None:
        for candidate in self.profiles:
            if candidate.name == name:
                return candidate
        return None


@dataclass(frozen=True)
class OrchestratorSettings:
    budget_ms: float = 2000.0
    confidence_margin: float = 0.15
    min_confidence: float = 0.5


def _parse_signature(raw: Mapping[str, Any], where: str) -> StructuralSignature:
    steps: list[SignatureStep] = []
    raw_steps = raw.get("steps", [])
    if not isinstance(raw_steps, list) or not raw_steps:
        raise RuleConfigError(f"{where}: signature needs a non-empty 'steps' list")
    for step in raw_steps:
        step_text = str(step)
        if step_text == WILDCARD_STEP:
            steps.append(SignatureStep())
        elif step_text.startswith(REGEX_STEP_PREFIX):
            steps.append(SignatureStep(regex=compile_rule_regex(step_text[len(REGEX_STEP_PREFIX) :], where)))
        else:
            try:
                steps.append(SignatureStep(line_type=LineType(step_text)))
            except ValueError as exc:
                raise RuleConfigError(f"{where}: unknown line type {step_text!r}") from exc
    return StructuralSignature(name=str(raw.get("name", "signature")), steps=tuple(steps))


def _parse_group(raw: Any, regex: re.Pattern[str], where: str) -> int | None:
    if raw is None:
        return None
    if not isinstance(raw, int) or isinstance(raw, bool) or raw < 1:
        raise RuleConfigError(f"{where}: group index must be a positive integer")
    if raw > regex.groups:
        raise RuleConfigError(f"{where}: group {raw} but regex has only {regex.groups} groups")
    return raw


def _parse_single_line(raw: Mapping[str, Any], where: str) -> SingleLinePattern:
    regex = compile_rule_regex(raw.get("regex"), where)
    groups = raw.get("groups", {})
    if not isinstance(groups, Mapping):
        raise RuleConfigError(f"{where}: 'groups' must be a table")
    requires_previous_line = bool(raw.get("requires_previous_line", False))
    price_group = _parse_group(groups.get("price"), regex, f"{where}.price")
    if price_group is None:
        raise RuleConfigError(f"{where}: a price group is required")
    name_group = _parse_group(groups.get("name"), regex, f"{where}.name")
    if name_group is None and not requires_previous_line:
        raise RuleConfigError(f"{where}: a name group is required unless requires_previous_line is set")
    name_must_contain = raw.get("name_must_contain")
    return SingleLinePattern(
        name=str(raw.get("name", "single_line")),
        regex=regex,
        confidence=_to_confidence(raw.get("confidence", 0.5), where),
        price_group=price_group,
        name_group=name_group,
        quantity_group=_parse_group(groups.get("quantity"), regex, f"{where}.quantity"),
        requires_previous_line=requires_previous_line,
        exclude_patterns=tuple(
            compile_rule_regex(pattern, f"{where}.exclude_patterns") for pattern in raw.get("exclude_patterns", [])
        ),
        name_must_contain=(
            compile_rule_regex(name_must_contain, f"{where}.name_must_contain") if name_must_contain else None
        ),
    )


def _parse_field_ref(raw: Any, lines: Mapping[int, WindowLine], where: str) -> FieldRef:
    match = FIELD_REF_PATTERN.match(str(raw))
    if not match:
        raise RuleConfigError(f"{where}: bad field reference {raw!r} (expected 'lineN' or 'lineN.groupK')")
    offset = int(match.group(1))
    group = int(match.group(2)) if match.group(2) else None
    window_line = lines.get(offset)
    if window_line is None:
        raise RuleConfigError(f"{where}: reference {raw!r} points outside the window")
    if group is not None:
        if window_line.regex is None:
            raise RuleConfigError(f"{where}: {raw!r} takes a group from an item-name line")
        if group < 1 or group > window_line.regex.groups:
            raise RuleConfigError(f"{where}: {raw!r} names a missing capture group")
    return FieldRef(offset=offset, group=group)


def _parse_multi_line(raw: Mapping[str, Any], where: str) -> MultiLinePattern:
    raw_lines = raw.get("lines", [])
    if not isinstance(raw_lines, list) or not raw_lines:
        raise RuleConfigError(f"{where}: 'lines' must be a non-empty list")
    anchor = raw.get("anchor", 0)
    if not isinstance(anchor, int) or not 0 <= anchor < len(raw_lines):
        raise RuleConfigError(f"{where}: anchor must index into 'lines'")

    window: list[WindowLine] = []
    for position, sub_pattern in enumerate(raw_lines):
        offset = position - anchor
        if sub_pattern == ITEM_NAME_SENTINEL:
            window.append(WindowLine(offset=offset))
        else:
            window.append(WindowLine(offset=offset, regex=compile_rule_regex(sub_pattern, f"{where}.lines")))
    by_offset = {line.offset: line for line in window}

    extract = raw.get("extract", {})
    if not isinstance(extract, Mapping) or "name" not in extract or "price" not in extract:
        raise RuleConfigError(f"{where}: 'extract' needs name and price references")

    quantity_raw = extract.get("quantity", 1)
    quantity_ref = None
    quantity = 1
    if isinstance(quantity_raw, int) and not isinstance(quantity_raw, bool):
        if quantity_raw < 1:
            raise RuleConfigError(f"{where}: literal quantity must be >= 1")
        quantity = quantity_raw
    else:
        quantity_ref = _parse_field_ref(quantity_raw, by_offset, f"{where}.quantity")

    name_must_contain = raw.get("name_must_contain")
    return MultiLinePattern(
        name=str(raw.get("name", "multi_line")),
        lines=tuple(window),
        confidence=_to_confidence(raw.get("confidence", 0.5), where),
        name_ref=_parse_field_ref(extract["name"], by_offset, f"{where}.name"),
        price_ref=_parse_field_ref(extract["price"], by_offset, f"{where}.price"),
        quantity_ref=quantity_ref,
        quantity=quantity,
        name_must_contain=(
            compile_rule_regex(name_must_contain, f"{where}.name_must_contain") if name_must_contain else None
        ),
    )


def _parse_special_case(raw: Mapping[str, Any], where: str) -> SpecialCase:
    trigger = str(raw.get("trigger", "")).strip()
    if not trigger:
        raise RuleConfigError(f"{where}: special case needs a trigger line")
    items: list[SpecialCaseItem] = []
    for raw_item in raw.get("items", []):
        if not isinstance(raw_item, Mapping):
            raise RuleConfigError(f"{where}: special case items must be tables")
        name = str(raw_item.get("name", "")).strip()
        if not name or "price" not in raw_item:
            raise RuleConfigError(f"{where}: special case items need a name and a price")
        _to_decimal(raw_item["price"], f"{where}.price")
        quantity = raw_item.get("quantity", 1)
        if not isinstance(quantity, int) or isinstance(quantity, bool) or quantity < 1:
            raise RuleConfigError(f"{where}: special case item quantity must be a positive integer")
        items.append(
            SpecialCaseItem(
                name=name,
                price=str(raw_item["price"]),
                quantity=quantity,
                category=raw_item.get("category"),
            )
        )
    if not items:
        raise RuleConfigError(f"{where}: special case {trigger!r} has no items")
    skip_lines = raw.get("skip_lines", 1)
    if not isinstance(skip_lines, int) or skip_lines < 1:
        raise RuleConfigError(f"{where}: skip_lines must be a positive integer")
    return SpecialCase(
        name=str(raw.get("name", trigger)),
        trigger=trigger,
        items=tuple(items),
        skip_lines=skip_lines,
        confidence=_to_confidence(raw.get("confidence", 0.8), where),
    )


def _parse_profile(raw: Mapping[str, Any], known_variants: Collection[str]) -> FormatProfile:
    name = str(raw.get("name", "")).strip()
    if not name:
        raise RuleConfigError("profile without a name")
    where = f"profile {name!r}"

    price_range_raw = raw.get("price_range", {})
    if not isinstance(price_range_raw, Mapping) or "min" not in price_range_raw or "max" not in price_range_raw:
        raise RuleConfigError(f"{where}: price_range needs min and max")
    price_range = PriceRange(
        minimum=_to_decimal(price_range_raw["min"], f"{where}.price_range"),
        maximum=_to_decimal(price_range_raw["max"], f"{where}.price_range"),
    )
    if price_range.minimum <= 0 or price_range.minimum > price_range.maximum:
        raise RuleConfigError(f"{where}: price_range must satisfy 0 < min <= max")

    variants = _string_tuple(raw.get("variants", []))
    for variant in variants:
        if variant not in known_variants:
            raise RuleConfigError(f"{where}: unknown extraction variant {variant!r}")

    def _optional_decimal(key: str) -> Decimal | None:
        value = raw.get(key)
        return None if value is None else _to_decimal(value, f"{where}.{key}")

    return FormatProfile(
        name=name,
        priority=int(raw.get("priority", 0)),
        identifiers=_string_tuple(raw.get("identifiers", [])),
        signatures=tuple(
            _parse_signature(signature, f"{where}.signatures") for signature in raw.get("signatures", [])
        ),
        exclude_keywords=_string_tuple(raw.get("exclude_keywords", [])),
        price_range=price_range,
        currency=str(raw.get("currency", "JPY")).upper(),
        food_domain=bool(raw.get("food_domain", True)),
        single_item_price_max=_optional_decimal("single_item_price_max"),
        bulk_item_price_max=_optional_decimal("bulk_item_price_max"),
        special_cases=tuple(
            _parse_special_case(case, f"{where}.special_cases") for case in raw.get("special_cases", [])
        ),
        multi_line_patterns=tuple(
            _parse_multi_line(pattern, f"{where}.multi_line_patterns") for pattern in raw.get("multi_line_patterns", [])
        ),
        single_line_patterns=tuple(
            _parse_single_line(pattern, f"{where}.single_line_patterns")
            for pattern in raw.get("single_line_patterns", [])
        ),
        variants=variants,
        min_confidence=_to_confidence(raw.get("min_confidence", 0.0), where),
    )


def build_format_profiles(
    format_configs: Sequence[Mapping[str, Any]],
    known_variants: Collection[str] = (),
) -> dict[str, FormatProfile]:
    """Build profiles from layered configs; a later layer replaces a profile of the same name."""
    profiles: dict[str, FormatProfile] = {}
    for config in format_configs:
        seen_in_layer: set[str] = set()
        for raw in config.get("profiles", []):
            if not isinstance(raw, Mapping):
                raise RuleConfigError("each [[profiles]] entry must be a table")
            profile = _parse_profile(raw, known_variants)
            if profile.name in seen_in_layer:
                raise RuleConfigError(f"duplicate profile name {profile.name!r}")
            seen_in_layer.add(profile.name)
            profiles[profile.name] = profile
    return profiles


def build_engine_configs(
    format_configs: Sequence[Mapping[str, Any]],
    profiles: Mapping[str, FormatProfile],
) -> tuple[EngineConfig, ...]:
    """Build engines from layered configs, resolving profile names.

    Every engine needs exactly one generic profile (no identifiers, no
    signatures) so format detection always has a catch-all.
    """
    raw_engines: dict[str, Mapping[str, Any]] = {}
    for config in format_configs:
        for raw in config.get("engines", []):
            name = str(raw.get("name", "")).strip()
            if not name:
                raise RuleConfigError("engine without a name")
            raw_engines[name] = raw

    engines: list[EngineConfig] = []
    for name, raw in raw_engines.items():
        profile_names = _string_tuple(raw.get("profiles", []))
        resolved: list[FormatProfile] = []
        for profile_name in profile_names:
            profile = profiles.get(profile_name)
            if profile is None:
                raise RuleConfigError(f"engine {name!r}: unknown profile {profile_name!r}")
            resolved.append(profile)
        generic_count = sum(1 for profile in resolved if profile.is_generic)
        if generic_count != 1:
            raise RuleConfigError(f"engine {name!r}: needs exactly one generic profile, found {generic_count}")
        max_window_scans = raw.get("max_window_scans", DEFAULT_MAX_WINDOW_SCANS)
        if not isinstance(max_window_scans, int) or max_window_scans < 1:
            raise RuleConfigError(f"engine {name!r}: max_window_scans must be a positive integer")
        engines.append(EngineConfig(name=name, profiles=tuple(resolved), max_window_scans=max_window_scans))

    if not engines:
        raise RuleConfigError("no engines configured")
    return tuple(engines)


def build_orchestrator_settings(format_configs: Sequence[Mapping[str, Any]]) -> OrchestratorSettings:
    """Merge [orchestrator] tables; later layers override individual keys."""
    merged: dict[str, Any] = {}
    for config in format_configs:
        section = config.get("orchestrator", {})
        if isinstance(section, Mapping):
            merged.update(section)
    try:
        settings = OrchestratorSettings(
            budget_ms=float(merged.get("budget_ms", OrchestratorSettings.budget_ms)),
            confidence_margin=float(merged.get("confidence_margin", OrchestratorSettings.confidence_margin)),
            min_confidence=float(merged.get("min_confidence", OrchestratorSettings.min_confidence)),
        )
    except (TypeError, ValueError) as exc:
        raise RuleConfigError(f"[orchestrator]: {exc}") from exc
    if settings.budget_ms <= 0:
        raise RuleConfigError("[orchestrator]: budget_ms must be positive")
    return settings
