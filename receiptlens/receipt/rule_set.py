"""The complete, immutable rule set a parser is constructed from."""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from typing import Any

from receiptlens.receipt.extraction import EXTRACTION_VARIANTS
from receiptlens.receipt.format_profiles import (
    EngineConfig,
    OrchestratorSettings,
    build_engine_configs,
    build_format_profiles,
    build_orchestrator_settings,
)
from receiptlens.receipt.item_categories import ItemCategoryRuleLayers, build_item_category_rule_layers
from receiptlens.receipt.vocabulary import Vocabulary, build_vocabulary


@dataclass(frozen=True)
class ParserRuleSet:
    engines: tuple[EngineConfig, ...]
    vocabulary: Vocabulary
    categories: ItemCategoryRuleLayers
    settings: OrchestratorSettings

    def engine(self, name: str) -> EngineConfig | None:
        for engine in self.engines:
            if engine.name == name:
                return engine
        return None


def build_parser_rule_set(
    format_configs: Sequence[Mapping[str, Any]],
    vocabulary_configs: Sequence[Mapping[str, Any]] | None = None,
    classifier_configs: Sequence[Mapping[str, Any]] | None = None,
) -> ParserRuleSet:
    """Build and validate every rule layer.

    Raises:
        RuleConfigError: on any malformed profile, engine, or vocabulary entry.
    """
    profiles = build_format_profiles(format_configs, known_variants=EXTRACTION_VARIANTS.keys())
    return ParserRuleSet(
        engines=build_engine_configs(format_configs, profiles),
        vocabulary=build_vocabulary(vocabulary_configs),
        categories=build_item_category_rule_layers(classifier_configs),
        settings=build_orchestrator_settings(format_configs),
    )
