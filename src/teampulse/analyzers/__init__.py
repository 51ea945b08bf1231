"""Insight analyzers.

- RuleBasedAnalyzer: deterministic threshold rules over activity records
- Categorizer: confidence-scored categorization against explicit RuleSets
"""

from teampulse.analyzers.categorizer import (
    CHANGE_RULE_SET,
    RETRO_RULE_SET,
    CategorizationResult,
    Categorizer,
    CategoryRule,
    RuleSet,
    RuleWeights,
    get_rule_set,
)
from teampulse.analyzers.rule_based import RuleBasedAnalyzer

__all__ = [
    "CHANGE_RULE_SET",
    "RETRO_RULE_SET",
    "CategorizationResult",
    "Categorizer",
    "CategoryRule",
    "RuleBasedAnalyzer",
    "RuleSet",
    "RuleWeights",
    "get_rule_set",
]
