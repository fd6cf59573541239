"""
Rule set model, loader, and condition matching.
"""

from .matching import extract_domain, matches_condition, matches_rule
from .models import (
    ClassificationRule,
    Condition,
    ConditionField,
    ConditionOperator,
    PriorityConfig,
    PriorityConfigError,
    PriorityRules,
    TimeDecayConfig,
    load_priority_config,
    match_pattern,
)

__all__ = [
    "ClassificationRule",
    "Condition",
    "ConditionField",
    "ConditionOperator",
    "PriorityConfig",
    "PriorityConfigError",
    "PriorityRules",
    "TimeDecayConfig",
    "extract_domain",
    "load_priority_config",
    "match_pattern",
    "matches_condition",
    "matches_rule",
]
