"""
Firewall policy rule ordering and duplicate/conflict analysis.
"""
from .analysis import analyze
from .conflicts import find_conflicts, find_conflicts_involving_rule
from .fingerprint import find_duplicates, find_duplicates_of_rule
from .rule_processor import (
    find_rule_by_id,
    get_all_rules_in_processing_order,
    get_processing_statistics,
    get_rules_by_category,
    order,
    summarize_policy,
    validate_processing_order,
)

__all__ = [
    "analyze",
    "find_conflicts",
    "find_conflicts_involving_rule",
    "find_duplicates",
    "find_duplicates_of_rule",
    "find_rule_by_id",
    "get_all_rules_in_processing_order",
    "get_processing_statistics",
    "get_rules_by_category",
    "order",
    "summarize_policy",
    "validate_processing_order",
]

__version__ = "0.1.0"
