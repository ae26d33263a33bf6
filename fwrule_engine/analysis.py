"""
Analysis aggregator: duplicates, conflicts, statistics and order warnings for an
ordered hierarchy produced by rule_processor.order().
"""
from __future__ import annotations

import logging
from collections import Counter
from typing import List, Optional

from .config import AnalysisSettings, get_settings
from .conflicts import find_conflicts
from .fingerprint import find_duplicates
from .models import AnalysisStatistics, ProcessedRuleCollectionGroup, RuleAnalysis
from .rule_processor import (
    get_all_rules_in_processing_order,
    get_processing_statistics,
    validate_processing_order,
)

logger = logging.getLogger(__name__)


def analyze(groups: List[ProcessedRuleCollectionGroup], settings: Optional[AnalysisSettings] = None) -> RuleAnalysis:
    settings = settings or get_settings()
    all_rules = get_all_rules_in_processing_order(groups)
    logger.info(f"  Analyzing {len(all_rules)} rule(s) across {len(groups)} group(s)...")

    duplicates = find_duplicates(all_rules)
    conflicts = find_conflicts(all_rules, settings)
    warnings = validate_processing_order(groups)

    conflicting_ids = {c.primary.id for c in conflicts} | {c.conflicting.id for c in conflicts}
    by_type = Counter(c.conflict_type for c in conflicts)
    by_severity = Counter(c.severity for c in conflicts)

    statistics = AnalysisStatistics(
        total_rules=len(all_rules),
        duplicate_rules=sum(len(group.rules) for group in duplicates),
        conflicting_rules=len(conflicting_ids),
        duplicate_groups=len(duplicates),
        conflicts=len(conflicts),
        conflicts_by_type={k: by_type.get(k, 0) for k in ("allow_deny_conflict", "priority_conflict", "overlapping_rules")},
        conflicts_by_severity={k: by_severity.get(k, 0) for k in ("high", "medium", "low")},
        processing=get_processing_statistics(groups),
    )
    logger.info(
        f"  Analysis complete: duplicate groups={statistics.duplicate_groups}, "
        f"conflicts={statistics.conflicts}, warnings={len(warnings)}"
    )
    return RuleAnalysis(duplicates=duplicates, conflicts=conflicts, statistics=statistics, warnings=warnings)
