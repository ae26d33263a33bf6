"""
Rule processing engine: reproduces the order in which the firewall evaluates rules.

Processing order:
  1. Parent policy groups first, regardless of their priority
  2. Rule collection groups by priority (100 = evaluated first, 65000 = last)
  3. Within each group: DNAT -> Network -> Application rules
  4. Within each category: rule collections by priority (ties keep declaration order)
  5. Rules within a collection in declaration order

Every function here is pure: a fresh processed hierarchy is built per call.
"""
from __future__ import annotations

import logging
from typing import Dict, List, Optional, Tuple

from .errors import PolicyContractError, UnknownRuleKindError
from .models import (
    APPLICATION_RULE,
    CATEGORY_ORDER,
    NAT_RULE,
    NETWORK_RULE,
    Policy,
    PolicySummary,
    PriorityRange,
    PriorityRanges,
    ProcessedRule,
    ProcessedRuleCollection,
    ProcessedRuleCollectionGroup,
    ProcessingStatistics,
    RuleCategory,
    RuleCollection,
    RuleCollectionGroup,
    ValidationWarning,
)

logger = logging.getLogger(__name__)

_CATEGORY_BY_KIND: Dict[str, RuleCategory] = {
    NAT_RULE: RuleCategory.DNAT,
    NETWORK_RULE: RuleCategory.NETWORK,
    APPLICATION_RULE: RuleCategory.APPLICATION,
}


def rule_category(rule) -> RuleCategory:
    """Category bucket of a rule; unknown kinds are a contract violation."""
    kind = getattr(rule, "rule_type", None)
    try:
        return _CATEGORY_BY_KIND[kind]
    except (KeyError, TypeError):
        raise UnknownRuleKindError(kind, f"rule {getattr(rule, 'name', None)!r}") from None


def _as_category(category) -> RuleCategory:
    try:
        return RuleCategory(category)
    except ValueError:
        raise UnknownRuleKindError(category, "category filter") from None


def _priority_of(item, what: str) -> int:
    priority = getattr(item, "priority", None)
    if isinstance(priority, bool) or not isinstance(priority, int):
        raise PolicyContractError(
            f"{what} {getattr(item, 'name', None)!r} has no integer priority (got {priority!r})"
        )
    return priority


class _OrderCounter:
    """Processing-order counter owned by a single ordering pass."""

    def __init__(self, start: int = 1):
        self.value = start

    def take(self) -> int:
        current = self.value
        self.value += 1
        return current


# ---- Ordering ----

def order(policy: Policy, parent_policy: Optional[Policy] = None) -> List[ProcessedRuleCollectionGroup]:
    """
    Process a firewall policy (and optionally its parent) into the ordered hierarchy.

    Parent groups are tagged is_parent_policy=True and always precede child groups.
    Within a tier groups sort by ascending priority; the sort is stable so equal
    priorities keep their document order. processing_order starts at 1 and is
    shared across the whole result.
    """
    all_groups: List[Tuple[RuleCollectionGroup, bool]] = []
    if parent_policy is not None:
        all_groups.extend((group, True) for group in parent_policy.rule_collection_groups)
    all_groups.extend((group, False) for group in policy.rule_collection_groups)

    for group, _ in all_groups:
        _priority_of(group, "Rule collection group")

    all_groups.sort(key=lambda item: (0 if item[1] else 1, item[0].priority))
    logger.info(
        f"  Ordering {len(all_groups)} rule collection group(s) "
        f"(parent policy: {'yes' if parent_policy is not None else 'no'})..."
    )

    counter = _OrderCounter()
    processed = [_process_group(group, is_parent, counter) for group, is_parent in all_groups]

    logger.info(f"  Assigned processing order 1..{counter.value - 1} across {len(processed)} group(s)")
    return processed


def _process_group(
    group: RuleCollectionGroup, is_parent: bool, counter: _OrderCounter
) -> ProcessedRuleCollectionGroup:
    buckets: Dict[RuleCategory, List[RuleCollection]] = {category: [] for category in CATEGORY_ORDER}
    for collection in group.rule_collections:
        _priority_of(collection, "Rule collection")
        present = {rule_category(rule) for rule in collection.rules}
        for category in CATEGORY_ORDER:
            if category in present:
                buckets[category].append(collection)

    processed_collections: List[ProcessedRuleCollection] = []
    for category in CATEGORY_ORDER:
        for collection in sorted(buckets[category], key=lambda c: c.priority):
            processed = _process_collection(collection, category, group, is_parent, counter)
            if processed is not None:
                processed_collections.append(processed)

    logger.debug(
        f"     Group '{group.name}' (priority {group.priority}): "
        f"{len(processed_collections)} processed collection(s)"
    )
    return ProcessedRuleCollectionGroup(
        id=f"group_parent_{group.name}" if is_parent else f"group_{group.name}",
        name=group.name,
        priority=group.priority,
        is_parent_policy=is_parent,
        rule_collections=group.rule_collections,
        processed_collections=processed_collections,
    )


def _process_collection(
    collection: RuleCollection,
    category: RuleCategory,
    group: RuleCollectionGroup,
    is_parent: bool,
    counter: _OrderCounter,
) -> Optional[ProcessedRuleCollection]:
    relevant = [rule for rule in collection.rules if rule_category(rule) is category]
    if not relevant:
        return None

    prefix = "rule_parent" if is_parent else "rule"
    processed_rules = [
        ProcessedRule(
            rule=rule,
            id=f"{prefix}_{group.name}_{collection.name}_{rule.name}_{index}",
            collection_name=collection.name,
            collection_group_name=group.name,
            processing_order=counter.take(),
            rule_category=category,
            group_priority=group.priority,
            collection_priority=collection.priority,
            is_parent_policy=is_parent,
            collection_action=collection.action,
        )
        for index, rule in enumerate(relevant)
    ]
    collection_prefix = "collection_parent" if is_parent else "collection"
    return ProcessedRuleCollection(
        id=f"{collection_prefix}_{group.name}_{collection.name}_{category.value}",
        name=collection.name,
        priority=collection.priority,
        rule_collection_type=collection.rule_collection_type,
        action=collection.action,
        group_name=group.name,
        group_priority=group.priority,
        rule_category=category,
        processed_rules=processed_rules,
    )


# ---- Query helpers ----

def get_all_rules_in_processing_order(groups: List[ProcessedRuleCollectionGroup]) -> List[ProcessedRule]:
    rules = [
        rule
        for group in groups
        for collection in group.processed_collections
        for rule in collection.processed_rules
    ]
    return sorted(rules, key=lambda r: r.processing_order)


def get_rules_by_category(groups: List[ProcessedRuleCollectionGroup], category) -> List[ProcessedRule]:
    wanted = _as_category(category)
    return [r for r in get_all_rules_in_processing_order(groups) if r.rule_category == wanted]


def find_rule_by_id(groups: List[ProcessedRuleCollectionGroup], rule_id: str) -> Optional[ProcessedRule]:
    for group in groups:
        for collection in group.processed_collections:
            for rule in collection.processed_rules:
                if rule.id == rule_id:
                    return rule
    return None


def _widen(current: PriorityRange, value: int) -> PriorityRange:
    lo = value if current.min is None else min(current.min, value)
    hi = value if current.max is None else max(current.max, value)
    return PriorityRange(min=lo, max=hi)


def get_processing_statistics(groups: List[ProcessedRuleCollectionGroup]) -> ProcessingStatistics:
    """Counts and priority ranges over an ordered hierarchy (None bounds when empty)."""
    total_collections = 0
    total_rules = 0
    parent_groups = 0
    rules_by_category = {category.value: 0 for category in CATEGORY_ORDER}
    group_range = PriorityRange()
    collection_range = PriorityRange()

    for group in groups:
        total_collections += len(group.processed_collections)
        group_range = _widen(group_range, group.priority)
        if group.is_parent_policy:
            parent_groups += 1
        for collection in group.processed_collections:
            total_rules += len(collection.processed_rules)
            collection_range = _widen(collection_range, collection.priority)
            for rule in collection.processed_rules:
                rules_by_category[rule.rule_category.value] += 1

    return ProcessingStatistics(
        total_groups=len(groups),
        total_collections=total_collections,
        total_rules=total_rules,
        parent_policy_groups=parent_groups,
        child_policy_groups=len(groups) - parent_groups,
        rules_by_category=rules_by_category,
        priority_ranges=PriorityRanges(groups=group_range, collections=collection_range),
    )


def validate_processing_order(groups: List[ProcessedRuleCollectionGroup]) -> List[ValidationWarning]:
    """
    Consistency checks over an ordered hierarchy.

    processing_gap: two rules adjacent in processing order whose numbers differ by
    anything other than 1. order() never leaves gaps, so this only fires for
    hierarchies that were filtered or assembled elsewhere.
    duplicate_priority: two or more groups sharing one priority value.
    """
    warnings: List[ValidationWarning] = []
    all_rules = get_all_rules_in_processing_order(groups)

    for prev, cur in zip(all_rules, all_rules[1:]):
        if cur.processing_order != prev.processing_order + 1:
            warnings.append(ValidationWarning(
                type="processing_gap",
                message=(
                    f"Processing order gap between rules {prev.name} (order: {prev.processing_order}) "
                    f"and {cur.name} (order: {cur.processing_order})"
                ),
            ))

    names_by_priority: Dict[int, List[str]] = {}
    for group in groups:
        names_by_priority.setdefault(group.priority, []).append(group.name)
    for priority, names in names_by_priority.items():
        if len(names) > 1:
            warnings.append(ValidationWarning(
                type="duplicate_priority",
                message=f"Multiple rule collection groups have the same priority {priority}: {', '.join(names)}",
            ))

    for warning in warnings:
        logger.warning(f"  {warning.type}: {warning.message}")
    return warnings


def summarize_policy(policy: Policy) -> PolicySummary:
    """Raw counts over an unprocessed policy (every collection, even empty ones)."""
    rules_by_type = {category.value: 0 for category in CATEGORY_ORDER}
    total_rules = 0
    total_collections = 0
    for group in policy.rule_collection_groups:
        total_collections += len(group.rule_collections)
        for collection in group.rule_collections:
            for rule in collection.rules:
                rules_by_type[rule_category(rule).value] += 1
                total_rules += 1
    return PolicySummary(
        total_rule_groups=len(policy.rule_collection_groups),
        total_rule_collections=total_collections,
        total_rules=total_rules,
        rules_by_type=rules_by_type,
    )
