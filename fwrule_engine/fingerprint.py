"""
Rule fingerprints and duplicate detection.

A fingerprint is the normalized, order-independent signature of the traffic a rule
matches. Rules sharing a fingerprint are duplicates; the rule kind is part of the
key so duplicates are only ever found within one kind.
"""
from __future__ import annotations

import logging
from typing import Dict, List

from .errors import UnknownRuleKindError
from .matching import normalize_tokens
from .models import (
    ApplicationRule,
    DuplicateGroup,
    NatRule,
    NetworkRule,
    ProcessedRule,
    RuleFingerprint,
)

logger = logging.getLogger(__name__)


def rule_fingerprint(processed: ProcessedRule) -> RuleFingerprint:
    rule = processed.rule
    if isinstance(rule, NetworkRule):
        return RuleFingerprint(
            source_addresses=normalize_tokens([*rule.source_addresses, *rule.source_ip_groups]),
            destination_addresses=normalize_tokens(
                [*rule.destination_addresses, *rule.destination_ip_groups, *rule.destination_fqdns]
            ),
            destination_ports=normalize_tokens(rule.destination_ports),
            ip_protocols=normalize_tokens(rule.ip_protocols),
            target_fqdns=(),
            rule_type=rule.rule_type,
        )
    if isinstance(rule, ApplicationRule):
        return RuleFingerprint(
            source_addresses=normalize_tokens([*rule.source_addresses, *rule.source_ip_groups]),
            destination_addresses=normalize_tokens(rule.destination_addresses),
            destination_ports=normalize_tokens(p.port for p in rule.protocols),
            ip_protocols=normalize_tokens(p.protocol_type for p in rule.protocols),
            target_fqdns=normalize_tokens(rule.target_fqdns),
            rule_type=rule.rule_type,
        )
    if isinstance(rule, NatRule):
        return RuleFingerprint(
            source_addresses=normalize_tokens([*rule.source_addresses, *rule.source_ip_groups]),
            destination_addresses=normalize_tokens(rule.destination_addresses),
            destination_ports=normalize_tokens(rule.destination_ports),
            ip_protocols=normalize_tokens(rule.ip_protocols),
            target_fqdns=(),
            rule_type=rule.rule_type,
        )
    raise UnknownRuleKindError(getattr(rule, "rule_type", None), f"rule {processed.id!r}")


def _are_exact_duplicates(rules: List[ProcessedRule]) -> bool:
    """Same name and same collection for every member."""
    if len(rules) < 2:
        return False
    first = rules[0]
    return all(r.name == first.name and r.collection_name == first.collection_name for r in rules)


def _preview(values, limit: int = 2) -> str:
    text = ", ".join(values[:limit])
    return text + ("..." if len(values) > limit else "")


def describe_duplicates(fingerprint: RuleFingerprint, rules: List[ProcessedRule], is_exact: bool) -> str:
    rule_names = ", ".join(f'"{r.name}"' for r in rules)
    collections = ", ".join(dict.fromkeys(r.collection_name for r in rules))
    if is_exact:
        return f"Exact duplicate rules found: {rule_names} in collections: {collections}"

    source = _preview(fingerprint.source_addresses) if fingerprint.source_addresses else "Any"
    if fingerprint.destination_addresses:
        destination = _preview(fingerprint.destination_addresses)
    elif fingerprint.target_fqdns:
        destination = _preview(fingerprint.target_fqdns)
    else:
        destination = "Any"
    ports = _preview(fingerprint.destination_ports) if fingerprint.destination_ports else "Any"
    return f"Similar rules with matching traffic pattern: {source} -> {destination}:{ports}. Rules: {rule_names}"


def find_duplicates(rules: List[ProcessedRule]) -> List[DuplicateGroup]:
    """
    Group rules by fingerprint; every fingerprint shared by 2+ rules is a duplicate group.
    Groups come out in the order their fingerprint first appears in ``rules``.
    """
    by_fingerprint: Dict[RuleFingerprint, List[ProcessedRule]] = {}
    for rule in rules:
        by_fingerprint.setdefault(rule_fingerprint(rule), []).append(rule)

    duplicates: List[DuplicateGroup] = []
    for fingerprint, members in by_fingerprint.items():
        if len(members) < 2:
            continue
        is_exact = _are_exact_duplicates(members)
        duplicates.append(DuplicateGroup(
            id=f"duplicate_{len(duplicates) + 1}",
            fingerprint=fingerprint,
            rules=members,
            type="exact_duplicate" if is_exact else "similar_rules",
            description=describe_duplicates(fingerprint, members, is_exact),
        ))

    logger.info(f"  Duplicate scan: {len(rules)} rule(s), {len(duplicates)} duplicate group(s)")
    return duplicates


def find_duplicates_of_rule(rule: ProcessedRule, all_rules: List[ProcessedRule]) -> List[ProcessedRule]:
    """Other rules sharing ``rule``'s fingerprint (the rule itself excluded by id)."""
    target = rule_fingerprint(rule)
    return [r for r in all_rules if r.id != rule.id and rule_fingerprint(r) == target]
