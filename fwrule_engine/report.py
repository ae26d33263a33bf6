"""
Tabular views of an analysis for exporters (CSV/Excel writing lives outside the engine).
"""
from __future__ import annotations

from typing import Dict, List

import pandas as pd

from .conflicts import infer_rule_action
from .errors import UnknownRuleKindError
from .models import (
    ApplicationRule,
    DuplicateGroup,
    NatRule,
    NetworkRule,
    ProcessedRule,
    ProcessedRuleCollectionGroup,
    RuleConflict,
)
from .rule_processor import get_all_rules_in_processing_order

RULE_COLUMNS: List[str] = [
    "Processing Order", "Rule ID", "Rule Name", "Rule Type", "Category",
    "Rule Group", "Group Priority", "Rule Collection", "Collection Priority",
    "Action", "Parent Policy", "Source", "Destination", "Ports", "Protocols",
]

CONFLICT_RECOMMENDATIONS: Dict[str, str] = {
    "allow_deny_conflict": "Review rule precedence. Consider reordering or consolidating rules to avoid Allow/Deny conflicts.",
    "priority_conflict": "Adjust processing order. Higher priority rule (lower number) should be more specific.",
    "overlapping_rules": "Consolidate overlapping rules or ensure proper ordering to prevent unintended behavior.",
}
DEFAULT_RECOMMENDATION = "Review configuration and resolve conflict based on business requirements."

DUPLICATE_RECOMMENDATIONS: Dict[str, str] = {
    "exact_duplicate": "Remove duplicate rules to optimize policy and improve performance.",
    "similar_rules": "Review similar rules and consider consolidating them for better maintainability.",
}


def _join(values) -> str:
    return ", ".join(str(v) for v in values if v is not None and str(v) != "")


def format_rule_fields(processed: ProcessedRule) -> Dict[str, str]:
    """Source / destination / ports / protocols as display strings."""
    rule = processed.rule
    if isinstance(rule, NetworkRule):
        return {
            "source": _join([*rule.source_addresses, *rule.source_ip_groups]),
            "destination": _join([*rule.destination_addresses, *rule.destination_ip_groups, *rule.destination_fqdns]),
            "ports": _join(rule.destination_ports),
            "protocols": _join(rule.ip_protocols),
        }
    if isinstance(rule, ApplicationRule):
        return {
            "source": _join([*rule.source_addresses, *rule.source_ip_groups]),
            "destination": _join([*rule.destination_addresses, *rule.target_fqdns]),
            "ports": _join(f"{p.protocol_type}:{p.port}" for p in rule.protocols),
            "protocols": _join(p.protocol_type for p in rule.protocols),
        }
    if isinstance(rule, NatRule):
        translated = _join([rule.translated_address or rule.translated_fqdn, rule.translated_port])
        destination = _join(rule.destination_addresses)
        return {
            "source": _join([*rule.source_addresses, *rule.source_ip_groups]),
            "destination": f"{destination} => {translated}" if translated else destination,
            "ports": _join(rule.destination_ports),
            "protocols": _join(rule.ip_protocols),
        }
    raise UnknownRuleKindError(getattr(rule, "rule_type", None), f"rule {processed.id!r}")


def _title(value: str) -> str:
    return value.replace("_", " ").title()


def rules_frame(groups: List[ProcessedRuleCollectionGroup], action_source: str = "name") -> pd.DataFrame:
    rows = []
    for rule in get_all_rules_in_processing_order(groups):
        fields = format_rule_fields(rule)
        rows.append({
            "Processing Order": rule.processing_order,
            "Rule ID": rule.id,
            "Rule Name": rule.name,
            "Rule Type": rule.rule_type,
            "Category": rule.rule_category.value,
            "Rule Group": rule.collection_group_name,
            "Group Priority": rule.group_priority,
            "Rule Collection": rule.collection_name,
            "Collection Priority": rule.collection_priority,
            "Action": rule.collection_action if rule.collection_action == "Dnat" else infer_rule_action(rule, action_source),
            "Parent Policy": rule.is_parent_policy,
            "Source": fields["source"],
            "Destination": fields["destination"],
            "Ports": fields["ports"],
            "Protocols": fields["protocols"],
        })
    return pd.DataFrame(rows, columns=RULE_COLUMNS)


def _rule_columns(prefix: str, rule: ProcessedRule, action_source: str) -> Dict[str, object]:
    fields = format_rule_fields(rule)
    return {
        f"{prefix} Name": rule.name,
        f"{prefix} Collection": rule.collection_name,
        f"{prefix} Group": rule.collection_group_name,
        f"{prefix} Priority": rule.processing_order,
        f"{prefix} Action": infer_rule_action(rule, action_source),
        f"{prefix} Source": fields["source"],
        f"{prefix} Destination": fields["destination"],
        f"{prefix} Ports": fields["ports"],
        f"{prefix} Protocols": fields["protocols"],
    }


CONFLICT_COLUMNS: List[str] = (
    ["Conflict ID", "Conflict Type", "Severity", "Description"]
    + [f"Primary Rule {c}" for c in ("Name", "Collection", "Group", "Priority", "Action", "Source", "Destination", "Ports", "Protocols")]
    + [f"Conflicting Rule {c}" for c in ("Name", "Collection", "Group", "Priority", "Action", "Source", "Destination", "Ports", "Protocols")]
    + ["Recommended Action"]
)


def conflicts_frame(conflicts: List[RuleConflict], action_source: str = "name") -> pd.DataFrame:
    rows = []
    for conflict in conflicts:
        row: Dict[str, object] = {
            "Conflict ID": conflict.id,
            "Conflict Type": _title(conflict.conflict_type),
            "Severity": conflict.severity.upper(),
            "Description": conflict.description,
        }
        row.update(_rule_columns("Primary Rule", conflict.primary, action_source))
        row.update(_rule_columns("Conflicting Rule", conflict.conflicting, action_source))
        row["Recommended Action"] = CONFLICT_RECOMMENDATIONS.get(conflict.conflict_type, DEFAULT_RECOMMENDATION)
        rows.append(row)
    return pd.DataFrame(rows, columns=CONFLICT_COLUMNS)


DUPLICATE_COLUMNS: List[str] = (
    ["Duplicate Group ID", "Duplicate Type", "Description"]
    + [f"Rule {c}" for c in ("Name", "Collection", "Group", "Priority", "Action", "Source", "Destination", "Ports", "Protocols")]
    + ["Recommended Action"]
)


def duplicates_frame(duplicates: List[DuplicateGroup], action_source: str = "name") -> pd.DataFrame:
    """One row per member rule of each duplicate group."""
    rows = []
    for group in duplicates:
        for rule in group.rules:
            row: Dict[str, object] = {
                "Duplicate Group ID": group.id,
                "Duplicate Type": _title(group.type),
                "Description": group.description,
            }
            row.update(_rule_columns("Rule", rule, action_source))
            row["Recommended Action"] = DUPLICATE_RECOMMENDATIONS[group.type]
            rows.append(row)
    return pd.DataFrame(rows, columns=DUPLICATE_COLUMNS)
