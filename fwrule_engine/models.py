"""
Policy model consumed by the engine and the processed/analysis types it produces.

The policy side mirrors the exported firewall-policy document: groups -> collections
-> rules, with each rule tagged by ``ruleType``. Keys are accepted in the document's
camelCase form or as the snake_case field names.
"""
from __future__ import annotations

from enum import Enum
from typing import Annotated, Any, Dict, List, Literal, NamedTuple, Optional, Tuple, Union

from pydantic import BaseModel, ConfigDict, Field, model_validator
from pydantic.alias_generators import to_camel

NAT_RULE = "NatRule"
NETWORK_RULE = "NetworkRule"
APPLICATION_RULE = "ApplicationRule"

FILTER_COLLECTION = "FirewallPolicyFilterRuleCollection"
NAT_COLLECTION = "FirewallPolicyNatRuleCollection"

ActionType = Literal["Allow", "Deny", "Dnat"]


class RuleCategory(str, Enum):
    """Evaluation buckets inside a rule collection group, in evaluation order."""
    DNAT = "DNAT"
    NETWORK = "Network"
    APPLICATION = "Application"


CATEGORY_ORDER: Tuple[RuleCategory, ...] = (
    RuleCategory.DNAT,
    RuleCategory.NETWORK,
    RuleCategory.APPLICATION,
)


class _Model(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)


# ---- Rules ----

class ApplicationProtocol(_Model):
    protocol_type: str
    port: Optional[int] = None


class HttpHeader(_Model):
    name: str
    value: str = ""


class NatRule(_Model):
    rule_type: Literal["NatRule"] = NAT_RULE
    name: str
    description: Optional[str] = None
    ip_protocols: List[str] = []
    source_addresses: List[str] = []
    source_ip_groups: List[str] = []
    destination_addresses: List[str] = []
    destination_ports: List[str] = []
    translated_address: Optional[str] = None
    translated_port: Optional[str] = None
    translated_fqdn: Optional[str] = None


class NetworkRule(_Model):
    rule_type: Literal["NetworkRule"] = NETWORK_RULE
    name: str
    description: Optional[str] = None
    ip_protocols: List[str] = []
    source_addresses: List[str] = []
    source_ip_groups: List[str] = []
    destination_addresses: List[str] = []
    destination_ip_groups: List[str] = []
    destination_ports: List[str] = []
    destination_fqdns: List[str] = []


class ApplicationRule(_Model):
    rule_type: Literal["ApplicationRule"] = APPLICATION_RULE
    name: str
    description: Optional[str] = None
    protocols: List[ApplicationProtocol] = []
    source_addresses: List[str] = []
    source_ip_groups: List[str] = []
    destination_addresses: List[str] = []
    target_fqdns: List[str] = []
    target_urls: List[str] = []
    fqdn_tags: List[str] = []
    web_categories: List[str] = []
    terminate_tls: bool = Field(default=False, alias="terminateTLS")
    http_headers_to_insert: List[HttpHeader] = []


FirewallRule = Annotated[
    Union[NatRule, NetworkRule, ApplicationRule],
    Field(discriminator="rule_type"),
]


# ---- Collections / groups / policy ----

def _pick(data: Dict[str, Any], name: str, alias: str) -> Any:
    return data[name] if name in data else data.get(alias)


class RuleCollection(_Model):
    name: str
    priority: int
    rule_collection_type: Literal[
        "FirewallPolicyFilterRuleCollection", "FirewallPolicyNatRuleCollection"
    ] = FILTER_COLLECTION
    action: ActionType = "Allow"
    rules: List[FirewallRule] = []

    @model_validator(mode="before")
    @classmethod
    def _unwrap_action(cls, data: Any) -> Any:
        # documents carry {"action": {"type": "Allow"}}; NAT collections are always Dnat
        if not isinstance(data, dict):
            return data
        data = dict(data)
        action = data.pop("action", None)
        if isinstance(action, dict):
            action = action.get("type")
        if _pick(data, "rule_collection_type", "ruleCollectionType") == NAT_COLLECTION:
            action = "Dnat"
        if action is not None:
            data["action"] = action
        return data


class RuleCollectionGroup(_Model):
    name: str
    priority: int
    rule_collections: List[RuleCollection] = []


class Policy(_Model):
    name: str = ""
    location: Optional[str] = None
    rule_collection_groups: List[RuleCollectionGroup] = []


# ---- Processed hierarchy ----

class ProcessedRule(_Model):
    """A rule plus the metadata describing where and when the engine evaluates it."""
    rule: FirewallRule
    id: str
    collection_name: str
    collection_group_name: str
    processing_order: int
    rule_category: RuleCategory
    group_priority: int
    collection_priority: int
    is_parent_policy: bool = False
    collection_action: Optional[ActionType] = None

    @property
    def name(self) -> str:
        return self.rule.name

    @property
    def rule_type(self) -> str:
        return self.rule.rule_type

    @property
    def description(self) -> Optional[str]:
        return self.rule.description


class ProcessedRuleCollection(_Model):
    id: str
    name: str
    priority: int
    rule_collection_type: str
    action: Optional[ActionType] = None
    group_name: str
    group_priority: int
    rule_category: RuleCategory
    processed_rules: List[ProcessedRule] = []


class ProcessedRuleCollectionGroup(_Model):
    id: str
    name: str
    priority: int
    is_parent_policy: bool = False
    rule_collections: List[RuleCollection] = []
    processed_collections: List[ProcessedRuleCollection] = []


# ---- Analysis results ----

class RuleFingerprint(NamedTuple):
    source_addresses: Tuple[str, ...]
    destination_addresses: Tuple[str, ...]
    destination_ports: Tuple[str, ...]
    ip_protocols: Tuple[str, ...]
    target_fqdns: Tuple[str, ...]
    rule_type: str


class DuplicateGroup(_Model):
    id: str
    fingerprint: RuleFingerprint
    rules: List[ProcessedRule]
    type: Literal["exact_duplicate", "similar_rules"]
    description: str


class RuleConflict(_Model):
    id: str
    conflict_type: Literal["allow_deny_conflict", "priority_conflict", "overlapping_rules"]
    severity: Literal["high", "medium", "low"]
    description: str
    primary: ProcessedRule
    conflicting: ProcessedRule


class ValidationWarning(_Model):
    type: Literal["processing_gap", "duplicate_priority"]
    message: str


class PriorityRange(_Model):
    min: Optional[int] = None
    max: Optional[int] = None


class PriorityRanges(_Model):
    groups: PriorityRange = PriorityRange()
    collections: PriorityRange = PriorityRange()


class ProcessingStatistics(_Model):
    total_groups: int = 0
    total_collections: int = 0
    total_rules: int = 0
    parent_policy_groups: int = 0
    child_policy_groups: int = 0
    rules_by_category: Dict[str, int] = {}
    priority_ranges: PriorityRanges = PriorityRanges()


class PolicySummary(_Model):
    total_rule_groups: int
    total_rule_collections: int
    total_rules: int
    rules_by_type: Dict[str, int]


class AnalysisStatistics(_Model):
    total_rules: int
    duplicate_rules: int
    conflicting_rules: int
    duplicate_groups: int
    conflicts: int
    conflicts_by_type: Dict[str, int] = {}
    conflicts_by_severity: Dict[str, int] = {}
    processing: ProcessingStatistics = ProcessingStatistics()


class RuleAnalysis(_Model):
    duplicates: List[DuplicateGroup]
    conflicts: List[RuleConflict]
    statistics: AnalysisStatistics
    warnings: List[ValidationWarning] = []
