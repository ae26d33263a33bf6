import pytest

from factories import (
    application_rule,
    complex_policy,
    filter_collection,
    group,
    minimal_policy,
    nat_collection,
    nat_rule,
    network_rule,
    policy,
)
from fwrule_engine.errors import PolicyContractError, UnknownRuleKindError
from fwrule_engine.models import (
    FILTER_COLLECTION,
    NetworkRule,
    Policy,
    RuleCategory,
    RuleCollection,
    RuleCollectionGroup,
)
from fwrule_engine.rule_processor import (
    find_rule_by_id,
    get_all_rules_in_processing_order,
    get_processing_statistics,
    get_rules_by_category,
    order,
    summarize_policy,
    validate_processing_order,
)


def test_groups_sorted_by_priority():
    groups = order(complex_policy())
    assert [g.name for g in groups] == ["HighPriorityGroup", "LowPriorityGroup"]
    assert [g.priority for g in groups] == [100, 1000]


def test_categories_dnat_network_application_within_group():
    high = order(complex_policy())[0]
    assert [c.rule_category for c in high.processed_collections] == [
        RuleCategory.DNAT, RuleCategory.NETWORK, RuleCategory.APPLICATION,
    ]


def test_scenario_a_single_rule():
    rules = get_all_rules_in_processing_order(order(minimal_policy()))
    assert len(rules) == 1
    assert rules[0].name == "AllowHTTP"
    assert rules[0].processing_order == 1
    assert rules[0].rule_category == RuleCategory.NETWORK
    assert rules[0].rule_category.value == "Network"


def test_scenario_b_complex_order():
    groups = order(complex_policy())
    rules = get_all_rules_in_processing_order(groups)
    assert [r.name for r in rules] == ["DNAT-Web", "AllowHTTP", "AllowHTTPS", "AllowExample", "DenyAll"]
    assert [r.rule_category.value for r in rules] == ["DNAT", "Network", "Network", "Application", "Network"]
    assert [r.processing_order for r in rules] == [1, 2, 3, 4, 5]
    stats = get_processing_statistics(groups)
    assert stats.rules_by_category == {"DNAT": 1, "Network": 3, "Application": 1}


def test_processing_order_unique_and_monotonic_in_emission_order():
    groups = order(complex_policy(), parent_policy=minimal_policy("parent"))
    emitted = [
        r.processing_order
        for g in groups
        for c in g.processed_collections
        for r in c.processed_rules
    ]
    assert emitted == sorted(emitted)
    assert len(set(emitted)) == len(emitted)
    assert emitted == list(range(1, len(emitted) + 1))


def test_rule_metadata():
    first = get_all_rules_in_processing_order(order(complex_policy()))[0]
    assert first.id.startswith("rule_")
    assert first.collection_name == "DNATRules"
    assert first.collection_group_name == "HighPriorityGroup"
    assert first.rule_category == RuleCategory.DNAT
    assert first.group_priority == 100
    assert first.collection_priority == 100
    assert first.is_parent_policy is False
    assert first.collection_action == "Dnat"


def test_parent_policy_rules_come_first():
    child = minimal_policy()
    parent = minimal_policy("parent-policy")
    rules = get_all_rules_in_processing_order(order(child, parent))
    assert len(rules) == 2
    assert rules[0].is_parent_policy is True
    assert rules[1].is_parent_policy is False
    assert rules[0].processing_order <= rules[1].processing_order
    assert rules[0].id != rules[1].id


def test_parent_precedence_ignores_numeric_priority():
    parent = policy(group("ParentGroup", 60000, [
        filter_collection("ParentColl", 60000, "Allow", [network_rule("ParentRule")]),
    ]))
    child = policy(group("ChildGroup", 100, [
        filter_collection("ChildColl", 100, "Allow", [network_rule("ChildRule")]),
    ]))
    groups = order(child, parent)
    assert [g.name for g in groups] == ["ParentGroup", "ChildGroup"]
    assert groups[0].is_parent_policy and not groups[1].is_parent_policy
    rules = get_all_rules_in_processing_order(groups)
    assert [r.name for r in rules] == ["ParentRule", "ChildRule"]


def test_priority_100_group_precedes_1000_group_regardless_of_declaration():
    pol = policy(
        group("Late", 1000, [filter_collection("C2", 100, "Allow", [network_rule("B1"), network_rule("B2")])]),
        group("Early", 100, [filter_collection("C1", 500, "Allow", [network_rule("A1"), network_rule("A2")])]),
    )
    rules = get_all_rules_in_processing_order(order(pol))
    early = [r.processing_order for r in rules if r.collection_group_name == "Early"]
    late = [r.processing_order for r in rules if r.collection_group_name == "Late"]
    assert max(early) < min(late)


def test_equal_group_priorities_keep_declaration_order():
    pol = policy(
        group("First", 300, [filter_collection("C", 100, "Allow", [network_rule("R1")])]),
        group("Second", 300, [filter_collection("C", 100, "Allow", [network_rule("R2")])]),
    )
    assert [g.name for g in order(pol)] == ["First", "Second"]


def test_collections_sorted_by_priority_with_stable_ties():
    pol = policy(group("G", 100, [
        filter_collection("Later", 500, "Allow", [network_rule("L")]),
        filter_collection("TieA", 200, "Allow", [network_rule("TA")]),
        filter_collection("TieB", 200, "Allow", [network_rule("TB")]),
    ]))
    rules = get_all_rules_in_processing_order(order(pol))
    assert [r.name for r in rules] == ["TA", "TB", "L"]


def test_category_precedence_beats_collection_priority():
    # application collection has the best priority but still runs after network and DNAT
    pol = policy(group("G", 100, [
        filter_collection("Apps", 100, "Allow", [application_rule("App")]),
        filter_collection("Net", 200, "Allow", [network_rule("Net")]),
        nat_collection("Nat", 300, [nat_rule("Nat")]),
    ]))
    rules = get_all_rules_in_processing_order(order(pol))
    assert [r.rule_category.value for r in rules] == ["DNAT", "Network", "Application"]


def test_same_collection_priorities_still_follow_category_order():
    pol = complex_policy()
    high = pol.rule_collection_groups[0]
    same = high.model_copy(update={
        "rule_collections": [c.model_copy(update={"priority": 100}) for c in high.rule_collections],
    })
    pol = pol.model_copy(update={"rule_collection_groups": [same, pol.rule_collection_groups[1]]})
    rules = [r for r in get_all_rules_in_processing_order(order(pol)) if r.collection_group_name == "HighPriorityGroup"]
    assert [r.rule_category.value for r in rules] == ["DNAT", "Network", "Network", "Application"]


def test_mixed_collection_split_per_category():
    pol = policy(group("G", 100, [
        filter_collection("Mixed", 100, "Allow", [
            application_rule("App1"),
            network_rule("Net1"),
            application_rule("App2"),
            network_rule("Net2"),
        ]),
    ]))
    processed = order(pol)[0].processed_collections
    assert [(c.name, c.rule_category.value) for c in processed] == [("Mixed", "Network"), ("Mixed", "Application")]
    assert [r.name for r in processed[0].processed_rules] == ["Net1", "Net2"]
    assert [r.name for r in processed[1].processed_rules] == ["App1", "App2"]
    assert [r.processing_order for r in processed[0].processed_rules] == [1, 2]
    assert [r.processing_order for r in processed[1].processed_rules] == [3, 4]
    assert processed[0].id != processed[1].id


def test_category_precedence_per_group():
    groups = order(complex_policy(), parent_policy=complex_policy())
    for g in groups:
        by_cat = {}
        for c in g.processed_collections:
            for r in c.processed_rules:
                by_cat.setdefault(r.rule_category.value, []).append(r.processing_order)
        if "DNAT" in by_cat and "Network" in by_cat:
            assert max(by_cat["DNAT"]) < min(by_cat["Network"])
        if "Network" in by_cat and "Application" in by_cat:
            assert max(by_cat["Network"]) < min(by_cat["Application"])


def test_empty_collection_produces_nothing():
    pol = minimal_policy()
    g = pol.rule_collection_groups[0]
    emptied = g.model_copy(update={"rule_collections": [g.rule_collections[0].model_copy(update={"rules": []})]})
    pol = pol.model_copy(update={"rule_collection_groups": [emptied]})

    groups = order(pol)
    assert get_all_rules_in_processing_order(groups) == []
    assert groups[0].processed_collections == []


def test_order_is_deterministic():
    first = [g.model_dump_json() for g in order(complex_policy(), minimal_policy("p"))]
    second = [g.model_dump_json() for g in order(complex_policy(), minimal_policy("p"))]
    assert first == second


def test_rules_by_category():
    groups = order(complex_policy())
    dnat = get_rules_by_category(groups, "DNAT")
    network = get_rules_by_category(groups, RuleCategory.NETWORK)
    apps = get_rules_by_category(groups, "Application")
    assert len(dnat) == 1 and dnat[0].rule_type == "NatRule"
    assert len(network) == 3 and network[0].rule_type == "NetworkRule"
    assert len(apps) == 1 and apps[0].rule_type == "ApplicationRule"


def test_rules_by_unknown_category_raises():
    with pytest.raises(UnknownRuleKindError):
        get_rules_by_category(order(complex_policy()), "Firewall")


def test_find_rule_by_id():
    groups = order(minimal_policy())
    target = get_all_rules_in_processing_order(groups)[0]
    found = find_rule_by_id(groups, target.id)
    assert found is not None
    assert found.id == target.id and found.name == target.name
    assert find_rule_by_id(groups, "nonexistent-id") is None


def test_processing_statistics():
    stats = get_processing_statistics(order(complex_policy()))
    assert stats.total_groups == 2
    assert stats.total_collections == 4
    assert stats.total_rules == 5
    assert stats.parent_policy_groups == 0
    assert stats.child_policy_groups == 2
    assert stats.priority_ranges.groups.min == 100
    assert stats.priority_ranges.groups.max == 1000
    assert stats.priority_ranges.collections.min == 100
    assert stats.priority_ranges.collections.max == 300


def test_processing_statistics_empty():
    stats = get_processing_statistics([])
    assert stats.total_rules == 0
    assert stats.priority_ranges.groups.min is None
    assert stats.rules_by_category == {"DNAT": 0, "Network": 0, "Application": 0}


def test_parent_child_group_counts():
    stats = get_processing_statistics(order(complex_policy(), minimal_policy("p")))
    assert stats.parent_policy_groups == 1
    assert stats.child_policy_groups == 2


def test_validation_clean_policy():
    warnings = validate_processing_order(order(complex_policy()))
    assert warnings == []


def test_validation_duplicate_priority():
    pol = policy(
        group("A", 300, [filter_collection("C", 100, "Allow", [network_rule("R1")])]),
        group("B", 300, [filter_collection("C", 100, "Allow", [network_rule("R2")])]),
    )
    warnings = validate_processing_order(order(pol))
    assert [w.type for w in warnings] == ["duplicate_priority"]
    assert "A, B" in warnings[0].message
    assert "300" in warnings[0].message


def test_validation_processing_gap_on_filtered_hierarchy():
    groups = order(complex_policy())
    high = groups[0]
    # drop the Network collection so orders 2..3 disappear
    trimmed = high.model_copy(update={
        "processed_collections": [c for c in high.processed_collections if c.rule_category != RuleCategory.NETWORK],
    })
    warnings = validate_processing_order([trimmed, groups[1]])
    gaps = [w for w in warnings if w.type == "processing_gap"]
    assert len(gaps) == 1
    assert "DNAT-Web (order: 1)" in gaps[0].message
    assert "AllowExample (order: 4)" in gaps[0].message


def test_unknown_rule_kind_fails_fast():
    bogus = NetworkRule.model_construct(rule_type="FirewallRuleV2", name="Mystery")
    coll = RuleCollection.model_construct(
        name="C", priority=100, rule_collection_type=FILTER_COLLECTION, action="Allow", rules=[bogus],
    )
    g = RuleCollectionGroup.model_construct(name="G", priority=100, rule_collections=[coll])
    pol = Policy.model_construct(name="p", location=None, rule_collection_groups=[g])
    with pytest.raises(UnknownRuleKindError, match="FirewallRuleV2"):
        order(pol)


def test_missing_priority_is_contract_violation():
    g = RuleCollectionGroup.model_construct(name="G", priority=None, rule_collections=[])
    pol = Policy.model_construct(name="p", location=None, rule_collection_groups=[g])
    with pytest.raises(PolicyContractError, match="priority"):
        order(pol)


def test_missing_collection_priority_is_contract_violation():
    coll = RuleCollection.model_construct(
        name="C", priority="high", rule_collection_type=FILTER_COLLECTION, action="Allow", rules=[],
    )
    g = RuleCollectionGroup.model_construct(name="G", priority=100, rule_collections=[coll])
    pol = Policy.model_construct(name="p", location=None, rule_collection_groups=[g])
    with pytest.raises(PolicyContractError):
        order(pol)


def test_policy_summary_counts_raw_policy():
    summary = summarize_policy(complex_policy())
    assert summary.total_rule_groups == 2
    assert summary.total_rule_collections == 4
    assert summary.total_rules == 5
    assert summary.rules_by_type == {"DNAT": 1, "Network": 3, "Application": 1}
