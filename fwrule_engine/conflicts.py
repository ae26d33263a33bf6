"""
Pairwise conflict detection between rules of the same kind.

For every pair (earlier, later) in processing order whose traffic overlaps on all
four dimensions - source, destination (addresses + FQDNs), destination ports and
protocols - exactly one conflict is reported:

  allow_deny_conflict (high)   Network/Application rules whose actions differ
  priority_conflict   (medium) identical fingerprints; the later rule is unreachable
  overlapping_rules   (low)    anything else that overlaps

The scan is O(n^2) within each kind. Past ``parallel_threshold`` rules the pair
space is split into chunks and fanned out to a process pool; the merged result is
identical to the serial scan.
"""
from __future__ import annotations

import logging
from concurrent.futures import ProcessPoolExecutor
from typing import Any, Dict, Iterator, List, Optional, Tuple

from .config import AnalysisSettings, get_settings
from .fingerprint import rule_fingerprint
from .matching import get_matchers
from .models import APPLICATION_RULE, NETWORK_RULE, ProcessedRule, RuleConflict

logger = logging.getLogger(__name__)

_ACTION_CHECKED_KINDS = (NETWORK_RULE, APPLICATION_RULE)
_DENY_MARKERS = ("deny", "block")

# (i, j, conflict_type, severity, description)
_Hit = Tuple[int, int, str, str, str]


def infer_rule_action(rule: ProcessedRule, action_source: str = "name") -> str:
    """
    Allow/Deny for a processed rule.

    ``name``: "deny"/"block" anywhere in the rule or collection name means Deny,
    everything else is Allow. ``collection``: the owning collection's action when it
    is Allow or Deny, falling back to the name heuristic otherwise.
    """
    if action_source == "collection" and rule.collection_action in ("Allow", "Deny"):
        return rule.collection_action
    rule_name = rule.name.lower()
    collection_name = rule.collection_name.lower()
    if any(m in rule_name or m in collection_name for m in _DENY_MARKERS):
        return "Deny"
    return "Allow"


def _parse_rule(rule: ProcessedRule, action_source: str) -> Dict[str, Any]:
    fp = rule_fingerprint(rule)
    return {
        "ord": rule.processing_order,
        "kind": rule.rule_type,
        "name": rule.name,
        "act": infer_rule_action(rule, action_source),
        "fp": fp,
        "src": fp.source_addresses,
        "dst": fp.destination_addresses + fp.target_fqdns,
        "ports": fp.destination_ports,
        "proto": fp.ip_protocols,
    }


def traffic_overlaps(a: Dict[str, Any], b: Dict[str, Any], address_matching: str = "exact") -> bool:
    address_fn, port_fn, protocol_fn = get_matchers(address_matching)
    return (
        address_fn(a["src"], b["src"])
        and address_fn(a["dst"], b["dst"])
        and port_fn(a["ports"], b["ports"])
        and protocol_fn(a["proto"], b["proto"])
    )


def classify_pair(a: Dict[str, Any], b: Dict[str, Any], address_matching: str = "exact") -> Optional[Tuple[str, str, str]]:
    """(conflict_type, severity, description) for earlier rule ``a`` and later rule ``b``, or None."""
    if a["kind"] != b["kind"]:
        return None
    if not traffic_overlaps(a, b, address_matching):
        return None

    if a["kind"] in _ACTION_CHECKED_KINDS and a["act"] != b["act"]:
        return (
            "allow_deny_conflict",
            "high",
            f'Rule "{a["name"]}" ({a["act"]}) conflicts with rule "{b["name"]}" ({b["act"]}) '
            f"- same traffic pattern but different actions",
        )

    if a["ord"] < b["ord"] and a["fp"] == b["fp"]:
        return (
            "priority_conflict",
            "medium",
            f'Rule "{b["name"]}" (#{b["ord"]}) will never be reached due to identical earlier rule '
            f'"{a["name"]}" (#{a["ord"]})',
        )

    return (
        "overlapping_rules",
        "low",
        f'Rules "{a["name"]}" and "{b["name"]}" have overlapping traffic patterns '
        f"which may cause unexpected behavior",
    )


def _process_pair_chunk(args) -> List[_Hit]:
    """
    Worker for one chunk of pairs. Module level so the process pool can pickle it.
    Args: (pair_chunk, parsed_rules, address_matching)
    """
    pair_chunk, parsed_rules, address_matching = args
    hits: List[_Hit] = []
    for i, j in pair_chunk:
        result = classify_pair(parsed_rules[i], parsed_rules[j], address_matching)
        if result is not None:
            hits.append((i, j, *result))
    return hits


def _iter_pair_chunks(parsed_rules: List[Dict[str, Any]], chunk_size: int) -> Iterator[List[Tuple[int, int]]]:
    """Same-kind pairs (i < j), pre-bucketed by kind, in chunks of ``chunk_size``."""
    buckets: Dict[str, List[int]] = {}
    for idx, parsed in enumerate(parsed_rules):
        buckets.setdefault(parsed["kind"], []).append(idx)

    chunk: List[Tuple[int, int]] = []
    for idxs in buckets.values():
        for pos, i in enumerate(idxs):
            for j in idxs[pos + 1:]:
                chunk.append((i, j))
                if len(chunk) >= chunk_size:
                    yield chunk
                    chunk = []
    if chunk:
        yield chunk


def find_conflicts(rules: List[ProcessedRule], settings: Optional[AnalysisSettings] = None) -> List[RuleConflict]:
    """
    Pairwise conflicts between same-kind rules. ``rules`` is (re)sorted by
    processing_order, so the earlier rule of each pair is always the primary one.
    """
    settings = settings or get_settings()
    sorted_rules = sorted(rules, key=lambda r: r.processing_order)
    parsed_rules = [_parse_rule(r, settings.action_source) for r in sorted_rules]
    chunks = _iter_pair_chunks(parsed_rules, settings.chunk_size)

    use_parallel = (
        settings.parallel_threshold > 0
        and len(sorted_rules) >= settings.parallel_threshold
        and settings.max_workers > 1
    )

    hits: List[_Hit] = []
    if use_parallel:
        logger.info(
            f"  Conflict scan: {len(sorted_rules)} rule(s), parallel with up to {settings.max_workers} worker(s)"
        )
        with ProcessPoolExecutor(max_workers=settings.max_workers) as executor:
            work = ((chunk, parsed_rules, settings.address_matching) for chunk in chunks)
            for chunk_hits in executor.map(_process_pair_chunk, work):
                hits.extend(chunk_hits)
    else:
        logger.info(f"  Conflict scan: {len(sorted_rules)} rule(s), sequential")
        for chunk in chunks:
            hits.extend(_process_pair_chunk((chunk, parsed_rules, settings.address_matching)))

    hits.sort(key=lambda hit: (hit[0], hit[1]))
    conflicts = [
        RuleConflict(
            id=f"conflict_{n}",
            conflict_type=conflict_type,
            severity=severity,
            description=description,
            primary=sorted_rules[i],
            conflicting=sorted_rules[j],
        )
        for n, (i, j, conflict_type, severity, description) in enumerate(hits, start=1)
    ]
    logger.info(f"  Conflict scan complete: {len(conflicts)} conflict(s)")
    return conflicts


def find_conflicts_involving_rule(
    rule: ProcessedRule, all_rules: List[ProcessedRule], settings: Optional[AnalysisSettings] = None
) -> List[RuleConflict]:
    return [
        c for c in find_conflicts(all_rules, settings)
        if c.primary.id == rule.id or c.conflicting.id == rule.id
    ]
