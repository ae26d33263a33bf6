"""
Token normalization and per-dimension overlap tests used by the analyzers.

Two matching modes:
  exact - a dimension overlaps when the token sets intersect
  cidr  - addresses compare as IP networks, ports as ranges, and ``*``/``any`` are wildcards

In both modes an empty list on either side means "any" and always overlaps.
"""
from __future__ import annotations

import ipaddress
import re
from functools import lru_cache
from typing import Iterable, Optional, Sequence, Tuple

WILDCARD_TOKENS = frozenset({"*", "any"})

_port_num = re.compile(r"^\d+$")
_port_rng = re.compile(r"^(\d+)\s*-\s*(\d+)$")


def normalize_tokens(values: Optional[Iterable[object]]) -> Tuple[str, ...]:
    """
    Trim, lower-case and sort. Repeats and blank entries are kept, so a list is
    only ever "any" when it is empty.
    """
    if not values:
        return ()
    return tuple(sorted(str(value).strip().lower() for value in values if value is not None))


def tokens_overlap(a: Sequence[str], b: Sequence[str]) -> bool:
    if not a or not b:
        return True
    return not set(a).isdisjoint(b)


# ---- IP helpers with caching ----
@lru_cache(maxsize=50000)
def _ipnet(token: str) -> Optional[ipaddress._BaseNetwork]:
    t = (token or "").strip().lower()
    if not t or t in WILDCARD_TOKENS:
        return None
    try:
        return ipaddress.ip_network(t, strict=False)
    except ValueError:
        return None


def _address_token_overlap(a_tok: str, b_tok: str) -> bool:
    a = _ipnet(a_tok)
    b = _ipnet(b_tok)
    if a is not None and b is not None:
        if a.version != b.version:
            return False
        return a.overlaps(b)
    # ip groups, fqdns and anything unparseable compare literally
    return a_tok == b_tok


def addresses_overlap_cidr(a: Sequence[str], b: Sequence[str]) -> bool:
    if not a or not b:
        return True
    if WILDCARD_TOKENS.intersection(a) or WILDCARD_TOKENS.intersection(b):
        return True
    return any(_address_token_overlap(x, y) for x in a for y in b)


# ---- Port helpers ----
@lru_cache(maxsize=50000)
def _parse_port(token: str) -> Tuple[str, Optional[Tuple[int, int]]]:
    """
    Returns (kind, port_range)
    kind: any | label | range
    """
    t = (token or "").strip().lower()
    if t in WILDCARD_TOKENS:
        return ("any", None)
    if _port_num.match(t):
        p = int(t)
        return ("range", (p, p))
    mrng = _port_rng.match(t)
    if mrng:
        lo, hi = int(mrng.group(1)), int(mrng.group(2))
        if lo > hi:
            lo, hi = hi, lo
        return ("range", (lo, hi))
    return ("label", None)


def _port_token_overlap(a_tok: str, b_tok: str) -> bool:
    a_kind, a_rng = _parse_port(a_tok)
    b_kind, b_rng = _parse_port(b_tok)
    if a_kind == "any" or b_kind == "any":
        return True
    if a_kind == "range" and b_kind == "range":
        (a1, a2), (b1, b2) = a_rng, b_rng
        return not (a2 < b1 or b2 < a1)
    return a_tok == b_tok


def ports_overlap_cidr(a: Sequence[str], b: Sequence[str]) -> bool:
    if not a or not b:
        return True
    return any(_port_token_overlap(x, y) for x in a for y in b)


def protocols_overlap_cidr(a: Sequence[str], b: Sequence[str]) -> bool:
    if not a or not b:
        return True
    if WILDCARD_TOKENS.intersection(a) or WILDCARD_TOKENS.intersection(b):
        return True
    return not set(a).isdisjoint(b)


MATCHERS = {
    "exact": (tokens_overlap, tokens_overlap, tokens_overlap),
    "cidr": (addresses_overlap_cidr, ports_overlap_cidr, protocols_overlap_cidr),
}


def get_matchers(mode: str):
    """(address_fn, port_fn, protocol_fn) for a matching mode."""
    try:
        return MATCHERS[mode]
    except KeyError:
        raise ValueError(f"Unknown address matching mode: {mode!r}. Expected one of {sorted(MATCHERS)}") from None
