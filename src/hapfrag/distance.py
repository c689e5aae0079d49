"""Fragment-to-fragment and fragment-to-haplotype distances.

These are the primitives an external partitioning search calls repeatedly,
so they work directly on the fragments' sparse position maps.
"""

from __future__ import annotations

import logging
from typing import Dict, Iterable, List, Mapping, Sequence, Set, Tuple

from .models import Fragment, HaplotypeTally

logger = logging.getLogger(__name__)


def distance(a: Fragment, b: Fragment) -> Tuple[int, int]:
    """Return ``(same, diff)`` over the sites both fragments cover."""
    same = 0
    diff = 0
    for pos in a.covered_positions & b.covered_positions:
        if a.allele_at_site[pos] == b.allele_at_site[pos]:
            same += 1
        else:
            diff += 1
    return same, diff


def plurality_allele(tally: Mapping[str, int]) -> str:
    """Allele with the highest vote count; ties go to the lowest allele symbol."""
    if not tally:
        raise ValueError("Cannot take the plurality allele of an empty tally")
    return min(tally.items(), key=lambda kv: (-kv[1], kv[0]))[0]


def distance_to_haplotype(fragment: Fragment, haplotype: HaplotypeTally) -> Tuple[int, int]:
    """Return ``(same, diff)`` of a fragment against a haplotype's plurality calls.

    An allele whose vote count ties the plurality count counts as ``same``.
    """
    same = 0
    diff = 0
    for pos in fragment.covered_positions:
        tally = haplotype.get(pos)
        if not tally:
            continue
        allele = fragment.allele_at_site[pos]
        consensus = plurality_allele(tally)
        if allele == consensus:
            same += 1
        elif tally.get(allele) == tally[consensus]:
            same += 1
        else:
            diff += 1
    return same, diff


def distance_to_haplotype_ranged(
    fragment: Fragment,
    haplotype: HaplotypeTally,
    start: int,
    end: int,
) -> Tuple[int, int]:
    """Like :func:`distance_to_haplotype`, restricted to ``start <= pos <= end``.

    Unlike the unranged version, a vote-count tie with the plurality allele
    counts as ``diff``.
    """
    same = 0
    diff = 0
    for pos in fragment.covered_positions:
        if pos < start or pos > end:
            continue
        tally = haplotype.get(pos)
        if not tally:
            continue
        if fragment.allele_at_site[pos] == plurality_allele(tally):
            same += 1
        else:
            diff += 1
    return same, diff


def overlaps(a: Fragment, b: Fragment) -> bool:
    """True iff the two fragments share at least one covered site."""
    if a.last_position < b.first_position:
        return False
    if b.last_position < a.first_position:
        return False
    return not a.covered_positions.isdisjoint(b.covered_positions)


def build_position_index(fragments: Iterable[Fragment]) -> Dict[int, Set[Fragment]]:
    """Map each covered site position to the set of fragments covering it."""
    index: Dict[int, Set[Fragment]] = {}
    for frag in fragments:
        for pos in frag.covered_positions:
            index.setdefault(pos, set()).add(frag)
    return index


def build_pairwise_distance_matrix(
    fragments: Sequence[Fragment],
) -> Dict[Fragment, Dict[Fragment, int]]:
    """Pairwise ``diff`` counts for fragments sorted by ``first_position``.

    For fragment ``i`` only partners ``j >= i`` (self included) are visited,
    and the scan stops at the first partner starting after ``i`` ends. The
    input order is trusted: an unsorted list gives an incomplete matrix.
    """
    matrix: Dict[Fragment, Dict[Fragment, int]] = {}
    n = len(fragments)
    for i, frag1 in enumerate(fragments):
        row: Dict[Fragment, int] = {}
        for j in range(i, n):
            frag2 = fragments[j]
            if frag1.last_position < frag2.first_position:
                break
            row[frag2] = distance(frag1, frag2)[1]
        matrix[frag1] = row
    logger.debug("Pairwise distance matrix: %d rows, %d entries", len(matrix), sum(len(r) for r in matrix.values()))
    return matrix


def sort_by_first_position(fragments: Iterable[Fragment]) -> List[Fragment]:
    """Sort fragments the way :func:`build_pairwise_distance_matrix` expects."""
    return sorted(fragments, key=lambda f: (f.first_position, f.counter_id))
