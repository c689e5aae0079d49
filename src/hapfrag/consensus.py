from __future__ import annotations

from typing import Dict, List

from .distance import plurality_allele
from .models import HapBlock, HaplotypeTally, Partition


def build_consensus(partition: Partition) -> HapBlock:
    """Tally one vote per fragment per covered site, for each partition set.

    No plurality resolution happens here; see :func:`consensus_calls`.
    """
    blocks: List[HaplotypeTally] = []
    for frags in partition:
        hap: HaplotypeTally = {}
        for frag in frags:
            for pos in frag.covered_positions:
                allele = frag.allele_at_site[pos]
                site = hap.setdefault(pos, {})
                site[allele] = site.get(allele, 0) + 1
        blocks.append(hap)
    return HapBlock(blocks=blocks)


def consensus_calls(block: HapBlock) -> List[Dict[int, str]]:
    """Plurality allele per site for each haplotype of a block."""
    return [
        {pos: plurality_allele(tally) for pos, tally in sorted(hap.items()) if tally}
        for hap in block.blocks
    ]
