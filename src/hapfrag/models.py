from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, List, Optional, Sequence, Set, Tuple


@dataclass(frozen=True)
class VariantSite:
    """A single-base variant site on one contig.

    Attributes
    ----------
    contig:
        Contig name as present in the VCF.
    position:
        0-based genomic position (pysam/htslib native).
    site_index:
        1-based index of the site within its contig, ascending with position.
    alleles:
        Allowed single-base alleles, reference first.
    """

    contig: str
    position: int
    site_index: int
    alleles: Tuple[str, ...]


@dataclass(eq=False)
class Fragment:
    """Sparse per-site record for one read or one read pair.

    Fragments compare and hash by identity, so they can be used as set members
    and dict keys by the distance and consensus helpers without copying.
    """

    id: str
    counter_id: int
    is_paired: bool = False
    allele_at_site: Dict[int, str] = field(default_factory=dict)
    quality_at_site: Dict[int, int] = field(default_factory=dict)
    covered_positions: Set[int] = field(default_factory=set)
    first_position: int = -1
    last_position: int = -1
    raw_sequence: List[Optional[str]] = field(default_factory=lambda: [None, None])
    raw_quality: List[Optional[List[int]]] = field(default_factory=lambda: [None, None])
    site_to_sequence_offset: Dict[int, Tuple[int, int]] = field(default_factory=dict)

    def add_call(
        self,
        position: int,
        allele: str,
        quality: int,
        *,
        mate: int = 0,
        offset: int = 0,
    ) -> None:
        """Record an accepted base call at a variant site."""
        if not self.covered_positions:
            self.first_position = position
            self.last_position = position
        else:
            self.first_position = min(self.first_position, position)
            self.last_position = max(self.last_position, position)
        self.allele_at_site[position] = allele
        self.quality_at_site[position] = int(quality)
        self.covered_positions.add(position)
        self.site_to_sequence_offset[position] = (mate, offset)

    def set_mate_sequence(self, mate: int, sequence: Optional[str], qualities: Optional[Sequence[int]]) -> None:
        """Store a mate's full read bases/qualities the first time that mate is seen."""
        if self.raw_sequence[mate] is not None or sequence is None:
            return
        self.raw_sequence[mate] = sequence
        self.raw_quality[mate] = list(qualities) if qualities is not None else None

    @property
    def span(self) -> int:
        return self.last_position - self.first_position

    def __len__(self) -> int:
        return len(self.covered_positions)

    def __repr__(self) -> str:
        return (
            f"Fragment(id={self.id!r}, counter_id={self.counter_id}, "
            f"sites={len(self.covered_positions)}, "
            f"range=[{self.first_position}, {self.last_position}])"
        )


# position -> {allele: vote count}
HaplotypeTally = Dict[int, Dict[str, int]]

Partition = Sequence[Set[Fragment]]


@dataclass(frozen=True)
class HapBlock:
    """Per-haplotype allele vote tallies derived from a partition."""

    blocks: List[HaplotypeTally]

    @property
    def ploidy(self) -> int:
        return len(self.blocks)

    def __getitem__(self, i: int) -> HaplotypeTally:
        return self.blocks[i]

    def __len__(self) -> int:
        return len(self.blocks)
