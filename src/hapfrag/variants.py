from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional, Sequence, Set, Tuple

import pysam

from .errors import SourceAccessError
from .models import VariantSite

logger = logging.getLogger(__name__)

_MISSING_ALLELE_SPREAD = 4


@dataclass
class VariantIndex:
    """Per-contig lookup of the SNP sites fragments are anchored at."""

    contig: str
    positions: Set[int] = field(default_factory=set)  # 0-based positions
    alleles: Dict[int, Tuple[str, ...]] = field(default_factory=dict)
    site_index: Dict[int, int] = field(default_factory=dict)  # position -> 1-based index

    def __contains__(self, position: object) -> bool:
        return position in self.positions

    def __len__(self) -> int:
        return len(self.positions)

    def sorted_positions(self) -> List[int]:
        return sorted(self.positions)

    def sites(self) -> List[VariantSite]:
        return [
            VariantSite(
                contig=self.contig,
                position=pos,
                site_index=self.site_index[pos],
                alleles=self.alleles[pos],
            )
            for pos in self.sorted_positions()
        ]

    def position_for_site(self) -> Dict[int, int]:
        """Inverse of ``site_index``: 1-based site index -> 0-based position."""
        return {idx: pos for pos, idx in self.site_index.items()}


def _snp_alleles(alleles: Optional[Sequence[str]]) -> Optional[Tuple[str, ...]]:
    """Return uppercased alleles if every allele is a single base, else None."""
    if not alleles:
        return None
    out: List[str] = []
    for allele in alleles:
        if allele is None or len(allele) != 1:
            return None
        out.append(allele.upper())
    return tuple(out)


def build_variant_index(
    records: Iterable[Tuple[str, int, Optional[Sequence[str]]]],
) -> Dict[str, VariantIndex]:
    """Build per-contig variant indices from ``(contig, pos0, alleles)`` records.

    Records carrying any allele longer than one base are dropped entirely.
    Site indices restart at 1 on each contig and follow ascending position,
    independently of record order. If a position occurs twice, the first
    record wins.
    """
    by_contig: Dict[str, Dict[int, Tuple[str, ...]]] = {}
    skipped_non_snp = 0
    skipped_duplicate = 0

    for contig, pos0, alleles in records:
        snp = _snp_alleles(alleles)
        if snp is None:
            skipped_non_snp += 1
            continue
        sites = by_contig.setdefault(str(contig), {})
        if pos0 in sites:
            skipped_duplicate += 1
            continue
        sites[int(pos0)] = snp

    index: Dict[str, VariantIndex] = {}
    for contig, sites in by_contig.items():
        vi = VariantIndex(contig=contig)
        for i, pos0 in enumerate(sorted(sites), start=1):
            vi.positions.add(pos0)
            vi.alleles[pos0] = sites[pos0]
            vi.site_index[pos0] = i
        index[contig] = vi

    logger.debug(
        "Variant index: %d contigs, %d sites (%d non-SNP and %d duplicate records skipped)",
        len(index),
        sum(len(v) for v in index.values()),
        skipped_non_snp,
        skipped_duplicate,
    )
    return index


def _open_variant_file(vcf_path: str) -> pysam.VariantFile:
    try:
        return pysam.VariantFile(str(vcf_path))
    except (OSError, ValueError) as err:
        raise SourceAccessError(f"Could not open variant file {vcf_path}: {err}", path=vcf_path) from err


def load_variant_index(vcf_path: str) -> Dict[str, VariantIndex]:
    """Read a VCF/BCF and build the per-contig variant index.

    Raises
    ------
    SourceAccessError
        If the file cannot be opened or a record fails to parse. No partial
        index is returned.
    """
    with _open_variant_file(vcf_path) as vcf:
        try:
            records = [(rec.contig, int(rec.start), rec.alleles) for rec in vcf]
        except (OSError, ValueError) as err:
            raise SourceAccessError(
                f"Error while parsing variant file {vcf_path}: {err}", path=vcf_path
            ) from err

    index = build_variant_index(records)
    logger.info(
        "Loaded %d SNP sites on %d contigs from %s",
        sum(len(v) for v in index.values()),
        len(index),
        vcf_path,
    )
    return index


def _genotype_tally(gt: Sequence[Optional[int]]) -> Dict[int, int]:
    tally: Dict[int, int] = {}
    for allele in gt:
        if allele is None:
            for i in range(_MISSING_ALLELE_SPREAD):
                tally[i] = tally.get(i, 0) + 1
        else:
            tally[int(allele)] = tally.get(int(allele), 0) + 1
    return tally


def load_genotypes(
    vcf_path: str,
) -> Tuple[Dict[str, List[int]], Dict[str, Dict[int, Dict[int, int]]], int]:
    """Read per-site genotype allele counts for the single sample in a VCF.

    Sites are numbered exactly as :func:`build_variant_index` numbers them
    (ascending position per contig, first record at a position wins), so the
    returned site indices match ``VariantIndex.site_index``.

    Returns
    -------
    positions:
        contig -> 1-based genomic positions of the SNP sites, in site order.
    genotypes:
        contig -> site index -> {allele index: count}. A missing allele in the
        call counts once for each of the allele indices 0-3.
    ploidy:
        Number of alleles in the last genotype call seen (0 if none).
    """
    records: List[Tuple[str, int, Optional[Sequence[str]]]] = []
    tallies: Dict[Tuple[str, int], Dict[int, int]] = {}
    ploidy = 0

    with _open_variant_file(vcf_path) as vcf:
        samples = list(vcf.header.samples)
        if len(samples) > 1:
            raise ValueError(
                f"More than 1 sample detected in {vcf_path} ({len(samples)}); use a single-sample VCF."
            )

        try:
            for rec in vcf:
                if _snp_alleles(rec.alleles) is None:
                    continue
                contig = str(rec.contig)
                pos0 = int(rec.start)
                records.append((contig, pos0, rec.alleles))
                if (contig, pos0) in tallies:
                    continue
                if samples and "GT" in rec.format:
                    gt = rec.samples[0]["GT"] or ()
                    ploidy = len(gt)
                    tallies[(contig, pos0)] = _genotype_tally(gt)
        except (OSError, ValueError) as err:
            raise SourceAccessError(
                f"Error while parsing variant file {vcf_path}: {err}", path=vcf_path
            ) from err

    index = build_variant_index(records)
    positions: Dict[str, List[int]] = {}
    genotypes: Dict[str, Dict[int, Dict[int, int]]] = {}
    for contig, vi in index.items():
        ordered = vi.sorted_positions()
        # +1: reported positions are 1-based
        positions[contig] = [pos0 + 1 for pos0 in ordered]
        for pos0 in ordered:
            tally = tallies.get((contig, pos0))
            if tally is not None:
                genotypes.setdefault(contig, {})[vi.site_index[pos0]] = tally

    return positions, genotypes, ploidy
