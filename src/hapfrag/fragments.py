from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Dict, Iterable, List, Optional, Tuple

import pysam
from tqdm import tqdm

from .errors import SourceAccessError
from .models import Fragment
from .variants import VariantIndex

logger = logging.getLogger(__name__)

# SAM flag bits
FLAG_PAIRED_FIRST = 64
FLAG_PAIRED_SECOND = 128
FLAG_SECONDARY = 256
FLAG_SUPPLEMENTARY = 2048
# unmapped | secondary | QC fail | duplicate
FLAG_ERRORS_MASK = 1796

MIN_MAPQ = 15
MIN_MAPQ_SUPPLEMENTARY = 59


@dataclass(frozen=True)
class FilterPolicy:
    """Alignment filters applied before a base call may update a fragment.

    use_supplementary:
        Consider supplementary alignments at all.
    filter_supplementary:
        Require ``min_mapq_supplementary`` for supplementary alignments.
    """

    use_supplementary: bool = False
    filter_supplementary: bool = False
    min_mapq: int = MIN_MAPQ
    min_mapq_supplementary: int = MIN_MAPQ_SUPPLEMENTARY


def alignment_passed_check(flag: int, mapq: int, policy: FilterPolicy) -> Tuple[bool, bool]:
    """Return ``(passed, is_supplementary)`` for an alignment's flag and MAPQ."""
    is_supp = bool(flag & FLAG_SUPPLEMENTARY)
    if is_supp:
        if not policy.use_supplementary:
            return False, True
        if policy.filter_supplementary and mapq < policy.min_mapq_supplementary:
            return False, True

    if mapq < policy.min_mapq:
        return False, is_supp
    if flag & FLAG_ERRORS_MASK:
        return False, is_supp
    if flag & FLAG_SECONDARY:
        return False, is_supp
    return True, is_supp


def pair_role(flag: int) -> Tuple[bool, int]:
    """Return ``(is_paired, mate_index)`` from the first/second-in-pair bits."""
    if flag & FLAG_PAIRED_FIRST:
        return True, 0
    if flag & FLAG_PAIRED_SECOND:
        return True, 1
    return False, 0


class FragmentBuilder:
    """Accumulate base calls at variant sites into one Fragment per read name.

    The builder owns the read-name tables (one per contig) and the monotonic
    ``counter_id`` handed to each new fragment. Feed it pileup columns with
    :meth:`add_column`, then call :meth:`finalize` once.

    Pileup reads are duck-typed on :class:`pysam.PileupRead`: ``is_del``,
    ``is_refskip``, ``query_position`` and ``alignment`` (an
    :class:`pysam.AlignedSegment`-like object).
    """

    def __init__(
        self,
        variant_index_by_contig: Dict[str, VariantIndex],
        policy: Optional[FilterPolicy] = None,
        *,
        counter_start: int = 0,
    ) -> None:
        self.variant_index_by_contig = variant_index_by_contig
        self.policy = policy if policy is not None else FilterPolicy()
        self._counter_id = counter_start
        self._by_contig: Dict[str, Dict[str, Fragment]] = {}
        self._finalized = False
        self.stats: Dict[str, int] = {
            "columns": 0,
            "calls_total": 0,
            "calls_accepted": 0,
            "calls_skipped_del_refskip": 0,
            "calls_skipped_filter": 0,
            "calls_skipped_no_site": 0,
            "calls_skipped_allele": 0,
            "fragments_created": 0,
            "fragments_dropped_empty": 0,
        }

    @property
    def counter_id(self) -> int:
        return self._counter_id

    def add_column(self, contig: str, position: int, pileup_reads: Iterable[Any]) -> int:
        """Process one pileup column; return the number of accepted base calls."""
        if self._finalized:
            raise RuntimeError("FragmentBuilder.add_column called after finalize()")

        self.stats["columns"] += 1
        vi = self.variant_index_by_contig.get(contig)
        accepted = 0

        for pread in pileup_reads:
            self.stats["calls_total"] += 1
            if pread.is_del or pread.is_refskip:
                self.stats["calls_skipped_del_refskip"] += 1
                continue

            aln = pread.alignment
            flag = int(aln.flag)
            passed, is_supp = alignment_passed_check(flag, int(aln.mapping_quality), self.policy)
            if not passed:
                self.stats["calls_skipped_filter"] += 1
                continue

            if vi is None or position not in vi:
                self.stats["calls_skipped_no_site"] += 1
                continue

            qpos = pread.query_position
            seq = aln.query_sequence
            if qpos is None or seq is None:
                self.stats["calls_skipped_del_refskip"] += 1
                continue

            base = seq[qpos].upper()
            if base not in vi.alleles[position]:
                # sequencing errors and third alleles are dropped
                self.stats["calls_skipped_allele"] += 1
                continue

            quals = aln.query_qualities
            bq = int(quals[qpos]) if quals is not None else 0
            is_paired, mate = pair_role(flag)

            frag = self._get_or_create(contig, str(aln.query_name), is_paired)
            frag.add_call(position, base, bq, mate=mate, offset=int(qpos))
            if not is_supp:
                frag.set_mate_sequence(mate, seq, quals)

            self.stats["calls_accepted"] += 1
            accepted += 1

        return accepted

    def _get_or_create(self, contig: str, read_name: str, is_paired: bool) -> Fragment:
        table = self._by_contig.setdefault(contig, {})
        frag = table.get(read_name)
        if frag is None:
            self._counter_id += 1
            frag = Fragment(id=read_name, counter_id=self._counter_id, is_paired=is_paired)
            table[read_name] = frag
            self.stats["fragments_created"] += 1
        return frag

    def fragments_by_name(self, contig: str) -> Dict[str, Fragment]:
        return self._by_contig.get(contig, {})

    def finalize(self) -> Dict[str, List[Fragment]]:
        """Freeze the builder and return retained fragments per contig.

        Fragments with no covered site are dropped. Output lists are ordered by
        ``counter_id``.
        """
        self._finalized = True
        out: Dict[str, List[Fragment]] = {}
        for contig, table in self._by_contig.items():
            kept: List[Fragment] = []
            for frag in table.values():
                if not frag.covered_positions:
                    self.stats["fragments_dropped_empty"] += 1
                    continue
                kept.append(frag)
            kept.sort(key=lambda f: f.counter_id)
            out[contig] = kept

        logger.info(
            "Built %d fragments on %d contigs (%d/%d base calls accepted)",
            sum(len(v) for v in out.values()),
            len(out),
            self.stats["calls_accepted"],
            self.stats["calls_total"],
        )
        return out


def build_fragments(
    bam_path: str,
    variant_index_by_contig: Dict[str, VariantIndex],
    *,
    policy: Optional[FilterPolicy] = None,
    max_depth: int = 8000,
    progress: bool = True,
    builder: Optional[FragmentBuilder] = None,
) -> Dict[str, List[Fragment]]:
    """Scan BAM pileups at variant sites and return fragments per contig.

    Pileups run with pysam's ``nofilter`` stepper and no base-quality floor so
    that :class:`FilterPolicy` is the only alignment filter applied. The BAM
    must be coordinate-sorted and indexed.

    Raises
    ------
    SourceAccessError
        If the BAM cannot be opened or read.
    """
    if builder is None:
        builder = FragmentBuilder(variant_index_by_contig, policy)

    try:
        bam = pysam.AlignmentFile(str(bam_path), "rb")
    except (OSError, ValueError) as err:
        raise SourceAccessError(f"Could not open alignment file {bam_path}: {err}", path=bam_path) from err

    with bam:
        bam_contigs = set(bam.references)
        for contig, vi in variant_index_by_contig.items():
            if contig not in bam_contigs:
                logger.warning("Contig %s has variant sites but is absent from %s", contig, bam_path)
                continue
            if len(vi) == 0:
                continue

            positions = vi.sorted_positions()
            try:
                it: Iterable[Any] = bam.pileup(
                    contig,
                    positions[0],
                    positions[-1] + 1,
                    truncate=True,
                    stepper="nofilter",
                    min_base_quality=0,
                    ignore_overlaps=False,
                    ignore_orphans=False,
                    max_depth=max_depth,
                )
                if progress:
                    it = tqdm(it, unit="column", desc=f"Pileup {contig}")
                for column in it:
                    pos = int(column.reference_pos)
                    if pos not in vi:
                        continue
                    builder.add_column(contig, pos, column.pileups)
            except (OSError, ValueError) as err:
                raise SourceAccessError(
                    f"Error while reading alignment file {bam_path} on {contig}: {err}", path=bam_path
                ) from err

    return builder.finalize()
