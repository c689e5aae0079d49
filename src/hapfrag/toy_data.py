from __future__ import annotations

from pathlib import Path
from typing import Dict, List, Optional, Tuple

import pysam

from .utils import ensure_outdir, write_json

TOY_CONTIG = "chr1"
# (0-based position, ref, alt)
TOY_SITES: List[Tuple[int, str, str]] = [(100, "A", "G"), (105, "C", "T"), (180, "A", "C")]
TOY_INDEL = (150, "G", "GA")
TOY_PAIRS = 8


def _write_fasta(path: Path, contig: str, seq: str) -> None:
    lines = [f">{contig}"]
    for i in range(0, len(seq), 60):
        lines.append(seq[i : i + 60])
    path.write_text("\n".join(lines) + "\n", encoding="utf-8")


def _haplotype_seq(ref_seq: str, hap: int) -> str:
    if hap == 0:
        return ref_seq
    seq = list(ref_seq)
    for pos0, _ref, alt in TOY_SITES:
        seq[pos0] = alt
    return "".join(seq)


def _make_read(
    name: str,
    start0: int,
    seq: str,
    *,
    flag: int = 0,
    mapq: int = 60,
    mate_start0: Optional[int] = None,
) -> pysam.AlignedSegment:
    a = pysam.AlignedSegment()
    a.query_name = name
    a.query_sequence = seq
    a.flag = flag
    a.reference_id = 0
    a.reference_start = start0
    a.mapping_quality = mapq
    a.cigartuples = [(0, len(seq))]
    a.query_qualities = pysam.qualitystring_to_array("I" * len(seq))
    if mate_start0 is not None:
        a.next_reference_id = 0
        a.next_reference_start = mate_start0
    return a


def make_toy_data(*, outdir: str | Path) -> Dict[str, str]:
    """Create a tiny reference, paired-end BAM and SNP VCF for demos/tests.

    Two haplotypes (reference and all-alt) are sampled by ``TOY_PAIRS`` read
    pairs whose first mate covers sites 100/105 and second mate covers site
    180. A few extra reads exercise the filters: one single-end read, one
    duplicate, one low-MAPQ read and one read with a third allele at 100.

    Returns
    -------
    dict
        Paths to the generated files.
    """
    outdir_p = ensure_outdir(outdir)

    ref_seq = ("ACGT" * 100)[:400]
    ref_fa = outdir_p / "toy_ref.fa"
    _write_fasta(ref_fa, TOY_CONTIG, ref_seq)
    pysam.faidx(str(ref_fa))

    haps = [_haplotype_seq(ref_seq, 0), _haplotype_seq(ref_seq, 1)]
    read_len = 50

    reads: List[pysam.AlignedSegment] = []
    for i in range(TOY_PAIRS):
        hap = haps[i % 2]
        s1 = 80 + i
        s2 = 160 + i
        name = f"pair_{i}"
        reads.append(_make_read(name, s1, hap[s1 : s1 + read_len], flag=99, mate_start0=s2))
        reads.append(_make_read(name, s2, hap[s2 : s2 + read_len], flag=147, mate_start0=s1))

    reads.append(_make_read("single_0", 95, haps[0][95 : 95 + read_len]))
    reads.append(_make_read("dup_0", 90, haps[1][90 : 90 + read_len], flag=1024))
    reads.append(_make_read("lowmq_0", 90, haps[1][90 : 90 + read_len], mapq=10))
    err = list(haps[0][92 : 92 + read_len])
    err[100 - 92] = "T"
    reads.append(_make_read("err_0", 92, "".join(err)))

    reads.sort(key=lambda r: r.reference_start)

    bam_path = outdir_p / "reads.bam"
    header = {
        "HD": {"VN": "1.6", "SO": "coordinate"},
        "SQ": [{"SN": TOY_CONTIG, "LN": len(ref_seq)}],
    }
    with pysam.AlignmentFile(str(bam_path), "wb", header=header) as bam:
        for r in reads:
            bam.write(r)
    pysam.index(str(bam_path))

    vcf_path = outdir_p / "variants.vcf"
    vheader = pysam.VariantHeader()
    vheader.add_meta("fileformat", "VCFv4.2")
    vheader.add_sample("SAMPLE")
    vheader.contigs.add(TOY_CONTIG, length=len(ref_seq))
    vheader.formats.add("GT", number=1, type="String", description="Genotype")

    records = [(p, r, a) for p, r, a in TOY_SITES] + [TOY_INDEL]
    records.sort()
    with pysam.VariantFile(str(vcf_path), "w", header=vheader) as vcf:
        for pos0, ref_allele, alt_allele in records:
            rec = vcf.new_record(
                contig=TOY_CONTIG,
                start=pos0,
                stop=pos0 + len(ref_allele),
                alleles=(ref_allele, alt_allele),
                qual=60,
                filter="PASS",
            )
            rec.samples[0]["GT"] = (0, 1)
            rec.samples[0].phased = True
            vcf.write(rec)

    vcf_gz = outdir_p / "variants.vcf.gz"
    pysam.tabix_compress(str(vcf_path), str(vcf_gz), force=True)
    pysam.tabix_index(str(vcf_gz), preset="vcf", force=True)

    summary = {
        "ref_fa": str(ref_fa),
        "bam": str(bam_path),
        "vcf": str(vcf_gz),
        "outdir": str(outdir_p),
    }
    write_json(outdir_p / "toy_summary.json", summary)
    return summary
