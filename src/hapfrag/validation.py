from __future__ import annotations

import logging
from pathlib import Path

logger = logging.getLogger(__name__)


def check_bam_index(bam_path: str | Path) -> None:
    """Ensure a BAM has an index (pileups need one); raise ValueError with fix instructions."""
    bam = Path(bam_path)
    candidates = [
        bam.with_suffix(bam.suffix + ".bai"),
        bam.with_suffix(".bai"),
        bam.with_suffix(bam.suffix + ".csi"),
    ]
    if any(c.exists() for c in candidates):
        return
    raise ValueError("BAM is not indexed. Run: samtools index " + str(bam))


def check_vcf_index(vcf_path: str | Path) -> None:
    """Warn-level checks on the VCF; a missing file is a hard error."""
    vcf = Path(vcf_path)
    if not vcf.exists():
        raise ValueError(f"VCF not found: {vcf}")
    if vcf.suffixes[-2:] == [".vcf", ".gz"]:
        tbi = vcf.with_suffix(vcf.suffix + ".tbi")
        if not tbi.exists():
            # sequential reads do not need the index
            logger.info("VCF %s has no tabix index; reading it sequentially.", vcf)
    elif vcf.suffix == ".vcf":
        logger.info(
            "VCF is uncompressed (.vcf). This is supported but slower; "
            "consider bgzip+tabix for large files."
        )
