from __future__ import annotations

import argparse
import json
import logging
import sys
from pathlib import Path
from typing import Optional

from . import __version__
from .fragfile import write_fragment_file
from .fragments import MIN_MAPQ, MIN_MAPQ_SUPPLEMENTARY, FilterPolicy, FragmentBuilder, build_fragments
from .stats import summarize_fragments
from .toy_data import make_toy_data
from .utils import ensure_outdir, safe_filename, write_json
from .validation import check_bam_index, check_vcf_index
from .variants import load_variant_index


def _setup_logging(verbosity: int, *, logfile: Optional[Path] = None) -> None:
    level = logging.WARNING
    if verbosity == 1:
        level = logging.INFO
    elif verbosity >= 2:
        level = logging.DEBUG

    log_fmt = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"
    logging.basicConfig(level=level, format=log_fmt, stream=sys.stderr)

    if logfile is not None:
        logfile.parent.mkdir(parents=True, exist_ok=True)
        fh = logging.FileHandler(logfile)
        fh.setLevel(level)
        fh.setFormatter(logging.Formatter(log_fmt))
        logging.getLogger().addHandler(fh)


def _path_exists(p: str) -> str:
    if not Path(p).exists():
        raise argparse.ArgumentTypeError(f"Path does not exist: {p}")
    return p


def _quantile(s: str) -> float:
    q = float(s)
    if not 0.0 <= q <= 1.0:
        raise argparse.ArgumentTypeError(f"Quantile must be in [0, 1]: {s}")
    return q


def _log_path(outdir: Path, name: str) -> Path:
    return outdir / "logs" / name


def _handle_error(err: Exception, *, log_path: Optional[Path] = None) -> int:
    sys.stderr.write(f"{err.__class__.__name__}: {err}\n")
    if log_path is not None:
        sys.stderr.write(f"See log: {log_path}\n")
    return 2


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(
        prog="hapfrag",
        description=(
            "hapfrag: build per-read SNP fragments from a BAM + VCF for haplotype assembly, "
            "with distance and scoring primitives for downstream partitioning."
        ),
    )
    p.add_argument("--version", action="version", version=f"hapfrag {__version__}")

    sub = p.add_subparsers(dest="cmd", required=True)

    # -----------------
    # fragments
    # -----------------
    f = sub.add_parser(
        "fragments",
        help="Build fragments (one per read or read pair) at the VCF's SNP sites.",
    )
    f.add_argument("--bam", required=True, type=_path_exists, help="Input BAM (sorted, indexed).")
    f.add_argument("--vcf", required=True, type=_path_exists, help="Variant VCF/BCF with SNP sites.")
    f.add_argument("--outdir", required=True, help="Output directory.")
    f.add_argument(
        "--use-supplementary",
        action="store_true",
        help="Consider supplementary alignments (ignored by default).",
    )
    f.add_argument(
        "--filter-supplementary",
        action="store_true",
        help=f"Require MAPQ >= {MIN_MAPQ_SUPPLEMENTARY} for supplementary alignments.",
    )
    f.add_argument("--min-mapq", type=int, default=MIN_MAPQ, help="Minimum MAPQ for any alignment.")
    f.add_argument(
        "--quantile",
        type=_quantile,
        default=0.5,
        help="Fragment span quantile reported in summary.json.",
    )
    f.add_argument("--no-progress", action="store_true", help="Disable progress bars.")
    f.add_argument("--dry-run", action="store_true", help="Validate inputs and print planned outputs.")
    f.add_argument("-v", "--verbose", action="count", default=0, help="Increase verbosity (-v/-vv).")

    # -----------------
    # make-toy-data
    # -----------------
    t = sub.add_parser(
        "make-toy-data",
        help="Generate a tiny reference, BAM, and VCF for demos/tests.",
    )
    t.add_argument("--outdir", required=True, help="Output directory for toy data.")
    t.add_argument("--dry-run", action="store_true", help="Validate paths without writing files.")

    return p


def cmd_make_toy_data(args: argparse.Namespace) -> int:
    outdir = Path(args.outdir).expanduser().resolve()
    if args.dry_run:
        print(f"Would write toy data into: {outdir}")
        return 0

    summary = make_toy_data(outdir=outdir)
    print(json.dumps(summary, indent=2))
    return 0


def cmd_fragments(args: argparse.Namespace) -> int:
    outdir = Path(args.outdir).expanduser().resolve()
    log_path = _log_path(outdir, "fragments.log")
    _setup_logging(args.verbose, logfile=None if args.dry_run else log_path)

    logger = logging.getLogger("hapfrag")
    logger.info("hapfrag %s", __version__)

    try:
        check_bam_index(args.bam)
        check_vcf_index(args.vcf)

        if args.dry_run:
            print("Dry-run: inputs look OK.")
            print("Planned outputs:")
            print(f"  <contig>.frags.txt -> {outdir}")
            print(f"  summary.json -> {outdir / 'summary.json'}")
            return 0

        outdir = ensure_outdir(outdir)

        policy = FilterPolicy(
            use_supplementary=bool(args.use_supplementary),
            filter_supplementary=bool(args.filter_supplementary),
            min_mapq=int(args.min_mapq),
        )
        variant_index = load_variant_index(args.vcf)
        builder = FragmentBuilder(variant_index, policy)
        frags_by_contig = build_fragments(
            args.bam,
            variant_index,
            builder=builder,
            progress=not bool(args.no_progress),
        )

        contigs = {}
        for contig, frags in sorted(frags_by_contig.items()):
            frag_path = outdir / f"{safe_filename(contig)}.frags.txt"
            write_fragment_file(frags, frag_path, variant_index[contig])
            summary = summarize_fragments(frags, quantile=float(args.quantile))
            summary["sites"] = len(variant_index[contig])
            summary["fragment_file"] = str(frag_path)
            contigs[contig] = summary
            logger.info("%s: %d fragments over %d sites", contig, len(frags), summary["sites"])

        write_json(
            outdir / "summary.json",
            {
                "bam_path": str(args.bam),
                "vcf_path": str(args.vcf),
                "version": __version__,
                "policy": {
                    "use_supplementary": policy.use_supplementary,
                    "filter_supplementary": policy.filter_supplementary,
                    "min_mapq": policy.min_mapq,
                    "min_mapq_supplementary": policy.min_mapq_supplementary,
                },
                "counts": builder.stats,
                "contigs": contigs,
            },
        )
        print(str(outdir / "summary.json"))
        return 0
    except Exception as e:
        return _handle_error(e, log_path=log_path)


def main(argv: Optional[list[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    if args.cmd == "fragments":
        return cmd_fragments(args)
    if args.cmd == "make-toy-data":
        return cmd_make_toy_data(args)

    parser.error(f"Unknown command: {args.cmd}")
    return 2


if __name__ == "__main__":
    raise SystemExit(main())
