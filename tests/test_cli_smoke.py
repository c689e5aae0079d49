import json
import subprocess
import sys
from pathlib import Path


def _run_cli(args: list[str]) -> subprocess.CompletedProcess:
    return subprocess.run(
        [sys.executable, "-m", "hapfrag"] + args,
        check=False,
        capture_output=True,
        text=True,
    )


def test_cli_help() -> None:
    cp = _run_cli(["--help"])
    assert cp.returncode == 0
    assert "hapfrag" in cp.stdout.lower()


def test_make_toy_data_and_fragments(tmp_path: Path) -> None:
    toy_dir = tmp_path / "toy"
    cp = _run_cli(["make-toy-data", "--outdir", str(toy_dir)])
    assert cp.returncode == 0

    outdir = tmp_path / "out"
    cp = _run_cli(
        [
            "fragments",
            "--bam",
            str(toy_dir / "reads.bam"),
            "--vcf",
            str(toy_dir / "variants.vcf.gz"),
            "--outdir",
            str(outdir),
            "--no-progress",
        ]
    )
    assert cp.returncode == 0, cp.stderr

    summary = json.loads((outdir / "summary.json").read_text(encoding="utf-8"))
    chr1 = summary["contigs"]["chr1"]
    assert chr1["fragments"] == 10
    assert chr1["paired"] == 8
    assert chr1["sites"] == 3
    assert chr1["covered_genome_length"] == 180
    assert summary["counts"]["calls_accepted"] > 0

    lines = (outdir / "chr1.frags.txt").read_text(encoding="utf-8").splitlines()
    assert len(lines) == 10
    assert (outdir / "logs" / "fragments.log").exists()


def test_fragments_dry_run_does_not_write_outputs(tmp_path: Path) -> None:
    toy_dir = tmp_path / "toy"
    assert _run_cli(["make-toy-data", "--outdir", str(toy_dir)]).returncode == 0
    outdir = tmp_path / "out"
    cp = _run_cli(
        [
            "fragments",
            "--bam",
            str(toy_dir / "reads.bam"),
            "--vcf",
            str(toy_dir / "variants.vcf.gz"),
            "--outdir",
            str(outdir),
            "--dry-run",
        ]
    )
    assert cp.returncode == 0
    assert "Dry-run" in cp.stdout
    assert not (outdir / "summary.json").exists()


def test_fragments_unindexed_bam_fails(tmp_path: Path) -> None:
    bam = tmp_path / "reads.bam"
    bam.write_bytes(b"")
    vcf = tmp_path / "v.vcf"
    vcf.write_text("", encoding="utf-8")
    cp = _run_cli(["fragments", "--bam", str(bam), "--vcf", str(vcf), "--outdir", str(tmp_path / "o")])
    assert cp.returncode == 2
    assert "not indexed" in cp.stderr
