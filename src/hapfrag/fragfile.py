"""Read and write fragments in the tab-separated H-PoP style fragment format.

One line per fragment::

    <n_blocks> <read id> <start site> <alleles> [<start site> <alleles> ...] <qualities>

Sites are 1-based site indices; each block is a run of consecutive sites,
with one allele-index digit per site (0 = reference). Qualities are phred+33,
one character per covered site in site order, so a quality must lie in 0-93
(``!`` to ``~``).
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Tuple

from .models import Fragment
from .utils import open_textmaybe_gzip
from .variants import VariantIndex

logger = logging.getLogger(__name__)

_PHRED_OFFSET = 33
_MAX_PHRED = 93


def _site_calls(frag: Fragment, variant_index: Optional[VariantIndex]) -> List[Tuple[int, int, int]]:
    """Return sorted ``(site, allele_index, quality)`` triples for a fragment."""
    calls: List[Tuple[int, int, int]] = []
    for pos in frag.covered_positions:
        allele = frag.allele_at_site[pos]
        if variant_index is None:
            site = pos
            allele_idx = int(allele)
        else:
            site = variant_index.site_index[pos]
            allele_idx = variant_index.alleles[pos].index(allele)
        calls.append((site, allele_idx, frag.quality_at_site[pos]))
    calls.sort()
    return calls


def format_fragment(frag: Fragment, variant_index: Optional[VariantIndex] = None) -> str:
    """Render one fragment as a fragment-file line (without newline).

    With ``variant_index`` the fragment is keyed by genomic position and allele
    symbols; without it, positions are taken to be site indices and alleles
    allele-index digits (as produced by :func:`read_fragment_file`).
    """
    calls = _site_calls(frag, variant_index)
    if not calls:
        raise ValueError(f"Fragment {frag.id} covers no sites")

    blocks: List[Tuple[int, str]] = []
    start = calls[0][0]
    prev = start
    digits = [str(calls[0][1])]
    for site, allele_idx, _q in calls[1:]:
        if site == prev + 1:
            digits.append(str(allele_idx))
        else:
            blocks.append((start, "".join(digits)))
            start = site
            digits = [str(allele_idx)]
        prev = site
    blocks.append((start, "".join(digits)))

    for _s, _a, q in calls:
        if not 0 <= q <= _MAX_PHRED:
            raise ValueError(f"Quality {q} in fragment {frag.id} is outside the phred+33 range 0-{_MAX_PHRED}")
    quals = "".join(chr(q + _PHRED_OFFSET) for _s, _a, q in calls)
    fields = [str(len(blocks)), frag.id]
    for site, allele_str in blocks:
        fields.extend([str(site), allele_str])
    fields.append(quals)
    return "\t".join(fields)


def write_fragment_file(
    fragments: Iterable[Fragment],
    path: str | Path,
    variant_index: Optional[VariantIndex] = None,
) -> int:
    """Write fragments sorted by first position; return the number written."""
    ordered = sorted(fragments, key=lambda f: (f.first_position, f.counter_id))
    with open_textmaybe_gzip(path, "wt") as fh:
        for frag in ordered:
            fh.write(format_fragment(frag, variant_index) + "\n")
    logger.debug("Wrote %d fragments to %s", len(ordered), path)
    return len(ordered)


def parse_fragment_line(
    line: str,
    counter_id: int,
    variant_index: Optional[VariantIndex] = None,
    *,
    site_to_pos: Optional[Dict[int, int]] = None,
) -> Fragment:
    fields = line.rstrip("\n").split("\t")
    try:
        n_blocks = int(fields[0])
    except ValueError:
        raise ValueError(f"Not a number found in first column: {fields[0]!r}") from None
    if len(fields) < 2 * n_blocks + 3:
        raise ValueError(f"Expected {n_blocks} blocks but the line has {len(fields)} fields")

    frag = Fragment(id=fields[1], counter_id=counter_id)
    if variant_index is not None and site_to_pos is None:
        site_to_pos = variant_index.position_for_site()

    sites: List[Tuple[int, str]] = []
    for i in range(n_blocks):
        start = int(fields[2 * i + 2])
        for j, ch in enumerate(fields[2 * i + 3]):
            sites.append((start + j, ch))

    quals = fields[-1]
    if len(quals) != len(sites):
        raise ValueError(f"{len(quals)} qualities for {len(sites)} sites in fragment {frag.id}")

    for (site, ch), qch in zip(sites, quals):
        if site_to_pos is None:
            pos, allele = site, ch
        else:
            if site not in site_to_pos:
                raise ValueError(f"Unknown site index {site} in fragment {frag.id}")
            pos = site_to_pos[site]
            allele = variant_index.alleles[pos][int(ch)]  # type: ignore[union-attr]
        frag.add_call(pos, allele, ord(qch) - _PHRED_OFFSET)
    return frag


def read_fragment_file(
    path: str | Path,
    variant_index: Optional[VariantIndex] = None,
) -> List[Fragment]:
    """Read a fragment file written by :func:`write_fragment_file` (or H-PoP tools)."""
    frags: List[Fragment] = []
    site_to_pos = variant_index.position_for_site() if variant_index is not None else None
    with open_textmaybe_gzip(path, "rt") as fh:
        for lineno, line in enumerate(fh, start=1):
            if not line.strip():
                continue
            try:
                frags.append(
                    parse_fragment_line(line, len(frags) + 1, variant_index, site_to_pos=site_to_pos)
                )
            except (ValueError, IndexError) as err:
                raise ValueError(f"{path}:{lineno}: {err}") from err
    logger.info("Read %d fragments from %s", len(frags), path)
    return frags
