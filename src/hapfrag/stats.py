from __future__ import annotations

import math
from typing import Any, Dict, Sequence

import numpy as np

from .models import Fragment


def length_quantile(fragments: Sequence[Fragment], q: float) -> int:
    """Span (``last - first`` position) at rank ``floor(q * count)`` of the sorted spans.

    ``q == 1`` returns the longest span.
    """
    if not 0.0 <= q <= 1.0:
        raise ValueError(f"quantile must be in [0, 1]; got {q}")
    if len(fragments) == 0:
        raise ValueError("length_quantile needs at least one fragment")
    spans = np.sort(np.fromiter((f.last_position - f.first_position for f in fragments), dtype=np.int64))
    rank = min(int(math.floor(q * len(spans))), len(spans) - 1)
    return int(spans[rank])


def covered_genome_length(fragments: Sequence[Fragment]) -> int:
    """Largest ``last_position`` over all fragments (0 if there are none)."""
    return max((f.last_position for f in fragments), default=0)


def summarize_fragments(fragments: Sequence[Fragment], *, quantile: float = 0.5) -> Dict[str, Any]:
    if len(fragments) == 0:
        return {
            "fragments": 0,
            "paired": 0,
            "mean_sites": 0.0,
            "length_quantile": None,
            "covered_genome_length": 0,
        }
    sites = np.array([len(f.covered_positions) for f in fragments], dtype=np.int64)
    return {
        "fragments": len(fragments),
        "paired": sum(1 for f in fragments if f.is_paired),
        "mean_sites": float(sites.mean()),
        "max_sites": int(sites.max()),
        "quantile": float(quantile),
        "length_quantile": length_quantile(fragments, quantile),
        "covered_genome_length": covered_genome_length(fragments),
    }
