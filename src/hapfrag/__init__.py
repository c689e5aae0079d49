"""hapfrag: fragment model and distance/scoring engine for haplotype assembly.

Most users start from the CLI:

    hapfrag fragments --bam ... --vcf ... --outdir ...

or from :func:`hapfrag.variants.load_variant_index` and
:func:`hapfrag.fragments.build_fragments` in Python.
"""

from __future__ import annotations

__all__ = ["__version__"]

__version__ = "0.1.0"
