from pathlib import Path
from typing import Dict, Optional

import pytest

from hapfrag.models import Fragment
from hapfrag.toy_data import make_toy_data


def make_frag(
    alleles: Dict[int, str],
    *,
    name: str = "r",
    counter_id: int = 0,
    qualities: Optional[Dict[int, int]] = None,
) -> Fragment:
    frag = Fragment(id=name, counter_id=counter_id)
    for pos, allele in alleles.items():
        q = 30 if qualities is None else qualities[pos]
        frag.add_call(pos, allele, q)
    return frag


@pytest.fixture
def toy(tmp_path: Path) -> Dict[str, str]:
    return make_toy_data(outdir=tmp_path / "toy")
