from pathlib import Path

import pytest

from conftest import make_frag
from hapfrag.fragfile import format_fragment, read_fragment_file, write_fragment_file
from hapfrag.variants import VariantIndex, build_variant_index


@pytest.fixture
def index():
    return build_variant_index(
        [
            ("chr1", 100, ("A", "G")),
            ("chr1", 105, ("C", "T")),
            ("chr1", 180, ("A", "C")),
            ("chr1", 300, ("G", "T")),
        ]
    )["chr1"]


def test_format_fragment_blocks(index):
    frag = make_frag(
        {100: "A", 105: "T", 300: "T"},
        name="read1",
        qualities={100: 40, 105: 30, 300: 0},
    )
    # sites 1,2 form one block; site 4 starts another
    assert format_fragment(frag, index) == "2\tread1\t1\t01\t4\t1\tI?!"


def test_write_and_read_back_with_index(tmp_path: Path, index):
    frags = [
        make_frag({180: "C", 300: "G"}, name="b", counter_id=2),
        make_frag({100: "G", 105: "C"}, name="a", counter_id=1),
    ]
    path = tmp_path / "chr1.frags.txt.gz"
    assert write_fragment_file(frags, path, index) == 2

    back = read_fragment_file(path, index)
    assert [f.id for f in back] == ["a", "b"]
    assert back[0].allele_at_site == {100: "G", 105: "C"}
    assert back[1].allele_at_site == {180: "C", 300: "G"}
    assert back[1].quality_at_site == {180: 30, 300: 30}
    assert back[1].first_position == 180 and back[1].last_position == 300


def test_read_without_index_uses_site_indices(tmp_path: Path):
    path = tmp_path / "frags.txt"
    path.write_text("2\tr1\t3\t01\t7\t1\tIII\n\n1\tr2\t1\t0\t5\n", encoding="utf-8")
    frags = read_fragment_file(path)
    assert [f.counter_id for f in frags] == [1, 2]
    assert frags[0].allele_at_site == {3: "0", 4: "1", 7: "1"}
    assert frags[0].quality_at_site == {3: 40, 4: 40, 7: 40}
    assert frags[1].allele_at_site == {1: "0"}
    assert frags[1].quality_at_site == {1: 20}

    out = tmp_path / "again.txt"
    write_fragment_file(frags, out)
    assert out.read_text(encoding="utf-8").splitlines() == ["1\tr2\t1\t0\t5", "2\tr1\t3\t01\t7\t1\tIII"]


def test_read_rejects_non_numeric_block_count(tmp_path: Path):
    path = tmp_path / "bad.txt"
    path.write_text("1\tok\t1\t0\tI\nx\tbad\t1\t0\tI\n", encoding="utf-8")
    with pytest.raises(ValueError, match=":2:"):
        read_fragment_file(path)


def test_read_builds_site_lookup_once_per_file(tmp_path: Path, index, monkeypatch):
    calls = []
    original = VariantIndex.position_for_site

    def counting(self):
        calls.append(self.contig)
        return original(self)

    monkeypatch.setattr(VariantIndex, "position_for_site", counting)

    path = tmp_path / "frags.txt"
    path.write_text(
        "1\tr1\t1\t01\tII\n1\tr2\t2\t1\tI\n1\tr3\t3\t10\tII\n1\tr4\t4\t0\tI\n",
        encoding="utf-8",
    )
    frags = read_fragment_file(path, index)
    assert [f.id for f in frags] == ["r1", "r2", "r3", "r4"]
    assert frags[2].allele_at_site == {180: "C", 300: "G"}
    assert calls == ["chr1"]


def test_format_rejects_quality_beyond_phred33_range(index):
    ok = make_frag({100: "A"}, name="ok", qualities={100: 93})
    assert format_fragment(ok, index).endswith("\t~")

    too_high = make_frag({100: "A", 105: "C"}, name="hi", qualities={100: 40, 105: 94})
    with pytest.raises(ValueError, match="hi"):
        format_fragment(too_high, index)
