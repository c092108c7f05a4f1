import pytest

import fibertrace.config
from fibertrace.basic.topology import Direction, PortRef
from fibertrace.hard_scripts.path_tracer import TerminalKind, trace
from fibertrace.simple_scripts.auto_splice import AutoSpliceError, as_fusions, propose_auto_splice
from fibertrace.simple_scripts.snapshot_loader import build_snapshot


@pytest.fixture
def mixed_layout():
    """a: 24 fibers in 2 tubes of 12, b: 24 fibers in 4 tubes of 6, both ABNT, meeting in M."""
    return build_snapshot({
        "boxes": [{"id": "A", "kind": "CTO"}, {"id": "M", "kind": "CEO"}, {"id": "B", "kind": "CTO"}],
        "cables": [
            {"id": "a", "from_box": "A", "to_box": "M", "fiber_count": 24, "tube_count": 2, "length_m": 10},
            {"id": "b", "from_box": "M", "to_box": "B", "fiber_count": 24, "tube_count": 4, "length_m": 10},
        ],
    })


def test_same_layout_pairs_fiber_by_fiber(two_cable):
    pairs = propose_auto_splice(two_cable, "c1", "c2")
    # fiber 0 is already fused in B
    assert len(pairs) == 11
    assert [(p.port_a, p.port_b) for p in pairs][:2] == [("c1-fiber-1", "c2-fiber-1"), ("c1-fiber-2", "c2-fiber-2")]
    assert all(p.fiber_a.fiber_index == p.fiber_b.fiber_index for p in pairs)


def test_proposals_do_not_touch_the_snapshot(two_cable):
    propose_auto_splice(two_cable, "c1", "c2")
    assert list(two_cable.fusions) == ["fB"]


def test_colour_fallback_matches_tube_and_fiber_colours(mixed_layout):
    pairs = propose_auto_splice(mixed_layout, "a", "b", fallback="color")
    got = [(int(p.port_a.rsplit("-", 1)[1]), int(p.port_b.rsplit("-", 1)[1])) for p in pairs]
    # tube 1 (Green) and tube 2 (Yellow) fibers 1..6 exist on both sides
    assert got == [(i, i) for i in range(6)] + [(12 + i, 6 + i) for i in range(6)]


def test_colour_fallback_across_standards():
    snap = build_snapshot({
        "boxes": [{"id": "A", "kind": "CTO"}, {"id": "M", "kind": "CEO"}, {"id": "B", "kind": "CTO"}],
        "cables": [
            {"id": "a", "from_box": "A", "to_box": "M", "fiber_count": 12, "tube_count": 1, "length_m": 10,
             "color_standard": "ABNT"},
            {"id": "b", "from_box": "M", "to_box": "B", "fiber_count": 18, "tube_count": 3, "length_m": 10,
             "color_standard": "EIA-598"},
        ],
    })
    pairs = propose_auto_splice(snap, "a", "b", fallback="color")
    got = [(int(p.port_a.rsplit("-", 1)[1]), int(p.port_b.rsplit("-", 1)[1])) for p in pairs]
    # only b's third tube is Green; ABNT Gray is EIA Slate
    assert got == [(0, 14), (2, 17), (3, 12), (6, 15), (9, 16), (10, 13)]


def test_sequential_fallback(mixed_layout):
    pairs = propose_auto_splice(mixed_layout, "a", "b", fallback="sequential")
    assert [(p.port_a, p.port_b) for p in pairs] == [(f"a-fiber-{i}", f"b-fiber-{i}") for i in range(24)]


def test_default_fallback_comes_from_config(monkeypatch, mixed_layout):
    monkeypatch.setattr(fibertrace.config, "AUTO_SPLICE_FALLBACK", "sequential")
    assert len(propose_auto_splice(mixed_layout, "a", "b")) == 24


def test_unknown_fallback(mixed_layout):
    with pytest.raises(ValueError):
        propose_auto_splice(mixed_layout, "a", "b", fallback="random")


@pytest.mark.parametrize("a, b, box", [
    ("c1", "c1", None),      # same cable
    ("c1", "ghost", None),   # unknown cable
    ("c1", "c2", "C"),       # c1 does not enter C
])
def test_impossible_requests(two_cable, a, b, box):
    with pytest.raises(AutoSpliceError):
        propose_auto_splice(two_cable, a, b, box)


def test_cables_without_a_shared_box():
    snap = build_snapshot({
        "boxes": [{"id": "A", "kind": "CTO"}, {"id": "B", "kind": "CTO"}, {"id": "C", "kind": "CTO"}],
        "cables": [
            {"id": "x", "from_box": "A", "to_box": "B", "fiber_count": 2, "length_m": 1},
            {"id": "y", "from_box": "C", "fiber_count": 2, "length_m": 1},
        ],
    })
    with pytest.raises(AutoSpliceError, match="share no box"):
        propose_auto_splice(snap, "x", "y")


def test_accepted_proposals_make_fibers_continuous(two_cable):
    pairs = propose_auto_splice(two_cable, "c1", "c2", "B")
    spliced = two_cable.with_added_fusions(as_fusions(pairs, "B", loss_db=0.05))

    assert len(spliced.fusions) == 12
    (branch,) = trace(spliced, PortRef("A", "c1-fiber-7"), Direction.ALONG).branches
    assert branch.cable_ids == ["c1", "c2"]
    assert branch.terminal.kind == TerminalKind.NOT_SPLICED
    assert branch.end_port == PortRef("C", "c2-fiber-7")
