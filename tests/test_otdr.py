import pytest

import fibertrace.config
from fibertrace.basic.topology import Direction, PortRef
from fibertrace.hard_scripts.otdr import OtdrKind, locate_on_cable, trace_otdr
from fibertrace.hard_scripts.path_tracer import CableHop
from fibertrace.simple_scripts.snapshot_loader import build_snapshot

START = PortRef("A", "c1-fiber-0")


def test_distance_inside_second_cable(two_cable):
    res = trace_otdr(two_cable, START, Direction.ALONG, 700)

    assert res.kind == OtdrKind.IN_CABLE
    assert res.cable_id == "c2"
    assert res.length_left_m == pytest.approx(200)
    # 200 of 500 m along a meridian polyline from lat 0 to lat 0.0045
    lat, lon = res.point
    assert lat == pytest.approx(0.0018, abs=1e-9)
    assert lon == pytest.approx(0.01)


def test_distance_inside_first_cable(two_cable):
    res = trace_otdr(two_cable, START, Direction.ALONG, 120.5)
    assert res.kind == OtdrKind.IN_CABLE
    assert res.cable_id == "c1"
    assert res.length_left_m == pytest.approx(120.5)


def test_zero_distance_is_the_start_of_the_first_cable(two_cable):
    res = trace_otdr(two_cable, START, Direction.ALONG, 0)
    assert res.kind == OtdrKind.IN_CABLE
    assert res.cable_id == "c1"
    assert res.length_left_m == 0
    assert res.point == (0.0, 0.0)


def test_exact_cable_end_with_more_path_is_a_spliced_junction(two_cable):
    res = trace_otdr(two_cable, START, Direction.ALONG, 500)
    assert res.kind == OtdrKind.SPLICED_JUNCTION
    assert res.box_id == "B"


def test_within_epsilon_of_the_cable_end(two_cable):
    assert trace_otdr(two_cable, START, Direction.ALONG, 500.005).kind == OtdrKind.SPLICED_JUNCTION
    assert trace_otdr(two_cable, START, Direction.ALONG, 499.995).kind == OtdrKind.SPLICED_JUNCTION


def test_end_of_the_path_reports_the_terminal(two_cable):
    res = trace_otdr(two_cable, START, Direction.ALONG, 1000)
    assert res.kind == OtdrKind.NOT_SPLICED
    assert res.box_id == "C"
    assert res.hops == ()


def test_beyond_the_network(two_cable):
    res = trace_otdr(two_cable, START, Direction.ALONG, 1100)
    assert res.kind == OtdrKind.DISTANCE_EXCEEDS_NETWORK
    assert res.max_reachable_m == pytest.approx(1000)
    assert res.is_error is False


def test_negative_distance_is_rejected(two_cable):
    with pytest.raises(ValueError):
        trace_otdr(two_cable, START, Direction.ALONG, -1)


def test_reverse_direction_measures_from_the_other_end(two_cable):
    res = trace_otdr(two_cable, PortRef("C", "c2-fiber-0"), Direction.ALONG, 100)
    assert res.kind == OtdrKind.IN_CABLE
    assert res.cable_id == "c2"
    assert res.length_left_m == pytest.approx(100)
    # walking c2 backwards: 100 of 500 m from lat 0.0045 towards lat 0
    assert res.point[0] == pytest.approx(0.0036, abs=1e-9)


def test_open_end(splitter_net):
    res = trace_otdr(splitter_net, PortRef("CTO1", "d2-fiber-0"), Direction.ALONG, 50)
    assert res.kind == OtdrKind.OPEN_END
    assert res.cable_id == "d2"
    assert res.box_id is None


def test_equipment_at_the_end(splitter_net):
    res = trace_otdr(splitter_net, PortRef("CTO1", "s1-in"), Direction.ACROSS, 1000)
    assert res.kind == OtdrKind.EQUIPMENT_CONNECTION
    assert res.box_id == "POP"


def test_splitter_legs_become_alternatives(splitter_net):
    res = trace_otdr(splitter_net, PortRef("CTO1", "s1-in"), Direction.ALONG, 20)
    assert res.kind == OtdrKind.IN_CABLE
    assert res.cable_id == "d0"
    assert [a.cable_id for a in res.alternatives] == [f"d{i}" for i in range(1, 8)]


def test_splitter_legs_all_too_short(splitter_net):
    res = trace_otdr(splitter_net, PortRef("CTO1", "s1-in"), Direction.ALONG, 80)
    assert res.kind == OtdrKind.DISTANCE_EXCEEDS_NETWORK
    assert res.max_reachable_m == pytest.approx(50)
    assert res.alternatives == ()


def test_loop_surfaces_max_depth(loop_net):
    res = trace_otdr(loop_net, PortRef("X", "l1-fiber-0"), Direction.ALONG, 1e9)
    assert res.kind == OtdrKind.MAX_DEPTH_REACHED
    assert len(res.hops) == fibertrace.config.MAX_DEPTH
    assert [h.cable_id for h in res.hops if isinstance(h, CableHop)][:4] == ["l1", "l2", "l1", "l2"]


def test_missing_cable_is_surfaced(two_cable_project):
    two_cable_project["fusions"][0]["port_b"] = "ghost-fiber-0"
    snap = build_snapshot(two_cable_project)
    res = trace_otdr(snap, START, Direction.ALONG, 600)
    assert res.kind == OtdrKind.CABLE_NOT_FOUND
    assert res.cable_id == "ghost"
    assert res.is_error
    assert res.hops[0].cable_id == "c1"


def test_locate_on_cable_from_either_end(two_cable):
    a = locate_on_cable(two_cable, "c2", 100, "A")
    b = locate_on_cable(two_cable, "c2", 100, "B")
    assert a.kind == b.kind == OtdrKind.IN_CABLE
    assert a.point[0] == pytest.approx(0.0009, abs=1e-9)
    assert b.point[0] == pytest.approx(0.0036, abs=1e-9)
    assert a.message.startswith("From Start/Node A")
    assert b.message.startswith("From End/Node B")


def test_locate_on_cable_at_the_ends(two_cable):
    # c2 is spliced in B but not in C
    assert locate_on_cable(two_cable, "c2", 500, "A").kind == OtdrKind.NOT_SPLICED
    at_b = locate_on_cable(two_cable, "c2", 500, "B")
    assert at_b.kind == OtdrKind.SPLICED_JUNCTION
    assert at_b.box_id == "B"


def test_locate_on_cable_beyond_its_length(two_cable):
    res = locate_on_cable(two_cable, "c1", 650, "A")
    assert res.kind == OtdrKind.DISTANCE_EXCEEDS_LENGTH
    assert res.cable_length_m == 500
    assert res.message == "Distance exceeds cable length (500m)"


def test_locate_on_unknown_cable(two_cable):
    res = locate_on_cable(two_cable, "nope", 10)
    assert res.kind == OtdrKind.CABLE_NOT_FOUND
    with pytest.raises(ValueError):
        locate_on_cable(two_cable, "c1", 10, "Z")
