import pytest

from fibertrace.basic.topology import ConnectivityMismatchError, Direction, EventKind
from fibertrace.simple_scripts.snapshot_loader import build_snapshot


def test_adjacency_is_built_per_box_on_demand(splitter_net):
    graph = splitter_net.splice_graph
    assert graph.built_boxes == frozenset()

    graph.adjacency("CTO1", "s1-in", Direction.ACROSS)
    assert graph.built_boxes == frozenset({"CTO1"})
    assert splitter_net.splice_graph is graph


def test_snapshots_do_not_share_adjacency(splitter_project):
    a = build_snapshot(splitter_project)
    b = build_snapshot(splitter_project)
    a.splice_graph.edges("POP", "dio1-p-0")
    assert b.splice_graph.built_boxes == frozenset()


def test_splitter_input_fans_out_in_leg_order(splitter_net):
    links = splitter_net.splice_graph.adjacency("CTO1", "s1-in", Direction.ALONG)
    assert [l.port_id for l in links] == [f"s1-out-{i}" for i in range(8)]
    assert all(l.kind == EventKind.SPLITTER and l.loss_db == 10.5 for l in links)
    assert [l.leg_index for l in links] == list(range(8))


def test_splitter_output_goes_back_to_input_with_leg_loss():
    snap = build_snapshot({
        "boxes": [{"id": "B", "kind": "CTO"}],
        "splitters": [{"id": "s", "box_id": "B", "outputs": 2, "mode": "Unbalanced", "attenuation": [1.0, 14.0]}],
    })
    (link,) = snap.splice_graph.adjacency("B", "s-out-1", Direction.ALONG)
    assert link.port_id == "s-in"
    assert link.loss_db == 14.0
    assert link.leg_index == 1


def test_dio_slot_skips_the_face_light_arrived_on(splitter_net):
    graph = splitter_net.splice_graph
    rear = graph.adjacency("POP", "dio1-p-0", Direction.ACROSS, arrived_by=EventKind.PATCH)
    front = graph.adjacency("POP", "dio1-p-0", Direction.ACROSS, arrived_by=EventKind.FUSION)
    assert [(l.kind, l.port_id) for l in rear] == [(EventKind.FUSION, "f1-fiber-0")]
    assert [(l.kind, l.port_id) for l in front] == [(EventKind.PATCH, "olt1-s1-p1")]

    (through,) = graph.adjacency("POP", "dio1-p-0", Direction.ALONG)
    assert through.kind == EventKind.DIO
    assert through.port_id == "dio1-p-0"
    assert through.loss_db == 0


def test_equipment_port_has_no_way_along(splitter_net):
    assert splitter_net.splice_graph.adjacency("POP", "olt1-s1-p1", Direction.ALONG) == []


def test_fiber_port_along_is_a_caller_error(two_cable):
    with pytest.raises(ValueError):
        two_cable.splice_graph.adjacency("A", "c1-fiber-0", Direction.ALONG)


def test_port_with_two_fusions_is_a_conflict(two_cable_project):
    two_cable_project["fusions"].append(
        {"id": "fB2", "box_id": "B", "port_a": "c1-fiber-0", "port_b": "c2-fiber-1"},
    )
    snap = build_snapshot(two_cable_project)
    with pytest.raises(ConnectivityMismatchError, match="2 edges"):
        snap.splice_graph.edges("B", "c1-fiber-0")
    # untouched ports in the same box are still usable
    assert snap.splice_graph.edges("B", "c1-fiber-3") == []


def test_patch_on_bare_fiber_is_a_conflict(two_cable_project):
    two_cable_project["patches"] = [{"id": "p", "box_id": "B", "port_a": "c1-fiber-5", "port_b": "c2-fiber-5"}]
    snap = build_snapshot(two_cable_project)
    with pytest.raises(ConnectivityMismatchError, match="neither DIO nor equipment"):
        snap.splice_graph.edges("B", "c1-fiber-5")
