import pytest

from fibertrace.simple_scripts.snapshot_loader import build_snapshot


@pytest.fixture
def two_cable_project():
    """
    A (POP) --c1 500 m--> B (CEO) --c2 500 m--> C (CTO)
    c1/c2 fiber 0 fused in B (0.1 dB); nothing spliced in C.
    c2 runs due north along a three-vertex polyline.
    """
    return {
        "boxes": [
            {"id": "A", "kind": "POP", "name": "POP A", "coordinates": {"lat": 0.0, "lng": 0.0}},
            {"id": "B", "kind": "CEO", "name": "CEO B", "coordinates": [0.0, 0.01]},
            {"id": "C", "kind": "CTO", "name": "CTO C", "coordinates": [0.0045, 0.01]},
        ],
        "cables": [
            {
                "id": "c1", "name": "Feeder 1", "from_box": "A", "to_box": "B",
                "fiber_count": 12, "tube_count": 1, "length_m": 500,
                "attenuation_db_per_km": 0.35,
                "coordinates": [[0.0, 0.0], [0.0, 0.01]],
            },
            {
                "id": "c2", "name": "Feeder 2", "from_box": "B", "to_box": "C",
                "fiber_count": 12, "tube_count": 1, "length_m": 500,
                "attenuation_db_per_km": 0.35,
                "coordinates": [[0.0, 0.01], [0.001, 0.01], [0.0045, 0.01]],
            },
        ],
        "fusions": [
            {"id": "fB", "box_id": "B", "port_a": "c1-fiber-0", "port_b": "c2-fiber-0", "loss_db": 0.1},
        ],
    }


@pytest.fixture
def two_cable(two_cable_project):
    return build_snapshot(two_cable_project)


@pytest.fixture
def splitter_project():
    """
    POP: OLT port olt1-s1-p1 -patch 0.5- DIO slot dio1-p-0 -fusion 0.1- feeder f1
    f1: POP → CTO1, 1000 m at 0.3 dB/km
    CTO1: f1 fiber 0 -fusion 0.1- 1x8 splitter s1 (10.5 dB), leg i -fusion 0- drop d<i>
    Drops d0..d7 leave CTO1 50 m towards open ends.
    """
    drops = [
        {"id": f"d{i}", "from_box": "CTO1", "to_box": None, "fiber_count": 1, "length_m": 50,
         "coordinates": [[0.01, 0.0], [0.01 + 0.0001 * (i + 1), 0.0]]}
        for i in range(8)
    ]
    drop_fusions = [
        {"id": f"fd{i}", "box_id": "CTO1", "port_a": f"s1-out-{i}", "port_b": f"d{i}-fiber-0", "loss_db": 0}
        for i in range(8)
    ]
    return {
        "boxes": [
            {"id": "POP", "kind": "POP", "name": "Central"},
            {"id": "CTO1", "kind": "CTO", "name": "CTO 01"},
        ],
        "cables": [
            {"id": "f1", "from_box": "POP", "to_box": "CTO1", "fiber_count": 12, "length_m": 1000,
             "attenuation_db_per_km": 0.3, "status": "DEPLOYED"},
        ] + drops,
        "dios": [{"id": "dio1", "box_id": "POP", "ports": 12}],
        "equipment": [{"id": "olt1", "box_id": "POP", "kind": "OLT", "name": "OLT 1", "slots": 1, "ports_per_slot": 16}],
        "patches": [{"id": "pc1", "box_id": "POP", "port_a": "olt1-s1-p1", "port_b": "dio1-p-0"}],
        "splitters": [{"id": "s1", "box_id": "CTO1", "name": "S1", "type": "1:8", "attenuation": 10.5}],
        "fusions": [
            {"id": "fp", "box_id": "POP", "port_a": "f1-fiber-0", "port_b": "dio1-p-0", "loss_db": 0.1},
            {"id": "fc", "box_id": "CTO1", "port_a": "f1-fiber-0", "port_b": "s1-in", "loss_db": 0.1},
        ] + drop_fusions,
    }


@pytest.fixture
def splitter_net(splitter_project):
    return build_snapshot(splitter_project)


@pytest.fixture
def loop_net():
    """X --l1--> Y --l2--> X with both ends fused back onto each other."""
    return build_snapshot({
        "boxes": [{"id": "X", "kind": "CEO"}, {"id": "Y", "kind": "CEO"}],
        "cables": [
            {"id": "l1", "from_box": "X", "to_box": "Y", "fiber_count": 2, "length_m": 100},
            {"id": "l2", "from_box": "Y", "to_box": "X", "fiber_count": 2, "length_m": 100},
        ],
        "fusions": [
            {"id": "fy", "box_id": "Y", "port_a": "l1-fiber-0", "port_b": "l2-fiber-0"},
            {"id": "fx", "box_id": "X", "port_a": "l2-fiber-0", "port_b": "l1-fiber-0"},
        ],
    })
