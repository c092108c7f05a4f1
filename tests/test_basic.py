import logging

import pytest

import fibertrace.config
from fibertrace.basic import log_configs
from fibertrace.basic.distance_utils import haversine, point_along_polyline, polyline_length_m
from fibertrace.basic.fiber_colors import color_hex, fiber_num_to_color_label, palette, tube_and_fiber_colors
from fibertrace.basic.topology import Cable, ConnectivityMismatchError, FiberRef


def test_haversine_one_degree_of_latitude():
    assert haversine(0, 0, 1, 0) == pytest.approx(111194.93, abs=0.01)
    assert haversine(10, 20, 10, 20) == 0


def test_polyline_length_sums_segments():
    assert polyline_length_m([(0, 0), (0.5, 0), (1, 0)]) == pytest.approx(haversine(0, 0, 1, 0))
    assert polyline_length_m([(0, 0)]) == 0
    assert polyline_length_m([]) == 0


def test_point_along_polyline():
    pts = [(0.0, 0.0), (1.0, 0.0), (1.0, 0.0), (3.0, 0.0)]
    assert point_along_polyline(pts, 0.5) == pytest.approx((1.5, 0.0))
    assert point_along_polyline(pts, 0) == (0.0, 0.0)
    assert point_along_polyline(pts, 2) == pytest.approx((3.0, 0.0))
    assert point_along_polyline([], 0.5) is None
    assert point_along_polyline([(4.0, 5.0)], 0.5) == (4.0, 5.0)
    assert point_along_polyline([(4.0, 5.0), (4.0, 5.0)], 0.5) == (4.0, 5.0)


def test_colour_palettes():
    assert palette("ABNT")[0] == "Green"
    assert palette("eia-598")[0] == "Blue"
    assert fiber_num_to_color_label(12) == "12 - Aqua"
    assert fiber_num_to_color_label(13) == "1 - Blue"
    assert fiber_num_to_color_label(2, "ABNT") == "2 - Yellow"
    assert tube_and_fiber_colors(1, 13, "ABNT") == ("Yellow", "Yellow")
    with pytest.raises(KeyError):
        palette("nope")


def test_swatches_are_shared_across_standards():
    assert color_hex("Gray") == color_hex("Slate")
    assert color_hex("Pink") == color_hex("Rose")
    assert {color_hex(c) for c in palette("ABNT")} == {color_hex(c) for c in palette("EIA598")}
    assert len({color_hex(c) for c in palette("ABNT")}) == 12


def test_cable_fiber_numbering():
    cable = Cable("c", fiber_count=36, length_m=1000, from_box_id="A", to_box_id="B", tube_count=6)
    assert cable.fibers_per_tube == 6
    assert cable.fiber(13) == FiberRef("c", 2, 1)
    assert cable.global_index(FiberRef("c", 2, 1)) == 13
    assert cable.port_id(13) == "c-fiber-13"
    assert cable.traverse_from("B") == ("A", True)
    assert cable.loss_for(500) == pytest.approx(0.15)
    with pytest.raises(ConnectivityMismatchError):
        cable.traverse_from("Z")


def test_format_table_lines_aligns_and_truncates():
    lines = log_configs.format_table_lines(["ID", "Name"], [["1", "short"], ["22", "a much longer name"]],
                                           max_col_widths=[None, 8])
    assert lines[0] == "ID | Name    "
    assert lines[1] == "1  | short   "
    assert lines[2] == "22 | a much …"


def test_abbrev_header_printed_once(monkeypatch, caplog):
    monkeypatch.setattr(log_configs, "_printed_once", False)
    monkeypatch.setattr(fibertrace.config, "LOG_ABBREV_HEADER_LINES", ["A = a", "", "B = b"])
    with caplog.at_level(logging.INFO):
        log_configs.log_abbrev_header()
        log_configs.log_abbrev_header()
    assert [r.message for r in caplog.records].count("A = a") == 1
    assert "" not in [r.message for r in caplog.records]


def test_issue_header_logs_errors(caplog):
    with caplog.at_level(logging.ERROR):
        log_configs.log_issue_header("[Trace Issues] test", ["p1: NOT_SPLICED"])
        log_configs.log_issue_header("[Trace Issues] empty", [])
    messages = [r.message for r in caplog.records]
    assert messages == ["==== [Trace Issues] test (1) ====", "p1: NOT_SPLICED", "==== End [Trace Issues] test ===="]
    assert all(r.levelno == logging.ERROR for r in caplog.records)


def test_emitter_follows_log_detail(monkeypatch):
    logger = logging.getLogger("fibertrace.test")
    monkeypatch.setattr(fibertrace.config, "LOG_DETAIL", "DEBUG")
    assert log_configs.emit_for(logger) == logger.debug
    monkeypatch.setattr(fibertrace.config, "LOG_DETAIL", "INFO")
    assert log_configs.emit_for(logger) == logger.info


def test_setup_logging_applies_log_level(monkeypatch):
    root = logging.getLogger()
    saved_level, saved_handlers = root.level, list(root.handlers)
    monkeypatch.setattr(fibertrace.config, "LOG_LEVEL", logging.WARNING)
    monkeypatch.setattr(fibertrace.config, "WRITE_LOG_FILE", False)
    try:
        fibertrace.config.setup_logging()
        assert root.level == logging.WARNING
        assert len(root.handlers) == 1
    finally:
        for h in list(root.handlers):
            root.removeHandler(h)
        for h in saved_handlers:
            root.addHandler(h)
        root.setLevel(saved_level)
