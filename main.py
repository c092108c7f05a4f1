# main.py
import glob
import logging
import os
import re
import sys
from datetime import datetime

import pandas as pd

import fibertrace.config
from fibertrace.basic.log_configs import log_abbrev_header, log_issue_header
from fibertrace.basic.topology import Direction, PortRef
from fibertrace.hard_scripts.otdr import OtdrKind, trace_otdr
from fibertrace.hard_scripts.path_tracer import TerminalKind
from fibertrace.simple_scripts.attenuation import compute_attenuation, compute_power_budget
from fibertrace.simple_scripts.auto_splice import AutoSpliceError, propose_auto_splice, shared_box
from fibertrace.simple_scripts.excel_writer import (
    auto_size,
    drop_empty_issue_sheets,
    new_workbook,
    save_workbook,
    write_auto_splice_sheet,
    write_network_statistics,
    write_otdr_sheet,
    write_power_budget_sheet,
    write_trace_issues_sheet,
    write_vfl_sheet,
)
from fibertrace.simple_scripts.network_statistics import collect_network_statistics
from fibertrace.simple_scripts.snapshot_loader import find_topology_file, load_snapshot
from fibertrace.simple_scripts.vfl import illuminate

logger = logging.getLogger(__name__)

PROBE_COLUMNS = ['Probe ID', 'Box ID', 'Port ID', 'Direction', 'Distance (m)']
AUTO_SPLICE_COLUMNS = ['Cable A', 'Cable B', 'Box ID']


def find_csv(pattern: str):
    """Return the first CSV in DATA_DIR matching pattern, or None."""
    files = sorted(glob.glob(os.path.join(fibertrace.config.DATA_DIR, pattern)))
    return files[0] if files else None


def read_csv(path: str | None, columns: list[str]) -> pd.DataFrame:
    """All-string frame with the given columns; empty frame when path is None."""
    if not path:
        return pd.DataFrame(columns=columns)
    return pd.read_csv(path, dtype=str, usecols=columns).fillna('')[columns]


def run_probes(snapshot, probes: pd.DataFrame):
    """
    Run every probe row:
      • Distance filled → OTDR + attenuation up to that distance
      • Distance blank  → VFL illumination (both sides of the port unless a Direction is given)
      • Unreadable Direction / Distance → INVALID_PROBE issue, row skipped
    Returns (otdr_records, vfl_records, issues).
    """
    otdr_records, vfl_records, issues = [], [], []

    for row in probes.itertuples(index=False):
        probe_id, box_id, port_id, direction_raw, distance_raw = (str(v).strip() for v in row)
        start = PortRef(box_id, port_id)
        try:
            direction = Direction(direction_raw.upper()) if direction_raw else None
            distance = float(distance_raw) if distance_raw else None
            if distance is not None and not distance >= 0:
                raise ValueError(f"Distance must be >= 0, got {distance_raw!r}")
        except ValueError as e:
            logger.warning("Skipping probe %s: %s", probe_id, e)
            issues.append({
                'probe_id': probe_id, 'box_id': box_id, 'port_id': port_id,
                'issue': 'INVALID_PROBE', 'detail': str(e),
            })
            continue

        if distance is not None:
            direction = direction or Direction.ALONG
            res = trace_otdr(snapshot, start, direction, distance)
            loss = compute_attenuation(snapshot, start, direction, up_to_distance_m=distance)
            otdr_records.append({
                'probe_id': probe_id, 'start': start, 'direction': direction,
                'distance_m': distance, 'result': res, 'loss_db': loss,
            })
            if res.is_error or res.kind == OtdrKind.MAX_DEPTH_REACHED:
                issues.append({
                    'probe_id': probe_id, 'box_id': res.box_id or box_id, 'port_id': port_id,
                    'issue': res.kind.value, 'detail': res.message,
                })
        else:
            res = illuminate(snapshot, start, direction)
            vfl_records.append({'probe_id': probe_id, 'result': res})
            for t in res.terminals:
                if t.is_error or t.kind == TerminalKind.MAX_DEPTH_REACHED:
                    issues.append({
                        'probe_id': probe_id, 'box_id': t.box_id, 'port_id': t.port_id,
                        'issue': t.kind.value, 'detail': t.message,
                    })

    return otdr_records, vfl_records, issues


def run_auto_splice(snapshot, requests: pd.DataFrame, issues: list):
    records = []
    for row in requests.itertuples(index=False):
        cable_a, cable_b, box_id = (str(v).strip() for v in row)
        try:
            pairs = propose_auto_splice(snapshot, cable_a, cable_b, box_id or None)
        except AutoSpliceError as e:
            issues.append({'probe_id': f"{cable_a}↔{cable_b}", 'box_id': box_id, 'issue': 'AUTO_SPLICE', 'detail': str(e)})
            continue
        ca, cb = snapshot.cable(cable_a), snapshot.cable(cable_b)
        records.append({'box_id': shared_box(ca, cb, box_id or None), 'cable_a': ca, 'cable_b': cb, 'pairs': pairs})
    return records


def main(data_dir=None, out_path=None):
    """
    Trace every probe in DATA_DIR and write an Excel workbook whose filename includes a timestamp.
    The log file name matches the Excel base name ('.log' instead of '.xlsx').
    """
    # 1) DATA_DIR for this run
    if data_dir:
        fibertrace.config.DATA_DIR = data_dir

    # 2) Output folder (directory given, or parent of a file path, or OUTPUT_XLSX's folder)
    if out_path:
        out_dir = out_path if os.path.isdir(out_path) else (os.path.dirname(out_path) or os.getcwd())
    else:
        out_dir = os.path.dirname(fibertrace.config.OUTPUT_XLSX) or os.getcwd()
    os.makedirs(out_dir, exist_ok=True)

    # 3) Timestamped base name from the topology file
    topo_path = find_topology_file()
    project = os.path.splitext(os.path.basename(topo_path))[0] if topo_path else "output"
    ts = datetime.now().strftime("%Y-%m-%d_%H-%M-%S")
    base = re.sub(r'[<>:"/\\|?*]', '_', f"{project} Fiber Trace - {ts}")

    # 4) Final file paths and logging to the matching .log
    xlsx_path = os.path.join(out_dir, f"{base}.xlsx")
    fibertrace.config.LOG_FILE = os.path.join(out_dir, f"{base}.log")
    fibertrace.config.setup_logging()
    log_abbrev_header(force=True)

    logger.info("▶ DATA_DIR:   %s", fibertrace.config.DATA_DIR)
    logger.info("▶ OUT_DIR:    %s", out_dir)
    logger.info("▶ RUN BASE:   %s", base)

    try:
        # 1) snapshot + inputs
        snapshot = load_snapshot(topo_path)
        probes = read_csv(find_csv(fibertrace.config.PROBES_GLOB), PROBE_COLUMNS)
        splice_requests = read_csv(find_csv(fibertrace.config.AUTO_SPLICE_GLOB), AUTO_SPLICE_COLUMNS)

        # 2) engine work
        otdr_records, vfl_records, issues = run_probes(snapshot, probes)
        auto_records = run_auto_splice(snapshot, splice_requests, issues)
        budgets = [b for spl_id in sorted(snapshot.splitters) for b in compute_power_budget(snapshot, spl_id)]

        # 3) workbook
        wb, default = new_workbook()
        stats = collect_network_statistics(snapshot)
        stats['trace_issues'] = len(issues)
        stats['power_failures'] = sum(1 for b in budgets if b.status == "FAIL")
        write_network_statistics(wb, stats)

        if fibertrace.config.SHOW_ALL_SHEETS or otdr_records:
            write_otdr_sheet(wb, otdr_records)
        if fibertrace.config.SHOW_ALL_SHEETS or vfl_records:
            write_vfl_sheet(wb, vfl_records)
        if fibertrace.config.SHOW_ALL_SHEETS or budgets:
            write_power_budget_sheet(wb, budgets)
        if fibertrace.config.SHOW_ALL_SHEETS or auto_records:
            write_auto_splice_sheet(wb, auto_records)
        write_trace_issues_sheet(wb, issues)

        log_issue_header(
            "[Trace Issues] Please check splicing configuration",
            [f"{i['probe_id']}: {i['issue']} at {i.get('box_id') or '?'} ({i.get('detail', '')})" for i in issues],
            logger,
        )

        # Remove the empty default sheet, autosize and save
        if default.max_row == 1 and default.max_column == 1 and default['A1'].value is None:
            wb.remove(default)
        auto_size(wb)
        drop_empty_issue_sheets(wb)
        save_workbook(wb, xlsx_path)
        return xlsx_path

    except Exception as e:
        logger.critical("Unhandled exception in main(): %s", e, exc_info=True)
        fibertrace.config.write_crash_log(e)
        raise


if __name__ == "__main__":
    main(*sys.argv[1:3])
