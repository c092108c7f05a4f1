# fibertrace/simple_scripts/excel_writer.py

import logging

from openpyxl import Workbook
from openpyxl.styles import Alignment, Font, PatternFill
from openpyxl.utils import get_column_letter

import fibertrace.config
from fibertrace.basic.fiber_colors import fiber_num_to_color_label
from fibertrace.basic.log_configs import format_table_lines

logger = logging.getLogger(__name__)

STATUS_FILLS = {
    "OK":       ("008000", "C6EFCE"),
    "MARGINAL": ("9C5700", "FFEB9C"),
    "FAIL":     ("FF0000", "FFC7CE"),
}


def new_workbook():
    wb = Workbook()
    return wb, wb.active


def auto_size(wb):
    for ws in wb.worksheets:
        for col in ws.columns:
            w = max((len(str(c.value)) for c in col if c.value is not None), default=0) + 2
            ws.column_dimensions[get_column_letter(col[0].column)].width = min(w, 80)


def drop_empty_issue_sheets(wb):
    """
    Remove any issue-oriented worksheet that ended up empty (no data rows),
    unless SHOW_ALL_SHEETS is True.

    Data check: any non-empty cell exists at/after row 2 (row 1 holds headers).
    """
    if getattr(fibertrace.config, "SHOW_ALL_SHEETS", False):
        return

    for ws in list(wb.worksheets):
        if "Issue" not in ws.title:
            continue
        has_data = any(
            any(v not in (None, "") for v in row)
            for row in ws.iter_rows(min_row=2, max_row=ws.max_row, values_only=True)
        )
        if not has_data:
            wb.remove(ws)


def _header_row(ws, titles: list[str], row: int = 1):
    for col_idx, title in enumerate(titles, start=1):
        cell = ws.cell(row=row, column=col_idx, value=title)
        cell.font = Font(bold=True)
        cell.alignment = Alignment(horizontal='center')


def _mirror(title: str, headers: list[str], rows: list[list], error_rows: set[int] | None = None):
    """Echo a sheet into the log as an aligned table when LOG_MIRROR_SHEETS is on."""
    if not getattr(fibertrace.config, "LOG_MIRROR_SHEETS", False) or not rows:
        return
    error_rows = error_rows or set()
    lines = format_table_lines(headers, rows, max_col_widths=[40] * len(headers))
    logger.info(f"===== {title} =====")
    logger.info(f"[{title}] {lines[0]}")
    for i, line in enumerate(lines[1:]):
        (logger.error if i in error_rows else logger.info)(f"[{title}] {line}")
    logger.info(f"===== End {title} =====")


def write_network_statistics(wb, stats: dict):
    """
    Inserts a 'Network Statistics' sheet at the front (index=0) and writes:
      • Left block (A:B): component counts, cable footage and issue totals
      • Right block (D:F): cable footage grouped by fiber count
    Formatting:
      • Row 1 merged A1:B1 title "Network Summary"
      • Row 2 column headers
      • Issue rows bolded when count > 0
    """
    ws = wb.create_sheet(title='Network Statistics', index=0)
    ws.freeze_panes = 'A3'

    # 1) merged title + column headers
    ws.merge_cells(start_row=1, start_column=1, end_row=1, end_column=2)
    header = ws.cell(row=1, column=1, value='Network Summary')
    header.alignment = Alignment(horizontal='center')
    header.font = Font(bold=True)
    _header_row(ws, ['Metric', 'Value'], row=2)

    # 2) Left block
    rows = [
        ('CTOs',                   stats.get('cto_count', 0)),
        ('CEOs',                   stats.get('ceo_count', 0)),
        ('POPs',                   stats.get('pop_count', 0)),
        ('Poles',                  stats.get('pole_count', 0)),
        ('Cables',                 stats.get('cable_count', 0)),
        ('Total Cable (m)',        stats.get('total_cable_m', 0)),
        ('Deployed Cable (m)',     stats.get('deployed_cable_m', 0)),
        ('Planned Cable (m)',      stats.get('planned_cable_m', 0)),
        ('Fusions',                stats.get('fusion_count', 0)),
        ('Splitters',              stats.get('splitter_count', 0)),
        ('Patch Cords',            stats.get('patch_count', 0)),
        ('OLTs',                   stats.get('olt_count', 0)),
        ('Trace Issues',           stats.get('trace_issues', 0)),
        ('Power Budget Failures',  stats.get('power_failures', 0)),
    ]
    first_issue_row = 3 + len(rows) - 2
    for idx, (label, val) in enumerate(rows, start=3):
        cell_label = ws.cell(row=idx, column=1, value=label)
        cell_value = ws.cell(row=idx, column=2, value=val)
        cell_value.alignment = Alignment(horizontal='center')
        if idx >= first_issue_row and isinstance(val, int) and val > 0:
            cell_label.font = Font(bold=True)
            cell_value.font = Font(bold=True)

    # 3) Right block: footage by fiber count
    ws.merge_cells(start_row=1, start_column=4, end_row=1, end_column=6)
    title = ws.cell(row=1, column=4, value='Cables by Fiber Count')
    title.font = Font(bold=True)
    title.alignment = Alignment(horizontal='center')
    for col_idx, txt in enumerate(['Fibers', 'Cables', 'Total (m)'], start=4):
        c = ws.cell(row=2, column=col_idx, value=txt)
        c.font = Font(bold=True)
        c.alignment = Alignment(horizontal='center')
    for ridx, grp in enumerate(stats.get('cable_groups', []), start=3):
        ws.cell(row=ridx, column=4, value=grp['fiber_count'])
        ws.cell(row=ridx, column=5, value=grp['count'])
        ws.cell(row=ridx, column=6, value=grp['total_m'])

    _mirror('Network Statistics', ['Metric', 'Value'], [[label, val] for label, val in rows])
    apply_borders(ws)


def write_otdr_sheet(wb, records: list[dict]):
    """
    'OTDR Results': one row per probe.
    Each record: probe_id, start (PortRef), direction, distance_m, result (OtdrResult), loss_db
    """
    ws = wb.create_sheet(title='OTDR Results')
    ws.freeze_panes = 'A2'
    headers = [
        'Probe ID', 'Box', 'Port', 'Direction', 'Distance (m)', 'Result', 'Cable',
        'Event Box', 'Meters Into Cable', 'Latitude', 'Longitude', 'Loss To Point (dB)',
        'Other Legs', 'Message',
    ]
    _header_row(ws, headers)

    rows, errors = [], set()
    for i, rec in enumerate(records):
        res = rec['result']
        lat, lon = (round(res.point[0], 6), round(res.point[1], 6)) if res.point else ('', '')
        others = "; ".join(f"{a.kind.value} {a.cable_id or a.box_id or ''}".strip() for a in res.alternatives)
        row = [
            rec['probe_id'], rec['start'].box_id, rec['start'].port_id, rec['direction'].value,
            rec['distance_m'], res.kind.value, res.cable_id or '', res.box_id or '',
            '' if res.length_left_m is None else round(res.length_left_m, 2),
            lat, lon,
            round(rec.get('loss_db', 0.0), 3), others, res.message,
        ]
        rows.append(row)
        if res.is_error:
            errors.add(i)

    for r, row in enumerate(rows, start=2):
        for c, val in enumerate(row, start=1):
            cell = ws.cell(row=r, column=c, value=val)
            if (r - 2) in errors:
                cell.font = Font(bold=True, color='FF0000')

    _mirror('OTDR Results', headers[:9], [row[:9] for row in rows], errors)
    apply_borders(ws)


def write_vfl_sheet(wb, records: list[dict]):
    """
    'VFL Illumination': lit cables per probe.
    Each record: probe_id, result (VflResult)
    """
    ws = wb.create_sheet(title='VFL Illumination')
    ws.freeze_panes = 'A2'
    headers = ['Probe ID', 'Box', 'Port', 'Lit Cables', 'Cable IDs', 'Branch Ends']
    _header_row(ws, headers)

    rows = []
    for rec in records:
        res = rec['result']
        ends = sorted({t.kind.value for t in res.terminals})
        rows.append([
            rec['probe_id'], res.start.box_id, res.start.port_id, len(res.lit_cable_ids),
            ", ".join(sorted(res.lit_cable_ids)), ", ".join(ends),
        ])
    for r, row in enumerate(rows, start=2):
        for c, val in enumerate(row, start=1):
            ws.cell(row=r, column=c, value=val)

    _mirror('VFL Illumination', headers, rows)
    apply_borders(ws)


def write_power_budget_sheet(wb, budgets: list):
    """'Power Budget': one row per splitter ← OLT path, status cell coloured."""
    ws = wb.create_sheet(title='Power Budget')
    ws.freeze_panes = 'A2'
    headers = [
        'Splitter', 'Box', 'OLT', 'Slot', 'Port', 'OLT Power (dBm)',
        'Total Loss (dB)', 'Final Power (dBm)', 'Status', 'Path',
    ]
    _header_row(ws, headers)

    rows = []
    for b in budgets:
        path = " → ".join(f"{e.kind}:{'+'.join(e.ids)}" for e in b.path)
        final = "NO SIGNAL" if b.source == "NO_SIGNAL" else round(b.final_power_dbm, 2)
        rows.append([
            b.splitter_id, b.box_id, b.olt_id or '', b.slot or '', b.port or '',
            '' if b.olt_power_dbm is None else b.olt_power_dbm,
            round(b.total_loss_db, 2), final, b.status, path,
        ])

    for r, (row, b) in enumerate(zip(rows, budgets), start=2):
        for c, val in enumerate(row, start=1):
            ws.cell(row=r, column=c, value=val)
        font_color, bg_color = STATUS_FILLS[b.status]
        status_cell = ws.cell(row=r, column=9)
        status_cell.font = Font(bold=True, color=font_color)
        status_cell.fill = PatternFill(fill_type='solid', start_color=bg_color)
        status_cell.alignment = Alignment(horizontal='center')

    errors = {i for i, b in enumerate(budgets) if b.status == "FAIL"}
    _mirror('Power Budget', headers[:9], [row[:9] for row in rows], errors)
    apply_borders(ws)


def write_auto_splice_sheet(wb, records: list[dict]):
    """
    'Auto Pass-Through': proposed fusions, with colour names per cable standard.
    Each record: box_id, cable_a (Cable), cable_b (Cable), pairs [SplicePair]
    """
    ws = wb.create_sheet(title='Auto Pass-Through')
    ws.freeze_panes = 'A2'
    headers = ['Box', 'Cable A', 'Tube A', 'Fiber A', 'Cable B', 'Tube B', 'Fiber B']
    _header_row(ws, headers)

    rows = []
    for rec in records:
        ca, cb = rec['cable_a'], rec['cable_b']
        for p in rec['pairs']:
            rows.append([
                rec['box_id'],
                ca.id,
                fiber_num_to_color_label(p.fiber_a.tube_index + 1, ca.color_standard),
                fiber_num_to_color_label(p.fiber_a.fiber_index + 1, ca.color_standard),
                cb.id,
                fiber_num_to_color_label(p.fiber_b.tube_index + 1, cb.color_standard),
                fiber_num_to_color_label(p.fiber_b.fiber_index + 1, cb.color_standard),
            ])
    for r, row in enumerate(rows, start=2):
        for c, val in enumerate(row, start=1):
            ws.cell(row=r, column=c, value=val)

    _mirror('Auto Pass-Through', headers, rows)
    apply_borders(ws)


def write_trace_issues_sheet(wb, issues: list[dict]):
    """
    'Trace Issues': data-integrity and dead-end findings collected while probing.
    Each issue: probe_id, box_id, port_id, issue, detail
    """
    if not issues and not getattr(fibertrace.config, "SHOW_ALL_SHEETS", False):
        return
    ws = wb.create_sheet(title='Trace Issues')
    ws.freeze_panes = 'A2'
    headers = ['Probe ID', 'Box', 'Port', 'Issue', 'Detail']
    _header_row(ws, headers)

    rows = [[i['probe_id'], i.get('box_id') or '', i.get('port_id') or '', i['issue'], i.get('detail', '')] for i in issues]
    for r, row in enumerate(rows, start=2):
        for c, val in enumerate(row, start=1):
            ws.cell(row=r, column=c, value=val)

    _mirror('Trace Issues', headers, rows, set(range(len(rows))))
    apply_borders(ws)


def apply_borders(ws):
    """
    Apply borders to a worksheet so that:
      • Header areas: thick outline; thin inner grid.
      • Data areas: thin outline + thin inner grid.
    'Network Statistics' has two side-by-side blocks; every other sheet is a
    single table with headers on row 1.
    """
    from openpyxl.styles import Border, Side

    thin  = Side(style='thin', color='000000')
    thick = Side(style='thick', color='000000')

    def set_cell_border(cell, left=None, right=None, top=None, bottom=None):
        b = cell.border
        cell.border = Border(
            left=left or b.left, right=right or b.right,
            top=top or b.top, bottom=bottom or b.bottom
        )

    def box_outline(min_row, min_col, max_row, max_col, outline_side):
        for c in range(min_col, max_col + 1):
            set_cell_border(ws.cell(min_row, c), top=outline_side)
            set_cell_border(ws.cell(max_row, c), bottom=outline_side)
        for r in range(min_row, max_row + 1):
            set_cell_border(ws.cell(r, min_col), left=outline_side)
            set_cell_border(ws.cell(r, max_col), right=outline_side)

    def thin_grid(min_row, min_col, max_row, max_col):
        if max_row < min_row or max_col < min_col:
            return
        for r in range(min_row, max_row + 1):
            for c in range(min_col, max_col + 1):
                ws.cell(r, c).border = Border(left=thin, right=thin, top=thin, bottom=thin)

    def last_row_with_data(min_col, max_col, start_row):
        last = 0
        for r in range(start_row, ws.max_row + 1):
            if any(ws.cell(r, c).value not in (None, "") for c in range(min_col, max_col + 1)):
                last = r
        return last

    def style_header_and_data(header_rows, data_start_row, min_col, max_col):
        h_min_row, h_max_row = header_rows
        thin_grid(h_min_row, min_col, h_max_row, max_col)
        box_outline(h_min_row, min_col, h_max_row, max_col, thick)
        d_last = last_row_with_data(min_col, max_col, data_start_row)
        if d_last >= data_start_row:
            thin_grid(data_start_row, min_col, d_last, max_col)
            box_outline(data_start_row, min_col, d_last, max_col, thin)

    if ws.max_row == 0 or ws.max_column == 0:
        return

    if ws.title == 'Network Statistics':
        style_header_and_data((1, 2), 3, 1, 2)
        style_header_and_data((1, 2), 3, 4, 6)
        return

    style_header_and_data((1, 1), 2, 1, ws.max_column)


def save_workbook(wb, path):
    """
    Save the given Workbook to the specified file path.
    """
    wb.save(path)
    logger.info("Workbook written to %s", path)
