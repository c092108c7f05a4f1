# fibertrace/basic/log_configs.py
import logging
import re

import fibertrace.config

# Prevent duplicate prints across a single run
_printed_once = False

_ANSI_RE = re.compile(r"\x1b\[[0-9;]*m")


def emit_for(logger: logging.Logger):
    """
    Return the level-aware emitter for a module logger:
    logger.debug when LOG_DETAIL == "DEBUG", else logger.info.
    """
    detail = str(getattr(fibertrace.config, "LOG_DETAIL", "INFO")).upper()
    return logger.debug if detail == "DEBUG" else logger.info


def log_abbrev_header(force: bool = False, logger: logging.Logger | None = None) -> None:
    """
    Logs a small Legend / Abbreviations header (up to 5 lines) once per run.
    Controlled by fibertrace.config:
      - LOG_SHOW_ABBREV_HEADER: bool
      - LOG_ABBREV_HEADER_LINES: list[str]  (only first 5 are printed, blanks skipped)
    """
    global _printed_once
    if logger is None:
        logger = logging.getLogger(__name__)

    show = bool(getattr(fibertrace.config, "LOG_SHOW_ABBREV_HEADER", False))
    lines = [ln for ln in list(getattr(fibertrace.config, "LOG_ABBREV_HEADER_LINES", []))[:5] if ln]

    if not show or not lines:
        return
    if _printed_once and not force:
        return

    emit = emit_for(logger)
    emit("==== Legend / Abbreviations ====")
    for line in lines:
        emit(line)
    emit("==== End Legend ====")

    _printed_once = True


def log_issue_header(title: str, lines: list[str], logger: logging.Logger | None = None) -> None:
    """
    Print a header block that summarizes issue lines again at the end of a pass.
    - 'title' becomes the banner (e.g., "[Trace Issues] Not Spliced")
    - 'lines' are preformatted single-line strings
    """
    if logger is None:
        logger = logging.getLogger(__name__)
    if not lines:
        return

    logger.error(f"==== {title} ({len(lines)}) ====")
    for ln in lines:
        logger.error(ln if ln is not None else "")
    logger.error(f"==== End {title} ====")


def format_table_lines(headers: list[str], rows: list[list], sep: str = " | ", max_col_widths: list[int] | None = None) -> list[str]:
    """
    Return aligned text lines for a simple table:
      • headers: column titles
      • rows:    list of rows, each a list of cell values
      • sep:     column separator
      • max_col_widths: optional per-column max widths (truncate with …)

    ANSI codes are stripped before measuring so things align in the file log.
    """
    def vis(s) -> str:
        return _ANSI_RE.sub("", "" if s is None else str(s))

    cols = len(headers)
    widths = [len(vis(h)) for h in headers]
    for row in rows:
        for i in range(cols):
            widths[i] = max(widths[i], len(vis(row[i] if i < len(row) else "")))

    if max_col_widths:
        widths = [
            min(widths[i], max_col_widths[i]) if i < len(max_col_widths) and max_col_widths[i] else widths[i]
            for i in range(cols)
        ]

    def fit(cell, w: int) -> str:
        raw = vis(cell)
        if len(raw) <= w:
            return raw.ljust(w)
        if w <= 1:
            return "…"[:w]
        return raw[:w - 1] + "…"

    lines = [sep.join(fit(h, widths[i]) for i, h in enumerate(headers))]
    for row in rows:
        lines.append(sep.join(fit(row[i] if i < len(row) else "", widths[i]) for i in range(cols)))
    return lines
