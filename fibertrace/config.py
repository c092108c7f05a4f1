# fibertrace/config.py
import logging
import os
import sys
import re

# -----------------------------
# Logging configuration toggles
# -----------------------------
SHOW_ALL_SHEETS = False

# Where to write the log file (relative or absolute path)
LOG_FILE = "fibertrace.log"
WRITE_LOG_FILE = False

# Detail level for log **content** and formatter
# - "DEBUG": verbose with [module:function:lineno] header
# - "INFO":  condensed one-liners (functions will emit summarized messages)
LOG_DETAIL = "INFO"

# Log every hop of every trace branch (very noisy on large networks)
LOG_TRACE_HOPS = False

LOG_MIRROR_SHEETS = True   # master switch enabling mirroring of Excel sheet content to logs

# Legend / Abbreviations header shown once at the start of a run
LOG_SHOW_ABBREV_HEADER = True
LOG_ABBREV_HEADER_LINES = [
    "CTO = Distribution box (splitters/fusions)",
    "CEO/POP = Splice closure / point of presence (fusions, DIO, OLT)",
    "DIO = Patch panel, OLT = Optical line terminal",
    "OTDR = Distance-to-event probe, VFL = Visual fault locator",
    "",
]

# Effective root log level derived from LOG_DETAIL
LOG_LEVEL = logging.DEBUG if str(LOG_DETAIL).upper() == "DEBUG" else logging.INFO


# ---------------------------------
# ANSI-aware formatter for file log
# ---------------------------------
class _StripAnsiFormatter(logging.Formatter):
    """Formatter that strips ANSI escape codes from the final formatted string.

    Using a **formatter** (not a filter) keeps the original LogRecord intact, so
    the console can still render colors while the FileHandler writes clean text.
    """
    _ansi_re = re.compile(r"\x1b\[[0-9;]*m")

    def format(self, record: logging.LogRecord) -> str:
        s = super().format(record)
        return self._ansi_re.sub("", s)


def setup_logging():
    """Configure root logging for both console and (optional) file handlers.

    - Chooses verbose vs. condensed format from LOG_DETAIL.
    - File handler strips ANSI codes; console keeps them.
    - Enables ANSI on Windows terminals via colorama.
    """
    import colorama
    colorama.just_fix_windows_console()

    detail = str(LOG_DETAIL).upper()
    fmt_verbose   = "%(asctime)s %(levelname)-8s [%(name)s:%(funcName)s:%(lineno)d] %(message)s"
    fmt_condensed = "%(asctime)s %(levelname)-8s %(message)s"
    fmt = fmt_verbose if detail == "DEBUG" else fmt_condensed

    # Reset the root logger
    root = logging.getLogger()
    root.setLevel(LOG_LEVEL)
    for h in list(root.handlers):
        root.removeHandler(h)

    # (Optional) File handler: strip ANSI from the final output
    if WRITE_LOG_FILE:
        fh = logging.FileHandler(LOG_FILE, encoding="utf-8")
        fh.setFormatter(_StripAnsiFormatter(fmt))
        root.addHandler(fh)

    # Console handler: keep ANSI (if any)
    sh = logging.StreamHandler()
    sh.setFormatter(logging.Formatter(fmt))
    root.addHandler(sh)


import datetime
import traceback


def write_crash_log(exc: BaseException) -> str | None:
    """
    Write an unhandled exception (with traceback) to a timestamped crash log file.
    Returns the crash file path, or None when it could not be written.
    """
    ts = datetime.datetime.now().strftime("%Y-%m-%d_%H-%M-%S")
    crash_file = os.path.join(os.path.dirname(os.path.abspath(LOG_FILE)), f"crash_{ts}.log")
    try:
        with open(crash_file, "w", encoding="utf-8") as f:
            f.write(f"Unhandled exception at {ts}\n")
            f.write("=" * 80 + "\n")
            traceback.print_exception(type(exc), exc, exc.__traceback__, file=f)
    except OSError as log_err:
        print(f"Failed to write crash log: {log_err}")
        return None
    print(f"⚠ Crash log written to: {crash_file}")
    return crash_file


def _global_excepthook(exc_type, exc_value, exc_traceback):
    # Skip logging for KeyboardInterrupt
    if issubclass(exc_type, KeyboardInterrupt):
        sys.__excepthook__(exc_type, exc_value, exc_traceback)
        return
    write_crash_log(exc_value)
    # Still print to stderr like normal
    sys.__excepthook__(exc_type, exc_value, exc_traceback)


# Install the hook
sys.excepthook = _global_excepthook


# ----------------
# Data directories
# ----------------
# Always reference as: fibertrace.config.DATA_DIR
if getattr(sys, "frozen", False):
    # Running from a bundled executable, data folder sits next to the .exe
    exe_dir = os.path.dirname(sys.executable)
    DATA_DIR = os.path.join(exe_dir, "data")
else:
    # Running from source, data folder lives one level up
    here = os.path.dirname(os.path.abspath(__file__))
    DATA_DIR = os.path.join(here, "..", "data")

DATA_DIR = os.path.abspath(DATA_DIR)

# File patterns looked up inside DATA_DIR by main.py
TOPOLOGY_GLOB    = "*topology*.json"
PROBES_GLOB      = "*probes*.csv"
AUTO_SPLICE_GLOB = "*auto-splice*.csv"

OUTPUT_XLSX = "output/Fiber Trace.xlsx"


# ------------------------
# Tracing engine constants
# ------------------------
# Max steps one branch may take before reporting MaxDepthReached
MAX_DEPTH = 500
# Global budget across all branches of a single trace (fan-out inside loops)
MAX_TOTAL_STEPS = 20000

# Distances within this many metres of a cable end count as "at the end"
OTDR_EPSILON_M = 0.01

# Optical loss defaults
DEFAULT_CABLE_DB_PER_KM   = 0.3
DEFAULT_FUSION_LOSS_DB    = 0.0    # fusion with no catalog entry
DEFAULT_CONNECTOR_LOSS_DB = 0.5    # DIO patch connector
DEFAULT_SPLITTER_LOSS_DB  = 0.0    # splitter with no catalog entry

# Power budget (OLT -> splitter)
DEFAULT_OLT_POWER_DBM  = 3.0
DEFAULT_PORTS_PER_SLOT = 16
POWER_MARGINAL_DBM     = -25.0   # below this: MARGINAL
POWER_FAIL_DBM         = -28.0   # below this: FAIL

# Fiber colour code applied when a cable does not name one ("ABNT" or "EIA598")
DEFAULT_COLOR_STANDARD = "ABNT"

# How the auto-splice matcher pairs fibers of two cables whose tube layouts differ
# - "color":      same tube colour + same fiber colour (first free match wins)
# - "sequential": global fiber index 1:1 up to the smaller fiber count
AUTO_SPLICE_FALLBACK = "color"
