"""
Logging utilities for osync
"""
import sys
from datetime import datetime

_verbose = False


def set_verbose(verbose: bool):
    """Set the verbose (debug) flag"""
    global _verbose
    _verbose = verbose


def timestamp() -> str:
    """Local time with UTC offset, e.g. 2025-01-31 14:02:11 +0100"""
    return datetime.now().astimezone().strftime("%Y-%m-%d %H:%M:%S %z")


def _emit(level: str, msg: str, stream=None):
    print(f"[{timestamp()}] [{level}] {msg}", file=stream or sys.stdout, flush=True)


def log(msg: str):
    """Log an informational message with timestamp"""
    _emit("INFO", msg)


def vlog(msg: str):
    """Log a debug message (only if verbose mode is enabled)"""
    if _verbose:
        _emit("DEBUG", msg)


def vlog_list(items, label: str):
    """Dump a collection one item per line in verbose mode."""
    if not _verbose:
        return
    items = list(items)
    _emit("DEBUG", f"{label} ({len(items)})")
    for item in items:
        _emit("DEBUG", f"         {item}")


def vlog_bytes(label: str, value: str):
    """Dump the raw bytes of a path; handy when NFC/NFD forms disagree."""
    if _verbose:
        raw = value.encode("utf-8", "surrogateescape")
        _emit("DEBUG", f"{label} bytes: {raw.hex()}")


def warn(msg: str):
    """Log a warning message to stderr"""
    _emit("WARN", msg, sys.stderr)


def error(msg: str):
    """Log an error message to stderr"""
    _emit("ERROR", msg, sys.stderr)
