"""
Retry decorator for network operations
"""
import functools
import socket
import time

import paramiko

from .logging import log, warn
from .. import config as _cfg

# Only transport-level failures are retried; a remote command exiting
# non-zero is a result, not a transient error.
TRANSIENT_ERRORS = (paramiko.SSHException, socket.timeout, EOFError, ConnectionError)


def retried(fn):
    """Decorator: retry fn up to RETRY_MAX times with exponential back-off."""

    @functools.wraps(fn)
    def wrapper(*args, **kwargs):
        delay = _cfg.RETRY_BASE_DELAY
        for attempt in range(1, _cfg.RETRY_MAX + 1):
            try:
                return fn(*args, **kwargs)
            except TRANSIENT_ERRORS as exc:
                if attempt == _cfg.RETRY_MAX:
                    raise
                warn(f"{fn.__name__} failed (attempt {attempt}/{_cfg.RETRY_MAX}): {exc}")
                log(f"  retrying in {delay:.0f}s …")
                time.sleep(delay)
                delay = min(delay * 2, 60)
                # Drop the dead connection so the next attempt reconnects
                # (works for bound methods of SSHManager)
                if args and hasattr(args[0], "reset"):
                    args[0].reset()

    return wrapper
