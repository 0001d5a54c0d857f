"""
Configuration constants and run configuration for osync
"""
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

from .errors import UsageError
from .utils.ignore_patterns import IgnoreSet
from .utils.normalize import NFCNormalizer, Normalizer, NullNormalizer

# ══════════════════════════════════════════════════════════════════════════════
#  CONSTANTS
# ══════════════════════════════════════════════════════════════════════════════

# Persisted directory ledger, one path per line, at the root of both trees
LEDGER_FILENAME = ".vault-directories"
# Advisory run lock, kept inside the git dir so it is never synced
LOCK_FILENAME = "osync.lock"
# rsync quarantine for partially transferred files (relative to the dest dir)
PARTIAL_DIR = ".rsync-partial"

# Retry settings for SSH transport calls
RETRY_MAX = 3
RETRY_BASE_DELAY = 2.0  # seconds; doubles each attempt

# Reachability check uses a short timeout; regular commands get longer
SSH_CONNECT_TIMEOUT = 5
SSH_COMMAND_TIMEOUT = 300

# Upper bound on deletion passes in a real run
MAX_PASSES = 10

RSYNC_BINARY = "rsync"

DEBUG_ENV = "SYNC_DEBUG"


# ══════════════════════════════════════════════════════════════════════════════
#  RUN CONFIG  ── immutable, passed to every component
# ══════════════════════════════════════════════════════════════════════════════

@dataclass(frozen=True)
class RunConfig:
    local_root: Path
    remote_host: str
    remote_dir: str
    dry_run: bool = True
    seed: bool = False
    ignore: IgnoreSet = field(default_factory=IgnoreSet)
    verbose: bool = False
    max_passes: int = MAX_PASSES
    rsync: str = RSYNC_BINARY
    ssh_user: Optional[str] = None
    ssh_port: Optional[int] = None
    ssh_key: Optional[str] = None
    normalizer: Normalizer = field(default_factory=NFCNormalizer)

    @property
    def mode_label(self) -> str:
        return "DRY-RUN" if self.dry_run else "REAL RUN"

    @property
    def ledger_path(self) -> Path:
        return self.local_root / LEDGER_FILENAME

    @property
    def local_src(self) -> str:
        """Local root with exactly one trailing slash (rsync: copy contents)."""
        return str(self.local_root).rstrip("/") + "/"

    @property
    def remote_src(self) -> str:
        return self.remote_dir.rstrip("/") + "/"


# ══════════════════════════════════════════════════════════════════════════════
#  GLOBAL CONFIG FILE  ── $XDG_CONFIG_HOME/osync/config.yaml
# ══════════════════════════════════════════════════════════════════════════════

def get_global_config_dir() -> Path:
    """Return the global config directory for osync."""
    xdg = os.environ.get("XDG_CONFIG_HOME", "")
    if xdg:
        return Path(xdg) / "osync"
    return Path.home() / ".config" / "osync"


def load_global_config(path: Optional[Path] = None) -> dict:
    """
    Load the YAML config file. A missing default file yields {}; an explicitly
    requested file that is missing or malformed raises ValueError.
    """
    import yaml

    explicit = path is not None
    cfg_path = path or get_global_config_dir() / "config.yaml"
    if not cfg_path.is_file():
        if explicit:
            raise ValueError(f"config file not found: {cfg_path}")
        return {}
    try:
        with cfg_path.open("r", encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}
    except yaml.YAMLError as exc:
        raise ValueError(f"invalid config file {cfg_path}: {exc}") from exc
    if not isinstance(data, dict):
        raise ValueError(f"invalid config file {cfg_path}: expected a mapping")
    return data


def get_host_settings(data: dict, host: str) -> dict:
    """
    Flatten `defaults` and the `hosts.<host>` block of a config dict.
    Host-specific keys win.
    """
    merged = dict(data.get("defaults") or {})
    hosts = data.get("hosts") or {}
    merged.update(hosts.get(host) or {})
    return merged


def _int_setting(settings: dict, key: str, default=None, minimum=None):
    value = settings.get(key)
    if value is None or value == "":
        return default
    try:
        number = int(value)
    except (TypeError, ValueError):
        raise UsageError(f"{key} must be an integer, got {value!r}") from None
    if minimum is not None and number < minimum:
        raise UsageError(f"{key} must be at least {minimum}, got {number}")
    return number


def _truthy(value) -> bool:
    if isinstance(value, str):
        return value.strip().lower() in ("1", "true", "yes", "on")
    return bool(value)


def build_run_config(args, settings: Optional[dict] = None) -> RunConfig:
    """
    Merge parsed CLI arguments with file settings into a RunConfig.
    Ignore directories from both sources are combined; CLI values are
    validated by IgnoreSet just like file values.
    """
    settings = settings or {}

    ignore = IgnoreSet()
    for d in settings.get("ignore") or []:
        ignore.add(str(d))
    for d in args.ignore or []:
        ignore.add(d)

    verbose = bool(args.verbose) or _truthy(settings.get("debug", False)) \
        or _truthy(os.environ.get(DEBUG_ENV, ""))

    max_passes = args.max_passes or _int_setting(settings, "max_passes", MAX_PASSES, minimum=1)
    normalizer: Normalizer = NFCNormalizer()
    if not _truthy(settings.get("normalize_unicode", True)):
        normalizer = NullNormalizer()

    return RunConfig(
        local_root=Path(args.local_path).expanduser(),
        remote_host=args.remote_host,
        remote_dir=args.remote_dir,
        dry_run=not args.realrun,
        seed=bool(args.seed),
        ignore=ignore,
        verbose=verbose,
        max_passes=max_passes,
        rsync=str(settings.get("rsync", RSYNC_BINARY)),
        ssh_user=settings.get("ssh_user"),
        ssh_port=_int_setting(settings, "ssh_port", minimum=1),
        ssh_key=settings.get("ssh_key"),
        normalizer=normalizer,
    )
