"""
Content transfer through rsync (push: local→remote, pull: remote→local)

rsync does the copying; this module builds its command line, runs it once
per direction with "only overwrite if the source is newer" semantics, and
reads the per-file log rsync writes so the touched paths can be staged.
"""
import os
import re
import subprocess
import tempfile
from typing import Callable, Optional

from .. import config as _cfg
from ..errors import TransferError
from ..utils.ignore_patterns import IgnoreSet
from ..utils.logging import log, vlog, warn

PUSH = "push"
PULL = "pull"

# rsync exit 24: some source files vanished mid-transfer (someone deleted them)
RSYNC_VANISHED = 24

_LOG_PREFIX_RE = re.compile(r"^\d{4}/\d{2}/\d{2}\s\d{2}:\d{2}:\d{2}\s")
_SUMMARY_RE = re.compile(
    r"^(sent\s|sending incremental file list|receiving file list|"
    r"building file list|created directory|total size is|total transferred file size|"
    # diagnostics rsync also writes to the log file
    r"rsync(:| warning:| error:)|file has vanished:|IO error encountered|cannot delete non-empty directory)"
)


def parse_log(text: str, ignore: Optional[IgnoreSet] = None) -> list[str]:
    """
    Extract the relative paths from an rsync --log-file written with
    --log-file-format='%n%L'. Timestamp/pid prefixes, summary and
    diagnostic lines are dropped; symlink targets (` -> target`) are cut off.
    Directory entries (`name/`) are dropped too: staging a directory would
    stage everything underneath it, and its files are logged on their own.
    """
    paths: list[str] = []
    seen = set()
    for line in text.splitlines():
        line = line.replace("\r", "")
        if not line:
            continue
        if _LOG_PREFIX_RE.match(line):
            # "YYYY/MM/DD HH:MM:SS [PID] name"
            line = line.split(" ", 2)[2] if line.count(" ") >= 2 else ""
            if "] " in line:
                line = line.split("] ", 1)[1]
        elif "] " in line:
            line = line.split("] ", 1)[1]
        if _SUMMARY_RE.match(line):
            continue
        path = line.split(" -> ", 1)[0]
        while path.startswith("./"):
            path = path[2:]
        if not path or path.endswith("/") or path == ".":
            continue
        if ignore is not None and ignore.contains(path):
            continue
        if path not in seen:
            seen.add(path)
            paths.append(path)
    return paths


class TransferDriver:
    """Wraps the rsync binary for the two sync directions and ledger pushes."""

    def __init__(self, config: _cfg.RunConfig,
                 runner: Callable[..., subprocess.CompletedProcess] = subprocess.run):
        self.config = config
        self.runner = runner

    # ── command building ────────────────────────────────────────────────────

    def ssh_command(self) -> str:
        parts = ["ssh", "-o", "BatchMode=yes"]
        if self.config.ssh_port:
            parts += ["-p", str(self.config.ssh_port)]
        if self.config.ssh_user:
            parts += ["-l", self.config.ssh_user]
        if self.config.ssh_key:
            parts += ["-i", self.config.ssh_key]
        return " ".join(parts)

    def remote_spec(self, rel: str = "") -> str:
        base = self.config.remote_src
        return f"{self.config.remote_host}:{base}{rel}"

    def build_sync_command(self, direction: str, log_file: str) -> list[str]:
        if direction == PUSH:
            src, dst = self.config.local_src, self.remote_spec()
        elif direction == PULL:
            src, dst = self.remote_spec(), self.config.local_src
        else:
            raise ValueError(f"unknown transfer direction: {direction!r}")

        cmd = [self.config.rsync, "-rltivPh", "--protect-args", "--update",
               f"--partial-dir={_cfg.PARTIAL_DIR}",
               "-e", self.ssh_command()]
        cmd += self.config.ignore.rsync_excludes()
        # the ledger is replicated by DirectoryLedger, never by the bulk copy
        cmd.append(f"--exclude=/{_cfg.LEDGER_FILENAME}")
        cmd += ["--itemize-changes", "--out-format=%i %n%L",
                f"--log-file={log_file}", "--log-file-format=%n%L"]
        if self.config.dry_run:
            cmd.append("--dry-run")
        cmd += [src, dst]
        return cmd

    def build_push_file_command(self, src: str, remote_rel: str) -> list[str]:
        cmd = [self.config.rsync, "-aivPh", "--protect-args", "-e", self.ssh_command()]
        if self.config.dry_run:
            cmd.append("--dry-run")
        cmd += ["--", src, self.remote_spec(remote_rel)]
        return cmd

    # ── execution ───────────────────────────────────────────────────────────

    def _run(self, cmd: list[str], what: str) -> int:
        vlog(f"[rsync] {' '.join(cmd)}")
        try:
            proc = self.runner(cmd, check=False)
        except OSError as exc:
            raise TransferError(f"{what}: could not run {cmd[0]}: {exc}") from exc
        rc = proc.returncode
        if rc == RSYNC_VANISHED:
            warn(f"{what}: some files vanished during transfer (rsync exit {rc})")
        elif rc != 0:
            raise TransferError(f"{what}: rsync exited {rc}")
        return rc

    def sync(self, direction: str) -> set[str]:
        """
        Copy newer files in one direction. Returns the touched paths; in
        dry-run mode the paths are only reported and an empty set is returned.
        """
        arrow = "local → remote" if direction == PUSH else "remote → local"
        log(f"[rsync] {arrow}{' (dry-run)' if self.config.dry_run else ''}")

        fd, log_file = tempfile.mkstemp(prefix="osync-rsync-", suffix=".log")
        os.close(fd)
        try:
            self._run(self.build_sync_command(direction, log_file), f"rsync {direction}")
            with open(log_file, "r", encoding="utf-8", errors="surrogateescape") as f:
                touched = parse_log(f.read(), self.config.ignore)
        finally:
            os.unlink(log_file)

        if self.config.dry_run:
            log(f"[rsync] {len(touched)} path(s) would be touched ({direction})")
            return set()
        log(f"[rsync] {len(touched)} path(s) touched ({direction})")
        return set(touched)

    def push_file(self, src: str, remote_rel: str):
        """Copy a single local file to <remote_dir>/<remote_rel>."""
        self._run(self.build_push_file_command(src, remote_rel), f"push {remote_rel}")
