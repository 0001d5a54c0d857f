"""
Narrow interface to the local git repository (the change ledger).

All listings use NUL-delimited output so arbitrary bytes in filenames
survive; paths given to git are taken literally, never as pathspec globs.
"""
import subprocess
from pathlib import Path
from typing import Optional

from ..errors import GitError
from ..utils.logging import log, vlog
from ..utils.normalize import decode_path


def parse_status_z(raw: bytes) -> list[tuple[str, str]]:
    """
    Parse `git status --porcelain -z` into (XY, path) pairs.
    Renames and copies are followed by their source path as a separate
    NUL-terminated entry; it is reported with the same XY code.
    """
    entries: list[tuple[str, str]] = []
    fields = raw.split(b"\0")
    i = 0
    while i < len(fields):
        field = fields[i]
        i += 1
        if len(field) < 4 or field[2:3] != b" ":
            continue
        xy = field[:2].decode("ascii", "replace")
        entries.append((xy, decode_path(field[3:])))
        if ("R" in xy or "C" in xy) and i < len(fields) and fields[i]:
            entries.append((xy, decode_path(fields[i])))
            i += 1
    return entries


def _split_z(raw: bytes) -> list[str]:
    return [decode_path(p) for p in raw.split(b"\0") if p]


class GitRepo:
    """Runs `git -C <root> …` for the handful of operations osync needs."""

    def __init__(self, root: Path, git: str = "git"):
        self.root = Path(root)
        self.git = git

    def _run(self, *args: str, check: bool = True, capture: bool = True,
             literal: bool = True) -> subprocess.CompletedProcess:
        cmd = [self.git, "-C", str(self.root)]
        if literal:
            cmd.append("--literal-pathspecs")
        cmd += args
        vlog(f"[git] {' '.join(args)}")
        try:
            proc = subprocess.run(cmd, stdout=subprocess.PIPE if capture else None,
                                  stderr=subprocess.PIPE, check=False)
        except OSError as exc:
            raise GitError(args, -1, str(exc)) from exc
        if check and proc.returncode != 0:
            raise GitError(args, proc.returncode, proc.stderr.decode("utf-8", "replace"))
        return proc

    # ── queries ─────────────────────────────────────────────────────────────

    def is_work_tree(self) -> bool:
        try:
            proc = self._run("rev-parse", "--is-inside-work-tree", check=False)
        except GitError:
            return False
        return proc.returncode == 0 and proc.stdout.strip() == b"true"

    def git_dir(self) -> Path:
        out = self._run("rev-parse", "--absolute-git-dir").stdout
        return Path(out.decode("utf-8", "surrogateescape").strip())

    def ls_files(self) -> list[str]:
        return _split_z(self._run("ls-files", "-z").stdout)

    def ls_deleted(self) -> list[str]:
        return _split_z(self._run("ls-files", "--deleted", "-z").stdout)

    def ls_ignored_tracked(self) -> list[str]:
        """Tracked files matched by .gitignore, info/exclude or the global excludes."""
        return _split_z(self._run("ls-files", "-ci", "--exclude-standard", "-z").stdout)

    def status_entries(self) -> list[tuple[str, str]]:
        # every untracked file on its own line, never a collapsed `dir/`
        return parse_status_z(
            self._run("status", "--porcelain", "-z", "--untracked-files=all").stdout)

    def status_text(self) -> str:
        return self._run("status", "--porcelain").stdout.decode("utf-8", "replace")

    def is_ignored(self, path: str) -> bool:
        # check-ignore rejects all pathspec magic, --literal-pathspecs included
        proc = self._run("check-ignore", "-q", "--", path, check=False, literal=False)
        if proc.returncode not in (0, 1):
            raise GitError(("check-ignore", path), proc.returncode,
                           proc.stderr.decode("utf-8", "replace"))
        return proc.returncode == 0

    def is_tracked(self, path: str) -> bool:
        return self._run("ls-files", "--error-unmatch", "--", path, check=False).returncode == 0

    def has_staged_changes(self) -> bool:
        proc = self._run("diff", "--cached", "--quiet", check=False)
        if proc.returncode not in (0, 1):
            raise GitError(("diff", "--cached", "--quiet"), proc.returncode,
                           proc.stderr.decode("utf-8", "replace"))
        return proc.returncode == 1

    # ── mutations ───────────────────────────────────────────────────────────

    def add(self, path: str):
        # -A also records removals of paths that no longer exist on disk
        self._run("add", "-A", "--", path)

    def untrack(self, path: str) -> bool:
        """Remove path from the index only; returns False if git refused."""
        return self._run("rm", "--cached", "-q", "--", path, check=False).returncode == 0

    def commit(self, message: str):
        out = self._run("commit", "-q", "-m", message).stdout
        log(f"[git] committed: {message}")
        if out.strip():
            vlog(out.decode("utf-8", "replace").rstrip())

    def push(self, remote: Optional[str] = None):
        args = ["push"] + ([remote] if remote else [])
        self._run(*args, capture=False)
        log("[git] pushed")
