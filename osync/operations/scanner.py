"""
Inventory collection: one consistent snapshot of both trees per pass.
"""
import os
import shlex
from dataclasses import dataclass, field
from pathlib import Path
from typing import Iterable, Optional

import paramiko

from .. import config as _cfg
from ..core.git_repo import GitRepo
from ..core.ssh_manager import SSHManager
from ..errors import CollectionError, GitError
from ..utils.file_utils import dirs_with_files, is_bare_path, strip_dot
from ..utils.ignore_patterns import IgnoreSet
from ..utils.logging import vlog, vlog_list
from ..utils.normalize import Normalizer, decode_path


@dataclass(frozen=True)
class Snapshot:
    """
    Sets observed in a single pass. Never mixed with sets of another pass.

    tracked_files        paths git knows about (may be gone from disk)
    local_deleted_files  tracked paths missing from the local disk
    local_files/dirs     on-disk local entries (ignores pruned)
    remote_files/dirs    on-disk remote entries (ignores pruned)

    Every set holds normalized names. local_names / remote_names map a
    normalized name back to the bytes actually found on that side (git's
    listings count as local); deletions and staging must use those.
    """
    tracked_files: frozenset
    local_deleted_files: frozenset
    local_files: frozenset
    local_dirs: frozenset
    remote_files: frozenset
    remote_dirs: frozenset
    remote_deleted_files: frozenset
    local_dir_has_files: frozenset
    remote_dir_has_files: frozenset
    local_names: dict = field(default_factory=dict, compare=False)
    remote_names: dict = field(default_factory=dict, compare=False)

    @property
    def all_dirs(self) -> frozenset:
        return self.local_dirs | self.remote_dirs

    def local_name(self, path: str) -> str:
        return self.local_names.get(path, path)

    def remote_name(self, path: str) -> str:
        return self.remote_names.get(path, path)


def is_reserved(path: str) -> bool:
    """The root ledger file and rsync's per-directory partial dirs."""
    return path == _cfg.LEDGER_FILENAME or f"/{_cfg.PARTIAL_DIR}/" in f"/{path}/"


def clean_paths(raw: Iterable[str], normalizer: Normalizer, ignore: IgnoreSet,
                names: Optional[dict] = None) -> frozenset:
    """
    Strip `./`, drop `.`/empty, normalize, drop reserved and ignored paths.
    If names is given, record normalized -> on-disk spelling in it.
    """
    result = set()
    for raw_path in raw:
        raw_path = strip_dot(raw_path)
        if not is_bare_path(raw_path):
            continue
        p = normalizer(raw_path)
        if is_reserved(p) or ignore.contains(p):
            continue
        result.add(p)
        if names is not None and p != raw_path:
            names.setdefault(p, raw_path)
    return frozenset(result)


def build_snapshot(tracked: Iterable[str], deleted: Iterable[str],
                   local_files: Iterable[str], local_dirs: Iterable[str],
                   remote_files: Iterable[str], remote_dirs: Iterable[str],
                   normalizer: Normalizer, ignore: IgnoreSet) -> Snapshot:
    """Turn raw listings into a Snapshot. Pure; no I/O."""
    local_names: dict = {}
    remote_names: dict = {}
    # disk spellings first: they are what os.remove needs
    local_files_s = clean_paths(local_files, normalizer, ignore, local_names)
    tracked_s = clean_paths(tracked, normalizer, ignore, local_names)
    remote_files_s = clean_paths(remote_files, normalizer, ignore, remote_names)

    # Only files still present locally can have been deleted remotely; if
    # both the index entry's file and the remote copy are gone there is
    # nothing to propagate.
    remote_deleted = frozenset(p for p in tracked_s
                               if p in local_files_s and p not in remote_files_s)

    return Snapshot(
        tracked_files=tracked_s,
        local_deleted_files=clean_paths(deleted, normalizer, ignore, local_names),
        local_files=local_files_s,
        local_dirs=clean_paths(local_dirs, normalizer, ignore, local_names),
        remote_files=remote_files_s,
        remote_dirs=clean_paths(remote_dirs, normalizer, ignore, remote_names),
        remote_deleted_files=remote_deleted,
        local_dir_has_files=dirs_with_files(local_files_s),
        remote_dir_has_files=dirs_with_files(remote_files_s),
        local_names=local_names,
        remote_names=remote_names,
    )


def local_walk(root: Path, ignore: IgnoreSet) -> tuple[list[str], list[str]]:
    """
    Return (files, dirs) under root as relative posix paths. Ignored
    directories are pruned in place so the walk never enters them.
    Symlinks count as neither (same as `find -type f` / `-type d`).
    """
    files: list[str] = []
    dirs: list[str] = []

    def _raise(exc: OSError):
        raise exc

    root_str = str(root)
    for cur, dirnames, filenames in os.walk(root_str, onerror=_raise):
        rel_cur = os.path.relpath(cur, root_str)
        prefix = "" if rel_cur == "." else rel_cur.replace(os.sep, "/") + "/"
        keep = []
        for d in dirnames:
            rel = prefix + d
            if ignore.contains(rel) or os.path.islink(os.path.join(cur, d)):
                continue
            keep.append(d)
            dirs.append(rel)
        dirnames[:] = keep
        for f in filenames:
            full = os.path.join(cur, f)
            if os.path.islink(full) or not os.path.isfile(full):
                continue
            files.append(prefix + f)
    return files, dirs


def remote_find_command(remote_dir: str, kind: str, ignore: IgnoreSet) -> str:
    """Shell command listing remote entries of `kind` ('f' or 'd'), NUL-separated."""
    args = ["."] + ignore.find_prune_args() + ["-type", kind, "-print0"]
    find = "LC_ALL=C find " + " ".join(shlex.quote(a) for a in args)
    return f"cd {shlex.quote(remote_dir)} && {find} 2>/dev/null"


class InventoryCollector:
    """Collects a Snapshot from git, the local disk and the remote host."""

    def __init__(self, config: _cfg.RunConfig, git: GitRepo, ssh: SSHManager):
        self.config = config
        self.git = git
        self.ssh = ssh

    def _git_list(self, what: str, fn) -> list[str]:
        try:
            return fn()
        except GitError as exc:
            raise CollectionError(f"Failed to list {what} for {self.config.local_root}: {exc}") from exc

    def _remote_list(self, kind: str) -> list[str]:
        label = "files" if kind == "f" else "directories"
        cmd = remote_find_command(self.config.remote_dir, kind, self.config.ignore)
        try:
            rc, out, err = self.ssh.run(cmd)
        except (paramiko.SSHException, OSError, EOFError) as exc:
            raise CollectionError(
                f"Failed to read remote {label} from {self.config.remote_host}: {exc}") from exc
        if rc != 0:
            raise CollectionError(
                f"Failed to list remote {label} from {self.config.remote_host} (exit {rc})")
        return [decode_path(p) for p in out.split(b"\0") if p]

    def collect(self) -> Snapshot:
        tracked = self._git_list("tracked files", self.git.ls_files)

        remote_files = self._remote_list("f")
        remote_dirs = self._remote_list("d")

        try:
            local_files, local_dirs = local_walk(self.config.local_root, self.config.ignore)
        except OSError as exc:
            raise CollectionError(
                f"Failed to enumerate local entries under {self.config.local_root}: {exc}") from exc

        deleted = self._git_list("locally deleted files", self.git.ls_deleted)

        snap = build_snapshot(tracked, deleted, local_files, local_dirs,
                              remote_files, remote_dirs,
                              self.config.normalizer, self.config.ignore)
        vlog(f"[scan] tracked={len(snap.tracked_files)} local_files={len(snap.local_files)} "
             f"remote_files={len(snap.remote_files)} local_dirs={len(snap.local_dirs)} "
             f"remote_dirs={len(snap.remote_dirs)}")
        vlog_list(sorted(snap.local_deleted_files), "local_deleted_files")
        vlog_list(sorted(snap.remote_deleted_files), "remote_deleted_files")
        return snap
