"""
Delete operations (local and remote)

Every function here is best effort: a single failing entry is logged and
reported back, never raised. The next reconciliation pass re-detects
whatever is left and tries again.
"""
import errno
import os
import shlex

import paramiko

from .. import config as _cfg
from ..core.ssh_manager import SSHManager
from ..utils.logging import log, warn
from ..utils.normalize import decode_path, encode_path

# Reads NUL-separated names on stdin, rmdirs each one in order and echoes
# back (NUL-separated) the ones that could not be removed. POSIX sh only.
_REMOTE_RMDIR_LOOP = "xargs -0 sh -c " + shlex.quote(
    'for d; do rmdir -- "$d" 2>/dev/null || printf \'%s\\0\' "$d"; done'
) + " sh"


def _nul_join(paths) -> bytes:
    return b"".join(encode_path(p) + b"\0" for p in paths)


class Deleter:
    """Applies deletion plans to both trees."""

    def __init__(self, config: _cfg.RunConfig, ssh: SSHManager):
        self.config = config
        self.ssh = ssh

    def _remote(self, script: str, paths: list[str]) -> tuple[int, bytes, bytes]:
        cmd = f"cd {shlex.quote(self.config.remote_dir)} && {script}"
        return self.ssh.run(cmd, stdin_data=_nul_join(paths))

    def delete_remote_files(self, paths: list[str]) -> list[str]:
        """Remove files on the remote in one batched `rm`. Returns paths that failed."""
        if not paths:
            return []
        log("[remote] deleting files:")
        for p in paths:
            log(f"  {p}")
        try:
            rc, _, err = self._remote("xargs -0 rm -f --", paths)
        except (paramiko.SSHException, OSError, EOFError) as exc:
            warn(f"remote file deletion failed: {exc}")
            return list(paths)
        if rc != 0:
            warn(f"remote rm exited {rc}: {err.decode('utf-8', 'replace').strip()}")
            # rm -f does not say which ones failed; the next pass finds out
            return list(paths)
        return []

    def prune_remote_dirs(self, dirs: list[str]) -> list[str]:
        """rmdir remote directories (deepest first). Returns dirs left in place."""
        if not dirs:
            return []
        log("[remote] pruning directories:")
        for d in dirs:
            log(f"  {d}")
        try:
            _, out, _ = self._remote(_REMOTE_RMDIR_LOOP, dirs)
        except (paramiko.SSHException, OSError, EOFError) as exc:
            warn(f"remote directory pruning failed: {exc}")
            return list(dirs)
        failed = [decode_path(p) for p in out.split(b"\0") if p]
        for d in failed:
            warn(f"failed to prune remote directory {d}")
        return failed

    def delete_local_files(self, paths: list[str]) -> list[str]:
        if not paths:
            return []
        log("[local] deleting files:")
        failed = []
        for rel in paths:
            log(f"  {rel}")
            try:
                os.remove(self.config.local_root / rel)
            except FileNotFoundError:
                warn(f"failed to delete {rel}: no such file")
                failed.append(rel)
            except OSError as exc:
                warn(f"failed to delete {rel}: {exc.strerror}")
                failed.append(rel)
        return failed

    def prune_local_dirs(self, dirs: list[str]) -> list[str]:
        if not dirs:
            return []
        log("[local] pruning directories:")
        failed = []
        for rel in dirs:
            log(f"  {rel}")
            try:
                os.rmdir(self.config.local_root / rel)
            except OSError as exc:
                # Someone else may have removed or refilled it meanwhile
                if exc.errno not in (errno.ENOENT,):
                    warn(f"failed to prune directory {rel}: {exc.strerror}")
                    failed.append(rel)
        return failed
