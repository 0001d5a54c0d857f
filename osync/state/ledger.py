"""
Directory ledger (.vault-directories)

Records every directory known to exist on either side at the end of the
last completed run, one path per line, byte-identical on both sides. It
is what lets the reconciler tell "pruned on the other side" (in the
ledger, safe to prune here) from "new, not synced yet" (not in the
ledger, must be kept).
"""
import os
import shlex
import tempfile
from typing import Iterable

import paramiko

from .. import config as _cfg
from ..core.ssh_manager import SSHManager
from ..errors import CollectionError, LedgerDivergence, LedgerMissing
from ..operations.scanner import Snapshot
from ..operations.transfer import TransferDriver
from ..state.change_set import ChangeSet
from ..utils.file_utils import byte_order, is_bare_path
from ..utils.logging import log, vlog
from ..utils.normalize import decode_path, encode_path


def serialize(dirs: Iterable[str]) -> bytes:
    """One directory per line in C-locale byte order."""
    ordered = sorted({d for d in dirs if is_bare_path(d)}, key=byte_order)
    return b"".join(encode_path(d) + b"\n" for d in ordered)


def parse(raw: bytes) -> frozenset:
    return frozenset(decode_path(line) for line in raw.split(b"\n") if line)


class DirectoryLedger:
    def __init__(self, config: _cfg.RunConfig, ssh: SSHManager, transfer: TransferDriver):
        self.config = config
        self.ssh = ssh
        self.transfer = transfer

    @property
    def path(self):
        return self.config.ledger_path

    def load(self) -> frozenset:
        """Local ledger contents; empty if the file does not exist."""
        try:
            return parse(self.path.read_bytes())
        except FileNotFoundError:
            return frozenset()

    def read_remote(self) -> bytes:
        remote_file = f"{self.config.remote_src}{_cfg.LEDGER_FILENAME}"
        try:
            rc, out, _ = self.ssh.run(f"cat -- {shlex.quote(remote_file)}")
        except (paramiko.SSHException, OSError, EOFError) as exc:
            raise CollectionError(f"Failed to read remote ledger: {exc}") from exc
        if rc != 0:
            raise LedgerMissing(
                f"Ledger file missing remotely at {remote_file}. Run with --seed to initialize.")
        return out

    def check_consistency(self):
        """Both copies must exist and match byte-for-byte."""
        if not self.path.is_file():
            raise LedgerMissing(
                f"Ledger file missing locally at {self.path}. Run with --seed to initialize.")
        local = self.path.read_bytes()
        remote = self.read_remote()
        if local != remote:
            raise LedgerDivergence(
                f"Ledger mismatch between local and remote {_cfg.LEDGER_FILENAME}; "
                "aborting to avoid divergence.")
        vlog(f"[ledger] local and remote copies match ({len(parse(local))} dirs)")

    def _write_local(self, content: bytes):
        # write-then-rename so an interrupted run never leaves half a ledger
        fd, tmp = tempfile.mkstemp(prefix=".vault-directories.", dir=str(self.config.local_root))
        try:
            with os.fdopen(fd, "wb") as f:
                f.write(content)
            os.chmod(tmp, 0o644)
            os.replace(tmp, self.path)
        except BaseException:
            if os.path.exists(tmp):
                os.unlink(tmp)
            raise

    def _push(self, src: str):
        self.transfer.push_file(src, _cfg.LEDGER_FILENAME)

    def seed(self, snap: Snapshot) -> frozenset:
        """
        First contact: the ledger becomes the union of both sides, so the two
        histories are merged rather than diffed.
        """
        dirs = frozenset(d for d in snap.all_dirs if is_bare_path(d))
        if self.config.dry_run:
            log(f"DRY-RUN: ledger initialization skipped ({len(dirs)} directories detected)")
            return dirs
        self._write_local(serialize(dirs))
        log(f"[ledger] seeded with {len(dirs)} directories")
        self._push(str(self.path))
        return self.load()

    def finalize(self, snap: Snapshot, change_set: ChangeSet) -> frozenset:
        """Record the settled directory union on both sides."""
        dirs = frozenset(d for d in snap.all_dirs if is_bare_path(d))
        content = serialize(dirs)

        if self.config.dry_run:
            log(f"DRY-RUN: ledger would record {len(dirs)} directories")
            fd, tmp = tempfile.mkstemp(prefix="osync-ledger-")
            try:
                with os.fdopen(fd, "wb") as f:
                    f.write(content)
                self._push(tmp)
            finally:
                os.unlink(tmp)
            return dirs

        self._write_local(content)
        change_set.add(_cfg.LEDGER_FILENAME)
        log(f"[ledger] recorded {len(dirs)} directories")
        self._push(str(self.path))
        return self.load()
