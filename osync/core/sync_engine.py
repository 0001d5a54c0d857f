"""
Run orchestration: validate → lock → inventory → ledger → deletions →
transfer → ledger finalize → git bookkeeping.
"""
import dataclasses
from dataclasses import dataclass
from typing import Callable, Optional

import paramiko

from .. import config as _cfg
from ..core.git_repo import GitRepo
from ..core.reconciler import Reconciler, ReconcileReport
from ..core.ssh_manager import SSHManager
from ..errors import CollectionError, GitError, ValidationError
from ..operations.commit import CommitResult, commit_changes
from ..operations.delete import Deleter
from ..operations.scanner import InventoryCollector
from ..operations.transfer import PULL, PUSH, TransferDriver
from ..state.change_set import ChangeSet
from ..state.ledger import DirectoryLedger
from ..utils.lock import run_lock
from ..utils.logging import log, set_verbose, vlog


@dataclass
class SyncReport:
    mode: str
    seed: bool
    reconcile: Optional[ReconcileReport] = None
    transferred: int = 0
    ledger_dirs: int = 0
    commit: Optional[CommitResult] = None

    @property
    def deletions(self) -> int:
        return self.reconcile.total if self.reconcile else 0


def _connect_remote(config: _cfg.RunConfig, ssh: SSHManager) -> str:
    """Return the remote dir as an absolute path, or fail validation."""
    where = f"{config.remote_host}:{config.remote_dir}"
    try:
        resolved = ssh.resolve_dir(config.remote_dir)
    except (paramiko.SSHException, OSError, EOFError) as exc:
        raise ValidationError(f"Remote host unreachable: {config.remote_host} ({exc})") from exc
    if not resolved:
        raise ValidationError(f"Remote dir NOT found: {where}")
    log(f"Remote dir exists: {where}")
    return resolved


def _dirty_paths(git: GitRepo) -> list[str]:
    try:
        return [path for _, path in git.status_entries()]
    except GitError as exc:
        raise CollectionError(f"Failed to read git status: {exc}") from exc


def run_sync(config: _cfg.RunConfig, *, ssh: Optional[SSHManager] = None,
             git: Optional[GitRepo] = None,
             transfer_factory: Callable[[_cfg.RunConfig], TransferDriver] = TransferDriver) -> SyncReport:
    set_verbose(config.verbose)

    print(f"\n{'=' * 64}")
    print(f"  Sync  {config.local_src}")
    print(f"   ↔   {config.remote_host}:{config.remote_dir}")
    print(f"{'=' * 64}")
    log(f"Mode:   {config.mode_label}")
    if config.dry_run:
        log("NOTE: running in DRY-RUN mode; destructive operations are skipped")

    # ── Validation: nothing is touched before all of it passes ─────────────
    if not config.local_root.is_dir():
        raise ValidationError(
            f"The provided path is not a directory: {config.local_root}")
    git = git or GitRepo(config.local_root)
    if not git.is_work_tree():
        raise ValidationError(f"Not a git repository: {config.local_root}")

    own_ssh = ssh is None
    if own_ssh:
        ssh = SSHManager(config.remote_host, user=config.ssh_user,
                         port=config.ssh_port, key_path=config.ssh_key)
    try:
        config = dataclasses.replace(config, remote_dir=_connect_remote(config, ssh))
        with run_lock(git.git_dir() / _cfg.LOCK_FILENAME):
            return _run_locked(config, ssh, git, transfer_factory(config))
    finally:
        if own_ssh:
            ssh.disconnect()


def _run_locked(config: _cfg.RunConfig, ssh: SSHManager, git: GitRepo,
                transfer: TransferDriver) -> SyncReport:
    report = SyncReport(mode=config.mode_label, seed=config.seed)
    change_set = ChangeSet(config.ignore)
    collector = InventoryCollector(config, git, ssh)
    ledger = DirectoryLedger(config, ssh, transfer)

    snap = collector.collect()
    log(f"remote_files count: {len(snap.remote_files)}")
    log(f"tracked_files count: {len(snap.tracked_files)}")
    log(f"deleted_files_remote count: {len(snap.remote_deleted_files)}")
    log(f"deleted_files_local count: {len(snap.local_deleted_files)}")
    log(f"Seed: {str(config.seed).lower()}")

    if config.seed:
        # First contact: merge the trees, never diff them
        log("We are in seed mode")
        ledger.seed(snap)
    else:
        ledger.check_consistency()
        known_dirs = ledger.load()
        vlog(f"[ledger] {len(known_dirs)} known directories")

        log("Starting deletion reconciliation")
        # Remember what was dirty before we touched anything
        change_set.update(_dirty_paths(git))
        reconciler = Reconciler(config, collector, Deleter(config, ssh), change_set)
        report.reconcile = reconciler.run(known_dirs)

    # ── Updates both ways ───────────────────────────────────────────────────
    for direction in (PUSH, PULL):
        touched = transfer.sync(direction)
        report.transferred += len(touched)
        change_set.update(touched)

    # ── Ledger reflects the settled state ───────────────────────────────────
    snap = collector.collect()
    report.ledger_dirs = len(ledger.finalize(snap, change_set))

    # ── Git bookkeeping ─────────────────────────────────────────────────────
    report.commit = commit_changes(git, change_set, config)
    return report
