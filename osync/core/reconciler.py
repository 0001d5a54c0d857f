"""
Deletion reconciliation: propagate deletions between the trees until a
pass finds nothing left to delete.

Each pass is collect → plan → apply. Planning is a pure function of one
Snapshot and the directory ledger; applying is the only step with side
effects. Re-collecting before every pass means a pass never works from
sets that a previous pass already invalidated.
"""
from dataclasses import dataclass, field

from .. import config as _cfg
from ..operations.delete import Deleter
from ..operations.scanner import InventoryCollector, Snapshot
from ..state.change_set import ChangeSet
from ..utils.file_utils import byte_order, deepest_first
from ..utils.ignore_patterns import IgnoreSet
from ..utils.logging import log, vlog, vlog_bytes, vlog_list, warn

PREVIEW_LINES = 10

AXES = (
    ("remote_files", "No files to delete on remote"),
    ("remote_dirs", "No directories to prune on remote"),
    ("local_files", "No files to delete locally"),
    ("local_dirs", "No directories to prune locally"),
)


@dataclass(frozen=True)
class DeletionPlan:
    remote_files: tuple = ()
    remote_dirs: tuple = ()   # deepest first
    local_files: tuple = ()
    local_dirs: tuple = ()    # deepest first

    @property
    def is_empty(self) -> bool:
        return not (self.remote_files or self.remote_dirs or self.local_files or self.local_dirs)

    @property
    def total(self) -> int:
        return (len(self.remote_files) + len(self.remote_dirs)
                + len(self.local_files) + len(self.local_dirs))


def _prunable(dirs, ledger, other_side_dirs, has_files, ignore: IgnoreSet) -> list[str]:
    """
    A directory is pruned only if it was known to exist at the end of the
    last run (ledger), is gone on the other side, and holds no files.
    A directory absent from the ledger is new and is never pruned.
    """
    return deepest_first(
        d for d in dirs
        if not ignore.contains(d)
        and d in ledger
        and d not in other_side_dirs
        and d not in has_files
    )


def plan_deletions(snap: Snapshot, ledger: frozenset, ignore: IgnoreSet) -> DeletionPlan:
    """Compute the deletions one pass should apply on both sides."""
    remote_files = []
    for f in sorted(snap.local_deleted_files, key=byte_order):
        if ignore.contains(f):
            continue
        vlog_bytes("candidate", f)
        if f in snap.remote_files:
            vlog(f"queue remote delete: {f!r} (remote_has=yes)")
            remote_files.append(f)
        else:
            vlog(f"skip remote delete: {f!r} (remote_has=no)")

    local_files = [f for f in sorted(snap.remote_deleted_files, key=byte_order)
                   if not ignore.contains(f) and f in snap.local_files]

    return DeletionPlan(
        remote_files=tuple(remote_files),
        remote_dirs=tuple(_prunable(snap.remote_dirs, ledger, snap.local_dirs,
                                    snap.remote_dir_has_files, ignore)),
        local_files=tuple(local_files),
        local_dirs=tuple(_prunable(snap.local_dirs, ledger, snap.remote_dirs,
                                   snap.local_dir_has_files, ignore)),
    )


@dataclass
class ReconcileReport:
    passes: int = 0
    converged: bool = False
    remote_files: int = 0
    remote_dirs: int = 0
    local_files: int = 0
    local_dirs: int = 0
    failures: list = field(default_factory=list)

    @property
    def total(self) -> int:
        return self.remote_files + self.remote_dirs + self.local_files + self.local_dirs


def _preview(paths):
    for p in list(paths)[:PREVIEW_LINES]:
        print(p)
    if len(paths) > PREVIEW_LINES:
        print(f"... ({len(paths) - PREVIEW_LINES} more)")


class Reconciler:
    """Runs deletion passes until the two trees agree on what is gone."""

    def __init__(self, config: _cfg.RunConfig, collector: InventoryCollector,
                 deleter: Deleter, change_set: ChangeSet):
        self.config = config
        self.collector = collector
        self.deleter = deleter
        self.change_set = change_set

    def run(self, ledger: frozenset) -> ReconcileReport:
        report = ReconcileReport()
        summary_printed = False
        dry = self.config.dry_run

        while True:
            # CollectionError propagates: never plan from a partial listing
            snap = self.collector.collect()
            plan = plan_deletions(snap, ledger, self.config.ignore)
            vlog_list(plan.remote_files, "remote_delete_files")
            vlog_list(plan.remote_dirs, "remote_dirs_to_prune")
            vlog_list(plan.local_files, "local_delete_files")
            vlog_list(plan.local_dirs, "local_dirs_to_prune")

            if plan.is_empty:
                report.converged = True
                if report.passes == 0:
                    for _, msg in AXES:
                        log(f">>> {msg} <<<")
                    summary_printed = True
                break

            if report.passes >= self.config.max_passes:
                warn(f"Deletions did not settle after {report.passes} passes; "
                     f"{plan.total} still pending, continuing with transfer.")
                break

            report.passes += 1
            log(f"Deletion pass #{report.passes}")
            self._apply(plan, snap, report)

            if dry:
                log("DRY-RUN: stopping deletion reconciliation after simulated pass (tree unchanged).")
                break

        if not summary_printed:
            for axis, msg in AXES:
                if getattr(report, axis) == 0:
                    log(f">>> {msg} <<<")
        if report.failures:
            warn(f"{len(report.failures)} deletion(s) failed; the next run retries them.")
            vlog_list(report.failures, "failed_deletions")
        return report

    def _apply(self, plan: DeletionPlan, snap: Snapshot, report: ReconcileReport):
        """Apply one plan. Paths go out in the spelling each side actually uses."""
        dry = self.config.dry_run
        remote = snap.remote_name
        local = snap.local_name

        if plan.remote_files:
            log(f">>> Remote deletions queued ({len(plan.remote_files)}) <<<")
            report.remote_files += len(plan.remote_files)
            _preview(plan.remote_files)
            self.change_set.update(local(p) for p in plan.remote_files)
            if dry:
                log("DRY-RUN: skipping remote deletions")
            else:
                report.failures += self.deleter.delete_remote_files([remote(p) for p in plan.remote_files])

        if plan.remote_dirs:
            log(f"Remote directories to prune ({len(plan.remote_dirs)}):")
            report.remote_dirs += len(plan.remote_dirs)
            _preview(plan.remote_dirs)
            if dry:
                log("DRY-RUN: skipping remote directory pruning")
            else:
                report.failures += self.deleter.prune_remote_dirs([remote(d) for d in plan.remote_dirs])

        if plan.local_files:
            log(f">>> Local deletions queued ({len(plan.local_files)}) <<<")
            report.local_files += len(plan.local_files)
            _preview(plan.local_files)
            self.change_set.update(local(p) for p in plan.local_files)
            if dry:
                log("DRY-RUN: skipping local deletions")
            else:
                report.failures += self.deleter.delete_local_files([local(p) for p in plan.local_files])

        if plan.local_dirs:
            log(f"Local directories to prune ({len(plan.local_dirs)}):")
            report.local_dirs += len(plan.local_dirs)
            _preview(plan.local_dirs)
            if dry:
                log("DRY-RUN: skipping local directory pruning")
            else:
                report.failures += self.deleter.prune_local_dirs([local(d) for d in plan.local_dirs])
