"""
Git bookkeeping after a sync: stage what the run touched, commit, push.
"""
from dataclasses import dataclass

from .. import config as _cfg
from ..core.git_repo import GitRepo
from ..state.change_set import ChangeSet
from ..utils.logging import log, timestamp, vlog, warn


@dataclass
class CommitResult:
    staged: int = 0
    skipped_ignored: int = 0
    untracked_ignored: int = 0
    leftover: bool = False
    committed: bool = False


def has_unstaged_leftovers(entries) -> bool:
    """True if status shows untracked files or worktree changes not in the index."""
    for xy, _ in entries:
        if xy == "??" or xy[1] != " ":
            return True
    return False


def stage_paths(git: GitRepo, change_set: ChangeSet, result: CommitResult):
    for path in change_set:
        if git.is_ignored(path):
            if git.is_tracked(path):
                git.untrack(path)
            log(f"Skipping gitignored path: {path}")
            result.skipped_ignored += 1
            continue
        full = git.root / path
        if full.is_dir() and not full.is_symlink():
            # `git add dir` would stage everything below it, ignored dirs included
            vlog(f"skip staging for directory: {path!r}")
            continue
        # Only paths that exist or that git still tracks; anything else
        # has already been recorded as removed and would be a pathspec error.
        if full.exists() or full.is_symlink() or git.is_tracked(path):
            git.add(path)
            result.staged += 1
        else:
            vlog(f"skip staging for vanished path: {path!r}")


def commit_changes(git: GitRepo, change_set: ChangeSet, config: _cfg.RunConfig) -> CommitResult:
    """
    Stage the run's change set, drop tracked files that are now gitignored,
    then commit and push if anything is staged. Dry runs only show status.
    """
    result = CommitResult()
    if config.dry_run:
        log("DRY-RUN: skipping git add/commit/push. Local status (what would change):")
        print(git.status_text(), end="")
        return result

    if len(change_set):
        stage_paths(git, change_set, result)

    ignored = git.ls_ignored_tracked()
    if ignored:
        log(f"Cleaning tracked gitignored paths ({len(ignored)})")
        for path in ignored:
            if git.untrack(path):
                result.untracked_ignored += 1

    # Edits made while we were running are left for the next run
    if has_unstaged_leftovers(git.status_entries()):
        result.leftover = True
        warn("additional unstaged changes detected; committing staged paths only.")

    if git.has_staged_changes():
        git.commit(f"Update at {timestamp()}")
        git.push()
        result.committed = True
    else:
        log("No changes to commit.")
    return result
