"""
Shared fakes for the osync tests.

LocalShell stands in for SSHManager by running the exact same shell
commands locally with `sh -c`; the "remote" tree is just another temp dir.
FakeTransfer stands in for rsync with the same update-if-newer semantics.
"""
import os
import shutil
import subprocess
from pathlib import Path

from osync import config as _cfg
from osync.utils.file_utils import quote_remote_path

HAS_GIT = shutil.which("git") is not None


class LocalShell:
    """SSHManager look-alike that executes commands on this machine."""

    def __init__(self):
        self.commands = []

    def run(self, cmd, stdin_data=None, timeout=None):
        self.commands.append(cmd)
        proc = subprocess.run(["sh", "-c", cmd], input=stdin_data if stdin_data is not None else b"",
                              stdout=subprocess.PIPE, stderr=subprocess.PIPE)
        return proc.returncode, proc.stdout, proc.stderr

    def resolve_dir(self, remote_dir):
        rc, out, _ = self.run(f"cd {quote_remote_path(remote_dir)} && pwd -P")
        if rc != 0:
            return None
        return out.decode("utf-8", "surrogateescape").strip() or None

    def disconnect(self):
        pass


class FakeTransfer:
    """Copies newer files between the two local dirs, like `rsync --update`."""

    def __init__(self, config):
        self.config = config
        self.pushed = []
        self.syncs = []

    def _copy_tree(self, src: Path, dst: Path) -> set:
        touched = set()
        ignore = self.config.ignore
        for cur, dirnames, filenames in os.walk(src):
            rel_cur = os.path.relpath(cur, src)
            prefix = "" if rel_cur == "." else rel_cur.replace(os.sep, "/") + "/"
            dirnames[:] = [d for d in dirnames
                           if not ignore.contains(prefix + d) and d != _cfg.PARTIAL_DIR]
            for d in dirnames:
                target = dst / (prefix + d)
                # directories are created but, like in the rsync log, not reported
                if not target.is_dir() and not self.config.dry_run:
                    target.mkdir(parents=True)
            for f in filenames:
                rel = prefix + f
                if rel == _cfg.LEDGER_FILENAME:
                    continue
                s, t = src / rel, dst / rel
                if t.exists() and s.stat().st_mtime <= t.stat().st_mtime:
                    continue
                touched.add(rel)
                if not self.config.dry_run:
                    shutil.copy2(s, t)
        return touched

    def sync(self, direction):
        self.syncs.append(direction)
        local, remote = Path(self.config.local_root), Path(self.config.remote_dir)
        if direction == "push":
            touched = self._copy_tree(local, remote)
        else:
            touched = self._copy_tree(remote, local)
        return set() if self.config.dry_run else touched

    def push_file(self, src, remote_rel):
        self.pushed.append(remote_rel)
        if not self.config.dry_run:
            shutil.copy2(src, Path(self.config.remote_dir) / remote_rel)


def git(root, *args):
    return subprocess.run(["git", "-C", str(root), *args], check=True,
                          stdout=subprocess.PIPE, stderr=subprocess.PIPE)


def make_git_repo(root: Path, files: dict = None) -> Path:
    """Create a repo at root with an initial commit and a bare origin to push to."""
    root.mkdir(parents=True, exist_ok=True)
    origin = root.parent / (root.name + "-origin.git")
    subprocess.run(["git", "init", "-q", "--bare", str(origin)], check=True)
    git(root, "init", "-q")
    git(root, "config", "user.email", "tests@example.com")
    git(root, "config", "user.name", "osync tests")
    git(root, "config", "commit.gpgsign", "false")
    for rel, content in (files or {"README.md": "hello\n"}).items():
        p = root / rel
        p.parent.mkdir(parents=True, exist_ok=True)
        p.write_text(content, encoding="utf-8")
    git(root, "add", "-A")
    git(root, "commit", "-q", "-m", "initial")
    git(root, "remote", "add", "origin", str(origin))
    git(root, "push", "-q", "-u", "origin", "HEAD")
    return root


def write(root: Path, rel: str, content: str = "x\n") -> Path:
    p = root / rel
    p.parent.mkdir(parents=True, exist_ok=True)
    p.write_text(content, encoding="utf-8")
    return p
