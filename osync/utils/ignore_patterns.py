"""
Ignored directories (--ignore DIR) handling.

Ignores are plain relative directory paths, never globs: excluding a
directory excludes everything underneath it. A directory matches at any
depth, so `.git` also covers `sub/.git`.
"""
from ..errors import UsageError

GLOB_CHARS = ("*", "?", "[")
ALWAYS_IGNORED = ".git"


def normalize_ignore_dir(raw: str) -> str:
    """Validate an --ignore value and return its canonical form."""
    d = raw
    if not d:
        raise UsageError("Ignore directory cannot be empty.")
    while d.startswith("./"):
        d = d[2:]
    d = d.rstrip("/") if d != "/" else d
    if not d or d == ".":
        raise UsageError("Ignore directory cannot reference the repository root.")
    if d.startswith("/"):
        raise UsageError(f"Ignore directories must be relative (no leading /): {raw}")
    if d == ".." or d.startswith("../") or "/../" in f"/{d}/":
        raise UsageError(f"Ignore directories cannot traverse upward: {raw}")
    if any(c in d for c in GLOB_CHARS):
        raise UsageError(f"Ignore directories cannot include glob characters: {raw}")
    return d


class IgnoreSet:
    """Ordered, de-duplicated set of ignored directories; `.git` is implicit."""

    def __init__(self, dirs=()):
        self._dirs: list[str] = []
        self.add(ALWAYS_IGNORED)
        for d in dirs:
            self.add(d)

    def add(self, raw: str):
        d = normalize_ignore_dir(raw)
        if d not in self._dirs:
            self._dirs.append(d)

    @property
    def dirs(self) -> tuple:
        return tuple(self._dirs)

    def __iter__(self):
        return iter(self._dirs)

    def __len__(self):
        return len(self._dirs)

    def __repr__(self):
        return f"IgnoreSet({self._dirs!r})"

    def __eq__(self, other):
        return isinstance(other, IgnoreSet) and self._dirs == other._dirs

    def contains(self, rel_path: str) -> bool:
        """True if rel_path is an ignored directory or lies underneath one."""
        if rel_path.startswith("./"):
            rel_path = rel_path[2:]
        wrapped = f"/{rel_path}/"
        return any(f"/{d}/" in wrapped for d in self._dirs)

    def find_prune_args(self) -> list[str]:
        """
        Build the `( -path P -o … ) -prune -o` prefix of a find expression so
        find never descends into ignored subtrees.
        """
        args: list[str] = ["("]
        for i, d in enumerate(self._dirs):
            if i:
                args.append("-o")
            args += ["-path", f"*/{d}"]
        args += [")", "-prune", "-o"]
        return args

    def rsync_excludes(self) -> list[str]:
        return [f"--exclude={d}/" for d in self._dirs]
