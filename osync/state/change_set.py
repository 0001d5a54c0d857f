"""
Paths touched by the current run (never persisted).

Staging only what the run itself touched, plus what was already dirty when
it started, keeps a concurrent edit made mid-run out of this run's commit.
Paths keep their on-disk spelling; git knows them by that name.
"""
from typing import Iterable

from ..utils.file_utils import byte_order, is_bare_path, strip_dot
from ..utils.ignore_patterns import IgnoreSet


class ChangeSet:
    def __init__(self, ignore: IgnoreSet):
        self.ignore = ignore
        self._paths: dict[str, None] = {}

    def add(self, path: str) -> bool:
        """Record path; returns False if it was dropped (empty, `.`, ignored)."""
        path = strip_dot(path).rstrip("/")
        if not is_bare_path(path):
            return False
        if self.ignore.contains(path):
            return False
        self._paths[path] = None
        return True

    def update(self, paths: Iterable[str]):
        for p in paths:
            self.add(p)

    def __contains__(self, path) -> bool:
        return path in self._paths

    def __len__(self) -> int:
        return len(self._paths)

    def __iter__(self):
        return iter(sorted(self._paths, key=byte_order))
