"""
Path helpers shared by the scanner, reconciler and ledger
"""
import shlex
from typing import Iterable, Iterator

from .normalize import encode_path


def strip_dot(path: str) -> str:
    """Drop the leading `./` that find prints in front of every entry."""
    while path.startswith("./"):
        path = path[2:]
    return path


def is_bare_path(path: str) -> bool:
    """False for the empty string and `.`, which never name a real entry."""
    return bool(path) and path != "."


def ancestors(path: str) -> Iterator[str]:
    """Yield every ancestor directory of path, nearest first.

    >>> list(ancestors("a/b/c.txt"))
    ['a/b', 'a']
    """
    cur = path
    while "/" in cur:
        cur = cur.rsplit("/", 1)[0]
        if cur:
            yield cur


def dirs_with_files(files: Iterable[str]) -> frozenset:
    """Every directory that has at least one file somewhere underneath it."""
    result: set[str] = set()
    for f in files:
        for parent in ancestors(f):
            if parent in result:
                # the rest of the chain was added by an earlier sibling
                break
            result.add(parent)
    return frozenset(result)


def depth(path: str) -> int:
    return path.count("/")


def byte_order(path: str) -> bytes:
    """Sort key matching `LC_ALL=C sort`."""
    return encode_path(path)


def deepest_first(paths: Iterable[str]) -> list[str]:
    return sorted(paths, key=lambda p: (-depth(p), byte_order(p)))


def quote_remote_path(path: str) -> str:
    """
    Quote a remote path for the remote shell but keep a leading `~` or
    `~user` unquoted so the remote side still expands it.
    """
    if path.startswith("~"):
        prefix, sep, rest = path.partition("/")
        if not sep:
            return prefix
        return prefix + "/" + shlex.quote(rest) if rest else prefix + "/"
    return shlex.quote(path)
