"""Exceptions for osync.

Every fatal condition maps to a process exit code through ``exit_code``.
Setup failures exit 1; failures worth retrying later exit 75.
"""

EXIT_OK = 0
EXIT_USAGE = 1
EXIT_TEMPFAIL = 75  # sysexits EX_TEMPFAIL: safe to retry later
EXIT_INTERRUPTED = 130


class OsyncError(Exception):
    """Base class for fatal osync errors."""

    exit_code = EXIT_USAGE


class UsageError(OsyncError):
    """Bad command-line arguments or a malformed --ignore value."""


class ValidationError(OsyncError):
    """Local path missing, not a git work tree, or remote dir unreachable.

    Raised before anything is mutated.
    """


class LedgerError(OsyncError):
    """Base class for directory-ledger problems."""


class LedgerMissing(LedgerError):
    """The ledger file is absent on one side; a --seed run creates it."""


class LedgerDivergence(LedgerError):
    """Local and remote ledger files differ.

    A previous run was interrupted between updating one side and the other.
    osync refuses to guess which copy is right.
    """


class CollectionError(OsyncError):
    """A listing or query step failed mid-run (git, local walk, SSH)."""

    exit_code = EXIT_TEMPFAIL


class TransferError(OsyncError):
    """rsync exited non-zero."""

    exit_code = EXIT_TEMPFAIL


class LockHeldError(OsyncError):
    """Another osync run holds the lock for this working tree."""

    exit_code = EXIT_TEMPFAIL


class GitError(OsyncError):
    """A git command failed."""

    def __init__(self, cmd, returncode: int, stderr: str = ""):
        self.cmd = list(cmd)
        self.returncode = returncode
        self.stderr = stderr
        detail = f": {stderr.strip()}" if stderr and stderr.strip() else ""
        super().__init__(f"git {' '.join(self.cmd)} exited {returncode}{detail}")
