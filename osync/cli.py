#!/usr/bin/env python3
"""
osync: git-aware bidirectional directory sync over SSH
======================================================

Keeps a local git working tree and a remote directory convergent: files
deleted on one side are deleted on the other, newer content is copied
both ways with rsync, and everything the run touched is committed.

Usage:
  osync <local_path> <remote_host> <remote_dir> [--realrun] [--seed] [--ignore DIR]...

Without --realrun nothing is changed; the run only reports what it would do.
Run --seed once (first contact) to create the directory ledger on both sides.

Exit codes: 0 success, 1 usage/validation error, 75 transient failure.
"""
import argparse
import sys
from pathlib import Path

from . import config as _cfg
from .errors import EXIT_INTERRUPTED, EXIT_OK, EXIT_USAGE, OsyncError
from .utils.logging import error, log, warn


class _ArgumentParser(argparse.ArgumentParser):
    """argparse exits 2 on bad usage; osync reports every usage error as 1."""

    def error(self, message):
        self.print_usage(sys.stderr)
        error(message)
        sys.exit(EXIT_USAGE)


def build_parser() -> argparse.ArgumentParser:
    parser = _ArgumentParser(
        prog="osync",
        description="Git-aware bidirectional directory sync over SSH",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument("local_path", help="Local git working tree to sync")
    parser.add_argument("remote_host", help="SSH host (aliases from ~/.ssh/config work)")
    parser.add_argument("remote_dir", help="Directory on the remote host (~ is expanded remotely)")
    parser.add_argument("--realrun", action="store_true",
                        help="Apply changes (default: dry-run)")
    parser.add_argument("--seed", action="store_true",
                        help="First contact: create the directory ledger, skip deletions")
    parser.add_argument("--ignore", action="append", default=[], metavar="DIR",
                        help="Relative directory to leave alone (repeatable, no globs)")
    parser.add_argument("-v", "--verbose", action="store_true",
                        help="Debug output (same as SYNC_DEBUG=true)")
    parser.add_argument("--max-passes", type=int, metavar="N", default=None,
                        help=f"Upper bound on deletion passes (default: {_cfg.MAX_PASSES})")
    parser.add_argument("--config", metavar="PATH", default=None,
                        help="YAML config file (default: $XDG_CONFIG_HOME/osync/config.yaml)")
    return parser


def main(argv=None) -> int:
    """CLI entry point for osync"""
    parser = build_parser()
    args = parser.parse_args(argv)
    log(f"Arguments: {' '.join(sys.argv[1:] if argv is None else argv)}")

    if args.max_passes is not None and args.max_passes < 1:
        parser.error("--max-passes must be at least 1")

    from .core.sync_engine import run_sync

    try:
        data = _cfg.load_global_config(Path(args.config).expanduser() if args.config else None)
        settings = _cfg.get_host_settings(data, args.remote_host)
    except ValueError as exc:
        error(str(exc))
        return EXIT_USAGE

    try:
        config = _cfg.build_run_config(args, settings)
        run_sync(config)
    except OsyncError as exc:
        error(str(exc))
        return exc.exit_code
    except KeyboardInterrupt:
        print()
        warn("Interrupted by user. The next run re-derives state from disk.")
        return EXIT_INTERRUPTED
    return EXIT_OK


if __name__ == "__main__":
    sys.exit(main())
