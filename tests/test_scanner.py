"""
Tests for inventory collection: snapshot building, the local walk and the
remote `find` listing.
"""
import os
import tempfile
import unicodedata
import unittest
from pathlib import Path

from osync.config import RunConfig
from osync.errors import CollectionError, GitError
from osync.operations.scanner import (
    InventoryCollector, build_snapshot, clean_paths, is_reserved, local_walk,
    remote_find_command,
)
from osync.utils.ignore_patterns import IgnoreSet
from osync.utils.normalize import NFCNormalizer, NullNormalizer

from support import LocalShell, write

NFD_CAFE = unicodedata.normalize("NFD", "café.md")
NFC_CAFE = unicodedata.normalize("NFC", "café.md")


def snapshot(tracked=(), deleted=(), local_files=(), local_dirs=(),
             remote_files=(), remote_dirs=(), normalizer=None, ignore=None):
    return build_snapshot(tracked, deleted, local_files, local_dirs,
                          remote_files, remote_dirs,
                          normalizer or NFCNormalizer(), ignore or IgnoreSet())


class FakeGit:
    def __init__(self, tracked=(), deleted=(), fail=False):
        self.tracked = list(tracked)
        self.deleted = list(deleted)
        self.fail = fail

    def ls_files(self):
        if self.fail:
            raise GitError(("ls-files", "-z"), 128, "fatal: index file corrupt")
        return self.tracked

    def ls_deleted(self):
        return self.deleted


class TestBuildSnapshot(unittest.TestCase):

    def test_find_prefix_and_dot_are_dropped(self):
        snap = snapshot(remote_files=["./a.txt", "./d/b.txt"], remote_dirs=[".", "./d"])
        self.assertEqual(snap.remote_files, {"a.txt", "d/b.txt"})
        self.assertEqual(snap.remote_dirs, {"d"})

    def test_remote_deleted_requires_local_presence(self):
        snap = snapshot(tracked=["a.txt", "b.txt", "c.txt"],
                        deleted=["c.txt"],
                        local_files=["a.txt", "b.txt"],
                        remote_files=["a.txt"])
        self.assertEqual(snap.remote_deleted_files, {"b.txt"})
        self.assertEqual(snap.local_deleted_files, {"c.txt"})

    def test_nfd_and_nfc_names_compare_equal(self):
        snap = snapshot(tracked=[NFC_CAFE], local_files=[NFC_CAFE], remote_files=[NFD_CAFE])
        self.assertEqual(snap.remote_files, {NFC_CAFE})
        self.assertEqual(snap.remote_deleted_files, frozenset())

    def test_on_disk_spellings_are_kept_per_side(self):
        snap = snapshot(tracked=[NFD_CAFE], local_files=[NFD_CAFE], remote_files=[NFC_CAFE],
                        remote_dirs=[unicodedata.normalize("NFD", "été")])
        self.assertEqual(snap.local_files, {NFC_CAFE})
        self.assertEqual(snap.local_name(NFC_CAFE), NFD_CAFE)
        self.assertEqual(snap.remote_name(NFC_CAFE), NFC_CAFE)
        self.assertEqual(snap.remote_name(unicodedata.normalize("NFC", "été")),
                         unicodedata.normalize("NFD", "été"))
        self.assertEqual(snap.local_name("plain.md"), "plain.md")

    def test_without_normalization_forms_differ(self):
        snap = snapshot(tracked=[NFC_CAFE], local_files=[NFC_CAFE], remote_files=[NFD_CAFE],
                        normalizer=NullNormalizer())
        self.assertEqual(snap.remote_deleted_files, {NFC_CAFE})

    def test_ignored_paths_are_dropped(self):
        snap = snapshot(local_files=[".git/HEAD", "tmp/x", "notes/a.md"],
                        local_dirs=["tmp", "notes"],
                        ignore=IgnoreSet(["tmp"]))
        self.assertEqual(snap.local_files, {"notes/a.md"})
        self.assertEqual(snap.local_dirs, {"notes"})

    def test_reserved_paths_are_dropped(self):
        snap = snapshot(tracked=[".vault-directories", "a.txt"],
                        local_files=[".vault-directories", "a.txt"],
                        remote_files=["a.txt", "d/.rsync-partial/a.txt"],
                        remote_dirs=["d", "d/.rsync-partial"])
        self.assertEqual(snap.tracked_files, {"a.txt"})
        self.assertEqual(snap.remote_files, {"a.txt"})
        self.assertEqual(snap.remote_dirs, {"d"})
        # a ledger that exists only locally is never treated as remote-deleted
        self.assertEqual(snap.remote_deleted_files, frozenset())

    def test_dir_has_files_covers_every_ancestor(self):
        snap = snapshot(local_files=["a/b/c/f.txt", "a/g.txt"])
        self.assertEqual(snap.local_dir_has_files, {"a", "a/b", "a/b/c"})

    def test_all_dirs_is_union(self):
        snap = snapshot(local_dirs=["a", "b"], remote_dirs=["b", "c"])
        self.assertEqual(snap.all_dirs, {"a", "b", "c"})


class TestHelpers(unittest.TestCase):

    def test_is_reserved(self):
        self.assertTrue(is_reserved(".vault-directories"))
        self.assertTrue(is_reserved(".rsync-partial"))
        self.assertTrue(is_reserved("a/.rsync-partial/x"))
        self.assertFalse(is_reserved("a/.vault-directories"))
        self.assertFalse(is_reserved("rsync-partial"))

    def test_clean_paths(self):
        self.assertEqual(clean_paths(["./x", ".", "", "./"], NullNormalizer(), IgnoreSet()),
                         {"x"})

    def test_remote_find_command_prunes_ignores(self):
        cmd = remote_find_command("/srv/vault dir", "f", IgnoreSet(["tmp"]))
        self.assertTrue(cmd.startswith("cd '/srv/vault dir' && LC_ALL=C find . "))
        self.assertIn("'*/.git' -o -path '*/tmp' ')' -prune -o -type f -print0", cmd)


class TestLocalWalk(unittest.TestCase):

    def setUp(self):
        self.tmpdir = tempfile.TemporaryDirectory()
        self.root = Path(self.tmpdir.name)

    def tearDown(self):
        self.tmpdir.cleanup()

    def test_walk_prunes_ignored_and_skips_symlinks(self):
        write(self.root, "a.txt")
        write(self.root, "notes/b.md")
        write(self.root, ".git/HEAD")
        write(self.root, "tmp/cache.bin")
        (self.root / "empty").mkdir()
        os.symlink(self.root / "a.txt", self.root / "link.txt")
        os.symlink(self.root / "notes", self.root / "linkdir")

        files, dirs = local_walk(self.root, IgnoreSet(["tmp"]))
        self.assertEqual(sorted(files), ["a.txt", "notes/b.md"])
        self.assertEqual(sorted(dirs), ["empty", "notes"])

    def test_missing_root_raises(self):
        with self.assertRaises(OSError):
            local_walk(self.root / "nope", IgnoreSet())


class TestInventoryCollector(unittest.TestCase):

    def setUp(self):
        self.tmpdir = tempfile.TemporaryDirectory()
        base = Path(self.tmpdir.name)
        self.local = base / "local"
        self.remote = base / "remote"
        self.local.mkdir()
        self.remote.mkdir()

    def tearDown(self):
        self.tmpdir.cleanup()

    def _config(self, remote_dir=None):
        return RunConfig(local_root=self.local, remote_host="host",
                         remote_dir=str(remote_dir or self.remote),
                         ignore=IgnoreSet(["tmp"]))

    def test_collect_both_sides(self):
        write(self.local, "a.txt")
        write(self.local, "d/b.txt")
        write(self.remote, "a.txt")
        write(self.remote, "r/c.txt")
        write(self.remote, "tmp/skip.txt")
        write(self.remote, "sub dir/with space.txt")

        git = FakeGit(tracked=["a.txt", "d/b.txt", "gone.txt"], deleted=["gone.txt"])
        snap = InventoryCollector(self._config(), git, LocalShell()).collect()

        self.assertEqual(snap.local_files, {"a.txt", "d/b.txt"})
        self.assertEqual(snap.local_dirs, {"d"})
        self.assertEqual(snap.remote_files, {"a.txt", "r/c.txt", "sub dir/with space.txt"})
        self.assertEqual(snap.remote_dirs, {"r", "sub dir"})
        self.assertEqual(snap.local_deleted_files, {"gone.txt"})
        self.assertEqual(snap.remote_deleted_files, {"d/b.txt"})

    def test_missing_remote_dir_is_a_collection_error(self):
        collector = InventoryCollector(self._config(self.remote / "missing"),
                                       FakeGit(), LocalShell())
        with self.assertRaisesRegex(CollectionError, "remote files"):
            collector.collect()

    def test_git_failure_is_a_collection_error(self):
        collector = InventoryCollector(self._config(), FakeGit(fail=True), LocalShell())
        with self.assertRaises(CollectionError) as ctx:
            collector.collect()
        self.assertEqual(ctx.exception.exit_code, 75)

    def test_transport_failure_is_a_collection_error(self):
        class DeadShell:
            def run(self, cmd, stdin_data=None, timeout=None):
                raise EOFError("connection closed")

        collector = InventoryCollector(self._config(), FakeGit(), DeadShell())
        with self.assertRaisesRegex(CollectionError, "connection closed"):
            collector.collect()


if __name__ == "__main__":
    unittest.main()
