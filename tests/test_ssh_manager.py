"""
Tests for SSH host resolution and the transport retry decorator.
"""
import os
import tempfile
import unittest
from pathlib import Path
from unittest import mock

from osync.core.ssh_manager import SSHManager
from osync.utils.retry import retried


class TestHostResolution(unittest.TestCase):

    def setUp(self):
        self.tmpdir = tempfile.TemporaryDirectory()
        self.home = Path(self.tmpdir.name)
        (self.home / ".ssh").mkdir()
        (self.home / ".ssh" / "config").write_text(
            "Host nas\n"
            "    HostName 10.0.0.5\n"
            "    User backup\n"
            "    Port 2200\n"
            "    IdentityFile ~/.ssh/nas_key\n",
            encoding="utf-8",
        )
        self._env = mock.patch.dict(os.environ, {"HOME": str(self.home)})
        self._env.start()

    def tearDown(self):
        self._env.stop()
        self.tmpdir.cleanup()

    def test_alias_from_ssh_config(self):
        ssh = SSHManager("nas")
        self.assertEqual(ssh.hostname, "10.0.0.5")
        self.assertEqual(ssh.user, "backup")
        self.assertEqual(ssh.port, 2200)
        self.assertEqual(ssh.key_path, str(self.home / ".ssh" / "nas_key"))

    def test_explicit_settings_win(self):
        ssh = SSHManager("nas", user="me", port=22, key_path="/keys/k")
        self.assertEqual((ssh.user, ssh.port, ssh.key_path), ("me", 22, "/keys/k"))

    def test_unknown_host_is_used_verbatim(self):
        ssh = SSHManager("example.org")
        self.assertEqual(ssh.hostname, "example.org")
        self.assertEqual(ssh.port, 22)
        self.assertIsNone(ssh.user)


class Flaky:
    def __init__(self, failures, exc=EOFError):
        self.failures = failures
        self.exc = exc
        self.calls = 0
        self.resets = 0

    def reset(self):
        self.resets += 1

    @retried
    def run(self):
        self.calls += 1
        if self.calls <= self.failures:
            raise self.exc("channel closed")
        return "ok"


@mock.patch("osync.utils.retry.time.sleep")
class TestRetried(unittest.TestCase):

    def test_recovers_from_transient_errors(self, _sleep):
        flaky = Flaky(failures=2)
        self.assertEqual(flaky.run(), "ok")
        self.assertEqual(flaky.calls, 3)
        self.assertEqual(flaky.resets, 2)

    def test_gives_up_after_max_attempts(self, _sleep):
        flaky = Flaky(failures=10)
        with self.assertRaises(EOFError):
            flaky.run()
        self.assertEqual(flaky.calls, 3)

    def test_other_errors_are_not_retried(self, _sleep):
        flaky = Flaky(failures=1, exc=ValueError)
        with self.assertRaises(ValueError):
            flaky.run()
        self.assertEqual(flaky.calls, 1)


if __name__ == "__main__":
    unittest.main()
