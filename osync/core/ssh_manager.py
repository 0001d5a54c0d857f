"""
SSH connection manager with auto-reconnect and keep-alive
"""
from pathlib import Path
from typing import Optional

import paramiko

from .. import config as _cfg
from ..utils.file_utils import quote_remote_path
from ..utils.logging import log, vlog
from ..utils.retry import retried


class SSHManager:
    """
    Wraps paramiko SSHClient for command execution on the remote host.
    Host aliases are resolved through ~/.ssh/config, authentication is
    non-interactive (agent or key files only, never a prompt).
    Automatically reconnects on channel errors.
    """

    def __init__(self, host: str, user: Optional[str] = None, port: Optional[int] = None,
                 key_path: Optional[str] = None, connect_timeout: float = _cfg.SSH_CONNECT_TIMEOUT):
        self.alias = host
        self._ssh: Optional[paramiko.SSHClient] = None
        self._connect_timeout = connect_timeout

        resolved = self._lookup_ssh_config(host)
        self.hostname = resolved.get("hostname", host)
        self.user = user or resolved.get("user")
        self.port = int(port or resolved.get("port", 22))
        keys = resolved.get("identityfile") or []
        self.key_path = key_path or (str(Path(keys[0]).expanduser()) if keys else None)

    @staticmethod
    def _lookup_ssh_config(host: str) -> dict:
        cfg_path = Path.home() / ".ssh" / "config"
        if not cfg_path.is_file():
            return {}
        try:
            return paramiko.SSHConfig.from_path(str(cfg_path)).lookup(host)
        except (OSError, paramiko.SSHException):
            return {}

    # ── connection ─────────────────────────────────────────────────────────

    def connect(self):
        if self._ssh:
            try:
                self._ssh.get_transport().send_ignore()  # test if alive
                return
            except Exception:
                self._close_quietly()

        who = f"{self.user}@" if self.user else ""
        log(f"[SSH] connecting to {who}{self.hostname}:{self.port} …")
        client = paramiko.SSHClient()
        client.load_system_host_keys()
        client.set_missing_host_key_policy(paramiko.AutoAddPolicy())
        kw: dict = dict(hostname=self.hostname, port=self.port,
                        timeout=self._connect_timeout, banner_timeout=30, auth_timeout=30,
                        allow_agent=True, look_for_keys=True)
        if self.user:
            kw["username"] = self.user
        if self.key_path:
            kw["key_filename"] = self.key_path

        client.connect(**kw)

        # Keep-alive: send a NOP every 30s
        client.get_transport().set_keepalive(30)

        self._ssh = client
        vlog("[SSH] connected ✓")

    def _close_quietly(self):
        try:
            if self._ssh:
                self._ssh.close()
        except Exception:
            pass
        self._ssh = None

    def reset(self):
        """Forget the current connection; the next call reconnects."""
        self._close_quietly()

    def disconnect(self):
        self._close_quietly()
        vlog("[SSH] disconnected.")

    def ensure_connected(self):
        """Call before any remote operation."""
        try:
            if self._ssh and self._ssh.get_transport().is_active():
                return
        except Exception:
            pass
        self.connect()

    # ── raw exec ────────────────────────────────────────────────────────────

    @retried
    def run(self, cmd: str, stdin_data: Optional[bytes] = None,
            timeout: float = _cfg.SSH_COMMAND_TIMEOUT) -> tuple[int, bytes, bytes]:
        """Run a command, optionally feeding stdin; return (rc, stdout, stderr) as bytes."""
        self.ensure_connected()
        stdin, stdout, stderr = self._ssh.exec_command(cmd, timeout=timeout)
        if stdin_data is not None:
            stdin.write(stdin_data)
            stdin.flush()
        stdin.channel.shutdown_write()
        out = stdout.read()
        err = stderr.read()
        rc = stdout.channel.recv_exit_status()
        return rc, out, err

    # ── checks ──────────────────────────────────────────────────────────────

    def resolve_dir(self, remote_dir: str) -> Optional[str]:
        """
        Return the absolute physical path of remote_dir (expanding `~`),
        or None if it is not a directory on the remote host.
        """
        rc, out, _ = self.run(f"cd {quote_remote_path(remote_dir)} && pwd -P",
                              timeout=self._connect_timeout)
        if rc != 0:
            return None
        resolved = out.decode("utf-8", "surrogateescape").strip()
        return resolved or None
