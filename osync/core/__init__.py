"""Core functionality (transport, git, reconciliation, orchestration)"""
from .ssh_manager import SSHManager
from .git_repo import GitRepo

__all__ = ["SSHManager", "GitRepo"]
