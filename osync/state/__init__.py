"""Run state (directory ledger, paths to stage)"""
from .change_set import ChangeSet

__all__ = ["ChangeSet"]
