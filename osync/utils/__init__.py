"""Utilities (logging, ignores, normalization, path helpers)"""
from .logging import log, vlog, warn, error, set_verbose
from .ignore_patterns import IgnoreSet, normalize_ignore_dir
from .normalize import Normalizer, NFCNormalizer, NullNormalizer

__all__ = [
    "log", "vlog", "warn", "error", "set_verbose",
    "IgnoreSet", "normalize_ignore_dir",
    "Normalizer", "NFCNormalizer", "NullNormalizer",
]
