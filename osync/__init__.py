"""osync: git-aware bidirectional directory sync over SSH"""

__version__ = "0.3.0"
