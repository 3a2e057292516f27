"""
Core helpers for the widget engine shared across hosts.
"""

from .fanout import FanoutEngine, FanoutReport, PersistFailed  # noqa: F401
from .moment_store import MomentStore, StorageUnavailable  # noqa: F401
