"""
BEAM плагин: метрики Erlang VM.
"""

from .catalog import build_catalog
from .plugin import BeamPlugin
from .stat_source import HttpStatSource, SnapshotStatSource, StatSource

__all__ = [
    "BeamPlugin",
    "build_catalog",
    "StatSource",
    "SnapshotStatSource",
    "HttpStatSource",
]
