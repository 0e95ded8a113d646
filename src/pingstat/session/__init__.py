"""
Probing session module.

Accumulates probe outcomes for a run and an auto-save interval, computes
loss/latency statistics and persists snapshots.
"""

from .engine import SessionEngine, SessionState, StatsWindow
from .histogram import DEFAULT_BUCKETS, Histogram
from .monitor import PingMonitor
from .prober import IcmpProber, Prober, resolve_target
from .recorder import (
    OUTPUT_KINDS,
    CsvRecorder,
    JsonRecorder,
    Recorder,
    get_recorder,
    normalize_destination,
)
from .stats import SessionStats, StatsSnapshot

__all__ = [
    # Sync wrapper
    "PingMonitor",
    # Async engine
    "SessionEngine",
    "SessionState",
    "StatsWindow",
    # Statistics
    "Histogram",
    "DEFAULT_BUCKETS",
    "SessionStats",
    "StatsSnapshot",
    # Transport
    "Prober",
    "IcmpProber",
    "resolve_target",
    # Recorders
    "Recorder",
    "JsonRecorder",
    "CsvRecorder",
    "OUTPUT_KINDS",
    "get_recorder",
    "normalize_destination",
]
