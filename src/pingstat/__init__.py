"""
pingstat

Continuous ICMP reachability probe with rolling session statistics.

Command line:
    $ pingstat 1.1.1.1 -c 20 --save-interval 60

Sync example:
    >>> from pingstat import PingMonitor, ProbeConfig
    >>> with PingMonitor(ProbeConfig(target="1.1.1.1")) as monitor:
    ...     monitor.wait_for_first_probe()
    ...     print(monitor.stats().summary())

Async example:
    >>> from pingstat import IcmpProber, ProbeConfig, SessionEngine
    >>> engine = SessionEngine(ProbeConfig(target="1.1.1.1", count=5), IcmpProber())
    >>> final = await engine.run()
"""

from .config import ProbeConfig
from .errors import (
    PingstatError,
    ProbeError,
    ProbeTimeout,
    RecorderError,
    ResolutionError,
    TransportError,
    UnsupportedAddressError,
)
from .session import (
    DEFAULT_BUCKETS,
    OUTPUT_KINDS,
    CsvRecorder,
    Histogram,
    IcmpProber,
    JsonRecorder,
    PingMonitor,
    Prober,
    Recorder,
    SessionEngine,
    SessionState,
    SessionStats,
    StatsSnapshot,
    get_recorder,
    normalize_destination,
    resolve_target,
)

__version__ = "0.1.0"

__all__ = [
    # Configuration
    "ProbeConfig",
    # Sync wrapper (recommended for most users)
    "PingMonitor",
    # Async engine
    "SessionEngine",
    "SessionState",
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
    # Exceptions
    "PingstatError",
    "ResolutionError",
    "UnsupportedAddressError",
    "TransportError",
    "ProbeError",
    "ProbeTimeout",
    "RecorderError",
    # Version
    "__version__",
]
