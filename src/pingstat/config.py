"""Run configuration."""

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from .session.recorder import OUTPUT_KINDS, normalize_destination


# Default configuration
DEFAULT_TIMEOUT = 4.0
DEFAULT_PACKET_SIZE = 56
DEFAULT_OUTPUT = "ping_history.json"
DEFAULT_OUTPUT_KIND = "json"
DEFAULT_TICK = 1.0


@dataclass
class ProbeConfig:
    """
    Settings for one probing session. Built once at startup.

    Args:
        target: Host name or IPv4 address to probe.
        count: Probes to send, or None to run until interrupted.
        timeout: Per-probe timeout in seconds.
        packet_size: ICMP payload size in bytes.
        output: Results file name (extension normalized to output_kind).
        output_kind: "json" (snapshot list) or "csv" (one row per snapshot).
        directory: Directory for the results file. Reads from PINGSTAT_DIR
                   env var, defaults to the current directory.
        save_interval: Seconds between interval auto-saves, None to disable.
        tick: Fixed probe cadence in seconds.
    """

    target: str
    count: Optional[int] = None
    timeout: float = DEFAULT_TIMEOUT
    packet_size: int = DEFAULT_PACKET_SIZE
    output: str = DEFAULT_OUTPUT
    output_kind: str = DEFAULT_OUTPUT_KIND
    directory: Optional[Path] = None
    save_interval: Optional[float] = None
    tick: float = DEFAULT_TICK

    def __post_init__(self):
        if not self.target:
            raise ValueError("target is required")
        if self.count is not None and self.count < 1:
            raise ValueError("count must be at least 1")
        if self.timeout < 0:
            raise ValueError("timeout cannot be negative")
        if self.packet_size < 0:
            raise ValueError("packet_size cannot be negative")
        if self.tick < 0:
            raise ValueError("tick cannot be negative")
        if not self.output or not Path(self.output).name:
            raise ValueError("output must name a file")
        if self.save_interval is not None and self.save_interval < 1:
            raise ValueError("save_interval must be at least 1 second")

        self.output_kind = self.output_kind.lower()
        if self.output_kind not in OUTPUT_KINDS:
            raise ValueError(f"output_kind must be one of {', '.join(OUTPUT_KINDS)}")

        if self.directory is None and os.getenv("PINGSTAT_DIR"):
            self.directory = Path(os.environ["PINGSTAT_DIR"])
        elif self.directory is not None:
            self.directory = Path(self.directory)

    @property
    def save_path(self) -> Path:
        """Results destination with the extension matching output_kind."""
        path = Path(self.output)
        if self.directory is not None:
            path = self.directory / path
        return normalize_destination(path, self.output_kind)
