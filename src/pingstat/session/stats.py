"""
Session statistics.

SessionStats is the mutable record of one reporting window (the whole
session, or one auto-save interval). recompute() derives every field from
the full sample list and the window's sent counter; snapshot() freezes the
result into a StatsSnapshot for the recorders.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Optional, Sequence

from .histogram import Histogram


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def format_timestamp(ts: datetime) -> str:
    """ISO-8601 UTC with a Z suffix."""
    return ts.astimezone(timezone.utc).isoformat().replace("+00:00", "Z")


def parse_timestamp(value: str) -> datetime:
    if value.endswith("Z"):
        value = value[:-1] + "+00:00"
    return datetime.fromisoformat(value)


@dataclass(frozen=True)
class StatsSnapshot:
    """
    Immutable statistics for one window at one instant.

    min/max/avg are None when no reply was received, which keeps
    "no data" distinct from "zero latency".
    """

    target: str
    timestamp: datetime
    sent: int
    received: int
    loss_percent: float
    min: Optional[float]
    max: Optional[float]
    avg: Optional[float]
    latency_buckets: dict[str, int] = field(default_factory=dict)

    def to_dict(self) -> dict:
        """Convert to dictionary for serialization."""
        return {
            "target": self.target,
            "timestamp": format_timestamp(self.timestamp),
            "sent": self.sent,
            "received": self.received,
            "loss_percent": self.loss_percent,
            "min": self.min,
            "max": self.max,
            "avg": self.avg,
            "latency_buckets": dict(self.latency_buckets),
        }

    @classmethod
    def from_dict(cls, data: dict) -> "StatsSnapshot":
        return cls(
            target=data["target"],
            timestamp=parse_timestamp(data["timestamp"]),
            sent=int(data["sent"]),
            received=int(data["received"]),
            loss_percent=float(data["loss_percent"]),
            min=_optional_float(data.get("min")),
            max=_optional_float(data.get("max")),
            avg=_optional_float(data.get("avg")),
            latency_buckets={k: int(v) for k, v in data.get("latency_buckets", {}).items()},
        )

    def summary(self) -> str:
        """Multi-line human readable summary."""
        lines = [
            "=== Current Session Stats ===",
            f"Target: {self.target}",
            f"Timestamp: {format_timestamp(self.timestamp)}",
            f"Packets: Sent={self.sent}, Received={self.received}",
            f"Packet Loss: {self.loss_percent:.1f}%",
        ]
        if self.min is not None and self.max is not None and self.avg is not None:
            lines.append(f"Latency: Min={self.min:.2f}ms, Max={self.max:.2f}ms, Avg={self.avg:.2f}ms")
        else:
            lines.append("Latency: No data available.")
        return "\n".join(lines)


def _optional_float(value) -> Optional[float]:
    if value is None or value == "":
        return None
    return float(value)


class SessionStats:
    """
    Aggregate statistics for one reporting window.

    Args:
        target: Resolved address of the probed host.
        histogram: Bucket layout to use (default latency buckets if omitted).
    """

    def __init__(self, target: str, histogram: Histogram | None = None):
        self.target = target
        self.timestamp: datetime = utcnow()
        self.sent: int = 0
        self.received: int = 0
        self.loss_percent: float = 0.0
        self.min: Optional[float] = None
        self.max: Optional[float] = None
        self.avg: Optional[float] = None
        self.histogram = histogram or Histogram()
        self.latency_buckets: dict[str, int] = dict(self.histogram.counts)

    def recompute(self, sent: int, samples: Sequence[float]) -> StatsSnapshot:
        """
        Replace every derived field from the window's sent counter and samples.

        Returns the resulting snapshot.
        """
        received = len(samples)
        if received > sent:
            raise ValueError(f"received ({received}) cannot exceed sent ({sent})")

        self.timestamp = utcnow()
        self.sent = sent
        self.received = received
        self.loss_percent = 100.0 * (sent - received) / sent if sent > 0 else 0.0

        if samples:
            self.min = min(samples)
            self.max = max(samples)
            self.avg = sum(samples) / received
        else:
            self.min = None
            self.max = None
            self.avg = None

        self.latency_buckets = self.histogram.rebuild(samples)
        return self.snapshot()

    def snapshot(self) -> StatsSnapshot:
        return StatsSnapshot(
            target=self.target,
            timestamp=self.timestamp,
            sent=self.sent,
            received=self.received,
            loss_percent=self.loss_percent,
            min=self.min,
            max=self.max,
            avg=self.avg,
            latency_buckets=dict(self.latency_buckets),
        )

    def __str__(self) -> str:
        if not self.received:
            return f"sent={self.sent} received=0 loss={self.loss_percent:.1f}%"
        return (
            f"sent={self.sent} received={self.received} loss={self.loss_percent:.1f}% "
            f"min={self.min:.2f}ms avg={self.avg:.2f}ms max={self.max:.2f}ms"
        )
